"""Tests for debounced, supersession-safe session orchestration."""

import asyncio

import pytest

from convograph.chains.brand_synthesis import BrandSynthesizer
from convograph.core.errors import ProviderConfigurationError
from convograph.core.provider_chain import ProviderChain
from convograph.core.schemas_session import ConversationMessage, StreamName, StreamState, TranscriptEvent
from convograph.db.persistence import BRAND_TABLE, INSIGHTS_TABLE
from convograph.services.session_orchestrator import SessionOrchestrator, TranscriptBuffer
from tests.fakes.fake_providers import (
    ControlledGraphPipeline,
    ControlledInsightSynthesizer,
    FailingSink,
    RecordingSink,
    llm_provider,
)

FIRST = "Our startup Acme builds analytics tools."
SECOND = "Acme sells dashboards to retail customers."


def committed(text):
    return TranscriptEvent(type="committed", text=text)


def partial(text):
    return TranscriptEvent(type="partial", text=text)


async def until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


def make_orchestrator(
    graph=None, insight=None, sink=None, brand=None, graph_debounce=0.01, insight_debounce=0.01, auto_brand=False
):
    orchestrator = SessionOrchestrator(
        graph_pipeline=graph or ControlledGraphPipeline(),
        insight_synthesizer=insight or ControlledInsightSynthesizer(),
        brand_synthesizer=brand,
        sink=sink or RecordingSink(),
        graph_debounce_seconds=graph_debounce,
        insight_debounce_seconds=insight_debounce,
        brand_debounce_seconds=0.01,
        min_derivation_chars=20,
        auto_brand=auto_brand,
    )
    orchestrator.connect()
    return orchestrator


class TestTranscriptBuffer:
    def test_partial_is_an_overlay(self):
        buffer = TranscriptBuffer()
        assert buffer.apply(partial("hello wor")) is False
        assert buffer.live_text == "hello wor"
        assert buffer.apply(committed("hello world")) is True
        assert buffer.live_text == "hello world"
        buffer.apply(partial("and more"))
        assert buffer.committed == "hello world"
        assert buffer.live_text == "hello world and more"

    def test_empty_commit_does_not_grow(self):
        buffer = TranscriptBuffer()
        assert buffer.apply(committed("   ")) is False
        assert buffer.committed == ""


@pytest.mark.asyncio
async def test_publish_stamps_epoch_and_transitions_states():
    graph = ControlledGraphPipeline(gated=True)
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(committed(FIRST))
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.PENDING

    await graph.wait_for_calls(1)
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.DERIVING

    graph.calls[0].release()
    await orchestrator.drain()

    snapshot = orchestrator.latest_graph
    assert snapshot is not None
    assert snapshot.epoch == 1
    assert set(snapshot.positions) == {n.id for n in snapshot.nodes}
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.PUBLISHED


@pytest.mark.asyncio
async def test_stale_result_is_discarded_after_newer_publish():
    graph = ControlledGraphPipeline(gated=True)
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(committed(FIRST))
    await graph.wait_for_calls(1)
    orchestrator.handle_event(committed(SECOND))
    await graph.wait_for_calls(2)

    # Epoch 2 resolves first and publishes
    graph.calls[1].release()
    await until(lambda: orchestrator.latest_graph is not None)
    assert orchestrator.latest_graph.epoch == 2

    # Epoch 1 resolves late and must not overwrite
    graph.calls[0].release()
    await orchestrator.drain()

    assert orchestrator.latest_graph.epoch == 2
    assert orchestrator.session.graph.discarded == 1
    assert graph.calls[1].text == f"{FIRST} {SECOND}"


@pytest.mark.asyncio
async def test_stale_result_resolving_before_newer_is_also_discarded():
    graph = ControlledGraphPipeline(gated=True)
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(committed(FIRST))
    await graph.wait_for_calls(1)
    orchestrator.handle_event(committed(SECOND))
    await graph.wait_for_calls(2)

    graph.calls[0].release()
    await asyncio.sleep(0.01)
    assert orchestrator.latest_graph is None

    graph.calls[1].release()
    await orchestrator.drain()
    assert orchestrator.latest_graph.epoch == 2


@pytest.mark.asyncio
async def test_debounce_coalesces_rapid_inputs():
    graph = ControlledGraphPipeline()
    orchestrator = make_orchestrator(graph=graph, graph_debounce=0.05)

    orchestrator.handle_event(partial("Our startup Acme builds"))
    orchestrator.handle_event(partial("Our startup Acme builds analytics"))
    orchestrator.handle_event(partial("Our startup Acme builds analytics tools"))
    await orchestrator.drain()

    assert len(graph.calls) == 1
    assert graph.calls[0].text == "Our startup Acme builds analytics tools"
    assert orchestrator.latest_graph.epoch == 3


@pytest.mark.asyncio
async def test_short_or_unchanged_input_does_not_schedule():
    graph = ControlledGraphPipeline()
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(partial("too short"))
    await orchestrator.drain()
    assert graph.calls == []
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.IDLE

    orchestrator.handle_event(committed(FIRST))
    await orchestrator.drain()
    # Empty partial leaves the live text unchanged
    orchestrator.handle_event(partial(""))
    await orchestrator.drain()

    assert len(graph.calls) == 1
    assert orchestrator.session.graph.epoch == 1


@pytest.mark.asyncio
async def test_next_layout_is_seeded_from_published_positions():
    graph = ControlledGraphPipeline()
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(committed(FIRST))
    await orchestrator.drain()
    first_positions = orchestrator.latest_graph.positions

    orchestrator.handle_event(committed(SECOND))
    await orchestrator.drain()

    assert graph.calls[0].previous_positions is None
    assert graph.calls[1].previous_positions == first_positions


@pytest.mark.asyncio
async def test_insight_stream_uses_committed_text_and_messages():
    insight = ControlledInsightSynthesizer()
    sink = RecordingSink()
    orchestrator = make_orchestrator(insight=insight, sink=sink)

    orchestrator.handle_event(partial("partial speech is not insight input"))
    orchestrator.handle_event(ConversationMessage(source="user", message="I want to build a CRM for plumbers"))
    orchestrator.handle_event(ConversationMessage(source="ai", message="Who pays for it?"))
    await orchestrator.drain()

    assert len(insight.calls) == 1
    text = insight.calls[0].text
    assert text == "User: I want to build a CRM for plumbers\n\nAI Agent: Who pays for it?"

    record = orchestrator.latest_insight
    assert record.epoch == 2
    assert record.summary == text

    tables = [table for table, _ in sink.saved]
    assert tables == [INSIGHTS_TABLE]
    row = sink.saved[0][1]
    assert row.session_id == orchestrator.session_id
    assert row.epoch == 2
    assert row.differentiation == ["faster"]


@pytest.mark.asyncio
async def test_streams_are_independent():
    graph = ControlledGraphPipeline(gated=True)
    insight = ControlledInsightSynthesizer()
    orchestrator = make_orchestrator(graph=graph, insight=insight)

    orchestrator.handle_event(committed(FIRST))
    await insight.wait_for_calls(1)
    await until(lambda: orchestrator.latest_insight is not None)

    # Insight published while the graph derivation is still blocked
    assert orchestrator.latest_graph is None
    assert orchestrator.latest_insight.epoch == 1

    graph.calls[0].release()
    await orchestrator.drain()
    assert orchestrator.latest_graph.epoch == 1


@pytest.mark.asyncio
async def test_sink_failure_is_unobservable():
    sink = FailingSink()
    orchestrator = make_orchestrator(sink=sink)

    orchestrator.handle_event(ConversationMessage(source="user", message="A marketplace for used lab equipment"))
    await orchestrator.drain()

    assert sink.attempts == 1
    assert orchestrator.latest_insight is not None
    assert orchestrator.stream_state(StreamName.INSIGHT) == StreamState.PUBLISHED


@pytest.mark.asyncio
async def test_derivation_error_publishes_nothing():
    graph = ControlledGraphPipeline(gated=True)
    orchestrator = make_orchestrator(graph=graph)

    orchestrator.handle_event(committed(FIRST))
    await graph.wait_for_calls(1)
    graph.calls[0].fail(RuntimeError("layout exploded"))
    await orchestrator.drain()

    assert orchestrator.latest_graph is None
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.IDLE

    orchestrator.handle_event(committed(SECOND))
    await graph.wait_for_calls(2)
    graph.calls[1].release()
    await orchestrator.drain()
    assert orchestrator.latest_graph.epoch == 2


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_and_resets():
    graph = ControlledGraphPipeline()
    orchestrator = make_orchestrator(graph=graph, graph_debounce=0.05)

    orchestrator.handle_event(committed(FIRST))
    orchestrator.disconnect()
    await asyncio.sleep(0.08)
    await orchestrator.drain()

    assert graph.calls == []
    session = orchestrator.session
    assert session.graph.epoch == 0
    assert session.insight.epoch == 0
    assert session.buffer.live_text == ""
    assert session.messages == []
    assert orchestrator.stream_state(StreamName.GRAPH) == StreamState.IDLE
    assert orchestrator.stream_state(StreamName.INSIGHT) == StreamState.IDLE

    # Events while disconnected are ignored
    orchestrator.handle_event(committed(SECOND))
    await orchestrator.drain()
    assert graph.calls == []


@pytest.mark.asyncio
async def test_reconnect_discards_results_from_previous_identity():
    graph = ControlledGraphPipeline(gated=True)
    orchestrator = make_orchestrator(graph=graph)
    old_id = orchestrator.session_id

    orchestrator.handle_event(committed(FIRST))
    await graph.wait_for_calls(1)

    new_id = orchestrator.reconnect()
    assert new_id != old_id
    assert orchestrator.session.graph.epoch == 0

    orchestrator.handle_event(committed(SECOND))
    await graph.wait_for_calls(2)

    # Old identity's epoch 1 resolves; same epoch number, different session
    graph.calls[0].release()
    await asyncio.sleep(0.01)
    assert orchestrator.latest_graph is None

    graph.calls[1].release()
    await orchestrator.drain()
    assert orchestrator.latest_graph.epoch == 1
    assert graph.calls[1].text == SECOND


@pytest.mark.asyncio
async def test_run_loop_consumes_submitted_events():
    graph = ControlledGraphPipeline()
    orchestrator = make_orchestrator(graph=graph)

    runner = asyncio.create_task(orchestrator.run())
    orchestrator.submit(committed(FIRST))
    orchestrator.close()
    await runner
    await orchestrator.drain()

    assert orchestrator.latest_graph.epoch == 1


@pytest.mark.asyncio
async def test_generate_brand_persists_row():
    sink = RecordingSink()
    brand_llm = llm_provider("openai", '{"name": ["Plumbly"], "tagline": ["Pipes, sorted"]}')
    orchestrator = make_orchestrator(sink=sink, brand=BrandSynthesizer(ProviderChain([brand_llm], name="llm")))

    orchestrator.handle_event(committed("We build scheduling software for plumbers."))
    await orchestrator.drain()

    brand = await orchestrator.generate_brand()
    await orchestrator.drain()

    assert brand.name == ["Plumbly"]
    assert orchestrator.latest_brand == brand
    brand_rows = [row for table, row in sink.saved if table == BRAND_TABLE]
    assert len(brand_rows) == 1
    assert brand_rows[0].brand_name == ["Plumbly"]
    assert brand_rows[0].session_id == orchestrator.session_id
    assert brand_rows[0].insights_summary == "We build scheduling software for plumbers."


@pytest.mark.asyncio
async def test_generate_brand_requires_synthesizer():
    orchestrator = make_orchestrator()
    with pytest.raises(ProviderConfigurationError):
        await orchestrator.generate_brand()


@pytest.mark.asyncio
async def test_older_brand_generation_resolving_last_is_discarded():
    sink = RecordingSink()
    brand_llm = llm_provider("openai", '{"name": ["Slowbrand"]}', '{"name": ["Fastbrand"]}', delay=[0.2, 0.01])
    orchestrator = make_orchestrator(sink=sink, brand=BrandSynthesizer(ProviderChain([brand_llm], name="llm")))

    orchestrator.handle_event(committed("We build scheduling software for plumbers."))
    await orchestrator.drain()

    older = asyncio.create_task(orchestrator.generate_brand())
    await until(lambda: len(brand_llm.requests) == 1)
    newer = asyncio.create_task(orchestrator.generate_brand())

    assert (await newer).name == ["Fastbrand"]
    assert orchestrator.latest_brand.name == ["Fastbrand"]

    # The caller still gets its own result, but it is neither published nor saved
    assert (await older).name == ["Slowbrand"]
    await orchestrator.drain()

    assert orchestrator.latest_brand.name == ["Fastbrand"]
    assert orchestrator.session.brand.epoch == 2
    assert orchestrator.session.brand.discarded == 1
    assert orchestrator.stream_state(StreamName.BRAND) == StreamState.PUBLISHED
    assert [row.brand_name for table, row in sink.saved if table == BRAND_TABLE] == [["Fastbrand"]]


@pytest.mark.asyncio
async def test_brand_generation_spanning_reconnect_is_not_published():
    sink = RecordingSink()
    brand_llm = llm_provider("openai", '{"name": ["Gonebrand"]}', delay=0.05)
    orchestrator = make_orchestrator(sink=sink, brand=BrandSynthesizer(ProviderChain([brand_llm], name="llm")))
    orchestrator.handle_event(committed("We build scheduling software for plumbers."))
    await orchestrator.drain()

    pending = asyncio.create_task(orchestrator.generate_brand())
    await until(lambda: len(brand_llm.requests) == 1)
    orchestrator.reconnect()
    await pending
    await orchestrator.drain()

    assert orchestrator.latest_brand is None
    assert not [row for table, row in sink.saved if table == BRAND_TABLE]


@pytest.mark.asyncio
async def test_published_insight_refreshes_brand_when_enabled():
    sink = RecordingSink()
    brand_llm = llm_provider("openai", '{"name": ["Plumbly"]}', '{"name": ["Pipewise"]}')
    orchestrator = make_orchestrator(
        sink=sink, brand=BrandSynthesizer(ProviderChain([brand_llm], name="llm")), auto_brand=True
    )

    orchestrator.handle_event(committed("We build scheduling software for plumbers."))
    await orchestrator.drain()

    assert orchestrator.latest_brand.name == ["Plumbly"]
    assert orchestrator.session.brand.epoch == 1
    assert orchestrator.stream_state(StreamName.BRAND) == StreamState.PUBLISHED

    orchestrator.handle_event(ConversationMessage(source="user", message="Can it also send invoices?"))
    await orchestrator.drain()

    assert orchestrator.latest_insight.epoch == 2
    assert orchestrator.latest_brand.name == ["Pipewise"]
    assert orchestrator.session.brand.epoch == 2
    brand_rows = [row for table, row in sink.saved if table == BRAND_TABLE]
    assert [row.brand_name for row in brand_rows] == [["Plumbly"], ["Pipewise"]]
    assert brand_rows[1].insights_summary == orchestrator.latest_insight.summary


@pytest.mark.asyncio
async def test_short_insight_does_not_refresh_brand():
    brand_llm = llm_provider("openai", '{"name": ["Plumbly"]}')
    orchestrator = make_orchestrator(brand=BrandSynthesizer(ProviderChain([brand_llm], name="llm")), auto_brand=True)

    orchestrator.handle_event(committed("Plumbing scheduler!!"))
    await orchestrator.drain()

    assert orchestrator.latest_insight is not None
    assert orchestrator.latest_brand is None
    assert brand_llm.requests == []
