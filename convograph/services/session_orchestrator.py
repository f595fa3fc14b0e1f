"""Debounced, supersession-safe derivation controller for one live session.

Each session owns a transcript buffer, a message log and independent
derivation streams (graph, insight, brand). Every qualifying input bumps the
stream's epoch and restarts its debounce timer. When the timer fires the
derivation runs as a task stamped with ``(session_id, epoch)``; when it
resolves the result is published only if that stamp is still current.
Superseded derivations are never cancelled, they are discarded on arrival.

The brand stream is fed by published insights (when enabled) and by
on-demand ``generate_brand`` calls, which bump the same epoch.

All state mutation happens on the event loop (timer callbacks, task
continuations, ``handle_event``), so no locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from convograph.chains.brand_synthesis import BrandSynthesizer
from convograph.chains.graph_pipeline import GraphPipeline
from convograph.chains.insight_synthesis import InsightSynthesizer
from convograph.core.errors import ProviderConfigurationError
from convograph.core.logging import get_logger, log_with_context
from convograph.core.schemas_graph import GraphSnapshot
from convograph.core.schemas_insights import BrandRecord, InsightRecord
from convograph.core.schemas_session import (
    BrandRow,
    ConversationMessage,
    InsightsRow,
    StreamName,
    StreamState,
    TranscriptEvent,
)
from convograph.db.persistence import (
    BRAND_TABLE,
    INSIGHTS_TABLE,
    NullSink,
    PersistenceSink,
    save_quietly,
)

logger = get_logger(__name__)

_CLOSE = object()

# Auto brand refresh needs a substantive transcript or insight summary
BRAND_MIN_TRANSCRIPT_CHARS = 50
BRAND_MIN_SUMMARY_CHARS = 20


@dataclass
class TranscriptBuffer:
    """Committed text only grows; the partial span is a replaceable overlay."""

    committed: str = ""
    partial: str = ""

    def apply(self, event: TranscriptEvent) -> bool:
        """Apply an event. Returns True when committed text grew."""
        text = event.text.strip()
        self.partial = ""
        if event.type == "partial":
            self.partial = text
            return False
        if not text:
            return False
        self.committed = f"{self.committed} {text}".strip()
        return True

    @property
    def live_text(self) -> str:
        return f"{self.committed} {self.partial}".strip()


@dataclass
class DerivationStream:
    """Epoch counter, debounce timer and state for one derivation stream."""

    name: StreamName
    debounce_seconds: float
    epoch: int = 0
    state: StreamState = StreamState.IDLE
    last_trigger: str | None = None
    pending_text: str = ""
    timer: asyncio.TimerHandle | None = None
    derivations_started: int = 0
    discarded: int = 0

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass
class Session:
    """All mutable state of one connection. Replaced wholesale on (re)connect."""

    session_id: str
    graph: DerivationStream
    insight: DerivationStream
    brand: DerivationStream
    connected: bool = True
    buffer: TranscriptBuffer = field(default_factory=TranscriptBuffer)
    messages: list[ConversationMessage] = field(default_factory=list)
    latest_graph: GraphSnapshot | None = None
    latest_insight: InsightRecord | None = None
    latest_brand: BrandRecord | None = None

    def stream(self, name: StreamName) -> DerivationStream:
        return getattr(self, name.value)

    @property
    def streams(self) -> tuple[DerivationStream, ...]:
        return (self.graph, self.insight, self.brand)

    def conversation_text(self) -> str:
        return "\n\n".join(m.render() for m in self.messages if m.message.strip())

    def insight_text(self) -> str:
        parts = [self.buffer.committed, self.conversation_text()]
        return "\n\n".join(p for p in parts if p)

    def brand_text(self) -> str:
        return self.buffer.live_text or self.conversation_text()


class SessionOrchestrator:
    """Owns one session and drives its graph, insight and brand streams."""

    def __init__(
        self,
        graph_pipeline: GraphPipeline,
        insight_synthesizer: InsightSynthesizer,
        brand_synthesizer: BrandSynthesizer | None = None,
        sink: PersistenceSink | None = None,
        graph_debounce_seconds: float = 1.0,
        insight_debounce_seconds: float = 3.0,
        brand_debounce_seconds: float = 2.0,
        min_derivation_chars: int = 20,
        auto_brand: bool = False,
    ):
        self.graph_pipeline = graph_pipeline
        self.insight_synthesizer = insight_synthesizer
        self.brand_synthesizer = brand_synthesizer
        self.sink = sink or NullSink()
        self.graph_debounce_seconds = graph_debounce_seconds
        self.insight_debounce_seconds = insight_debounce_seconds
        self.brand_debounce_seconds = brand_debounce_seconds
        self.min_derivation_chars = min_derivation_chars
        self.auto_brand = auto_brand

        self._tasks: set[asyncio.Task] = set()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._session = self._new_session(connected=False)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _new_session(self, connected: bool) -> Session:
        return Session(
            session_id=str(uuid.uuid4()),
            graph=DerivationStream(StreamName.GRAPH, self.graph_debounce_seconds),
            insight=DerivationStream(StreamName.INSIGHT, self.insight_debounce_seconds),
            brand=DerivationStream(StreamName.BRAND, self.brand_debounce_seconds),
            connected=connected,
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def latest_graph(self) -> GraphSnapshot | None:
        return self._session.latest_graph

    @property
    def latest_insight(self) -> InsightRecord | None:
        return self._session.latest_insight

    @property
    def latest_brand(self) -> BrandRecord | None:
        return self._session.latest_brand

    def connect(self) -> str:
        """Start a fresh connection; any previous state is dropped."""
        self._reset(connected=True)
        logger.info(f"Session connected: {self._session.session_id}")
        return self._session.session_id

    def disconnect(self) -> None:
        """Zero epochs, clear buffers and return every stream to idle."""
        previous = self._session.session_id
        self._reset(connected=False)
        logger.info(f"Session disconnected: {previous}")

    def reconnect(self) -> str:
        self.disconnect()
        return self.connect()

    def _reset(self, connected: bool) -> None:
        for stream in self._session.streams:
            stream.cancel_timer()
        self._session = self._new_session(connected=connected)

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def submit(self, event: TranscriptEvent | ConversationMessage) -> None:
        """Queue an event for the ``run`` loop."""
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the ``run`` loop after queued events are handled."""
        self._queue.put_nowait(_CLOSE)

    async def run(self) -> None:
        """Consume submitted events until ``close`` is called."""
        while True:
            event = await self._queue.get()
            if event is _CLOSE:
                break
            try:
                self.handle_event(event)
            except Exception as e:
                logger.error(f"Failed to handle event {type(event).__name__}: {e}")

    def handle_event(self, event: TranscriptEvent | ConversationMessage) -> None:
        """Apply one inbound event and schedule any affected stream."""
        session = self._session
        if not session.connected:
            logger.debug(f"Ignoring {type(event).__name__} while disconnected")
            return

        if isinstance(event, TranscriptEvent):
            committed_grew = session.buffer.apply(event)
            self._offer(session, session.graph, session.buffer.live_text)
            if committed_grew:
                self._offer(session, session.insight, session.insight_text())
        elif isinstance(event, ConversationMessage):
            if not event.message.strip():
                return
            session.messages.append(event)
            self._offer(session, session.insight, session.insight_text())
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

    # ------------------------------------------------------------------
    # Debounce and supersession
    # ------------------------------------------------------------------

    def _offer(self, session: Session, stream: DerivationStream, text: str, trigger: str | None = None) -> None:
        if len(text.strip()) < self.min_derivation_chars:
            return
        trigger = text if trigger is None else trigger
        if trigger == stream.last_trigger:
            return

        stream.last_trigger = trigger
        stream.pending_text = text
        stream.epoch += 1
        stream.cancel_timer()
        stream.state = StreamState.PENDING

        loop = asyncio.get_running_loop()
        stream.timer = loop.call_later(
            stream.debounce_seconds, self._fire, session, stream, stream.epoch
        )

    def _is_current(self, session: Session, stream: DerivationStream, epoch: int) -> bool:
        return session is self._session and stream.epoch == epoch

    def _fire(self, session: Session, stream: DerivationStream, epoch: int) -> None:
        stream.timer = None
        if not self._is_current(session, stream, epoch):
            return

        stream.state = StreamState.DERIVING
        stream.derivations_started += 1
        log_with_context(
            logger,
            logging.DEBUG,
            "Derivation started",
            session_id=session.session_id,
            stream=stream.name.value,
            epoch=epoch,
        )
        self._spawn(self._derive(session, stream, epoch, stream.pending_text))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _derive(self, session: Session, stream: DerivationStream, epoch: int, text: str) -> None:
        try:
            if stream.name == StreamName.GRAPH:
                previous = session.latest_graph.positions if session.latest_graph else None
                derivation = await self.graph_pipeline.derive(text, previous)
                if not self._accept(session, stream, epoch):
                    return
                session.latest_graph = GraphSnapshot(
                    epoch=epoch,
                    nodes=derivation.nodes,
                    edges=derivation.edges,
                    positions=derivation.positions,
                )
            elif stream.name == StreamName.INSIGHT:
                payload = await self.insight_synthesizer.synthesize(text)
                if not self._accept(session, stream, epoch):
                    return
                record = InsightRecord(epoch=epoch, **payload.model_dump())
                session.latest_insight = record
                self._persist_insight(session, record)
                self._offer_brand(session, record)
            else:
                brand = await self.brand_synthesizer.synthesize(text, session.latest_insight)
                if not self._accept(session, stream, epoch):
                    return
                self._publish_brand(session, brand, text)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Derivation failed: {e}",
                session_id=session.session_id,
                stream=stream.name.value,
                epoch=epoch,
            )
            if self._is_current(session, stream, epoch):
                stream.state = StreamState.PUBLISHED if self._latest(session, stream) else StreamState.IDLE
            return

        stream.state = StreamState.PUBLISHED
        log_with_context(
            logger,
            logging.INFO,
            "Snapshot published",
            session_id=session.session_id,
            stream=stream.name.value,
            epoch=epoch,
        )

    def _accept(self, session: Session, stream: DerivationStream, epoch: int) -> bool:
        if self._is_current(session, stream, epoch):
            return True
        stream.discarded += 1
        log_with_context(
            logger,
            logging.DEBUG,
            "Stale derivation discarded",
            session_id=session.session_id,
            stream=stream.name.value,
            epoch=epoch,
            current_epoch=stream.epoch,
            state=StreamState.DISCARDED.value,
        )
        return False

    @staticmethod
    def _latest(session: Session, stream: DerivationStream) -> object | None:
        return getattr(session, f"latest_{stream.name.value}")

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _persist_insight(self, session: Session, record: InsightRecord) -> None:
        graph = session.latest_graph
        row = InsightsRow(
            session_id=session.session_id,
            epoch=record.epoch,
            transcription=session.buffer.committed or None,
            summary=record.summary or None,
            differentiation=record.differentiation,
            similar_items=[item.model_dump() for item in record.similar_items],
            network_nodes=[n.model_dump(mode="json") for n in graph.nodes] if graph else [],
            network_edges=[e.model_dump() for e in graph.edges] if graph else [],
        )
        self._spawn(save_quietly(self.sink, INSIGHTS_TABLE, row))

    def _offer_brand(self, session: Session, record: InsightRecord) -> None:
        """Schedule a brand refresh for a newly published insight, when enabled."""
        if not self.auto_brand or self.brand_synthesizer is None:
            return
        substantive = (
            len(session.buffer.committed) > BRAND_MIN_TRANSCRIPT_CHARS
            or len(record.summary) > BRAND_MIN_SUMMARY_CHARS
        )
        if substantive:
            # Keyed by insight epoch so every new insight refreshes the brand
            self._offer(session, session.brand, session.brand_text(), trigger=f"insight:{record.epoch}")

    def _publish_brand(self, session: Session, brand: BrandRecord, text: str) -> None:
        session.latest_brand = brand
        insight = session.latest_insight
        row = BrandRow(
            session_id=session.session_id,
            transcription=text or None,
            insights_summary=insight.summary if insight else None,
            insights_differentiation=insight.differentiation if insight else [],
            brand_name=brand.name,
            brand_tagline=brand.tagline,
            brand_color_palette=[c.model_dump() for c in brand.color_palette],
            brand_design_rationale=brand.design_rationale or None,
        )
        self._spawn(save_quietly(self.sink, BRAND_TABLE, row))

    async def generate_brand(self) -> BrandRecord:
        """
        Generate a brand identity from the current transcript and latest insight.

        The call takes the next brand epoch. Its result is published and
        persisted only if no later brand derivation started meanwhile; a
        superseded result is still returned to the caller.

        Returns:
            BrandRecord (defaults when every provider fails)

        Raises:
            ProviderConfigurationError: If no brand synthesizer is configured
        """
        if self.brand_synthesizer is None:
            raise ProviderConfigurationError("Brand generation is not configured")

        session = self._session
        stream = session.brand
        stream.cancel_timer()
        stream.epoch += 1
        epoch = stream.epoch
        stream.state = StreamState.DERIVING
        stream.derivations_started += 1

        text = session.brand_text()
        try:
            brand = await self.brand_synthesizer.synthesize(text, session.latest_insight)
        except Exception:
            if self._is_current(session, stream, epoch):
                stream.state = StreamState.PUBLISHED if session.latest_brand else StreamState.IDLE
            raise

        if self._accept(session, stream, epoch):
            self._publish_brand(session, brand, text)
            stream.state = StreamState.PUBLISHED
            log_with_context(
                logger,
                logging.INFO,
                "Snapshot published",
                session_id=session.session_id,
                stream=stream.name.value,
                epoch=epoch,
            )
        return brand

    # ------------------------------------------------------------------
    # Test and shutdown helpers
    # ------------------------------------------------------------------

    def stream_state(self, name: StreamName) -> StreamState:
        return self._session.stream(name).state

    async def drain(self, poll_interval: float = 0.005) -> None:
        """Wait until no timer is pending and no derivation/save task is running."""
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            session = self._session
            if any(stream.timer is not None for stream in session.streams):
                await asyncio.sleep(poll_interval)
                continue
            return
