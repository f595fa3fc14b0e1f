"""Tests for search and language-model provider adapters."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from convograph.core.config import Settings
from convograph.core.llm_providers import AnthropicChatProvider, OpenAIChatProvider, build_llm_providers
from convograph.core.provider_chain import ProviderChain
from convograph.core.schemas_providers import LLMRequest, SearchRequest
from convograph.core.search_providers import (
    TAVILY_SEARCH_URL,
    SerpApiSearchProvider,
    TavilySearchProvider,
    build_search_providers,
)


def _mock_http_client(json_data):
    response = MagicMock()
    response.json.return_value = json_data
    response.raise_for_status.return_value = None

    client = MagicMock()
    client.post = AsyncMock(return_value=response)
    client.get = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


@pytest.mark.asyncio
async def test_tavily_maps_answer_and_results():
    client = _mock_http_client(
        {
            "answer": "Acme makes anvils",
            "results": [{"title": "Acme", "url": "https://acme.test", "content": "Anvils"}, "junk"],
        }
    )
    with patch("convograph.core.search_providers.httpx.AsyncClient", return_value=client):
        chain = ProviderChain([TavilySearchProvider("tvly-key")], name="search")
        outcome = await chain.invoke(SearchRequest(query="Acme startup", max_results=3))

    assert outcome.result.answer == "Acme makes anvils"
    assert [r.url for r in outcome.result.results] == ["https://acme.test"]

    url = client.post.call_args[0][0]
    body = client.post.call_args[1]["json"]
    assert url == TAVILY_SEARCH_URL
    assert body["query"] == "Acme startup"
    assert body["search_depth"] == "basic"
    assert body["include_answer"] is True


@pytest.mark.asyncio
async def test_serpapi_maps_organic_results_and_answer_box():
    client = _mock_http_client(
        {
            "answer_box": {"snippet": "Acme is a company"},
            "organic_results": [
                {"title": "Acme", "link": "https://acme.test", "snippet": "Anvils"},
                {"title": "Other", "link": "https://other.test", "snippet": "More"},
            ],
        }
    )
    with patch("convograph.core.search_providers.httpx.AsyncClient", return_value=client):
        raw = await SerpApiSearchProvider("serp-key").call(SearchRequest(query="Acme", max_results=1))

    assert raw["answer"] == "Acme is a company"
    assert raw["results"] == [{"title": "Acme", "url": "https://acme.test", "content": "Anvils"}]
    assert client.get.call_args[1]["params"]["q"] == "Acme"


@pytest.mark.asyncio
async def test_serpapi_null_fields_and_junk_items_still_validate():
    client = _mock_http_client(
        {
            "organic_results": [
                {"title": None, "link": "https://acme.test", "snippet": None},
                "not-a-result",
                {"title": "Other", "link": None, "snippet": "More"},
            ],
        }
    )
    with patch("convograph.core.search_providers.httpx.AsyncClient", return_value=client):
        chain = ProviderChain([SerpApiSearchProvider("serp-key")], name="search")
        outcome = await chain.invoke(SearchRequest(query="Acme", max_results=5))

    assert outcome.provider_used == "serpapi"
    assert [(r.title, r.url, r.content) for r in outcome.result.results] == [
        ("", "https://acme.test", ""),
        ("Other", "", "More"),
    ]


@pytest.mark.asyncio
async def test_http_error_becomes_provider_failure_and_falls_through():
    broken = _mock_http_client({})
    broken.post.return_value.raise_for_status.side_effect = RuntimeError("502 Bad Gateway")
    working = _mock_http_client({"organic_results": [{"title": "t", "link": "https://x", "snippet": "s"}]})

    with patch("convograph.core.search_providers.httpx.AsyncClient", side_effect=[broken, working]):
        chain = ProviderChain([TavilySearchProvider("a"), SerpApiSearchProvider("b")], name="search")
        outcome = await chain.invoke(SearchRequest(query="acme"))

    assert outcome.provider_used == "serpapi"


@pytest.mark.asyncio
async def test_openai_provider_returns_message_text():
    provider = OpenAIChatProvider("sk-test", "gpt-4o-mini")
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"summary": "x"}'))])
    provider.client = MagicMock()
    provider.client.chat.completions.create = AsyncMock(return_value=completion)

    raw = await provider.call(LLMRequest(system_prompt="s", user_prompt="u", max_tokens=50, temperature=0.1))

    assert raw == {"text": '{"summary": "x"}'}
    kwargs = provider.client.chat.completions.create.call_args[1]
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"][0] == {"role": "system", "content": "s"}
    assert kwargs["max_tokens"] == 50


@pytest.mark.asyncio
async def test_anthropic_provider_joins_text_blocks():
    provider = AnthropicChatProvider("ak-test", "claude-haiku-4-5")
    message = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text='{"summary": '),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text='"y"}'),
        ]
    )
    provider.client = MagicMock()
    provider.client.messages.create = AsyncMock(return_value=message)

    raw = await provider.call(LLMRequest(system_prompt="s", user_prompt="u"))

    assert raw == {"text": '{"summary": "y"}'}
    assert provider.client.messages.create.call_args[1]["system"] == "s"


def test_builders_skip_providers_without_credentials():
    settings = Settings(
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY="ak",
        TAVILY_API_KEY="tk",
        SERPAPI_API_KEY=None,
    )
    assert [p.name for p in build_llm_providers(settings)] == ["anthropic"]
    assert [p.name for p in build_search_providers(settings)] == ["tavily"]


@pytest.mark.parametrize("field", ["RESEARCH_MAX_RESULTS", "ENRICH_MAX_SOURCES"])
@pytest.mark.parametrize("value", [0, 25])
def test_result_count_settings_are_bounded(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})
