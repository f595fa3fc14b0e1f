"""Builds orchestrators from settings and tracks live sessions by id."""

from convograph.chains.brand_synthesis import BrandSynthesizer
from convograph.chains.graph_pipeline import GraphPipeline
from convograph.chains.insight_synthesis import InsightSynthesizer
from convograph.core.config import Settings, get_settings
from convograph.core.enrichment import EnrichmentFanout
from convograph.core.errors import ProviderConfigurationError
from convograph.core.force_layout import ForceLayout
from convograph.core.graph_assembly import EdgeWeights
from convograph.core.llm_providers import build_llm_providers
from convograph.core.logging import get_logger
from convograph.core.provider_chain import ProviderChain
from convograph.core.search_providers import build_search_providers
from convograph.db.persistence import PersistenceSink, build_sink
from convograph.services.session_orchestrator import SessionOrchestrator

logger = get_logger(__name__)


def create_orchestrator(settings: Settings, sink: PersistenceSink | None = None) -> SessionOrchestrator:
    """
    Wire provider chains, pipelines and sink into a SessionOrchestrator.

    Search providers are optional (enrichment and research are skipped without
    them). At least one language-model provider is required.

    Raises:
        ProviderConfigurationError: If no language-model provider has credentials
    """
    search_providers = build_search_providers(settings)
    llm_providers = build_llm_providers(settings)
    if not llm_providers:
        raise ProviderConfigurationError(
            "No language-model provider configured; set OPENAI_API_KEY or ANTHROPIC_API_KEY"
        )

    fanout = None
    if search_providers:
        search_chain = ProviderChain(search_providers, name="search", timeout=settings.PROVIDER_TIMEOUT_SECONDS)
        fanout = EnrichmentFanout(
            search_chain,
            max_concurrency=settings.ENRICH_MAX_CONCURRENCY,
            max_sources=settings.ENRICH_MAX_SOURCES,
            research_max_results=settings.RESEARCH_MAX_RESULTS,
        )
    else:
        logger.warning("No search provider configured; entity enrichment and research disabled")

    llm_chain = ProviderChain(llm_providers, name="llm", timeout=settings.PROVIDER_TIMEOUT_SECONDS)

    layout = ForceLayout(
        width=settings.LAYOUT_WIDTH,
        height=settings.LAYOUT_HEIGHT,
        charge=settings.LAYOUT_CHARGE,
        link_distance=settings.LAYOUT_LINK_DISTANCE,
        max_iterations=settings.LAYOUT_MAX_ITERATIONS,
    )
    weights = EdgeWeights(
        kind=settings.EDGE_KIND_WEIGHT,
        tokens=settings.EDGE_TOKEN_WEIGHT,
        description=settings.EDGE_DESCRIPTION_WEIGHT,
        threshold=settings.EDGE_THRESHOLD,
    )

    return SessionOrchestrator(
        graph_pipeline=GraphPipeline(fanout, layout, weights, max_entities=settings.MAX_ENTITIES),
        insight_synthesizer=InsightSynthesizer(
            llm_chain,
            research=fanout,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
        ),
        brand_synthesizer=BrandSynthesizer(llm_chain, research=fanout, max_tokens=settings.LLM_MAX_TOKENS),
        sink=sink if sink is not None else build_sink(settings),
        graph_debounce_seconds=settings.GRAPH_DEBOUNCE_SECONDS,
        insight_debounce_seconds=settings.INSIGHT_DEBOUNCE_SECONDS,
        brand_debounce_seconds=settings.BRAND_DEBOUNCE_SECONDS,
        min_derivation_chars=settings.MIN_DERIVATION_CHARS,
        auto_brand=settings.BRAND_AUTO_GENERATE,
    )


class SessionRegistry:
    """In-process map of session id -> orchestrator."""

    def __init__(self, factory=None):
        self._factory = factory or (lambda: create_orchestrator(get_settings()))
        self._sessions: dict[str, SessionOrchestrator] = {}

    def create(self) -> tuple[str, SessionOrchestrator]:
        """Build and connect an orchestrator, keyed by its session id."""
        orchestrator = self._factory()
        session_id = orchestrator.connect()
        self._sessions[session_id] = orchestrator
        logger.info(f"Session {session_id} created ({len(self._sessions)} live)")
        return session_id, orchestrator

    def get(self, session_id: str) -> SessionOrchestrator | None:
        return self._sessions.get(session_id)

    def reconnect(self, session_id: str) -> str | None:
        """Reset the session under a fresh identity; the old id stops resolving."""
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return None
        new_id = orchestrator.reconnect()
        self._sessions[new_id] = orchestrator
        logger.info(f"Session {session_id} reconnected as {new_id}")
        return new_id

    def remove(self, session_id: str) -> bool:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        orchestrator.disconnect()
        return True

    def __len__(self) -> int:
        return len(self._sessions)


_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    """Process-wide registry used by the HTTP layer."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
