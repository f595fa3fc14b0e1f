"""Concurrent, fail-open enrichment of entities via a search provider chain."""

from __future__ import annotations

import asyncio

from convograph.core.errors import AllProvidersExhausted
from convograph.core.logging import get_logger
from convograph.core.provider_chain import ProviderChain
from convograph.core.schemas_graph import Entity, SourceRef
from convograph.core.schemas_providers import MAX_SEARCH_RESULTS, SearchRequest, SearchResponse

logger = get_logger(__name__)

RESEARCH_CONTENT_CHARS = 1000


def _bounded_results(value: int) -> int:
    return min(MAX_SEARCH_RESULTS, max(1, value))


def merge_enrichment(entity: Entity, response: SearchResponse, max_sources: int = 3) -> Entity:
    """Copy of ``entity`` with description (if missing) and sources attached."""
    update: dict = {}

    if not entity.description:
        text = response.best_text()
        if text:
            update["description"] = text

    sources = [
        SourceRef(title=r.title, url=r.url)
        for r in response.results
        if r.url
    ][:max_sources]
    if sources:
        update["sources"] = sources

    return entity.model_copy(update=update) if update else entity


class EnrichmentFanout:
    """Applies a search chain across entities with bounded concurrency."""

    def __init__(
        self,
        chain: ProviderChain[SearchRequest, SearchResponse],
        max_concurrency: int = 5,
        max_sources: int = 3,
        research_max_results: int = 5,
    ):
        self.chain = chain
        self.max_concurrency = max(1, max_concurrency)
        self.max_sources = _bounded_results(max_sources)
        self.research_max_results = _bounded_results(research_max_results)

    async def enrich_one(self, entity: Entity) -> Entity:
        """Enrich a single entity; returns it unmodified on any failure."""
        request = SearchRequest(
            query=f"{entity.label} {entity.kind.value}",
            depth="basic",
            max_results=self.max_sources,
        )
        try:
            outcome = await self.chain.invoke(request)
        except AllProvidersExhausted as e:
            logger.warning(f"Enrichment skipped for '{entity.label}': {e}")
            return entity

        logger.debug(f"Enriched '{entity.label}' via {outcome.provider_used}")
        return merge_enrichment(entity, outcome.result, self.max_sources)

    async def enrich(self, entities: list[Entity]) -> list[Entity]:
        """
        Enrich all entities concurrently.

        Args:
            entities: Entities to enrich

        Returns:
            Same length and order as the input; failed items unmodified
        """
        if not entities:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(entity: Entity) -> Entity:
            async with semaphore:
                return await self.enrich_one(entity)

        results = await asyncio.gather(*[_bounded(e) for e in entities], return_exceptions=True)

        by_id: dict[str, Entity] = {}
        for entity, result in zip(entities, results, strict=True):
            if isinstance(result, Entity):
                by_id[entity.id] = result
            else:
                logger.error(f"Unexpected enrichment error for '{entity.label}': {result}")

        enriched = [by_id.get(e.id, e) for e in entities]
        touched = sum(1 for before, after in zip(entities, enriched, strict=True) if before is not after)
        logger.info(f"Enrichment fanout: {touched}/{len(entities)} entities enriched")
        return enriched

    async def research(self, query: str, depth: str = "advanced") -> str:
        """One research-style query; joined notes or "" when the chain is exhausted."""
        if not query.strip():
            return ""
        request = SearchRequest(query=query[:400], depth=depth, max_results=self.research_max_results)
        try:
            outcome = await self.chain.invoke(request)
        except AllProvidersExhausted as e:
            logger.warning(f"Research query skipped: {e}")
            return ""

        response = outcome.result
        parts: list[str] = []
        if response.answer and response.answer.strip():
            parts.append(response.answer.strip())
        contents = "\n".join(r.content.strip() for r in response.results if r.content.strip())
        if contents:
            parts.append(contents[:RESEARCH_CONTENT_CHARS])
        return "\n\n".join(parts)
