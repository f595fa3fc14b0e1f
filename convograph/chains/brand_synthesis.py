"""
Brand Synthesis Chain

Proposes a brand identity (names, taglines, palette, rationale) for the idea
discussed in a session. Competitor branding and design trends are researched
first through the search chain; the language-model chain then drafts the
brand as JSON. Any failure falls back to DEFAULT_BRAND.
"""

import asyncio

from convograph.core.enrichment import EnrichmentFanout
from convograph.core.errors import AllProvidersExhausted
from convograph.core.llm import parse_llm_model
from convograph.core.logging import get_logger
from convograph.core.provider_chain import ProviderChain
from convograph.core.schemas_insights import DEFAULT_BRAND, BrandRecord, InsightPayload
from convograph.core.schemas_providers import LLMRequest, LLMResponse

logger = get_logger(__name__)

BRAND_SYSTEM_PROMPT = """\
You are a brand strategist for early-stage startups. Generate a brand identity
that is visually and verbally distinct from the listed competitors.

IMPORTANT: Return ONLY valid JSON, no other text:
{
  "name": ["Option 1", "Option 2", "Option 3"],
  "tagline": ["Tagline 1", "Tagline 2"],
  "colorPalette": [
    {"name": "Primary", "hex": "#XXXXXX"},
    {"name": "Secondary", "hex": "#XXXXXX"},
    {"name": "Accent", "hex": "#XXXXXX"}
  ],
  "designRationale": "Why these choices differentiate from competitors"
}
"""


def _competitor_block(insight: InsightPayload | None) -> str:
    if insight is None or not insight.similar_items:
        return ""
    lines = [
        f"- {item.name} ({round(item.similarity * 100)}% similar): "
        f"{item.description or 'No description'}; tags: {', '.join(item.tags) or 'N/A'}"
        for item in insight.similar_items
    ]
    return "\n=== COMPETITORS ===\n" + "\n".join(lines) + "\n"


def _differentiation_block(insight: InsightPayload | None) -> str:
    if insight is None or not insight.differentiation:
        return ""
    lines = [f"{i}. {point}" for i, point in enumerate(insight.differentiation, start=1)]
    return "\n=== DIFFERENTIATION STRATEGIES ===\n" + "\n".join(lines) + "\n"


def build_brand_prompt(idea: str, insight: InsightPayload | None, research_notes: str) -> str:
    research = f"\n=== DESIGN RESEARCH ===\n{research_notes}\n" if research_notes else ""
    return (
        f'Based on this startup idea: "{idea}"\n'
        f"{_competitor_block(insight)}"
        f"{_differentiation_block(insight)}"
        f"{research}\n"
        "Suggest 2-3 memorable names, 1-2 taglines, a 3-5 colour palette with hex codes "
        "different from competitor colours, and a short design rationale."
    )


class BrandSynthesizer:
    """Research + LLM chain producing a BrandRecord."""

    def __init__(
        self,
        llm_chain: ProviderChain[LLMRequest, LLMResponse],
        research: EnrichmentFanout | None = None,
        max_tokens: int = 1200,
        temperature: float = 0.7,
    ):
        self.llm_chain = llm_chain
        self.research = research
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def gather_research(self, idea: str, insight: InsightPayload | None) -> str:
        if self.research is None:
            return ""

        queries: list[str] = []
        if insight is not None and insight.similar_items:
            names = ", ".join(item.name for item in insight.similar_items[:3])
            queries.append(f"{names} brand identity logo color palette design style")
        context = (insight.summary if insight is not None and insight.summary else idea)[:200]
        queries.append(f"startup logo design trends {context} color schemes visual identity")

        notes = await asyncio.gather(*[self.research.research(q) for q in queries])
        return "\n\n".join(n for n in notes if n)

    async def synthesize(self, text: str, insight: InsightPayload | None = None) -> BrandRecord:
        """
        Generate a brand identity.

        Args:
            text: Session transcript text describing the idea
            insight: Latest accepted insight, if any

        Returns:
            BrandRecord, DEFAULT_BRAND on any failure
        """
        idea = " ".join((text or "").split()) or (insight.summary if insight else "") or "A new innovative startup"
        notes = await self.gather_research(idea[:2000], insight)

        request = LLMRequest(
            system_prompt=BRAND_SYSTEM_PROMPT,
            user_prompt=build_brand_prompt(idea[:4000], insight, notes),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        try:
            outcome = await self.llm_chain.invoke(request)
        except AllProvidersExhausted as e:
            logger.warning(f"Brand synthesis fell back to defaults: {e}")
            return DEFAULT_BRAND.model_copy(update={"research_notes": notes or None})

        brand = parse_llm_model(outcome.result.text, BrandRecord, DEFAULT_BRAND)
        if not brand.name:
            logger.warning(f"Brand reply from {outcome.provider_used} had no names, using defaults")
            brand = DEFAULT_BRAND

        logger.info(
            f"Brand generated via {outcome.provider_used}: "
            f"{len(brand.name)} names, {len(brand.color_palette)} colours"
        )
        return brand.model_copy(update={"research_notes": notes or None})
