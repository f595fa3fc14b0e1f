"""
Insight Synthesis Chain

Turns accumulated conversation text (plus optional market research) into a
structured insight record via the language-model provider chain. Parsing
recovers JSON from loosely formatted replies and never raises; any failure
degrades to an empty, schema-valid record.
"""

from convograph.core.enrichment import EnrichmentFanout
from convograph.core.errors import AllProvidersExhausted
from convograph.core.llm import parse_llm_model
from convograph.core.logging import get_logger
from convograph.core.provider_chain import ProviderChain
from convograph.core.schemas_insights import InsightPayload
from convograph.core.schemas_providers import LLMRequest, LLMResponse

logger = get_logger(__name__)

MAX_PROMPT_TEXT_CHARS = 12000

INSIGHT_SYSTEM_PROMPT = """\
You are a startup analyst listening to a founder describe an idea.
Analyze the conversation and identify existing companies or products similar
to the idea, how the idea could differentiate, and a one-paragraph summary.

Return ONLY valid JSON with this exact shape, no other text:
{
  "summary": "One paragraph describing the idea",
  "differentiation": ["Short differentiation point", "..."],
  "similarItems": [
    {"name": "Company", "similarity": 0.0-1.0, "description": "What it does", "tags": ["tag"]}
  ]
}
"""

INSIGHT_USER_PROMPT = """\
Conversation so far:
{text}
{research_block}
Produce the JSON now."""

EMPTY_INSIGHT = InsightPayload()


def parse_insight_reply(raw_output: str | None) -> InsightPayload:
    """Recover an InsightPayload from a reply; empty payload on failure."""
    return parse_llm_model(raw_output, InsightPayload, EMPTY_INSIGHT)


class InsightSynthesizer:
    """Research enrichment + LLM chain + reply recovery."""

    def __init__(
        self,
        llm_chain: ProviderChain[LLMRequest, LLMResponse],
        research: EnrichmentFanout | None = None,
        max_tokens: int = 1200,
        temperature: float = 0.3,
    ):
        self.llm_chain = llm_chain
        self.research = research
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def gather_research(self, text: str) -> str:
        if self.research is None:
            return ""
        excerpt = " ".join(text.split())[:300]
        return await self.research.research(f"startups and products similar to: {excerpt}")

    async def synthesize(self, text: str, prior_research: str | None = None) -> InsightPayload:
        """
        Derive insights for the conversation text.

        Args:
            text: Accumulated conversation/transcript text
            prior_research: Research notes to reuse instead of a fresh lookup

        Returns:
            InsightPayload (empty-but-valid when every step fails)
        """
        if not text or not text.strip():
            return EMPTY_INSIGHT

        notes = prior_research if prior_research is not None else await self.gather_research(text)
        research_block = f"\nMarket research notes:\n{notes}\n" if notes else ""

        request = LLMRequest(
            system_prompt=INSIGHT_SYSTEM_PROMPT,
            user_prompt=INSIGHT_USER_PROMPT.format(
                text=text[-MAX_PROMPT_TEXT_CHARS:],
                research_block=research_block,
            ),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        try:
            outcome = await self.llm_chain.invoke(request)
        except AllProvidersExhausted as e:
            logger.warning(f"Insight synthesis fell back to empty record: {e}")
            return EMPTY_INSIGHT.model_copy(update={"research_notes": notes or None})

        payload = parse_insight_reply(outcome.result.text)
        logger.info(
            f"Insights via {outcome.provider_used}: "
            f"{len(payload.differentiation)} differentiation points, "
            f"{len(payload.similar_items)} similar items"
        )
        return payload.model_copy(update={"research_notes": notes or None})
