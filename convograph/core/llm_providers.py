"""Language-model providers (OpenAI primary, Anthropic secondary)."""

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from convograph.core.config import Settings
from convograph.core.logging import get_logger
from convograph.core.provider_chain import Provider
from convograph.core.schemas_providers import LLMRequest, LLMResponse

logger = get_logger(__name__)


class OpenAIChatProvider(Provider[LLMRequest, LLMResponse]):
    """OpenAI chat completions."""

    name = "openai"
    response_model = LLMResponse

    def __init__(self, api_key: str, model: str):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def call(self, request: LLMRequest) -> dict[str, str]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        text = response.choices[0].message.content if response.choices else ""
        logger.debug(f"OpenAI {self.model} reply: {len(text or '')} chars")
        return {"text": text or ""}


class AnthropicChatProvider(Provider[LLMRequest, LLMResponse]):
    """Anthropic messages API."""

    name = "anthropic"
    response_model = LLMResponse

    def __init__(self, api_key: str, model: str):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model

    async def call(self, request: LLMRequest) -> dict[str, str]:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            system=request.system_prompt,
            messages=[{"role": "user", "content": request.user_prompt}],
        )
        text = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", "") == "text"
        )
        logger.debug(f"Anthropic {self.model} reply: {len(text)} chars")
        return {"text": text}


def build_llm_providers(settings: Settings) -> list[Provider[LLMRequest, LLMResponse]]:
    """Language-model providers in priority order, skipping any without credentials."""
    providers: list[Provider[LLMRequest, LLMResponse]] = []
    if settings.OPENAI_API_KEY:
        providers.append(OpenAIChatProvider(settings.OPENAI_API_KEY, settings.OPENAI_MODEL))
    if settings.ANTHROPIC_API_KEY:
        providers.append(AnthropicChatProvider(settings.ANTHROPIC_API_KEY, settings.ANTHROPIC_MODEL))
    return providers
