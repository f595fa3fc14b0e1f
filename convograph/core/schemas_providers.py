"""Request/response contracts for search-style and language-model providers.

Provider payloads are validated against these models on receipt; a payload
that fails validation is treated as a malformed reply, not a crash.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Upper bound on results any search request may ask for
MAX_SEARCH_RESULTS = 20


class SearchRequest(BaseModel):
    """Search-style lookup request."""

    query: str
    depth: Literal["basic", "advanced"] = "basic"
    max_results: int = Field(default=3, ge=1, le=MAX_SEARCH_RESULTS)


class SearchResult(BaseModel):
    """Single search hit."""

    title: str = ""
    url: str = ""
    content: str = ""


class SearchResponse(BaseModel):
    """Search provider response; answer is optional."""

    answer: Optional[str] = None
    results: List[SearchResult] = Field(default_factory=list)

    def best_text(self) -> str:
        """Answer if present, otherwise the first non-empty result content."""
        if self.answer and self.answer.strip():
            return self.answer.strip()
        for result in self.results:
            if result.content.strip():
                return result.content.strip()
        return ""


class LLMRequest(BaseModel):
    """Language-model request with a fixed system/user prompt pair."""

    system_prompt: str
    user_prompt: str
    max_tokens: int = 1200
    temperature: float = 0.3


class LLMResponse(BaseModel):
    """Language-model reply: best-effort JSON-shaped text."""

    text: str

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("empty completion")
        return value
