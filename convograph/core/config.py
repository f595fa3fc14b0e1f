"""Configuration management for Convograph."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    CONVOGRAPH_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Provider credentials (a provider joins its chain only when its key is set)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    TAVILY_API_KEY: str | None = Field(default=None, description="Tavily search API key")
    SERPAPI_API_KEY: str | None = Field(default=None, description="SerpAPI key")

    # Models
    OPENAI_MODEL: str = Field(default="gpt-4o-mini", description="Primary insight model")
    ANTHROPIC_MODEL: str = Field(
        default="claude-haiku-4-5", description="Secondary insight model"
    )
    LLM_MAX_TOKENS: int = Field(default=1200, description="Max tokens per generation")
    LLM_TEMPERATURE: float = Field(default=0.3, description="Generation temperature")

    # Provider calls
    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=15.0, description="Per-call timeout applied by every provider chain"
    )

    # Orchestration
    GRAPH_DEBOUNCE_SECONDS: float = Field(
        default=1.0, description="Debounce for live transcript deltas (graph stream)"
    )
    INSIGHT_DEBOUNCE_SECONDS: float = Field(
        default=3.0, description="Debounce for message deltas (insight stream)"
    )
    BRAND_DEBOUNCE_SECONDS: float = Field(
        default=2.0, description="Debounce between a published insight and the brand refresh"
    )
    BRAND_AUTO_GENERATE: bool = Field(
        default=True, description="Refresh the brand whenever a new insight is published"
    )
    MIN_DERIVATION_CHARS: int = Field(
        default=20, description="Minimum source text length before a stream derives"
    )

    # Enrichment fanout
    ENRICH_MAX_CONCURRENCY: int = Field(default=5, description="In-flight lookups per fanout")
    ENRICH_MAX_SOURCES: int = Field(default=3, ge=1, le=20, description="Sources attached per entity")
    RESEARCH_MAX_RESULTS: int = Field(default=5, ge=1, le=20, description="Results per research query")

    # Graph assembly tuning
    MAX_ENTITIES: int = Field(default=20, description="Cap on extracted entities")
    EDGE_KIND_WEIGHT: float = Field(default=0.2, description="Score for matching kinds")
    EDGE_TOKEN_WEIGHT: float = Field(default=0.3, description="Score for shared label tokens")
    EDGE_DESCRIPTION_WEIGHT: float = Field(
        default=0.2, description="Score for a description mentioning the other label"
    )
    EDGE_THRESHOLD: float = Field(default=0.4, description="Edges must score above this")

    # Layout
    LAYOUT_WIDTH: float = Field(default=800.0, description="Viewport width")
    LAYOUT_HEIGHT: float = Field(default=600.0, description="Viewport height")
    LAYOUT_CHARGE: float = Field(default=-200.0, description="Many-body charge strength")
    LAYOUT_LINK_DISTANCE: float = Field(
        default=150.0, description="Link distance at strength 1.0"
    )
    LAYOUT_MAX_ITERATIONS: int = Field(default=300, description="Simulation tick budget")

    # Persistence
    PERSISTENCE_BACKEND: str = Field(
        default="none", description="Persistence sink: none, memory, supabase"
    )
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables fail validation
    """
    return Settings()
