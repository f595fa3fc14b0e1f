"""Session-level schemas: inbound events, stream states and persisted rows."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class TranscriptEvent(BaseModel):
    """Speech-to-text event. Partial text is a transient overlay."""

    type: Literal["partial", "committed"]
    text: str = ""


class ConversationMessage(BaseModel):
    """Discrete conversation turn from the voice agent."""

    source: Literal["user", "ai"]
    message: str = ""

    def render(self) -> str:
        role = "User" if self.source == "user" else "AI Agent"
        return f"{role}: {self.message}"


class StreamName(str, Enum):
    GRAPH = "graph"
    INSIGHT = "insight"
    BRAND = "brand"


class StreamState(str, Enum):
    """Lifecycle of one derivation stream."""

    IDLE = "idle"
    PENDING = "pending"
    DERIVING = "deriving"
    PUBLISHED = "published"
    DISCARDED = "discarded"


class InsightsRow(BaseModel):
    """Row written to the `insights` table when an insight is published."""

    session_id: str
    epoch: int
    transcription: Optional[str] = None
    summary: Optional[str] = None
    differentiation: List[str] = Field(default_factory=list)
    similar_items: List[Dict[str, Any]] = Field(default_factory=list)
    network_nodes: List[Dict[str, Any]] = Field(default_factory=list)
    network_edges: List[Dict[str, Any]] = Field(default_factory=list)


class BrandRow(BaseModel):
    """Row written to the `brand_identities` table after brand generation."""

    session_id: str
    transcription: Optional[str] = None
    insights_summary: Optional[str] = None
    insights_differentiation: List[str] = Field(default_factory=list)
    brand_name: List[str] = Field(default_factory=list)
    brand_tagline: List[str] = Field(default_factory=list)
    brand_color_palette: List[Dict[str, Any]] = Field(default_factory=list)
    brand_design_rationale: Optional[str] = None
