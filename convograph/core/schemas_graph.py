"""Graph schemas: entities, edges, layout positions and published snapshots."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EntityKind(str, Enum):
    """Entity categories recognised by the extractor."""

    STARTUP = "startup"
    CONCEPT = "concept"
    FEATURE = "feature"
    MARKET = "market"


class SourceRef(BaseModel):
    """A supporting link attached during enrichment."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    url: str = ""


class Entity(BaseModel):
    """A graph node candidate. Enrichment returns copies, never mutates."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    kind: EntityKind
    weight: float = 7.0
    description: Optional[str] = None
    sources: List[SourceRef] = Field(default_factory=list)


class Edge(BaseModel):
    """Undirected weighted relationship; source_id < target_id."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    target_id: str
    strength: float = Field(..., gt=0.0, le=1.0)


class Position(BaseModel):
    """2D layout coordinate."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class GraphAssembly(BaseModel):
    """Nodes and scored edges before layout."""

    model_config = ConfigDict(frozen=True)

    nodes: List[Entity] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


class GraphSnapshot(BaseModel):
    """Immutable published graph, stamped with the epoch that produced it."""

    model_config = ConfigDict(frozen=True)

    epoch: int
    nodes: List[Entity] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    positions: Dict[str, Position] = Field(default_factory=dict)
