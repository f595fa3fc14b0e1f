"""Deterministic edge scoring over enriched entities."""

import re
from dataclasses import dataclass
from itertools import combinations

from convograph.core.schemas_graph import Edge, Entity, GraphAssembly

STOPWORDS = frozenset(
    [
        "the", "and", "for", "with", "our", "you", "your", "that", "this", "are",
        "was", "but", "not", "from", "have", "has", "its", "they", "them", "their",
        "will", "can", "into", "about", "what", "which", "who", "how", "all",
    ]
)
TOKEN_RE = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class EdgeWeights:
    """Tunable scoring constants."""

    kind: float = 0.2
    tokens: float = 0.3
    description: float = 0.2
    threshold: float = 0.4


def label_tokens(label: str) -> frozenset[str]:
    """Significant lowercase tokens of a label (len >= 3, no stopwords)."""
    return frozenset(
        t for t in TOKEN_RE.findall(label.lower()) if len(t) >= 3 and t not in STOPWORDS
    )


def _mentions(description: str | None, label: str) -> bool:
    if not description or not label.strip():
        return False
    return label.strip().lower() in description.lower()


def score_pair(a: Entity, b: Entity, weights: EdgeWeights = EdgeWeights()) -> float:
    """Summed signal score for a pair, clamped to 1.0."""
    score = 0.0
    if a.kind == b.kind:
        score += weights.kind
    if label_tokens(a.label) & label_tokens(b.label):
        score += weights.tokens
    if _mentions(a.description, b.label) or _mentions(b.description, a.label):
        score += weights.description
    return min(1.0, round(score, 6))


def assemble_graph(entities: list[Entity], weights: EdgeWeights = EdgeWeights()) -> GraphAssembly:
    """
    Build nodes and scored undirected edges.

    Args:
        entities: Enriched entities (order is preserved for nodes)
        weights: Scoring constants

    Returns:
        GraphAssembly with edges scoring above the threshold, sorted by endpoint ids
    """
    nodes: list[Entity] = []
    seen: set[str] = set()
    for entity in entities:
        if entity.id in seen:
            continue
        seen.add(entity.id)
        nodes.append(entity)

    edges: list[Edge] = []
    for a, b in combinations(nodes, 2):
        strength = score_pair(a, b, weights)
        if strength <= weights.threshold:
            continue
        source_id, target_id = sorted((a.id, b.id))
        edges.append(Edge(source_id=source_id, target_id=target_id, strength=strength))

    edges.sort(key=lambda e: (e.source_id, e.target_id))
    return GraphAssembly(nodes=nodes, edges=edges)
