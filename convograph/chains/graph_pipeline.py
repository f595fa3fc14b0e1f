"""
Graph derivation chain

Transcript text -> entities -> enrichment fanout -> scored graph -> layout.
The result carries no epoch; the session orchestrator stamps it on publish.
"""

from dataclasses import dataclass, field
from typing import Mapping

from convograph.core.enrichment import EnrichmentFanout
from convograph.core.entity_extraction import extract_entities
from convograph.core.force_layout import ForceLayout
from convograph.core.graph_assembly import EdgeWeights, assemble_graph
from convograph.core.logging import get_logger
from convograph.core.schemas_graph import Edge, Entity, Position

logger = get_logger(__name__)


@dataclass
class GraphDerivation:
    """Unstamped output of one graph derivation."""

    nodes: list[Entity] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    positions: dict[str, Position] = field(default_factory=dict)


class GraphPipeline:
    """Runs one full graph derivation for a piece of transcript text."""

    def __init__(
        self,
        fanout: EnrichmentFanout | None,
        layout: ForceLayout,
        weights: EdgeWeights = EdgeWeights(),
        max_entities: int = 20,
    ):
        self.fanout = fanout
        self.layout = layout
        self.weights = weights
        self.max_entities = max_entities

    async def derive(
        self,
        text: str,
        previous_positions: Mapping[str, Position] | None = None,
    ) -> GraphDerivation:
        entities = extract_entities(text, max_entities=self.max_entities)
        if not entities:
            return GraphDerivation()

        if self.fanout is not None:
            entities = await self.fanout.enrich(entities)

        assembly = assemble_graph(entities, self.weights)
        positions = self.layout.run(assembly.nodes, assembly.edges, previous_positions)

        logger.info(
            f"Graph derived: {len(assembly.nodes)} nodes, {len(assembly.edges)} edges "
            f"from {len(text)} chars"
        )
        return GraphDerivation(nodes=assembly.nodes, edges=assembly.edges, positions=positions)
