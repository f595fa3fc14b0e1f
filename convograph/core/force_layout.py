"""
Force-directed 2D layout.

Velocity-Verlet style simulation with d3-force semantics: many-body charge,
per-edge springs whose rest length shrinks as strength grows, and a pull
towards the viewport centre. Alpha decays geometrically so the loop always
terminates within ``max_iterations`` ticks.
"""

from __future__ import annotations

import math
from typing import Mapping

import numpy as np

from convograph.core.schemas_graph import Edge, Entity, Position


class ForceLayout:
    """Reusable layout engine; positions can be carried across re-derivations."""

    def __init__(
        self,
        width: float = 800.0,
        height: float = 600.0,
        charge: float = -200.0,
        link_distance: float = 150.0,
        center_strength: float = 0.1,
        velocity_decay: float = 0.4,
        alpha_min: float = 0.001,
        max_iterations: int = 300,
        seed: int | None = None,
    ):
        self.width = width
        self.height = height
        self.charge = charge
        self.link_distance = link_distance
        self.center_strength = center_strength
        self.velocity_decay = velocity_decay
        self.alpha_min = alpha_min
        self.max_iterations = max(1, max_iterations)
        # Decay reaching alpha_min in exactly 300 ticks, as d3 does
        self.alpha_decay = 1.0 - alpha_min ** (1.0 / 300)
        self.rng = np.random.default_rng(seed)

    @property
    def center(self) -> np.ndarray:
        return np.array([self.width / 2.0, self.height / 2.0])

    def _seed_positions(
        self,
        ids: list[str],
        previous: Mapping[str, Position] | None,
    ) -> np.ndarray:
        pos = np.empty((len(ids), 2), dtype=float)
        for i, node_id in enumerate(ids):
            prev = previous.get(node_id) if previous else None
            if prev is not None and math.isfinite(prev.x) and math.isfinite(prev.y):
                pos[i] = (prev.x, prev.y)
            else:
                pos[i] = self.rng.uniform((0.0, 0.0), (self.width, self.height))
        return pos

    @staticmethod
    def _jiggle(n: int) -> np.ndarray:
        # Deterministic tiny offsets used to separate coincident nodes
        idx = np.arange(n, dtype=float)
        return np.stack([np.cos(idx), np.sin(idx)], axis=1) * 1e-6

    def _apply_links(
        self,
        pos: np.ndarray,
        vel: np.ndarray,
        links: list[tuple[int, int, float]],
        degree: np.ndarray,
        alpha: float,
    ) -> None:
        for s, t, strength in links:
            delta = (pos[t] + vel[t]) - (pos[s] + vel[s])
            dist = float(np.hypot(delta[0], delta[1]))
            if dist < 1e-9:
                delta = self._jiggle(2)[1] - self._jiggle(2)[0]
                dist = float(np.hypot(delta[0], delta[1]))
            rest = self.link_distance / max(strength, 1e-3)
            spring = 1.0 / min(degree[s], degree[t])
            k = (dist - rest) / dist * alpha * spring
            bias = degree[s] / (degree[s] + degree[t])
            vel[t] -= delta * k * bias
            vel[s] += delta * k * (1.0 - bias)

    def _apply_charge(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        n = len(pos)
        if n < 2:
            return
        delta = pos[np.newaxis, :, :] - pos[:, np.newaxis, :]
        dist2 = np.sum(delta * delta, axis=2)
        coincident = dist2 < 1e-12
        if np.any(coincident & ~np.eye(n, dtype=bool)):
            delta = delta + (self._jiggle(n)[np.newaxis, :, :] - self._jiggle(n)[:, np.newaxis, :])
            dist2 = np.sum(delta * delta, axis=2)
        dist2 = np.maximum(dist2, 1.0)
        np.fill_diagonal(dist2, np.inf)
        # Negative charge pushes i away from j
        vel += np.sum(delta * (self.charge * alpha / dist2)[:, :, np.newaxis], axis=1)

    def _apply_center(self, pos: np.ndarray, vel: np.ndarray, alpha: float) -> None:
        vel += (self.center - pos) * self.center_strength * alpha

    def run(
        self,
        nodes: list[Entity],
        edges: list[Edge],
        previous_positions: Mapping[str, Position] | None = None,
    ) -> dict[str, Position]:
        """
        Lay out a graph.

        Args:
            nodes: Graph nodes
            edges: Undirected weighted edges between node ids
            previous_positions: Seeds for node ids seen in an earlier layout

        Returns:
            One finite Position per node id
        """
        ids = [n.id for n in nodes]
        if not ids:
            return {}

        index = {node_id: i for i, node_id in enumerate(ids)}
        pos = self._seed_positions(ids, previous_positions)
        vel = np.zeros_like(pos)

        links = [
            (index[e.source_id], index[e.target_id], e.strength)
            for e in edges
            if e.source_id in index and e.target_id in index and e.source_id != e.target_id
        ]
        degree = np.zeros(len(ids), dtype=float)
        for s, t, _ in links:
            degree[s] += 1
            degree[t] += 1

        alpha = 1.0
        for _ in range(self.max_iterations):
            alpha += (0.0 - alpha) * self.alpha_decay
            self._apply_links(pos, vel, links, degree, alpha)
            self._apply_charge(pos, vel, alpha)
            self._apply_center(pos, vel, alpha)
            vel *= 1.0 - self.velocity_decay
            pos += vel
            if not np.all(np.isfinite(pos)):
                bad = ~np.isfinite(pos)
                pos[bad] = np.broadcast_to(self.center, pos.shape)[bad]
                vel[bad] = 0.0
            if alpha < self.alpha_min:
                break

        return {node_id: Position(x=float(pos[i, 0]), y=float(pos[i, 1])) for i, node_id in enumerate(ids)}
