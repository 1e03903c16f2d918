"""Tick-based force-directed declutter for the spatial views.

Follows d3-force conventions: forces add to each particle's velocity scaled
by ``alpha``, velocities are damped by ``velocity_decay`` and ``alpha`` decays
geometrically towards zero. The run ends when ``alpha`` drops below
``alpha_min`` or after ``max_ticks``.
"""

import asyncio
import math
import random
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from mindweave.config import (
    ALPHA_DECAY,
    ALPHA_MIN,
    ALPHA_START,
    CHARGE_DISTANCE_MIN,
    CHARGE_STRENGTH,
    COLLISION_RADIUS,
    LINK_DISTANCE,
    LINK_STRENGTH,
    MAX_TICKS,
    POSITION_STRENGTH,
    TICK_INTERVAL,
    VELOCITY_DECAY,
)
from mindweave.core.store import GraphStore
from mindweave.models.events import EventSource
from mindweave.models.node import Position, SpatialView

# Golden-angle spiral used to seed nodes that have never been placed.
_INITIAL_RADIUS = 10.0
_INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass(frozen=True)
class ForceParams:
    """Strengths and schedule of a declutter run."""

    charge_strength: float = CHARGE_STRENGTH
    distance_min: float = CHARGE_DISTANCE_MIN
    collision_radius: float = COLLISION_RADIUS
    position_strength: float = POSITION_STRENGTH
    link_distance: float = LINK_DISTANCE
    link_strength: float = LINK_STRENGTH
    alpha_start: float = ALPHA_START
    alpha_min: float = ALPHA_MIN
    alpha_decay: float = ALPHA_DECAY
    velocity_decay: float = VELOCITY_DECAY
    max_ticks: int = MAX_TICKS


@dataclass
class _Particle:
    id: str
    x: float
    y: float
    # Resting point the position force pulls towards.
    home_x: float
    home_y: float
    vx: float = 0.0
    vy: float = 0.0


class ForceSimulation:
    """One declutter run over the connected nodes of a spatial view.

    Isolated nodes (no parent, no children, no reference edge) are left
    where the user put them.
    """

    def __init__(
        self,
        store: GraphStore,
        view: SpatialView,
        params: ForceParams | None = None,
        *,
        on_end: Callable[[], None] | None = None,
        seed: int = 0,
    ) -> None:
        self.store = store
        self.view = view
        self.params = params or ForceParams()
        self.on_end = on_end
        self.alpha = self.params.alpha_start
        self.ticks = 0
        self._random = random.Random(seed)
        self._particles: dict[str, _Particle] = {}
        self._links: list[tuple[str, str]] = []
        self._running = False
        self._cancelled = False
        self._finished = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> int:
        """Collect particles and links; returns the number of particles."""
        self._particles = {}
        connected = self.store.get_connected_ids()
        doc = self.store.document
        nodes = [n for n in doc.nodes.values() if n.id in connected] if doc else []
        unplaced: list[str] = []
        for node in nodes:
            node_id = node.id
            pos = node.positions.get(self.view)
            if pos is None:
                unplaced.append(node_id)
                continue
            self._particles[node_id] = _Particle(node_id, pos.x, pos.y, pos.x, pos.y)

        for index, node_id in enumerate(unplaced):
            x, y = self._seed_position(node_id, index)
            self._particles[node_id] = _Particle(node_id, x, y, x, y)

        self._links = [
            (node.parent_id, node.id)
            for node_id in self._particles
            if (node := self.store.get_node(node_id)) is not None
            and node.parent_id in self._particles
        ]
        self._links.extend(
            (edge.source_id, edge.target_id)
            for edge in self.store.get_edges()
            if edge.source_id in self._particles and edge.target_id in self._particles
        )

        self.alpha = self.params.alpha_start
        self.ticks = 0
        self._cancelled = False
        self._finished = False
        self._running = True
        logger.debug(
            "Force simulation started on {} nodes, {} links", len(self._particles), len(self._links)
        )
        return len(self._particles)

    def tick(self) -> bool:
        """Advance one step and write positions back.

        Returns:
            True while more ticks are due.
        """
        if not self._running:
            return False

        p = self.params
        self.alpha += (0.0 - self.alpha) * p.alpha_decay
        particles = list(self._particles.values())

        self._apply_links()
        self._apply_charge(particles)
        for particle in particles:
            particle.vx += (particle.home_x - particle.x) * p.position_strength * self.alpha
            particle.vy += (particle.home_y - particle.y) * p.position_strength * self.alpha
        self._apply_collisions(particles)

        damping = 1.0 - p.velocity_decay
        for particle in particles:
            particle.vx *= damping
            particle.vy *= damping
            particle.x += particle.vx
            particle.y += particle.vy

        self.ticks += 1
        self.store.update_node_positions(
            {pid: Position(pt.x, pt.y) for pid, pt in self._particles.items()},
            self.view,
            source=EventSource.LAYOUT,
        )

        if self.alpha < p.alpha_min or self.ticks >= p.max_ticks:
            self._finish()
            return False
        return True

    def run(self) -> int:
        """Run to completion synchronously; returns the tick count."""
        if not self._running:
            self.start()
        if not self._particles:
            self._finish()
            return 0
        while self.tick():
            pass
        return self.ticks

    async def run_async(self, tick_interval: float = TICK_INTERVAL) -> int:
        """Run to completion, yielding to the event loop between ticks."""
        if not self._running:
            self.start()
        if not self._particles:
            self._finish()
            return 0
        try:
            while self.tick():
                await asyncio.sleep(tick_interval)
        finally:
            # An abandoned await stops the run instead of leaving it marked running.
            self.cancel()
        return self.ticks

    def cancel(self) -> None:
        """Stop after the current tick. Safe to call at any time, any number of times."""
        if not self._running:
            return
        self._running = False
        self._cancelled = True
        logger.debug("Force simulation cancelled after {} ticks", self.ticks)

    def position_of(self, node_id: str) -> Position | None:
        particle = self._particles.get(node_id)
        return Position(particle.x, particle.y) if particle else None

    # --- Forces ---

    def _apply_links(self) -> None:
        p = self.params
        degree: dict[str, int] = {}
        for source_id, target_id in self._links:
            degree[source_id] = degree.get(source_id, 0) + 1
            degree[target_id] = degree.get(target_id, 0) + 1

        for source_id, target_id in self._links:
            s = self._particles[source_id]
            t = self._particles[target_id]
            dx = t.x + t.vx - s.x - s.vx or self._jiggle()
            dy = t.y + t.vy - s.y - s.vy or self._jiggle()
            length = math.hypot(dx, dy)
            scale = (length - p.link_distance) / length * self.alpha * p.link_strength
            dx *= scale
            dy *= scale
            # The less connected end moves more.
            bias = degree[source_id] / (degree[source_id] + degree[target_id])
            t.vx -= dx * bias
            t.vy -= dy * bias
            s.vx += dx * (1 - bias)
            s.vy += dy * (1 - bias)

    def _apply_charge(self, particles: list[_Particle]) -> None:
        p = self.params
        min_sq = p.distance_min * p.distance_min
        for node in particles:
            for other in particles:
                if other is node:
                    continue
                dx = other.x - node.x or self._jiggle()
                dy = other.y - node.y or self._jiggle()
                dist_sq = dx * dx + dy * dy
                if dist_sq < min_sq:
                    dist_sq = math.sqrt(min_sq * dist_sq)
                weight = p.charge_strength * self.alpha / dist_sq
                node.vx += dx * weight
                node.vy += dy * weight

    def _apply_collisions(self, particles: list[_Particle]) -> None:
        reach = 2 * self.params.collision_radius
        for i, node in enumerate(particles):
            for other in particles[i + 1 :]:
                dx = node.x + node.vx - other.x - other.vx
                dy = node.y + node.vy - other.y - other.vy
                dist_sq = dx * dx + dy * dy
                if dist_sq >= reach * reach:
                    continue
                if dx == 0:
                    dx = self._jiggle()
                    dist_sq += dx * dx
                if dy == 0:
                    dy = self._jiggle()
                    dist_sq += dy * dy
                dist = math.sqrt(dist_sq)
                scale = (reach - dist) / dist
                # Equal radii: each side takes half.
                node.vx += dx * scale * 0.5
                node.vy += dy * scale * 0.5
                other.vx -= dx * scale * 0.5
                other.vy -= dy * scale * 0.5

    # --- Internals ---

    def _jiggle(self) -> float:
        return (self._random.random() - 0.5) * 1e-6

    def _seed_position(self, node_id: str, index: int) -> tuple[float, float]:
        """Place an unpositioned node near its parent, or on a spiral around the origin."""
        node = self.store.get_node(node_id)
        anchor_x = anchor_y = 0.0
        if node is not None and node.parent_id is not None:
            parent = self._particles.get(node.parent_id)
            if parent is not None:
                anchor_x, anchor_y = parent.x, parent.y
        radius = _INITIAL_RADIUS * math.sqrt(0.5 + index)
        angle = index * _INITIAL_ANGLE
        return anchor_x + radius * math.cos(angle), anchor_y + radius * math.sin(angle)

    def _finish(self) -> None:
        self._running = False
        if self._cancelled or self._finished:
            return
        self._finished = True
        logger.debug("Force simulation ended after {} ticks (alpha={:.4f})", self.ticks, self.alpha)
        if self.on_end is not None:
            self.on_end()
