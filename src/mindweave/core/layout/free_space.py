"""Find the nearest unoccupied spot for a new node.

The search is a pure function of (anchor, size, occupied rectangles), so it
can run in-process or in a worker process; the payload exchanged with the
worker is a plain dict of numbers.
"""

import asyncio
import math
from collections.abc import Iterable, Sequence
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any

from loguru import logger

from mindweave.config import (
    FALLBACK_OFFSET,
    GRID_COLUMNS,
    OFFLOAD_THRESHOLD,
    OFFLOAD_TIMEOUT,
    SPACING_MARGIN,
    SPIRAL_ANGLE_STEP,
    SPIRAL_MAX_RADIUS,
    SPIRAL_MIN_RADIUS,
    SPIRAL_RADIUS_STEP,
)
from mindweave.core.layout.geometry import overlaps_any
from mindweave.models.node import NodeGeometry, Position, Rect, Size


@dataclass(frozen=True)
class LocatorParams:
    """Search budget and spacing for the spiral search."""

    margin: float = SPACING_MARGIN
    min_radius: float = SPIRAL_MIN_RADIUS
    max_radius: float = SPIRAL_MAX_RADIUS
    radius_step: float = SPIRAL_RADIUS_STEP
    angle_step: float = SPIRAL_ANGLE_STEP
    fallback_offset: tuple[float, float] = FALLBACK_OFFSET
    offload_threshold: int = OFFLOAD_THRESHOLD
    offload_timeout: float = OFFLOAD_TIMEOUT
    grid_columns: int = GRID_COLUMNS


def find_free_position(
    anchor: Position,
    size: Size,
    occupied: Sequence[Rect],
    params: LocatorParams = LocatorParams(),
) -> Position:
    """Spiral outwards from ``anchor`` until a top-left corner fits.

    Candidates are tried ring by ring from ``min_radius`` to ``max_radius``,
    and around each ring in ``angle_step`` degree increments starting at 0
    (to the right of the anchor). The first candidate that keeps ``margin``
    clear of every occupied rectangle wins. When the budget is exhausted the
    fixed fallback offset is returned, accepting an overlap.
    """
    occupied = list(occupied)
    angle_count = max(1, round(360 / params.angle_step))
    radius = params.min_radius
    while radius <= params.max_radius:
        for i in range(angle_count):
            theta = math.radians(i * params.angle_step)
            candidate = Rect(
                anchor.x + radius * math.cos(theta),
                anchor.y + radius * math.sin(theta),
                size.width,
                size.height,
            )
            if not overlaps_any(candidate, occupied, params.margin):
                return Position(candidate.x, candidate.y)
        radius += params.radius_step

    logger.debug("No free spot within {} of {}, using fallback offset", params.max_radius, anchor)
    return anchor.offset(*params.fallback_offset)


def grid_slot(anchor: Position, size: Size, index: int, params: LocatorParams = LocatorParams()) -> Position:
    """Cheap default placement: the ``index``-th cell of a grid right of the anchor."""
    col = index % params.grid_columns
    row = index // params.grid_columns
    return anchor.offset(
        params.min_radius + col * (size.width + params.margin),
        row * (size.height + params.margin),
    )


def encode_payload(
    anchor: Position,
    size: Size,
    geometry: Iterable[NodeGeometry],
    params: LocatorParams,
) -> dict[str, Any]:
    """Serialize a search request for a worker."""
    return {
        "anchor": [anchor.x, anchor.y],
        "size": [size.width, size.height],
        "nodes": [[g.id, g.parent_id, g.x, g.y, g.width, g.height] for g in geometry],
        "params": {
            "margin": params.margin,
            "min_radius": params.min_radius,
            "max_radius": params.max_radius,
            "radius_step": params.radius_step,
            "angle_step": params.angle_step,
            "fallback_offset": list(params.fallback_offset),
        },
    }


def locate_from_payload(payload: dict[str, Any]) -> tuple[float, float]:
    """Worker entry point: decode, search, return plain coordinates."""
    raw = payload["params"]
    params = LocatorParams(
        margin=raw["margin"],
        min_radius=raw["min_radius"],
        max_radius=raw["max_radius"],
        radius_step=raw["radius_step"],
        angle_step=raw["angle_step"],
        fallback_offset=tuple(raw["fallback_offset"]),  # type: ignore[arg-type]
    )
    occupied = [Rect(x, y, w, h) for _id, _parent, x, y, w, h in payload["nodes"]]
    pos = find_free_position(
        Position(*payload["anchor"]), Size(*payload["size"]), occupied, params
    )
    return pos.x, pos.y


class FreeSpaceLocator:
    """Runs the spiral search in-process, or in a worker for large documents."""

    def __init__(
        self,
        params: LocatorParams | None = None,
        *,
        executor: Executor | None = None,
    ) -> None:
        self.params = params or LocatorParams()
        self._executor = executor
        self._owns_executor = executor is None

    def locate(self, anchor: Position, size: Size, occupied: Sequence[NodeGeometry]) -> Position:
        return find_free_position(anchor, size, [g.rect for g in occupied], self.params)

    async def locate_async(
        self, anchor: Position, size: Size, occupied: Sequence[NodeGeometry]
    ) -> Position:
        """Locate off the event loop when the document is large.

        A worker that does not answer within ``offload_timeout`` yields a grid
        slot; a worker that cannot be reached yields the in-process result.
        """
        if len(occupied) <= self.params.offload_threshold:
            return self.locate(anchor, size, occupied)

        payload = encode_payload(anchor, size, occupied, self.params)
        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self._get_executor(), locate_from_payload, payload)
            x, y = await asyncio.wait_for(future, timeout=self.params.offload_timeout)
        except TimeoutError:
            logger.warning(
                "Free-space worker timed out after {}s, using grid slot",
                self.params.offload_timeout,
            )
            return grid_slot(anchor, size, len(occupied), self.params)
        except Exception:
            logger.opt(exception=True).warning("Free-space worker unavailable, searching in-process")
            return self.locate(anchor, size, occupied)
        return Position(x, y)

    def shutdown(self) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=1)
        return self._executor
