"""Tests for the free-space locator."""

import asyncio
import json

from mindweave.core.layout.free_space import (
    FreeSpaceLocator,
    LocatorParams,
    encode_payload,
    find_free_position,
    grid_slot,
    locate_from_payload,
)
from mindweave.core.layout.geometry import rects_overlap
from mindweave.models.node import NodeGeometry, Position, Rect, Size
from tests.unit.fakes import BrokenExecutor, InlineExecutor, StalledExecutor

SIZE = Size(80, 40)


def _far_geometry(count: int) -> list[NodeGeometry]:
    return [NodeGeometry(f"n{i}", None, 5000.0 + i * 200, 5000.0, 80, 40) for i in range(count)]


def test_empty_canvas_places_on_first_ring() -> None:
    params = LocatorParams()
    pos = find_free_position(Position(10, 20), SIZE, [], params)
    assert pos == Position(10 + params.min_radius, 20)


def test_placements_never_overlap() -> None:
    params = LocatorParams()
    occupied: list[Rect] = []
    for _ in range(30):
        pos = find_free_position(Position(0, 0), SIZE, occupied, params)
        occupied.append(Rect.at(pos, SIZE))

    for i, a in enumerate(occupied):
        for b in occupied[i + 1 :]:
            assert not rects_overlap(a, b, params.margin)


def test_exhausted_search_uses_fallback_offset() -> None:
    params = LocatorParams(max_radius=200)
    wall = [Rect(-1000, -1000, 2000, 2000)]
    pos = find_free_position(Position(0, 0), SIZE, wall, params)
    assert pos == Position(*params.fallback_offset)


def test_gap_equal_to_margin_is_free() -> None:
    a = Rect(0, 0, 80, 40)
    assert not rects_overlap(a, Rect(100, 0, 80, 40), margin=20)
    assert rects_overlap(a, Rect(99.5, 0, 80, 40), margin=20)


def test_grid_slot_wraps_rows() -> None:
    params = LocatorParams(grid_columns=8)
    pos = grid_slot(Position(0, 0), SIZE, 9, params)
    assert pos == Position(params.min_radius + 80 + params.margin, 40 + params.margin)


def test_payload_is_plain_json() -> None:
    params = LocatorParams()
    payload = encode_payload(Position(0, 0), SIZE, _far_geometry(2), params)
    decoded = json.loads(json.dumps(payload))
    x, y = locate_from_payload(decoded)
    assert Position(x, y) == find_free_position(Position(0, 0), SIZE, [], params)


def test_small_documents_are_located_in_process() -> None:
    executor = InlineExecutor()
    locator = FreeSpaceLocator(LocatorParams(offload_threshold=10), executor=executor)
    pos = asyncio.run(locator.locate_async(Position(0, 0), SIZE, _far_geometry(3)))
    assert executor.submitted == 0
    assert pos == locator.locate(Position(0, 0), SIZE, _far_geometry(3))


def test_large_documents_are_offloaded() -> None:
    executor = InlineExecutor()
    locator = FreeSpaceLocator(LocatorParams(offload_threshold=2), executor=executor)
    occupied = _far_geometry(5)
    pos = asyncio.run(locator.locate_async(Position(0, 0), SIZE, occupied))
    assert executor.submitted == 1
    assert pos == locator.locate(Position(0, 0), SIZE, occupied)


def test_worker_timeout_falls_back_to_grid_slot() -> None:
    params = LocatorParams(offload_threshold=2, offload_timeout=0.01)
    locator = FreeSpaceLocator(params, executor=StalledExecutor())
    occupied = _far_geometry(5)
    pos = asyncio.run(locator.locate_async(Position(0, 0), SIZE, occupied))
    assert pos == grid_slot(Position(0, 0), SIZE, len(occupied), params)


def test_broken_worker_falls_back_to_in_process_search() -> None:
    locator = FreeSpaceLocator(LocatorParams(offload_threshold=2), executor=BrokenExecutor())
    occupied = _far_geometry(5)
    pos = asyncio.run(locator.locate_async(Position(0, 0), SIZE, occupied))
    assert pos == locator.locate(Position(0, 0), SIZE, occupied)


def test_shutdown_leaves_injected_executor_alone() -> None:
    executor = InlineExecutor()
    locator = FreeSpaceLocator(executor=executor)
    locator.shutdown()
    assert locator._get_executor() is executor
