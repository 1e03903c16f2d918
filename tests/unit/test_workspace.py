"""Tests for the workspace that wires store, layout and collisions together."""

import asyncio
import math

import pytest

from mindweave.core.layout.geometry import rects_overlap
from mindweave.core.workspace import Workspace
from mindweave.models.events import EventKind, EventSource
from mindweave.models.node import Position, Rect, Size, SpatialView
from tests.unit.fakes import FixedDimensions, ManualClock, RecordingSubscriber


def _pos(ws: Workspace, node_id: str) -> Position:
    node = ws.store.get_node(node_id)
    assert node is not None
    pos = node.positions.get(ws.view)
    assert pos is not None
    return pos


def _add(ws: Workspace, title: str, x: float, y: float, parent: str | None = None) -> str:
    node = ws.store.add_node(parent, title, position=Position(x, y), view=ws.view)
    assert node is not None
    return node.id


def test_create_node_places_child_in_free_space(workspace: Workspace) -> None:
    root = workspace.create_node(None, "R")
    assert root is not None
    children = [workspace.create_node(root.id, f"c{i}") for i in range(8)]
    assert all(c is not None for c in children)

    margin = workspace.locator.params.margin
    rects = [Rect.at(_pos(workspace, nid), Size(80, 40)) for nid in workspace.store.document.nodes]  # type: ignore[union-attr]
    for i, a in enumerate(rects):
        for b in rects[i + 1 :]:
            assert not rects_overlap(a, b, margin)


def test_create_node_anchors_on_parent(workspace: Workspace) -> None:
    parent = _add(workspace, "P", 1000, 1000)
    child = workspace.create_node(parent, "child")
    assert child is not None
    pos = _pos(workspace, child.id)
    assert math.hypot(pos.x - 1000, pos.y - 1000) <= workspace.locator.params.max_radius


def test_create_node_with_missing_parent(workspace: Workspace) -> None:
    assert workspace.create_node("ghost", "x") is None
    assert asyncio.run(workspace.create_node_async("ghost", "x")) is None


def test_create_node_async_matches_sync_for_small_documents(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    node = asyncio.run(workspace.create_node_async(root, "child"))
    assert node is not None
    assert _pos(workspace, node.id) == Position(120, 0)


def test_new_nodes_get_bodies(workspace: Workspace) -> None:
    node_id = _add(workspace, "A", 5, 5)
    assert node_id in workspace.arena
    assert workspace.arena.top_left(node_id) == Position(5, 5)


def test_drag_pushes_neighbours_and_writes_them_back(workspace: Workspace) -> None:
    recorder = RecordingSubscriber()
    workspace.bus.subscribe(None, recorder)
    a = _add(workspace, "A", 0, 0)
    b = _add(workspace, "B", 300, 0)
    recorder.clear()

    pushed = workspace.drag_node(a, Position(280, 0), source=EventSource.MINDMAP)

    assert pushed == [b]
    assert _pos(workspace, a) == Position(280, 0)
    assert _pos(workspace, b).x >= 280 + 80 + workspace.arena.params.margin - 1e-6
    assert recorder.kinds() == [EventKind.NODE_MOVED, EventKind.NODES_POSITIONED]
    assert recorder.events[1].source == EventSource.LAYOUT


def test_drag_without_overlap_pushes_nothing(workspace: Workspace) -> None:
    a = _add(workspace, "A", 0, 0)
    _add(workspace, "B", 300, 0)
    assert workspace.drag_node(a, Position(0, 100)) == []
    assert workspace.drag_node("ghost", Position(0, 0)) == []


def test_nodes_are_not_draggable_while_simulating(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    child = _add(workspace, "C", 100, 0, parent=root)
    sim = workspace._new_simulation()
    sim.start()
    assert not workspace.is_draggable(child)

    workspace.drag_node(child, Position(50, 50))

    assert not sim.running
    assert workspace.is_draggable(child)
    assert _pos(workspace, child) == Position(50, 50)
    assert not workspace.is_draggable("ghost")


def test_collision_push_scenario_through_settle(
    workspace: Workspace, dimensions: FixedDimensions
) -> None:
    a = _add(workspace, "A", 0, 0)
    b = _add(workspace, "B", 10, 0)
    dimensions.sizes = {a: Size(200, 100), b: Size(200, 100)}

    moved = workspace.settle()

    assert set(moved) == {a, b}
    pa, pb = _pos(workspace, a), _pos(workspace, b)
    assert abs(pb.x - pa.x) >= 200 + workspace.arena.params.margin - 1e-6


def test_declutter_settles_after_layout(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    for i in range(5):
        _add(workspace, f"c{i}", 100, 0, parent=root)

    ticks = workspace.declutter()

    assert ticks > 0
    assert workspace.simulation is not None and workspace.simulation.finished
    assert workspace.arena.overlapping_pairs() == []


def test_declutter_async(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    _add(workspace, "A", 10, 0, parent=root)
    ticks = asyncio.run(workspace.declutter_async(tick_interval=0))
    assert ticks > 0
    assert not workspace.simulation.running  # type: ignore[union-attr]


def test_cancelled_declutter_task_releases_drag(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    child = _add(workspace, "A", 10, 0, parent=root)

    async def scenario() -> None:
        task = asyncio.create_task(workspace.declutter_async(tick_interval=10))
        while workspace.simulation is None or workspace.simulation.ticks == 0:
            await asyncio.sleep(0)
        assert not workspace.is_draggable(child)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert workspace.simulation is not None
    assert not workspace.simulation.running
    assert not workspace.simulation.finished
    assert workspace.is_draggable(child)


def test_new_declutter_cancels_previous_run(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    _add(workspace, "A", 10, 0, parent=root)
    first = workspace._new_simulation()
    first.start()
    workspace.declutter()
    assert not first.running
    assert not first.finished


def test_dimension_updates_are_debounced(
    workspace: Workspace, dimensions: FixedDimensions, clock: ManualClock
) -> None:
    a = _add(workspace, "A", 0, 0)
    b = _add(workspace, "B", 100, 0)

    workspace.notify_dimensions_changed(a, Size(150, 40))
    assert workspace.flush_resizes() == []
    clock.advance(0.2)
    assert workspace.flush_resizes() == [a]

    body = workspace.arena.body(a)
    assert body is not None and body.width == 150
    # The grown node now reaches B, so the pair was settled.
    pa, pb = _pos(workspace, a), _pos(workspace, b)
    assert not rects_overlap(Rect.at(pa, Size(150, 40)), Rect.at(pb, Size(80, 40)), 3.0 - 1e-6)


def test_dimension_updates_apply_on_their_own_inside_event_loop(workspace: Workspace) -> None:
    a = _add(workspace, "A", 0, 0)
    delay = workspace.resizes.delay

    async def scenario() -> None:
        workspace.notify_dimensions_changed(a, Size(300, 40))
        await asyncio.sleep(delay / 2)
        workspace.notify_dimensions_changed(a, Size(320, 40))
        await asyncio.sleep(delay / 4)
        body = workspace.arena.body(a)
        assert body is not None and body.width == 80
        await asyncio.sleep(delay * 3)

    asyncio.run(scenario())

    body = workspace.arena.body(a)
    assert body is not None and body.width == 320
    assert workspace.resizes.pending() == []


def test_dimension_update_reads_measured_size(
    workspace: Workspace, dimensions: FixedDimensions
) -> None:
    a = _add(workspace, "A", 0, 0)
    dimensions.sizes[a] = Size(300, 60)
    workspace.notify_dimensions_changed(a)
    assert workspace.flush_resizes(force=True) == [a]


def test_small_dimension_changes_are_ignored(workspace: Workspace) -> None:
    a = _add(workspace, "A", 0, 0)
    workspace.notify_dimensions_changed(a, Size(81, 40))
    assert workspace.flush_resizes(force=True) == []


def test_deleted_nodes_lose_their_bodies(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    child = _add(workspace, "C", 100, 0, parent=root)
    workspace.notify_dimensions_changed(child, Size(300, 40))
    workspace.store.delete_node(root)
    assert len(workspace.arena) == 0
    assert workspace.resizes.pending() == []


def test_other_view_positions_do_not_touch_bodies(workspace: Workspace) -> None:
    a = _add(workspace, "A", 0, 0)
    workspace.store.update_node_position(a, Position(999, 999), SpatialView.CONCEPT_MAP)
    assert workspace.arena.top_left(a) == Position(0, 0)


def test_snapshot_round_trip_keeps_view_state(workspace: Workspace) -> None:
    root = _add(workspace, "R", 0, 0)
    child = _add(workspace, "C", 100, 0, parent=root)
    workspace.selection.select(child)
    workspace.selection.collapse(root)
    data = workspace.get_snapshot()
    assert data is not None

    other = Workspace()
    document = other.load_snapshot(data)

    assert not document.dirty
    assert other.selection.selected_ids == [child]
    assert not other.selection.is_expanded(root)
    assert other.arena.top_left(child) == Position(100, 0)


def test_clearing_document_resets_arena(workspace: Workspace) -> None:
    _add(workspace, "A", 0, 0)
    workspace.store.clear_document()
    assert len(workspace.arena) == 0
    assert workspace.get_snapshot() is None
