"""Composition root: one bus, store, selection, locator and body arena per workspace."""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from mindweave.config import DEFAULT_NODE_HEIGHT, DEFAULT_NODE_WIDTH, TICK_INTERVAL
from mindweave.core.bus import ChangeBus
from mindweave.core.layout.collision import BodyArena, CollisionParams, ResizeDebouncer
from mindweave.core.layout.force import ForceParams, ForceSimulation
from mindweave.core.layout.free_space import FreeSpaceLocator, LocatorParams
from mindweave.core.persistence.snapshot import document_to_snapshot, snapshot_to_document
from mindweave.core.selection import SelectionState
from mindweave.core.store import GraphStore
from mindweave.models.document import Document
from mindweave.models.events import (
    Event,
    EventKind,
    EventSource,
    NodeCreated,
    NodeDeleted,
    NodeMoved,
    NodesPositioned,
)
from mindweave.models.node import Node, Position, Size, SpatialView
from mindweave.protocols import DimensionSource

_DEFAULT_SIZE = Size(DEFAULT_NODE_WIDTH, DEFAULT_NODE_HEIGHT)


class Workspace:
    """Everything one open document needs, wired together.

    The body arena mirrors the nodes of ``view`` (one spatial view at a
    time); the bus subscriptions below keep it in step with the store.
    """

    def __init__(
        self,
        *,
        view: SpatialView = SpatialView.MINDMAP,
        dimensions: DimensionSource | None = None,
        locator_params: LocatorParams | None = None,
        force_params: ForceParams | None = None,
        collision_params: CollisionParams | None = None,
        locator: FreeSpaceLocator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.bus = ChangeBus()
        self.store = GraphStore(self.bus)
        self.selection = SelectionState(self.bus, lambda nid: self.store.get_node(nid) is not None)
        self.view = view
        self.dimensions = dimensions
        self.locator = locator or FreeSpaceLocator(locator_params)
        self.force_params = force_params or ForceParams()
        self.arena = BodyArena(collision_params)
        self.resizes = ResizeDebouncer(self.arena.params.debounce_delay, clock)
        self.simulation: ForceSimulation | None = None
        self._resize_timer: asyncio.TimerHandle | None = None

        self.bus.subscribe(EventKind.NODE_CREATED, self._on_node_created)
        self.bus.subscribe(EventKind.NODE_MOVED, self._on_node_moved)
        self.bus.subscribe(EventKind.NODES_POSITIONED, self._on_nodes_positioned)
        self.bus.subscribe(EventKind.NODE_DELETED, self._on_node_deleted)
        self.bus.subscribe(EventKind.DOCUMENT_LOADED, self._on_document_loaded)
        self.bus.subscribe(EventKind.DOCUMENT_CLEARED, self._on_document_cleared)

    # --- Documents ---

    def new_document(self, name: str = "Untitled") -> Document:
        document = Document(name=name)
        self.store.load_document(document)
        return document

    def get_snapshot(self) -> dict[str, Any] | None:
        if self.store.document is None:
            return None
        return document_to_snapshot(self.store.document, self.selection)

    def load_snapshot(self, data: dict[str, Any]) -> Document:
        """Replace the active document with one decoded from ``data``.

        Raises:
            ValueError: if the snapshot is malformed.
        """
        loaded = snapshot_to_document(data)
        self.cancel_simulation()
        # Loading resets selection, so restore it afterwards.
        self.store.load_document(loaded.document)
        self.selection.restore(loaded.selected_ids, loaded.collapsed_ids)
        loaded.document.mark_clean()
        return loaded.document

    # --- Geometry ---

    def size_of(self, node_id: str) -> Size:
        """Rendered size when a view has measured it, the default size otherwise."""
        if self.dimensions is not None:
            measured = self.dimensions.measure(node_id)
            if measured is not None:
                return measured
        body = self.arena.body(node_id)
        if body is not None:
            return Size(body.width, body.height)
        return _DEFAULT_SIZE

    def _sizes(self) -> dict[str, Size]:
        doc = self.store.document
        return {nid: self.size_of(nid) for nid in doc.nodes} if doc else {}

    def _anchor_for(self, parent_id: str | None) -> Position:
        parent = self.store.get_node(parent_id) if parent_id else None
        if parent is not None:
            pos = parent.positions.get(self.view)
            if pos is not None:
                return pos
        return Position(0.0, 0.0)

    # --- Node creation ---

    def create_node(
        self,
        parent_id: str | None,
        title: str,
        content: str = "",
        *,
        source: EventSource = EventSource.STORE,
    ) -> Node | None:
        """Add a node placed in the nearest free spot around its parent."""
        if parent_id is not None and self.store.get_node(parent_id) is None:
            return None
        anchor = self._anchor_for(parent_id)
        occupied = self.store.geometry(self.view, self._sizes())
        position = self.locator.locate(anchor, _DEFAULT_SIZE, occupied)
        return self.store.add_node(
            parent_id, title, content, position, view=self.view, source=source
        )

    async def create_node_async(
        self,
        parent_id: str | None,
        title: str,
        content: str = "",
        *,
        source: EventSource = EventSource.STORE,
    ) -> Node | None:
        """Like ``create_node``, offloading the search for large documents."""
        if parent_id is not None and self.store.get_node(parent_id) is None:
            return None
        anchor = self._anchor_for(parent_id)
        occupied = self.store.geometry(self.view, self._sizes())
        position = await self.locator.locate_async(anchor, _DEFAULT_SIZE, occupied)
        # The store may have changed while we awaited.
        if parent_id is not None and self.store.get_node(parent_id) is None:
            logger.debug("Parent {} vanished during placement", parent_id)
            return None
        return self.store.add_node(
            parent_id, title, content, position, view=self.view, source=source
        )

    # --- Dragging ---

    def is_draggable(self, node_id: str) -> bool:
        if self.simulation is not None and self.simulation.running:
            return False
        return self.store.get_node(node_id) is not None

    def drag_node(
        self,
        node_id: str,
        position: Position,
        *,
        source: EventSource = EventSource.STORE,
    ) -> list[str]:
        """Move a node to ``position`` and push overlapped neighbours aside.

        A running declutter is cancelled first so its next tick cannot
        overwrite the drag.

        Returns:
            Ids of the neighbours that were pushed.
        """
        if self.store.get_node(node_id) is None:
            return []
        self.cancel_simulation()
        self.store.update_node_position(node_id, position, self.view, source=source)

        pushed = self.arena.push_away(node_id)
        if pushed:
            self._write_back(pushed)
        return pushed

    # --- Layout ---

    def cancel_simulation(self) -> None:
        if self.simulation is not None:
            self.simulation.cancel()

    def _new_simulation(self) -> ForceSimulation:
        self.cancel_simulation()
        self.simulation = ForceSimulation(
            self.store, self.view, self.force_params, on_end=self._after_simulation
        )
        return self.simulation

    def declutter(self) -> int:
        """Run the force layout to completion, then settle overlaps; returns ticks."""
        return self._new_simulation().run()

    async def declutter_async(self, tick_interval: float = TICK_INTERVAL) -> int:
        return await self._new_simulation().run_async(tick_interval)

    def _after_simulation(self) -> None:
        self.settle()

    def settle(self, steps: int | None = None) -> list[str]:
        """Resolve current overlaps and write the results back to the store."""
        self._sync_bodies()
        moved = self.arena.settle(steps)
        if moved:
            self._write_back(moved)
        logger.debug("Settling moved {} node(s)", len(moved))
        return moved

    def _write_back(self, node_ids: list[str]) -> None:
        positions: dict[str, Position] = {}
        for nid in node_ids:
            top_left = self.arena.top_left(nid)
            if top_left is not None:
                positions[nid] = top_left
        self.store.update_node_positions(positions, self.view, source=EventSource.LAYOUT)

    def _sync_bodies(self) -> None:
        """Rebuild bodies from store positions and current dimensions."""
        sizes = self._sizes()
        self.arena.reset()
        for geometry in self.store.geometry(self.view, sizes):
            self.arena.add(
                geometry.id, Position(geometry.x, geometry.y), Size(geometry.width, geometry.height)
            )

    # --- Dimensions ---

    def notify_dimensions_changed(self, node_id: str, size: Size | None = None) -> None:
        """Queue a size update; it is applied once the node has been quiet for a while.

        Inside a running event loop a timer applies it; without one the caller
        applies due updates with ``flush_resizes``.
        """
        if size is None:
            size = self.size_of(node_id)
        self.resizes.schedule(node_id, size)
        self._arm_resize_timer()

    def _arm_resize_timer(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._resize_timer is not None:
            self._resize_timer.cancel()
        self._resize_timer = loop.call_later(self.resizes.delay, self._on_resize_timer)

    def _on_resize_timer(self) -> None:
        self._resize_timer = None
        # Every report re-arms the timer, so everything queued is past its quiet period.
        self.flush_resizes(force=True)

    def flush_resizes(self, *, force: bool = False) -> list[str]:
        """Apply due size updates, then settle if any body changed; returns resized ids."""
        resized = [
            nid for nid, size in self.resizes.flush(force=force).items() if self.arena.resize(nid, size)
        ]
        if resized:
            logger.debug("Applied {} size update(s)", len(resized))
            moved = self.arena.settle()
            if moved:
                self._write_back(moved)
        return resized

    # --- Bus handlers ---

    def _on_node_created(self, event: Event) -> None:
        if not isinstance(event, NodeCreated):
            return
        if event.view is self.view and event.position is not None:
            self.arena.add(event.node_id, event.position, self.size_of(event.node_id))

    def _on_node_moved(self, event: Event) -> None:
        if not isinstance(event, NodeMoved) or event.view is not self.view:
            return
        if not self.arena.set_top_left(event.node_id, event.position):
            self.arena.add(event.node_id, event.position, self.size_of(event.node_id))

    def _on_nodes_positioned(self, event: Event) -> None:
        if not isinstance(event, NodesPositioned) or event.view is not self.view:
            return
        for node_id, position in event.positions:
            if not self.arena.set_top_left(node_id, position):
                self.arena.add(node_id, position, self.size_of(node_id))

    def _on_node_deleted(self, event: Event) -> None:
        if not isinstance(event, NodeDeleted):
            return
        self.arena.remove_many(event.deleted_ids)
        for node_id in event.deleted_ids:
            self.resizes.cancel(node_id)

    def _on_document_loaded(self, _event: Event) -> None:
        self._sync_bodies()

    def _on_document_cleared(self, _event: Event) -> None:
        self.cancel_simulation()
        if self._resize_timer is not None:
            self._resize_timer.cancel()
            self._resize_timer = None
        self.arena.reset()
