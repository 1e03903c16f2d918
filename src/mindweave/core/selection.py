"""Selection and expansion state shared by all views."""

from collections.abc import Callable, Iterable

from mindweave.core.bus import ChangeBus
from mindweave.models.events import (
    Event,
    EventKind,
    EventSource,
    NodeCollapsed,
    NodeDeleted,
    NodeExpanded,
    NodeSelected,
    NodesSelected,
)


class SelectionState:
    """Selected node ids (ordered) and collapsed nodes.

    Absence of state means expanded: ``is_expanded`` is True for any id that
    was never collapsed, including ids that do not exist.
    """

    def __init__(self, bus: ChangeBus, node_exists: Callable[[str], bool]) -> None:
        self.bus = bus
        self._node_exists = node_exists
        self._selected: list[str] = []
        self._collapsed: set[str] = set()
        self._unsubscribers = [
            bus.subscribe(EventKind.NODE_DELETED, self._on_deleted),
            bus.subscribe(EventKind.DOCUMENT_CLEARED, self._on_cleared),
            bus.subscribe(EventKind.DOCUMENT_LOADED, self._on_cleared),
        ]

    @property
    def selected_ids(self) -> list[str]:
        return list(self._selected)

    @property
    def collapsed_ids(self) -> set[str]:
        return set(self._collapsed)

    def select(self, node_id: str | None, *, source: EventSource = EventSource.STORE) -> None:
        """Select a single node; None clears the selection."""
        self._selected = [] if node_id is None else [node_id]
        self.bus.emit(
            NodeSelected(source=source, node_id=node_id, scroll_into_view=node_id is not None)
        )

    def select_many(self, node_ids: Iterable[str], *, source: EventSource = EventSource.STORE) -> None:
        self._selected = list(dict.fromkeys(node_ids))
        self.bus.emit(NodesSelected(source=source, node_ids=tuple(self._selected)))

    def add_to_selection(self, node_id: str, *, source: EventSource = EventSource.STORE) -> None:
        if node_id not in self._selected:
            self._selected.append(node_id)
        self.bus.emit(NodesSelected(source=source, node_ids=tuple(self._selected)))

    def remove_from_selection(self, node_id: str, *, source: EventSource = EventSource.STORE) -> None:
        self._selected = [nid for nid in self._selected if nid != node_id]
        self.bus.emit(NodesSelected(source=source, node_ids=tuple(self._selected)))

    def clear_selection(self, *, source: EventSource = EventSource.STORE) -> None:
        self._selected = []
        self.bus.emit(NodeSelected(source=source, node_id=None, scroll_into_view=False))

    def is_expanded(self, node_id: str) -> bool:
        return node_id not in self._collapsed

    def expand(self, node_id: str, *, source: EventSource = EventSource.STORE) -> bool:
        if not self._node_exists(node_id):
            return False
        self._collapsed.discard(node_id)
        self.bus.emit(NodeExpanded(source=source, node_id=node_id))
        return True

    def collapse(self, node_id: str, *, source: EventSource = EventSource.STORE) -> bool:
        if not self._node_exists(node_id):
            return False
        self._collapsed.add(node_id)
        self.bus.emit(NodeCollapsed(source=source, node_id=node_id))
        return True

    def toggle_expansion(self, node_id: str, *, source: EventSource = EventSource.STORE) -> bool:
        if self.is_expanded(node_id):
            return self.collapse(node_id, source=source)
        return self.expand(node_id, source=source)

    def restore(self, selected: Iterable[str], collapsed: Iterable[str]) -> None:
        """Replace state wholesale from a snapshot; emits nothing."""
        self._selected = list(dict.fromkeys(selected))
        self._collapsed = set(collapsed)

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_deleted(self, event: Event) -> None:
        if not isinstance(event, NodeDeleted):
            return
        gone = set(event.deleted_ids)
        self._selected = [nid for nid in self._selected if nid not in gone]
        self._collapsed -= gone

    def _on_cleared(self, _event: Event) -> None:
        self._selected = []
        self._collapsed = set()
