"""Tests for selection and expansion state."""

from mindweave.core.selection import SelectionState
from mindweave.core.store import GraphStore
from mindweave.models.document import Document
from mindweave.models.events import EventKind, EventSource
from tests.unit.fakes import RecordingSubscriber


def test_select_single_and_clear(
    selection: SelectionState, tree: dict[str, str], recorder: RecordingSubscriber
) -> None:
    selection.select(tree["A"], source=EventSource.OUTLINE)
    assert selection.selected_ids == [tree["A"]]
    event = recorder.events[-1]
    assert event.kind == EventKind.NODE_SELECTED
    assert event.scroll_into_view

    selection.clear_selection()
    assert selection.selected_ids == []
    assert not recorder.events[-1].scroll_into_view


def test_select_many_keeps_order_and_drops_duplicates(
    selection: SelectionState, tree: dict[str, str], recorder: RecordingSubscriber
) -> None:
    selection.select_many([tree["B"], tree["A"], tree["B"]])
    assert selection.selected_ids == [tree["B"], tree["A"]]
    assert recorder.events[-1].kind == EventKind.NODES_SELECTED


def test_add_and_remove_from_selection(selection: SelectionState, tree: dict[str, str]) -> None:
    selection.select(tree["A"])
    selection.add_to_selection(tree["B"])
    selection.add_to_selection(tree["B"])
    assert selection.selected_ids == [tree["A"], tree["B"]]
    selection.remove_from_selection(tree["A"])
    assert selection.selected_ids == [tree["B"]]


def test_nodes_are_expanded_by_default(selection: SelectionState, tree: dict[str, str]) -> None:
    assert selection.is_expanded(tree["A"])
    assert selection.is_expanded("never-seen")


def test_collapse_expand_and_toggle(
    selection: SelectionState, tree: dict[str, str], recorder: RecordingSubscriber
) -> None:
    assert selection.collapse(tree["A"])
    assert not selection.is_expanded(tree["A"])
    assert selection.toggle_expansion(tree["A"])
    assert selection.is_expanded(tree["A"])
    assert recorder.kinds()[-2:] == [EventKind.NODE_COLLAPSED, EventKind.NODE_EXPANDED]


def test_expand_unknown_node_is_noop(
    selection: SelectionState, recorder: RecordingSubscriber
) -> None:
    assert not selection.collapse("ghost")
    assert not selection.expand("ghost")
    assert recorder.events == []


def test_deleted_nodes_leave_selection_and_collapsed_set(
    selection: SelectionState, store: GraphStore, tree: dict[str, str]
) -> None:
    selection.select_many([tree["A1"], tree["B"]])
    selection.collapse(tree["A"])
    store.delete_node(tree["A"])
    assert selection.selected_ids == [tree["B"]]
    assert selection.collapsed_ids == set()


def test_document_change_resets_state(
    selection: SelectionState, store: GraphStore, tree: dict[str, str]
) -> None:
    selection.select(tree["A"])
    selection.collapse(tree["R"])
    store.load_document(Document(name="Other"))
    assert selection.selected_ids == []
    assert selection.collapsed_ids == set()


def test_restore_emits_nothing(
    selection: SelectionState, tree: dict[str, str], recorder: RecordingSubscriber
) -> None:
    selection.restore([tree["A"], tree["A"]], [tree["R"]])
    assert selection.selected_ids == [tree["A"]]
    assert not selection.is_expanded(tree["R"])
    assert recorder.events == []


def test_detach_stops_listening(
    selection: SelectionState, store: GraphStore, tree: dict[str, str]
) -> None:
    selection.select(tree["A"])
    selection.detach()
    store.delete_node(tree["A"])
    assert selection.selected_ids == [tree["A"]]
