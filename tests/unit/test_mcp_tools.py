"""Tests for MCP tool core functions."""

import pytest

from mindweave.core.workspace import Workspace
from mindweave.mcp.server import (
    mindmap_add_node,
    mindmap_declutter,
    mindmap_delete_node,
    mindmap_edit_node,
    mindmap_get_node,
    mindmap_link_nodes,
    mindmap_move_node,
    mindmap_orient,
    mindmap_read_outline,
    mindmap_set_side,
    save_if_dirty,
)
from mindweave.protocols import PersistenceProtocol
from tests.unit.fakes import MemorySnapshotStore


@pytest.fixture
def ids(workspace: Workspace) -> dict[str, str]:
    """Center with two branches; the first branch has a leaf."""
    center = mindmap_add_node(workspace, title="Center")["node_id"]
    first = mindmap_add_node(workspace, title="First", parent_id=center, content="why")["node_id"]
    second = mindmap_add_node(workspace, title="Second", parent_id=center)["node_id"]
    leaf = mindmap_add_node(workspace, title="Leaf", parent_id=first)["node_id"]
    return {"center": center, "first": first, "second": second, "leaf": leaf}


def test_add_node_returns_free_position(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_add_node(workspace, title="Third", parent_id=ids["center"])
    assert result["parent_id"] == ids["center"]
    assert result["order"] == 2
    assert result["position"] is not None


def test_add_node_unknown_parent(workspace: Workspace) -> None:
    result = mindmap_add_node(workspace, title="x", parent_id="ghost")
    assert result == {"error": "Node 'ghost' not found."}


def test_read_outline_whole_document(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_read_outline(workspace)
    assert result["content"] == (
        "- Center\n    - First\n      > why\n        - Leaf\n    - Second\n"
    )
    assert result["node_count"] == 4
    assert "breadcrumbs" not in result
    assert "warning" not in result


def test_read_outline_subtree_has_breadcrumbs(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_read_outline(workspace, node_id=ids["leaf"], include_content=False)
    assert result["content"] == "- Leaf\n"
    assert result["breadcrumbs"] == "Center > First"


def test_read_outline_hides_collapsed_children(workspace: Workspace, ids: dict[str, str]) -> None:
    workspace.selection.collapse(ids["first"])
    result = mindmap_read_outline(workspace, include_content=False)
    assert "Leaf" not in result["content"]
    assert "1 collapsed child" in result["content"]


def test_read_outline_missing_node(workspace: Workspace) -> None:
    assert "error" in mindmap_read_outline(workspace, node_id="ghost")


def test_get_node_includes_children_and_depth(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_get_node(workspace, node_id=ids["first"])
    node = result["node"]
    assert node["depth"] == 1
    assert node["content"] == "why"
    assert node["expanded"] is True
    assert node["positions"]["mindmap"] is not None
    assert node["positions"]["concept-map"] is None
    assert result["breadcrumbs"] == "Center"
    assert result["children"] == [{"id": ids["leaf"], "title": "Leaf", "child_count": 0}]


def test_edit_node(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_edit_node(workspace, node_id=ids["leaf"], title="Renamed")
    assert result == {"node_id": ids["leaf"], "changed": True}
    assert workspace.store.get_node(ids["leaf"]).title == "Renamed"
    assert mindmap_edit_node(workspace, node_id=ids["leaf"])["changed"] is False


def test_move_node_refuses_own_subtree(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_move_node(workspace, node_id=ids["first"], new_parent_id=ids["leaf"])
    assert "own subtree" in result["error"]


def test_move_node_missing_ids(workspace: Workspace, ids: dict[str, str]) -> None:
    assert mindmap_move_node(workspace, node_id="ghost", new_parent_id=None) == {
        "error": "Node 'ghost' not found."
    }
    result = mindmap_move_node(workspace, node_id=ids["first"], new_parent_id="ghost")
    assert result == {"error": "Node 'ghost' not found."}


def test_move_node_clears_side_when_leaving_depth_one(
    workspace: Workspace, ids: dict[str, str]
) -> None:
    mindmap_set_side(workspace, node_id=ids["second"], side="left")

    result = mindmap_move_node(workspace, node_id=ids["second"], new_parent_id=ids["first"])

    assert result == {"node_id": ids["second"], "parent_id": ids["first"], "order": 1}
    assert workspace.store.get_node(ids["second"]).side is None


def test_set_side_validation(workspace: Workspace, ids: dict[str, str]) -> None:
    assert mindmap_set_side(workspace, node_id=ids["first"], side="right")["side"] == "right"
    assert "Invalid side" in mindmap_set_side(workspace, node_id=ids["first"], side="up")["error"]
    assert "depth-1" in mindmap_set_side(workspace, node_id=ids["leaf"], side="left")["error"]
    assert "not found" in mindmap_set_side(workspace, node_id="ghost", side="left")["error"]


def test_delete_node_cascades(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_delete_node(workspace, node_id=ids["first"])
    assert result["count"] == 2
    assert result["deleted"][0] == ids["first"]
    assert "error" in mindmap_delete_node(workspace, node_id=ids["first"])


def test_link_nodes(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_link_nodes(workspace, source_id=ids["leaf"], target_id=ids["second"])
    assert "edge_id" in result
    again = mindmap_link_nodes(workspace, source_id=ids["leaf"], target_id=ids["second"])
    assert "error" in again


def test_declutter_reports_ticks(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_declutter(workspace)
    assert result["ticks"] > 0
    assert result["view"] == "mindmap"


def test_save_if_dirty_writes_once(workspace: Workspace, ids: dict[str, str]) -> None:
    storage = MemorySnapshotStore()
    assert isinstance(storage, PersistenceProtocol)

    assert save_if_dirty(workspace, storage) is True
    assert save_if_dirty(workspace, storage) is False
    assert storage.saves == 1

    mindmap_edit_node(workspace, node_id=ids["leaf"], content="more")
    assert save_if_dirty(workspace, storage) is True
    assert storage.saves == 2


def test_saved_document_reloads_with_view_state(
    workspace: Workspace, ids: dict[str, str]
) -> None:
    storage = MemorySnapshotStore()
    workspace.selection.select(ids["second"])
    workspace.selection.collapse(ids["first"])
    mindmap_edit_node(workspace, node_id=ids["second"], title="Second!")
    save_if_dirty(workspace, storage)

    restored = Workspace()
    data = storage.load()
    assert data is not None
    restored.load_snapshot(data)

    assert restored.selection.selected_ids == [ids["second"]]
    assert restored.selection.is_expanded(ids["first"]) is False
    assert mindmap_get_node(restored, node_id=ids["second"])["node"]["title"] == "Second!"


def test_move_node_to_index(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_move_node(
        workspace, node_id=ids["leaf"], new_parent_id=ids["center"], new_order=0
    )
    assert result == {"node_id": ids["leaf"], "parent_id": ids["center"], "order": 0}
    titles = [n.title for n in workspace.store.get_children(ids["center"])]
    assert titles == ["Leaf", "First", "Second"]


def test_orient(workspace: Workspace, ids: dict[str, str]) -> None:
    result = mindmap_orient(workspace, mode="left-right")
    assert result == {"mode": "left-right", "changed": [ids["first"], ids["second"]]}
    assert "Invalid orientation" in mindmap_orient(workspace, mode="spiral")["error"]
    assert "not found" in mindmap_orient(workspace, mode="clockwise", root_id="ghost")["error"]
