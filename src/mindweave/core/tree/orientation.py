"""Assign branch sides around each root from an orientation mode."""

import math

from loguru import logger

from mindweave.core.store import GraphStore
from mindweave.models.events import EventSource
from mindweave.models.node import Node, OrientationMode, Side

_LEADING_SIDE = {
    OrientationMode.CLOCKWISE: Side.RIGHT,
    OrientationMode.ANTICLOCKWISE: Side.LEFT,
    OrientationMode.LEFT_RIGHT: Side.LEFT,
    OrientationMode.RIGHT_LEFT: Side.RIGHT,
}


def child_side(mode: OrientationMode, rank: int, total: int) -> Side:
    """Side of the child at 1-based ``rank`` among ``total`` siblings.

    The first half (rounded up) goes to the mode's leading side, the rest to
    the other one. Clockwise and anticlockwise differ from right-left and
    left-right only in the vertical order the view draws each half in.
    """
    leading = _LEADING_SIDE[mode]
    if rank <= math.ceil(total / 2):
        return leading
    return Side.RIGHT if leading is Side.LEFT else Side.LEFT


def apply_orientation(
    store: GraphStore,
    mode: OrientationMode,
    root_id: str | None = None,
    *,
    source: EventSource = EventSource.STORE,
) -> list[str]:
    """Set the side of every depth-1 node from its rank under its root.

    Args:
        store: Store holding the active document.
        mode: Orientation to apply.
        root_id: Only this root's branches (None = every root). A non-root id
            changes nothing.

    Returns:
        Ids whose side changed.
    """
    roots: list[Node]
    if root_id is None:
        roots = store.get_root_nodes()
    else:
        root = store.get_node(root_id)
        roots = [root] if root is not None and root.parent_id is None else []

    changed: list[str] = []
    for root in roots:
        children = store.get_children(root.id)
        for rank, child in enumerate(children, start=1):
            side = child_side(mode, rank, len(children))
            if child.side is not side and store.set_node_side(child.id, side, source=source):
                changed.append(child.id)
    logger.debug("Orientation {} changed {} side(s)", mode, len(changed))
    return changed
