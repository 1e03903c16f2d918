"""Hierarchical node store with cycle-safe mutation.

Every mutating method validates first, mutates the active document, marks
it dirty and publishes exactly one event on the bus before returning.
Invalid requests (cycles, unknown ids, side on a non depth-1 node) are
rejected silently: no mutation, no event, a falsy return value.
"""

from collections.abc import Iterable, Mapping

from loguru import logger

from mindweave.config import DEFAULT_NODE_HEIGHT, DEFAULT_NODE_WIDTH
from mindweave.core.bus import ChangeBus
from mindweave.models.document import Document, new_id, utc_now
from mindweave.models.events import (
    DocumentCleared,
    DocumentLoaded,
    EdgeCreated,
    EdgeDeleted,
    EventSource,
    NodeCreated,
    NodeDeleted,
    NodeMoved,
    NodeReparented,
    NodeSideChanged,
    NodesPositioned,
    NodeUpdated,
    SiblingsReordered,
    ViewChanged,
)
from mindweave.models.node import (
    Node,
    NodeGeometry,
    Position,
    ReferenceEdge,
    RootBranches,
    Side,
    Size,
    SpatialView,
    ViewKind,
)


class GraphStore:
    """Owns the active document and all structural mutations."""

    def __init__(self, bus: ChangeBus, document: Document | None = None) -> None:
        self.bus = bus
        self._document = document

    @property
    def document(self) -> Document | None:
        return self._document

    # --- Document lifecycle ---

    def load_document(self, document: Document, *, source: EventSource = EventSource.STORE) -> None:
        """Make ``document`` the active document."""
        self._document = document
        logger.debug("Loaded document {} ({} nodes)", document.id, len(document.nodes))
        self.bus.emit(
            DocumentLoaded(source=source, document_id=document.id, document_name=document.name)
        )

    def clear_document(self, *, source: EventSource = EventSource.STORE) -> None:
        if self._document is None:
            return
        self._document = None
        self.bus.emit(DocumentCleared(source=source))

    def mark_clean(self) -> None:
        if self._document is not None:
            self._document.mark_clean()

    # --- Read accessors ---

    def node_count(self) -> int:
        return len(self._document.nodes) if self._document else 0

    def get_node(self, node_id: str) -> Node | None:
        if self._document is None:
            return None
        return self._document.nodes.get(node_id)

    def get_children(self, parent_id: str | None) -> list[Node]:
        """Direct children of ``parent_id`` (roots when None), sorted by order."""
        if self._document is None:
            return []
        children = [n for n in self._document.nodes.values() if n.parent_id == parent_id]
        return sorted(children, key=lambda n: n.order)

    def get_root_nodes(self) -> list[Node]:
        return self.get_children(None)

    def get_descendants(self, node_id: str) -> list[Node]:
        """All descendants of ``node_id`` in pre-order (excludes the node)."""
        if self.get_node(node_id) is None:
            return []
        result: list[Node] = []
        stack = list(reversed(self.get_children(node_id)))
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(self.get_children(node.id)))
        return result

    def get_ancestors(self, node_id: str) -> list[Node]:
        """Ancestors from the immediate parent up to the root."""
        node = self.get_node(node_id)
        ancestors: list[Node] = []
        if node is None:
            return ancestors
        current = self.get_node(node.parent_id) if node.parent_id else None
        for _ in range(self.node_count()):
            if current is None:
                break
            ancestors.append(current)
            current = self.get_node(current.parent_id) if current.parent_id else None
        return ancestors

    def get_depth(self, node_id: str) -> int | None:
        """Number of hops to the root (0 for a root), None for unknown ids."""
        if self.get_node(node_id) is None:
            return None
        return len(self.get_ancestors(node_id))

    def get_root_nodes_with_sides(self) -> list[RootBranches]:
        """Each root with its depth-1 children and their sides."""
        return [
            RootBranches(
                root=root,
                branches=tuple((child, child.side) for child in self.get_children(root.id)),
            )
            for root in self.get_root_nodes()
        ]

    def get_edges(self) -> list[ReferenceEdge]:
        return list(self._document.edges) if self._document else []

    def get_connected_ids(self) -> set[str]:
        """Ids of nodes with at least one hierarchy or reference connection."""
        if self._document is None:
            return set()
        connected: set[str] = set()
        for node in self._document.nodes.values():
            if node.parent_id is not None:
                connected.add(node.id)
                connected.add(node.parent_id)
        for edge in self._document.edges:
            connected.add(edge.source_id)
            connected.add(edge.target_id)
        return connected

    def geometry(
        self,
        view: SpatialView,
        sizes: Mapping[str, Size] | None = None,
    ) -> list[NodeGeometry]:
        """Project positioned nodes of ``view`` to plain geometry."""
        if self._document is None:
            return []
        sizes = sizes or {}
        result: list[NodeGeometry] = []
        for node in self._document.nodes.values():
            pos = node.positions.get(view)
            if pos is None:
                continue
            size = sizes.get(node.id, Size(DEFAULT_NODE_WIDTH, DEFAULT_NODE_HEIGHT))
            result.append(
                NodeGeometry(
                    id=node.id,
                    parent_id=node.parent_id,
                    x=pos.x,
                    y=pos.y,
                    width=size.width,
                    height=size.height,
                )
            )
        return result

    # --- Node mutations ---

    def add_node(
        self,
        parent_id: str | None,
        title: str,
        content: str = "",
        position: Position | None = None,
        *,
        view: SpatialView = SpatialView.MINDMAP,
        source: EventSource = EventSource.STORE,
    ) -> Node | None:
        """Create a node as the last sibling under ``parent_id``."""
        doc = self._document
        if doc is None:
            logger.warning("add_node called without an active document")
            return None
        if parent_id is not None and parent_id not in doc.nodes:
            logger.debug("add_node: parent {} does not exist", parent_id)
            return None

        now = utc_now()
        node = Node(
            id=new_id("node"),
            parent_id=parent_id,
            order=self._next_order(parent_id),
            title=title,
            content=content,
            created=now,
            modified=now,
        )
        if position is not None:
            node.positions.set(view, position)
        doc.nodes[node.id] = node
        doc.mark_dirty()

        self.bus.emit(
            NodeCreated(
                source=source,
                node_id=node.id,
                parent_id=parent_id,
                position=position,
                view=view,
            )
        )
        return node

    def update_node(
        self,
        node_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        source: EventSource = EventSource.STORE,
    ) -> bool:
        """Merge the given fields into the node."""
        node = self.get_node(node_id)
        if node is None or self._document is None:
            return False

        changes: list[tuple[str, str]] = []
        if title is not None:
            node.title = title
            changes.append(("title", title))
        if content is not None:
            node.content = content
            changes.append(("content", content))
        if not changes:
            return False

        node.modified = utc_now()
        self._document.mark_dirty()
        self.bus.emit(NodeUpdated(source=source, node_id=node_id, changes=tuple(changes)))
        return True

    def update_node_position(
        self,
        node_id: str,
        position: Position,
        view: SpatialView,
        *,
        source: EventSource = EventSource.STORE,
    ) -> bool:
        """Set the node's position in one spatial view; hierarchy is untouched."""
        node = self.get_node(node_id)
        if node is None or self._document is None:
            return False

        previous = node.positions.get(view)
        node.positions.set(view, position)
        self._document.mark_dirty()
        self.bus.emit(
            NodeMoved(
                source=source,
                node_id=node_id,
                view=view,
                position=position,
                previous_position=previous,
            )
        )
        return True

    def update_node_positions(
        self,
        positions: Mapping[str, Position],
        view: SpatialView,
        *,
        source: EventSource = EventSource.STORE,
    ) -> int:
        """Write many positions as one atomic batch.

        Unknown ids are skipped. Returns the number of nodes written.
        """
        doc = self._document
        if doc is None:
            return 0
        applied = [(nid, pos) for nid, pos in positions.items() if nid in doc.nodes]
        if not applied:
            return 0

        for nid, pos in applied:
            doc.nodes[nid].positions.set(view, pos)
        doc.mark_dirty()
        self.bus.emit(NodesPositioned(source=source, view=view, positions=tuple(applied)))
        return len(applied)

    def delete_node(
        self,
        node_id: str,
        cascade: bool = True,
        *,
        source: EventSource = EventSource.STORE,
    ) -> list[str]:
        """Delete a node.

        With ``cascade`` the whole subtree goes. Without it the direct children
        take the deleted node's slot under its parent, keeping their order.

        Returns:
            The removed ids, the deleted node first.
        """
        doc = self._document
        node = self.get_node(node_id)
        if node is None or doc is None:
            return []

        if cascade:
            removed = [node_id, *(d.id for d in self.get_descendants(node_id))]
        else:
            removed = [node_id]
            self._bubble_up_children(node)

        for rid in removed:
            del doc.nodes[rid]
        gone = set(removed)
        doc.edges = [e for e in doc.edges if e.source_id not in gone and e.target_id not in gone]
        doc.mark_dirty()

        logger.debug("Deleted {} node(s) under {} (cascade={})", len(removed), node_id, cascade)
        self.bus.emit(
            NodeDeleted(source=source, node_id=node_id, deleted_ids=tuple(removed), cascade=cascade)
        )
        return removed

    def move_node(
        self,
        node_id: str,
        new_parent_id: str | None,
        new_order: int | None = None,
        *,
        source: EventSource = EventSource.STORE,
    ) -> bool:
        """Reparent ``node_id`` under ``new_parent_id``.

        Without ``new_order`` the node becomes the last child. With it the node
        is inserted at that index (clamped) among its new siblings; both the
        new and the old sibling groups are then renumbered 0..n-1. Moving
        within the same parent with ``new_order`` reorders the group.

        Rejected when the new parent is the node itself or one of its
        descendants.
        """
        doc = self._document
        node = self.get_node(node_id)
        if node is None or doc is None:
            return False
        if new_parent_id is not None and new_parent_id not in doc.nodes:
            logger.debug("move_node: target parent {} does not exist", new_parent_id)
            return False
        if self.would_create_cycle(node_id, new_parent_id):
            logger.debug("move_node: rejected {} -> {} (cycle)", node_id, new_parent_id)
            return False

        old_parent_id = node.parent_id
        if new_order is None:
            new_order = self._next_order(new_parent_id, exclude=node_id)
            node.parent_id = new_parent_id
            node.order = new_order
        else:
            new_order = self._insert_child(node, new_parent_id, new_order)
            if old_parent_id != new_parent_id:
                for index, sibling in enumerate(self.get_children(old_parent_id)):
                    sibling.order = index
        node.modified = utc_now()
        self._enforce_side_validity([node_id])
        doc.mark_dirty()

        self.bus.emit(
            NodeReparented(
                source=source,
                node_id=node_id,
                old_parent_id=old_parent_id,
                new_parent_id=new_parent_id,
                new_order=new_order,
            )
        )
        return True

    def would_create_cycle(self, node_id: str, new_parent_id: str | None) -> bool:
        """Whether making ``new_parent_id`` the parent of ``node_id`` closes a loop.

        Walks up from the proposed parent; the walk is bounded by the node
        count so a corrupted tree cannot hang the caller.
        """
        current = new_parent_id
        for _ in range(self.node_count() + 1):
            if current is None:
                return False
            if current == node_id:
                return True
            parent = self.get_node(current)
            current = parent.parent_id if parent else None
        logger.warning("Parent chain above {} exceeds node count; tree is corrupted", new_parent_id)
        return True

    def reorder_siblings(
        self,
        parent_id: str | None,
        new_orders: Mapping[str, int],
        *,
        source: EventSource = EventSource.STORE,
    ) -> bool:
        """Assign new order values to children of ``parent_id``.

        Ids that are not children of ``parent_id`` are ignored. If the
        assignment leaves two siblings with the same order the group is
        renumbered, explicitly assigned nodes winning ties.
        """
        doc = self._document
        if doc is None:
            return False

        siblings = self.get_children(parent_id)
        by_id = {s.id: s for s in siblings}
        previous = {s.id: s.order for s in siblings}
        assigned = {nid: order for nid, order in new_orders.items() if nid in by_id}

        changed = False
        for nid, order in assigned.items():
            if by_id[nid].order != order:
                by_id[nid].order = order
                by_id[nid].modified = utc_now()
                changed = True
        if not changed:
            return False

        if len({s.order for s in siblings}) != len(siblings):
            ranked = sorted(
                siblings,
                key=lambda s: (s.order, 0 if s.id in assigned else 1, previous[s.id]),
            )
            for index, sibling in enumerate(ranked):
                sibling.order = index

        doc.mark_dirty()
        final = tuple((s.id, s.order) for s in sorted(siblings, key=lambda s: s.order))
        self.bus.emit(SiblingsReordered(source=source, parent_id=parent_id, orders=final))
        return True

    def set_node_side(
        self,
        node_id: str,
        side: Side | None,
        *,
        source: EventSource = EventSource.STORE,
    ) -> bool:
        """Set the branch side; only depth-1 nodes carry one."""
        node = self.get_node(node_id)
        if node is None or self._document is None:
            return False
        if self.get_depth(node_id) != 1:
            logger.debug("set_node_side: {} is not a depth-1 node", node_id)
            return False

        node.side = side
        node.modified = utc_now()
        self._document.mark_dirty()
        self.bus.emit(NodeSideChanged(source=source, node_id=node_id, side=side))
        return True

    def toggle_node_side(self, node_id: str, *, source: EventSource = EventSource.STORE) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        new_side = Side.RIGHT if node.side is Side.LEFT else Side.LEFT
        return self.set_node_side(node_id, new_side, source=source)

    # --- Reference edges ---

    def add_reference_edge(
        self,
        source_id: str,
        target_id: str,
        label: str | None = None,
        *,
        source: EventSource = EventSource.STORE,
    ) -> ReferenceEdge | None:
        doc = self._document
        if doc is None or source_id == target_id:
            return None
        if source_id not in doc.nodes or target_id not in doc.nodes:
            return None
        if any(e.source_id == source_id and e.target_id == target_id for e in doc.edges):
            return None

        edge = ReferenceEdge(
            id=f"edge-{source_id}-{target_id}",
            source_id=source_id,
            target_id=target_id,
            label=label,
        )
        doc.edges.append(edge)
        doc.mark_dirty()
        self.bus.emit(
            EdgeCreated(source=source, edge_id=edge.id, source_id=source_id, target_id=target_id)
        )
        return edge

    def remove_reference_edge(
        self, edge_id: str, *, source: EventSource = EventSource.STORE
    ) -> bool:
        doc = self._document
        if doc is None or not any(e.id == edge_id for e in doc.edges):
            return False
        doc.edges = [e for e in doc.edges if e.id != edge_id]
        doc.mark_dirty()
        self.bus.emit(EdgeDeleted(source=source, edge_id=edge_id))
        return True

    # --- Views ---

    def switch_view(self, view: ViewKind, *, source: EventSource = EventSource.STORE) -> bool:
        doc = self._document
        if doc is None:
            return False
        previous = doc.layout.active_view
        doc.layout.active_view = view
        doc.mark_dirty()
        self.bus.emit(ViewChanged(source=source, previous_view=previous, new_view=view))
        return True

    # --- Internals ---

    def _next_order(self, parent_id: str | None, exclude: str | None = None) -> int:
        orders = [n.order for n in self.get_children(parent_id) if n.id != exclude]
        return max(orders) + 1 if orders else 0

    def _insert_child(self, node: Node, parent_id: str | None, index: int) -> int:
        """Place ``node`` at ``index`` among ``parent_id``'s children; returns the final index."""
        siblings = [s for s in self.get_children(parent_id) if s.id != node.id]
        index = max(0, min(index, len(siblings)))
        siblings.insert(index, node)
        node.parent_id = parent_id
        for position, sibling in enumerate(siblings):
            sibling.order = position
        return index

    def _bubble_up_children(self, node: Node) -> None:
        """Hand ``node``'s children to its parent, in ``node``'s sibling slot."""
        group: list[Node] = []
        for sibling in self.get_children(node.parent_id):
            if sibling.id == node.id:
                group.extend(self.get_children(node.id))
            else:
                group.append(sibling)

        children = self.get_children(node.id)
        for child in children:
            child.parent_id = node.parent_id
            child.modified = utc_now()
        for index, member in enumerate(group):
            member.order = index
        self._enforce_side_validity(c.id for c in children)

    def _enforce_side_validity(self, node_ids: Iterable[str]) -> None:
        """Clear sides that a depth change made invalid.

        A node moving changes its own depth and its children's, so both are
        checked.
        """
        for node_id in node_ids:
            for candidate in [self.get_node(node_id), *self.get_children(node_id)]:
                if candidate is None or candidate.side is None:
                    continue
                if self.get_depth(candidate.id) != 1:
                    logger.debug("Clearing side of {} after depth change", candidate.id)
                    candidate.side = None
