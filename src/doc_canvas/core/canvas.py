"""graph store: the single mutable owner of canvas nodes and edges.

every consumer (server state, cli, layout write-back) mutates the graph
through this class. not safe for concurrent mutation from several threads.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Iterable, Iterator, Optional

from .models import (
    CanvasEdge,
    CanvasNode,
    DuplicateIdError,
    NodeType,
    Position,
    UnknownNodeError,
)


class Canvas:
    """the full node/edge graph.

    deleting a node also deletes every edge touching it. callers that keep
    a selected/active node id must drop it when that node is deleted; the
    store does not track selection.
    """

    def __init__(
        self,
        nodes: Optional[Iterable[CanvasNode]] = None,
        edges: Optional[Iterable[CanvasEdge]] = None,
    ):
        self._nodes: dict[str, CanvasNode] = {}
        self._edges: dict[str, CanvasEdge] = {}
        if nodes:
            self.set_nodes(list(nodes))
        if edges:
            self.set_edges(list(edges))

    # --- queries ---

    @property
    def nodes(self) -> list[CanvasNode]:
        """nodes in insertion order (a new list; the nodes are live)."""
        return list(self._nodes.values())

    @property
    def edges(self) -> list[CanvasEdge]:
        """edges in insertion order (a new list; the edges are live)."""
        return list(self._edges.values())

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[CanvasEdge]:
        return self._edges.get(edge_id)

    def require_node(self, node_id: str) -> CanvasNode:
        """get a node or raise UnknownNodeError."""
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(f"node not found: {node_id}")
        return node

    def incoming_edges(self, node_id: str) -> list[CanvasEdge]:
        """edges whose target is node_id, in edge order."""
        return [e for e in self._edges.values() if e.target == node_id]

    def outgoing_edges(self, node_id: str) -> list[CanvasEdge]:
        """edges whose source is node_id, in edge order."""
        return [e for e in self._edges.values() if e.source == node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[CanvasNode]:
        return iter(list(self._nodes.values()))

    # --- node mutations ---

    def add_node(self, node: CanvasNode) -> None:
        """append a node. raises DuplicateIdError if the id is taken."""
        if node.id in self._nodes:
            raise DuplicateIdError(f"node id already exists: {node.id}")
        self._nodes[node.id] = node

    def delete_node(self, node_id: str) -> Optional[CanvasNode]:
        """remove a node and every edge that has it as source or target.

        returns the removed node, or None if it did not exist.
        """
        node = self._nodes.pop(node_id, None)
        if node is None:
            return None
        self._edges = {
            eid: e
            for eid, e in self._edges.items()
            if e.source != node_id and e.target != node_id
        }
        return node

    def update_node_data(self, node_id: str, **changes) -> bool:
        """merge fields into a node's payload.

        only applies when every field belongs to the node's payload variant
        (content/summary for text, src/alt for images) and every value is a
        string; alt alone may be None. otherwise nothing changes and False
        is returned.
        """
        node = self._nodes.get(node_id)
        if node is None or not changes:
            return False
        allowed = {f.name for f in fields(node.data)}
        nullable = {f.name for f in fields(node.data) if f.default is None}
        if not set(changes) <= allowed:
            logging.debug(
                f"ignoring payload update {sorted(changes)} for {node.type.value} {node_id}"
            )
            return False
        for key, value in changes.items():
            if not isinstance(value, str) and not (value is None and key in nullable):
                logging.debug(f"ignoring payload update {key}={value!r} for {node_id}")
                return False
        for key, value in changes.items():
            setattr(node.data, key, value)
        return True

    def update_node_content(self, node_id: str, content: str) -> bool:
        return self.update_node_data(node_id, content=content)

    def update_node_summary(self, node_id: str, summary: str) -> bool:
        return self.update_node_data(node_id, summary=summary)

    def update_node_geometry(
        self,
        node_id: str,
        position: Optional[Position] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
    ) -> bool:
        """partial geometry update. returns False for an unknown node."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        if position is not None:
            node.position = Position(position.x, position.y)
        if width is not None:
            node.width = width
        if height is not None:
            node.height = height
        return True

    # --- edge mutations ---

    def connect(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        edge_type: Optional[str] = "default",
    ) -> CanvasEdge:
        """create an edge from source to target.

        handles default to right-source / left-target. parallel and self
        edges are accepted here; the traversal engine reports them.
        """
        for endpoint in (source, target):
            if endpoint not in self._nodes:
                raise UnknownNodeError(f"cannot connect, node not found: {endpoint}")
        edge = CanvasEdge.create(
            source, target,
            source_handle=source_handle,
            target_handle=target_handle,
            edge_type=edge_type,
        )
        self._edges[edge.id] = edge
        return edge

    def add_edge(self, edge: CanvasEdge) -> None:
        """append a prebuilt edge. raises DuplicateIdError if the id is taken."""
        if edge.id in self._edges:
            raise DuplicateIdError(f"edge id already exists: {edge.id}")
        self._edges[edge.id] = edge

    def delete_edge(self, edge_id: str) -> Optional[CanvasEdge]:
        """remove a single edge. no cascade."""
        return self._edges.pop(edge_id, None)

    # --- bulk replace ---

    def set_nodes(self, nodes: list[CanvasNode]) -> None:
        """replace all nodes. edges are left as they are."""
        replacement: dict[str, CanvasNode] = {}
        for node in nodes:
            if node.id in replacement:
                raise DuplicateIdError(f"node id already exists: {node.id}")
            replacement[node.id] = node
        self._nodes = replacement

    def set_edges(self, edges: list[CanvasEdge]) -> None:
        """replace all edges. dangling endpoints are tolerated."""
        replacement: dict[str, CanvasEdge] = {}
        for edge in edges:
            if edge.id in replacement:
                raise DuplicateIdError(f"edge id already exists: {edge.id}")
            replacement[edge.id] = edge
        self._edges = replacement

    def clear(self) -> None:
        self._nodes = {}
        self._edges = {}

    def snapshot(self) -> Canvas:
        """deep copy, for work that must not see later mutations."""
        return Canvas(
            nodes=[n.copy() for n in self._nodes.values()],
            edges=[e.copy() for e in self._edges.values()],
        )

    # --- incremental changes (as emitted by the canvas renderer) ---

    def apply_changes(
        self,
        node_changes: Optional[list[dict]] = None,
        edge_changes: Optional[list[dict]] = None,
    ) -> None:
        """apply a batch of renderer node and edge changes as one unit.

        the batch runs against a snapshot that replaces the live graph only
        when every change went through. a DuplicateIdError or ValueError
        from any change leaves the canvas exactly as it was.
        """
        work = self.snapshot()
        for change in node_changes or []:
            work._apply_node_change(change)
        for change in edge_changes or []:
            work._apply_edge_change(change)
        self._nodes = work._nodes
        self._edges = work._edges

    def apply_node_changes(self, changes: list[dict]) -> None:
        """apply renderer node changes, all or nothing.

        supported types: position, dimensions, remove, add, replace.
        anything else is ignored.
        """
        self.apply_changes(node_changes=changes)

    def apply_edge_changes(self, changes: list[dict]) -> None:
        """apply renderer edge changes (remove, add, replace), all or nothing."""
        self.apply_changes(edge_changes=changes)

    def _apply_node_change(self, change: dict) -> None:
        kind = change.get("type")
        node_id = change.get("id")
        if kind == "position":
            pos = change.get("position")
            if pos is not None:
                self.update_node_geometry(
                    node_id, position=Position(_coordinate(pos, "x"), _coordinate(pos, "y"))
                )
        elif kind == "dimensions":
            dims = change.get("dimensions") or {}
            if not isinstance(dims, dict):
                raise ValueError(f"dimensions change for {node_id} needs an object")
            self.update_node_geometry(
                node_id,
                width=_size(dims.get("width"), "width"),
                height=_size(dims.get("height"), "height"),
            )
        elif kind == "remove":
            self.delete_node(node_id)
        elif kind == "add":
            self.add_node(change["item"])
        elif kind == "replace":
            item: CanvasNode = change["item"]
            if item.id in self._nodes:
                self._nodes[item.id] = item

    def _apply_edge_change(self, change: dict) -> None:
        kind = change.get("type")
        if kind == "remove":
            self.delete_edge(change.get("id"))
        elif kind == "add":
            self.add_edge(change["item"])
        elif kind == "replace":
            item: CanvasEdge = change["item"]
            if item.id in self._edges:
                self._edges[item.id] = item

    # --- convenience ---

    def text_nodes(self) -> list[CanvasNode]:
        return [n for n in self._nodes.values() if n.type is NodeType.TEXT]

    def image_nodes(self) -> list[CanvasNode]:
        return [n for n in self._nodes.values() if n.type is NodeType.IMAGE]


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coordinate(position: object, axis: str) -> float:
    """one coordinate of a renderer position dict."""
    value = position.get(axis) if isinstance(position, dict) else None
    if not _is_number(value):
        raise ValueError(f"position change needs a numeric {axis}, got {value!r}")
    return value


def _size(value: object, name: str) -> Optional[float]:
    if value is not None and not _is_number(value):
        raise ValueError(f"dimensions change needs a numeric {name}, got {value!r}")
    return value
