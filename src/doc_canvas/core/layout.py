"""automatic layout boundary.

a layout adapter gets node sizes and edges and returns center points.
apply_layout converts those centers to top-left positions and writes them
back through the graph store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import networkx as nx

from .canvas import Canvas
from .models import Position


@dataclass
class LayoutNode:
    id: str
    width: float
    height: float


@runtime_checkable
class LayoutAdapter(Protocol):
    """anything that can place nodes given their sizes and edges."""

    def layout(
        self, nodes: list[LayoutNode], edges: list[tuple[str, str]]
    ) -> dict[str, tuple[float, float]]:
        """return a center point per node id."""
        ...


class LayeredLayout:
    """left-to-right layered placement.

    each node goes one column to the right of its furthest upstream node.
    strongly connected components share a column, so cycles still lay out.
    """

    def __init__(self, node_sep: float = 100, rank_sep: float = 200):
        self.node_sep = node_sep
        self.rank_sep = rank_sep

    def layout(
        self, nodes: list[LayoutNode], edges: list[tuple[str, str]]
    ) -> dict[str, tuple[float, float]]:
        if not nodes:
            return {}

        g = nx.DiGraph()
        for n in nodes:
            g.add_node(n.id)
        g.add_edges_from((s, t) for s, t in edges if s in g and t in g and s != t)

        dag = nx.condensation(g)
        component_rank: dict[int, int] = {}
        for c in nx.topological_sort(dag):
            component_rank[c] = max(
                (component_rank[p] + 1 for p in dag.predecessors(c)), default=0
            )
        mapping = dag.graph["mapping"]
        ranks: dict[int, list[LayoutNode]] = {}
        for n in nodes:
            ranks.setdefault(component_rank[mapping[n.id]], []).append(n)

        centers: dict[str, tuple[float, float]] = {}
        x = 0.0
        for rank in sorted(ranks):
            column = ranks[rank]
            col_width = max(n.width for n in column)
            total_height = sum(n.height for n in column) + self.node_sep * (len(column) - 1)
            y = -total_height / 2
            for n in column:
                centers[n.id] = (x + col_width / 2, y + n.height / 2)
                y += n.height + self.node_sep
            x += col_width + self.rank_sep
        return centers


def apply_layout(canvas: Canvas, adapter: LayoutAdapter) -> int:
    """run the adapter and move nodes. returns how many nodes moved.

    nodes the adapter leaves out keep their position.
    """
    layout_nodes = []
    for node in canvas.nodes:
        width, height = node.effective_size
        layout_nodes.append(LayoutNode(node.id, width, height))
    sizes = {n.id: n for n in layout_nodes}
    edges = [(e.source, e.target) for e in canvas.edges]

    centers = adapter.layout(layout_nodes, edges)

    moved = 0
    for node_id, (cx, cy) in centers.items():
        size = sizes.get(node_id)
        if size is None:
            continue
        top_left = Position(cx - size.width / 2, cy - size.height / 2)
        if canvas.update_node_geometry(node_id, position=top_left):
            moved += 1
    return moved
