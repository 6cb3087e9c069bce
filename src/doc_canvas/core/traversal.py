"""backward context traversal.

context for a generation request is the chain of nodes feeding into the
selected node, oldest first. the walk follows incoming edges one at a time
and stops, with a warning, as soon as the chain stops being a simple line
(a node with several parents, or a cycle). whatever was collected up to
that point is still returned and usable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional

from .canvas import Canvas
from .models import CanvasNode, NodeType

AnomalyKind = Literal["branch", "loop"]

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class TraversalWarning:
    """non-fatal anomaly found while walking backward."""

    kind: AnomalyKind
    message: str
    node_id: str  # where the walk stopped

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "node_id": self.node_id}


@dataclass
class TraversalResult:
    nodes: list[CanvasNode]  # oldest context first, target last
    warning: Optional[TraversalWarning] = None

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]


@dataclass
class ContextSet:
    """union of several traversals, de-duplicated by node id."""

    nodes: list[CanvasNode] = field(default_factory=list)
    warnings: list[TraversalWarning] = field(default_factory=list)

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]


def traverse_backward(canvas: Canvas, target_id: str) -> TraversalResult:
    """walk incoming edges from target_id back to the start of its chain.

    an unknown target gives an empty result. an edge whose source no longer
    exists ends the walk quietly. several incoming edges end it with a
    "branch" warning, re-entering a visited node with a "loop" warning.
    on a loop the re-entered node has already been prepended, so it shows
    up at both ends: a <-> b from a gives [a, b, a].
    """
    target = canvas.get_node(target_id)
    if target is None:
        return TraversalResult(nodes=[])

    result = [target]
    visited: set[str] = set()
    current = target_id
    warning: Optional[TraversalWarning] = None

    while True:
        if current in visited:
            # the re-entered node is already at the front of the result
            warning = TraversalWarning(
                kind="loop",
                message=f"link structure contains a cycle through node {current}",
                node_id=current,
            )
            break
        visited.add(current)

        incoming = canvas.incoming_edges(current)
        if len(incoming) > 1:
            warning = TraversalWarning(
                kind="branch",
                message=(
                    f"node {current} has {len(incoming)} incoming links; "
                    "context can only follow a single chain"
                ),
                node_id=current,
            )
            break
        if not incoming:
            break

        source_id = incoming[0].source
        source = canvas.get_node(source_id)
        if source is None:
            logging.debug(f"dangling edge {incoming[0].id} into {current}, stopping")
            break
        result.insert(0, source)
        current = source_id

    if warning:
        logging.warning(f"context traversal from {target_id}: {warning.message}")
    return TraversalResult(nodes=result, warning=warning)


def collect_context(canvas: Canvas, seed_ids: list[str]) -> ContextSet:
    """traverse from every seed and union the results.

    nodes keep the order in which they were first seen; each seed that hit
    an anomaly contributes one warning.
    """
    context = ContextSet()
    seen: set[str] = set()
    for seed in seed_ids:
        traversal = traverse_backward(canvas, seed)
        if traversal.warning:
            context.warnings.append(traversal.warning)
        for node in traversal.nodes:
            if node.id not in seen:
                seen.add(node.id)
                context.nodes.append(node)
    return context


def format_text_context(nodes: list[CanvasNode]) -> str:
    """join the non-empty text contents of nodes, in order."""
    parts = [n.text.content for n in nodes if n.type is NodeType.TEXT and n.text.content]
    return CONTEXT_SEPARATOR.join(parts)


def image_sources(nodes: list[CanvasNode]) -> list[str]:
    """image src of every image node, in order."""
    return [n.image.src for n in nodes if n.type is NodeType.IMAGE]
