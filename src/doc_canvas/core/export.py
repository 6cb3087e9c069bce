"""ordered export of part of the canvas (markdown document, marp slides).

export targets are expanded to their backward context, then sorted so
that for every edge u -> v inside the included set, u comes first.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union

from .canvas import Canvas
from .models import CanvasNode, NodeType
from .traversal import CONTEXT_SEPARATOR, TraversalWarning, collect_context

ImageResolver = Callable[[str], Union[str, Awaitable[str]]]

MARP_FRONT_MATTER = "---\nmarp: true\n---"
SLIDE_SEPARATOR = "\n\n---\n\n"


@dataclass
class ExportPlan:
    nodes: list[CanvasNode] = field(default_factory=list)  # upstream first
    warnings: list[TraversalWarning] = field(default_factory=list)

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]


@dataclass
class SlideDeck:
    markdown: str
    slide_count: int
    skipped: list[str] = field(default_factory=list)  # node ids of dropped slides
    warnings: list[str] = field(default_factory=list)


def export_order(canvas: Canvas, target_ids: list[str]) -> ExportPlan:
    """deterministic upstream-before-downstream order over the targets' context.

    depth-first topological sort seeded from every included node in the
    order it was collected. the visited set keeps cycles from recursing
    forever; inside a cycle the first-seen order wins, so the result is
    best effort rather than a guaranteed topological order.
    """
    context = collect_context(canvas, target_ids)
    included = {n.id: n for n in context.nodes}

    order: list[CanvasNode] = []
    visited: set[str] = set()

    for seed in included:
        if seed in visited:
            continue
        visited.add(seed)
        # iterative dfs: (node id, upstream ids still to visit)
        stack = [(seed, _upstream(canvas, seed, included))]
        while stack:
            node_id, pending = stack[-1]
            while pending and pending[0] in visited:
                pending.pop(0)
            if pending:
                nxt = pending.pop(0)
                visited.add(nxt)
                stack.append((nxt, _upstream(canvas, nxt, included)))
            else:
                stack.pop()
                order.append(included[node_id])

    return ExportPlan(nodes=order, warnings=context.warnings)


def _upstream(canvas: Canvas, node_id: str, included: dict[str, CanvasNode]) -> list[str]:
    return [e.source for e in canvas.incoming_edges(node_id) if e.source in included]


def export_markdown(nodes: list[CanvasNode]) -> str:
    """single markdown document from the text nodes, in the given order."""
    parts = [n.text.content for n in nodes if n.type is NodeType.TEXT and n.text.content]
    return CONTEXT_SEPARATOR.join(parts)


async def build_slide_deck(
    canvas: Canvas,
    target_ids: list[str],
    resolve_image: ImageResolver,
) -> SlideDeck:
    """marp slide deck, one slide per node in export order.

    image slides embed the data url from resolve_image. an image that
    cannot be resolved drops only its own slide; all such failures are
    reported together as one warning.
    """
    plan = export_order(canvas, target_ids)
    slides: list[str] = []
    skipped: list[str] = []
    warnings = [w.message for w in plan.warnings]

    for node in plan.nodes:
        if node.type is NodeType.TEXT:
            if node.text.content.strip():
                slides.append(node.text.content.strip())
            continue
        try:
            data_url = resolve_image(node.image.src)
            if inspect.isawaitable(data_url):
                data_url = await data_url
        except Exception as e:
            logging.debug(f"skipping slide for {node.id}: {e}")
            skipped.append(node.id)
            continue
        alt = node.image.alt or ""
        slides.append(f"![{alt}]({data_url})")

    if skipped:
        message = f"{len(skipped)} image slide(s) could not be loaded and were skipped"
        logging.warning(message)
        warnings.append(message)

    markdown = MARP_FRONT_MATTER + "\n\n" + SLIDE_SEPARATOR.join(slides) + "\n"
    return SlideDeck(markdown=markdown, slide_count=len(slides), skipped=skipped, warnings=warnings)
