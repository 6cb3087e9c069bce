"""generation actions: turn a prompt plus selected nodes into new nodes.

the selected nodes seed a backward traversal; the collected chain becomes
the context sent to the backend. nothing is added to the canvas until the
backend call has succeeded, so a failed request leaves the graph as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .canvas import Canvas
from .client import ImageClientProtocol, TextClientProtocol
from .images import ImageStore
from .models import CanvasNode, Position, is_relative_image_src
from .traversal import ContextSet, collect_context, format_text_context

DEFAULT_POSITION = Position(400, 300)
NEW_NODE_OFFSET_X = 350
PROMPT_NODE_OFFSET_Y = 250
PROMPT_NODE_SIZE = (300, 150)
PROMPT_NODE_SUMMARY = "Image generation prompt"


@dataclass
class GenerationOutcome:
    nodes: list[CanvasNode] = field(default_factory=list)  # nodes added to the canvas
    warnings: list[str] = field(default_factory=list)


def next_position(canvas: Canvas, source_ids: list[str]) -> Position:
    """to the right of the last selected node, or the default spot."""
    for node_id in reversed(source_ids):
        node = canvas.get_node(node_id)
        if node is not None:
            return Position(node.position.x + NEW_NODE_OFFSET_X, node.position.y)
    return Position(DEFAULT_POSITION.x, DEFAULT_POSITION.y)


def _context(canvas: Canvas, source_ids: list[str]) -> tuple[ContextSet, list[str]]:
    context = collect_context(canvas, source_ids)
    return context, [w.message for w in context.warnings]


async def generate_text_node(
    canvas: Canvas,
    client: TextClientProtocol,
    prompt: str,
    source_ids: Optional[list[str]] = None,
) -> GenerationOutcome:
    """generate markdown and a summary, then add them as a new text node."""
    source_ids = source_ids or []
    context, warnings = _context(canvas, source_ids)
    context_text = format_text_context(context.nodes)
    logging.debug(
        f"text generation: {len(context.nodes)} context node(s), {len(context_text)} chars"
    )

    content = await client.generate_text(prompt, context_text)
    summary = await client.generate_summary(content)

    node = CanvasNode.create_text(
        content=content,
        summary=summary,
        position=next_position(canvas, source_ids),
    )
    canvas.add_node(node)
    return GenerationOutcome(nodes=[node], warnings=warnings)


async def generate_image_node(
    canvas: Canvas,
    client: ImageClientProtocol,
    images: ImageStore,
    prompt: str,
    source_ids: Optional[list[str]] = None,
) -> GenerationOutcome:
    """generate an image and add it, plus a text node recording the prompt.

    image nodes in the context are sent as reference images. one that
    cannot be read is left out; all such failures share one warning.
    """
    source_ids = source_ids or []
    context, warnings = _context(canvas, source_ids)
    context_text = format_text_context(context.nodes)

    references: list[str] = []
    failed: list[str] = []
    for node in context.nodes:
        if node.image is None:
            continue
        try:
            references.append(images.data_url(node.image.src))
        except (OSError, ValueError) as e:
            logging.debug(f"reference image {node.image.src} unavailable: {e}")
            failed.append(node.id)
    if failed:
        message = f"{len(failed)} reference image(s) could not be loaded and were skipped"
        logging.warning(message)
        warnings.append(message)

    result = await client.generate_image(prompt, context_text, references)
    src = result if is_relative_image_src(result) else images.save_data_url(result)

    position = next_position(canvas, source_ids)
    image_node = CanvasNode.create_image(src=src, alt=prompt, position=position)
    prompt_node = CanvasNode.create_text(
        content=f"**Prompt used for image generation:**\n\n{prompt}",
        summary=PROMPT_NODE_SUMMARY,
        position=Position(position.x, position.y + PROMPT_NODE_OFFSET_Y),
        width=PROMPT_NODE_SIZE[0],
        height=PROMPT_NODE_SIZE[1],
    )
    canvas.add_node(image_node)
    canvas.add_node(prompt_node)
    return GenerationOutcome(nodes=[image_node, prompt_node], warnings=warnings)
