"""core data model for doc canvas.

text and image nodes on an open canvas, joined by directed edges that
carry reading order from older context (right side) to newer (left side).
"""

from __future__ import annotations

import random
import string
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional, Union


# --- configuration ---

DEFAULT_SOURCE_HANDLE = "right-source"
DEFAULT_TARGET_HANDLE = "left-target"
DEFAULT_EDGE_TYPE = "default"


class NodeType(Enum):
    TEXT = "customNode"    # markdown text with a short summary
    IMAGE = "imageNode"    # reference to a file under the image root


DEFAULT_SIZES: dict[NodeType, tuple[float, float]] = {
    NodeType.TEXT: (250, 150),
    NodeType.IMAGE: (300, 200),
}


class GraphError(Exception):
    """structural error raised by the graph store."""

    pass


class DuplicateIdError(GraphError):
    """a node or edge with this id already exists."""

    pass


class UnknownNodeError(GraphError):
    """reference to a node that is not in the graph."""

    pass


@dataclass
class Position:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass
class TextNodeData:
    """payload of a text node."""

    content: str = ""   # markdown source
    summary: str = ""   # short derived or user-edited text

    def to_dict(self) -> dict:
        return {"content": self.content, "summary": self.summary}


@dataclass
class ImageNodeData:
    """payload of an image node.

    src is relative to the configured image root, never an absolute path
    and never embedded image data.
    """

    src: str
    alt: Optional[str] = None

    def to_dict(self) -> dict:
        d = {"src": self.src}
        if self.alt is not None:
            d["alt"] = self.alt
        return d


NodeData = Union[TextNodeData, ImageNodeData]

_DATA_TYPES: dict[NodeType, type] = {
    NodeType.TEXT: TextNodeData,
    NodeType.IMAGE: ImageNodeData,
}


@dataclass
class CanvasNode:
    """single node on the canvas."""

    id: str
    type: NodeType
    position: Position
    data: NodeData
    width: Optional[float] = None
    height: Optional[float] = None

    def __post_init__(self) -> None:
        expected = _DATA_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise ValueError(
                f"node {self.id}: {self.type.value} requires {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )

    @classmethod
    def create_text(
        cls,
        content: str = "",
        summary: str = "",
        position: Optional[Position] = None,
        width: Optional[float] = DEFAULT_SIZES[NodeType.TEXT][0],
        height: Optional[float] = DEFAULT_SIZES[NodeType.TEXT][1],
    ) -> CanvasNode:
        """create a text node with a fresh id."""
        return cls(
            id=generate_node_id(),
            type=NodeType.TEXT,
            position=position or Position(0, 0),
            data=TextNodeData(content=content, summary=summary),
            width=width,
            height=height,
        )

    @classmethod
    def create_image(
        cls,
        src: str,
        alt: Optional[str] = None,
        position: Optional[Position] = None,
        width: Optional[float] = DEFAULT_SIZES[NodeType.IMAGE][0],
        height: Optional[float] = DEFAULT_SIZES[NodeType.IMAGE][1],
    ) -> CanvasNode:
        """create an image node with a fresh id."""
        return cls(
            id=generate_node_id(),
            type=NodeType.IMAGE,
            position=position or Position(0, 0),
            data=ImageNodeData(src=src, alt=alt),
            width=width,
            height=height,
        )

    @property
    def text(self) -> Optional[TextNodeData]:
        """payload if this is a text node, else None."""
        if self.type is NodeType.TEXT:
            return self.data
        return None

    @property
    def image(self) -> Optional[ImageNodeData]:
        """payload if this is an image node, else None."""
        if self.type is NodeType.IMAGE:
            return self.data
        return None

    @property
    def effective_size(self) -> tuple[float, float]:
        """width/height with the per-type defaults filled in."""
        default_w, default_h = DEFAULT_SIZES[self.type]
        return (self.width or default_w, self.height or default_h)

    def copy(self) -> CanvasNode:
        return replace(
            self,
            position=replace(self.position),
            data=replace(self.data),
        )


@dataclass
class CanvasEdge:
    """directed link from an older node (source) to a newer one (target)."""

    id: str
    source: str
    target: str
    source_handle: str = DEFAULT_SOURCE_HANDLE
    target_handle: str = DEFAULT_TARGET_HANDLE
    type: Optional[str] = None
    marker_end: Optional[dict] = field(default=None)  # cosmetic only

    @classmethod
    def create(
        cls,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        edge_type: Optional[str] = DEFAULT_EDGE_TYPE,
    ) -> CanvasEdge:
        """create an edge with a fresh id and default handles."""
        return cls(
            id=generate_edge_id(),
            source=source,
            target=target,
            source_handle=source_handle or DEFAULT_SOURCE_HANDLE,
            target_handle=target_handle or DEFAULT_TARGET_HANDLE,
            type=edge_type,
        )

    def copy(self) -> CanvasEdge:
        marker = dict(self.marker_end) if self.marker_end is not None else None
        return replace(self, marker_end=marker)


def generate_node_id() -> str:
    """node-<ms timestamp>-<9 random chars>, the canvas's id scheme."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"node-{int(time.time() * 1000)}-{suffix}"


def generate_edge_id() -> str:
    return f"edge-{uuid.uuid4().hex[:12]}"


def is_relative_image_src(src: str) -> bool:
    """true if src is a plain relative path (not absolute, not a data url)."""
    if not src or src.startswith("data:"):
        return False
    return not (PurePosixPath(src).is_absolute() or PureWindowsPath(src).is_absolute()
                or PureWindowsPath(src).drive)
