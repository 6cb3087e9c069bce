"""versioned canvas file format.

files are always written as the current version. older versions are
brought forward on load through a chain of migration steps, one per
version bump, so adding a version means adding one step.

version history:
- "1.0": text nodes only, no width/height.
- "1.1": text and image nodes, width/height recorded.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from .canvas import Canvas
from .models import (
    DEFAULT_SOURCE_HANDLE,
    DEFAULT_TARGET_HANDLE,
    CanvasEdge,
    CanvasNode,
    ImageNodeData,
    NodeType,
    Position,
    TextNodeData,
    is_relative_image_src,
)

CURRENT_VERSION = "1.1"
SUPPORTED_VERSIONS = ("1.0", "1.1")

_KNOWN_TYPES = {t.value for t in NodeType}


class CanvasFileError(Exception):
    """canvas file could not be read or written."""

    pass


@dataclass
class LoadedCanvas:
    """result of reading a canvas file, in the current in-memory shape."""

    nodes: list[CanvasNode]
    edges: list[CanvasEdge]
    version: str                      # version recorded in the file
    metadata: dict = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_canvas(self) -> Canvas:
        return Canvas(nodes=self.nodes, edges=self.edges)


# --- serialization ---

def serialize_canvas(canvas: Canvas, metadata: Optional[dict] = None) -> dict:
    """current-version document for the canvas."""
    if metadata is None:
        metadata = {"lastOpened": datetime.now().isoformat()}
    return {
        "version": CURRENT_VERSION,
        "metadata": metadata,
        "nodes": [node_to_dict(n) for n in canvas.nodes],
        "edges": [edge_to_dict(e) for e in canvas.edges],
    }


def dumps_canvas(canvas: Canvas, metadata: Optional[dict] = None) -> str:
    return json.dumps(serialize_canvas(canvas, metadata), indent=2, ensure_ascii=False)


def node_to_dict(node: CanvasNode) -> dict:
    if node.type is NodeType.IMAGE and not is_relative_image_src(node.image.src):
        raise CanvasFileError(
            f"image node {node.id} must reference a relative path, got {node.image.src[:40]!r}"
        )
    d: dict[str, Any] = {
        "id": node.id,
        "type": node.type.value,
        "position": node.position.to_dict(),
        "data": node.data.to_dict(),
    }
    if node.width is not None:
        d["width"] = node.width
    if node.height is not None:
        d["height"] = node.height
    return d


def edge_to_dict(edge: CanvasEdge) -> dict:
    d: dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "sourceHandle": edge.source_handle or DEFAULT_SOURCE_HANDLE,
        "targetHandle": edge.target_handle or DEFAULT_TARGET_HANDLE,
    }
    if edge.type is not None:
        d["type"] = edge.type
    if edge.marker_end is not None:
        d["markerEnd"] = edge.marker_end
    return d


# --- migrations ---

MigrationStep = Callable[[dict], dict]


def _migrate_1_0_to_1_1(document: dict) -> dict:
    """1.0 predates image nodes: every node is text, whatever it claims."""
    nodes = []
    for raw in document.get("nodes") or []:
        if isinstance(raw, dict):
            raw = {k: v for k, v in raw.items() if k not in ("width", "height")}
            raw["type"] = NodeType.TEXT.value
        nodes.append(raw)
    document["nodes"] = nodes
    return document


# from-version -> (to-version, step)
MIGRATIONS: dict[str, tuple[str, MigrationStep]] = {
    "1.0": ("1.1", _migrate_1_0_to_1_1),
}


def migrate(document: dict) -> tuple[dict, list[str]]:
    """bring a raw document to the current version.

    returns the migrated copy and any warnings. an unknown version is
    loaded as if it were current, on a best-effort basis.
    """
    document = copy.deepcopy(document)
    warnings: list[str] = []
    version = document.get("version")
    if not isinstance(version, str):
        raise CanvasFileError("canvas file has no version")

    while version != CURRENT_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            message = f"unknown canvas file version {version!r}; loading as {CURRENT_VERSION}"
            logging.warning(message)
            warnings.append(message)
            break
        next_version, migrate_step = step
        logging.debug(f"migrating canvas file {version} -> {next_version}")
        document = migrate_step(document)
        version = next_version

    document["version"] = CURRENT_VERSION
    return document, warnings


# --- deserialization ---

def deserialize_canvas(document: Any) -> LoadedCanvas:
    """parse a canvas document of any supported version.

    raises CanvasFileError for malformed input.
    """
    if not isinstance(document, dict):
        raise CanvasFileError("canvas file must contain a json object")
    original_version = document.get("version")
    migrated, warnings = migrate(document)

    raw_nodes = migrated.get("nodes")
    if not isinstance(raw_nodes, list):
        raise CanvasFileError("canvas file has no node list")
    raw_edges = migrated.get("edges") or []
    if not isinstance(raw_edges, list):
        raise CanvasFileError("canvas file edges must be a list")

    nodes: list[CanvasNode] = []
    seen: set[str] = set()
    dropped: list[str] = []
    for i, raw in enumerate(raw_nodes):
        if not isinstance(raw, dict):
            raise CanvasFileError(f"node #{i} is not an object")
        if raw.get("type") not in _KNOWN_TYPES:
            dropped.append(str(raw.get("id", f"#{i}")))
            continue
        node = node_from_dict(raw, i)
        if node.id in seen:
            raise CanvasFileError(f"duplicate node id: {node.id}")
        seen.add(node.id)
        nodes.append(node)

    if dropped:
        message = f"skipped {len(dropped)} node(s) of unknown type: {', '.join(dropped)}"
        logging.warning(message)
        warnings.append(message)

    edges: list[CanvasEdge] = []
    seen_edges: set[str] = set()
    for i, raw in enumerate(raw_edges):
        edge = edge_from_dict(raw, i)
        if edge.id in seen_edges:
            raise CanvasFileError(f"duplicate edge id: {edge.id}")
        seen_edges.add(edge.id)
        edges.append(edge)

    metadata = migrated.get("metadata")
    return LoadedCanvas(
        nodes=nodes,
        edges=edges,
        version=original_version,
        metadata=metadata if isinstance(metadata, dict) else {},
        warnings=warnings,
    )


def node_from_dict(raw: dict, index: int = 0) -> CanvasNode:
    node_id = raw.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise CanvasFileError(f"node #{index} has no id")
    if raw.get("type") not in _KNOWN_TYPES:
        raise CanvasFileError(f"node {node_id} has unknown type {raw.get('type')!r}")
    node_type = NodeType(raw["type"])

    pos = raw.get("position")
    if not isinstance(pos, dict):
        raise CanvasFileError(f"node {node_id} has no position")
    position = Position(_number(pos.get("x"), node_id, "x"), _number(pos.get("y"), node_id, "y"))

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise CanvasFileError(f"node {node_id} data must be an object")
    if node_type is NodeType.TEXT:
        payload = TextNodeData(
            content=str(data.get("content") or ""),
            summary=str(data.get("summary") or ""),
        )
    else:
        src = data.get("src")
        if not isinstance(src, str) or not is_relative_image_src(src):
            raise CanvasFileError(f"image node {node_id} needs a relative src")
        alt = data.get("alt")
        payload = ImageNodeData(src=src, alt=alt if isinstance(alt, str) else None)

    width = raw.get("width")
    height = raw.get("height")
    return CanvasNode(
        id=node_id,
        type=node_type,
        position=position,
        data=payload,
        width=_number(width, node_id, "width") if width is not None else None,
        height=_number(height, node_id, "height") if height is not None else None,
    )


def edge_from_dict(raw: Any, index: int = 0) -> CanvasEdge:
    if not isinstance(raw, dict):
        raise CanvasFileError(f"edge #{index} is not an object")
    for key in ("id", "source", "target"):
        if not isinstance(raw.get(key), str):
            raise CanvasFileError(f"edge #{index} is missing {key}")
    marker = raw.get("markerEnd")
    return CanvasEdge(
        id=raw["id"],
        source=raw["source"],
        target=raw["target"],
        # handle defaults apply whatever version the file is
        source_handle=raw.get("sourceHandle") or DEFAULT_SOURCE_HANDLE,
        target_handle=raw.get("targetHandle") or DEFAULT_TARGET_HANDLE,
        type=raw.get("type"),
        marker_end=marker if isinstance(marker, dict) else None,
    )


def _number(value: Any, node_id: str, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CanvasFileError(f"node {node_id}: {name} must be a number")
    return value


# --- text and files ---

def loads_canvas(text: str) -> LoadedCanvas:
    """parse canvas json text."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise CanvasFileError(f"canvas file is not valid json: {e}") from e
    return deserialize_canvas(document)


def load_into(canvas: Canvas, text: Optional[str]) -> Optional[LoadedCanvas]:
    """replace the canvas contents with the parsed file.

    empty text means the user cancelled the open dialog: nothing happens
    and None is returned. the canvas only changes once parsing succeeded.
    """
    if text is None or not text.strip():
        return None
    loaded = loads_canvas(text)
    canvas.set_nodes(loaded.nodes)
    canvas.set_edges(loaded.edges)
    return loaded


def save_canvas_file(canvas: Canvas, path: Path, metadata: Optional[dict] = None) -> Path:
    """write the canvas as the current version, replacing path atomically."""
    text = dumps_canvas(canvas, metadata)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except OSError as e:
        Path(tmp).unlink(missing_ok=True)
        raise CanvasFileError(f"failed to write {path}: {e}") from e
    return path


def read_canvas_text(path: Path) -> str:
    """read a canvas file as utf-8 text; unreadable bytes are a CanvasFileError."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise CanvasFileError(f"{path} is not a utf-8 text file: {e}") from e
    except OSError as e:
        raise CanvasFileError(f"failed to read {path}: {e}") from e


def load_canvas_file(path: Path) -> LoadedCanvas:
    """read and parse a canvas file."""
    return loads_canvas(read_canvas_text(path))
