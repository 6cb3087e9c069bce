"""pytest fixtures for doc canvas tests."""

import json
import pytest
import tempfile
from pathlib import Path

from doc_canvas.core.canvas import Canvas
from doc_canvas.core.models import CanvasEdge, CanvasNode, NodeType, Position, TextNodeData

# 1x1 png
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000100e221bc330000000049454e44ae426082"
)


def text_node(node_id: str, content: str = "", x: float = 0, y: float = 0) -> CanvasNode:
    """text node with a fixed id."""
    return CanvasNode(
        id=node_id,
        type=NodeType.TEXT,
        position=Position(x, y),
        data=TextNodeData(content=content or f"content of {node_id}", summary=f"summary {node_id}"),
        width=250,
        height=150,
    )


def edge(edge_id: str, source: str, target: str) -> CanvasEdge:
    return CanvasEdge(id=edge_id, source=source, target=target)


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """keep config and session files out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("DOC_CANVAS_HOME", str(home))
    return home


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def chain_canvas():
    """a -> b -> c, a simple reading chain."""
    canvas = Canvas()
    for node_id in ("a", "b", "c"):
        canvas.add_node(text_node(node_id))
    canvas.add_edge(edge("e1", "a", "b"))
    canvas.add_edge(edge("e2", "b", "c"))
    return canvas


@pytest.fixture
def branch_canvas():
    """x -> z <- y, z -> w: w's chain branches at z."""
    canvas = Canvas()
    for node_id in ("x", "y", "z", "w"):
        canvas.add_node(text_node(node_id))
    canvas.add_edge(edge("e1", "x", "z"))
    canvas.add_edge(edge("e2", "y", "z"))
    canvas.add_edge(edge("e3", "z", "w"))
    return canvas


@pytest.fixture
def image_root(temp_dir):
    """image root holding one png at pics/cat.png."""
    root = temp_dir / "images"
    (root / "pics").mkdir(parents=True)
    (root / "pics" / "cat.png").write_bytes(PNG_BYTES)
    return root


@pytest.fixture
def v10_document():
    """a version 1.0 canvas file as the first release wrote it."""
    return {
        "version": "1.0",
        "metadata": {"lastOpened": "2024-01-01T00:00:00"},
        "nodes": [
            {
                "id": "n1",
                "type": "customNode",
                "position": {"x": 0, "y": 0},
                "data": {"content": "# intro", "summary": "intro"},
            },
            {
                "id": "n2",
                "type": "customNode",
                "position": {"x": 350, "y": 0},
                "data": {"content": "details", "summary": "details"},
                "width": 999,
            },
        ],
        "edges": [{"id": "e1", "source": "n1", "target": "n2"}],
    }


@pytest.fixture
def v10_file(temp_dir, v10_document):
    path = temp_dir / "old.json"
    path.write_text(json.dumps(v10_document))
    return path
