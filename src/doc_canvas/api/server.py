"""fastapi server for doc canvas.

exposes the graph store, context traversal, generation and export as REST
endpoints for the canvas frontend.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel

from ..core.canvas import Canvas
from ..core.client import GenerationError, create_clients
from ..core.config import AppConfig, get_app_dir, load_config
from ..core.export import build_slide_deck, export_markdown, export_order
from ..core.generation import generate_image_node, generate_text_node
from ..core.images import ImagePathError, ImageStore
from ..core.layout import LayeredLayout, apply_layout
from ..core.models import (
    CanvasNode,
    DuplicateIdError,
    NodeType,
    Position,
    UnknownNodeError,
    is_relative_image_src,
)
from ..core.persistence import (
    CURRENT_VERSION,
    CanvasFileError,
    edge_from_dict,
    edge_to_dict,
    load_into,
    node_from_dict,
    node_to_dict,
    read_canvas_text,
    save_canvas_file,
)
from ..core.traversal import collect_context, format_text_context, image_sources, traverse_backward


# --- configuration ---

DEFAULT_AUTOSAVE_INTERVAL = 30  # seconds
DEFAULT_CANVAS_FILE = "canvas.json"
SESSION_FILE = ".doc-canvas-session.json"


# --- pydantic models for api ---

class PositionModel(BaseModel):
    x: float
    y: float


class NodeCreate(BaseModel):
    """request to create a node."""
    type: str = NodeType.TEXT.value  # "customNode" or "imageNode"
    id: Optional[str] = None
    position: Optional[PositionModel] = None
    content: str = ""
    summary: str = ""
    src: Optional[str] = None
    alt: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None


class NodeDataUpdate(BaseModel):
    """partial payload update; only set fields are applied."""
    content: Optional[str] = None
    summary: Optional[str] = None
    src: Optional[str] = None
    alt: Optional[str] = None


class GeometryUpdate(BaseModel):
    position: Optional[PositionModel] = None
    width: Optional[float] = None
    height: Optional[float] = None


class ChangeSet(BaseModel):
    """incremental changes from the canvas renderer."""
    nodes: list[dict] = []
    edges: list[dict] = []


class EdgeCreate(BaseModel):
    """request to link two nodes (source is the older context)."""
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    type: Optional[str] = "default"


class NodeIds(BaseModel):
    node_ids: list[str]


class GenerateRequest(BaseModel):
    prompt: str
    node_ids: list[str] = []


class CanvasLoad(BaseModel):
    """load from a file path or from raw file text."""
    path: Optional[str] = None
    content: Optional[str] = None


class CanvasSave(BaseModel):
    path: Optional[str] = None


class ImportRequest(BaseModel):
    path: str
    position: Optional[PositionModel] = None


class CanvasResponse(BaseModel):
    """canvas in api response."""
    version: str
    nodes: list[dict]
    edges: list[dict]
    active_node_id: Optional[str] = None
    is_dirty: bool = False
    last_saved_at: Optional[str] = None
    canvas_path: Optional[str] = None
    warnings: list[str] = []


# --- app state ---

class AppState:
    """shared application state with auto-save and crash recovery."""

    def __init__(
        self,
        mock: bool = False,
        autosave_interval: int = DEFAULT_AUTOSAVE_INTERVAL,
        config: Optional[AppConfig] = None,
        app_dir: Optional[Path] = None,
    ):
        self.canvas: Optional[Canvas] = None
        self.canvas_path: Optional[Path] = None
        self.active_node_id: Optional[str] = None
        self.mock = mock
        self._app_dir = app_dir
        self._config = config
        self._images: Optional[ImageStore] = None
        self._text_client = None
        self._image_client = None

        # Dirty state tracking
        self._dirty = False
        self._last_saved_at: Optional[str] = None

        # Auto-save configuration
        self.autosave_interval = autosave_interval
        self._autosave_task: Optional[asyncio.Task] = None

    @property
    def app_dir(self) -> Path:
        if self._app_dir is None:
            self._app_dir = get_app_dir()
        return self._app_dir

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = load_config(self.app_dir / "config.json")
        return self._config

    @property
    def images(self) -> ImageStore:
        if self._images is None:
            self._images = ImageStore(self.config.image_root(self.app_dir))
        return self._images

    def _ensure_clients(self) -> None:
        if self._text_client is None or self._image_client is None:
            self._text_client, self._image_client = create_clients(self.config, mock=self.mock)

    @property
    def text_client(self):
        self._ensure_clients()
        return self._text_client

    @property
    def image_client(self):
        self._ensure_clients()
        return self._image_client

    @property
    def is_dirty(self) -> bool:
        """check if canvas has unsaved changes."""
        return self._dirty

    def mark_dirty(self) -> None:
        """mark canvas as having unsaved changes."""
        self._dirty = True

    def mark_clean(self) -> None:
        """mark canvas as saved."""
        self._dirty = False
        self._last_saved_at = datetime.now().isoformat()

    def set_canvas(self, canvas: Canvas, path: Optional[Path]) -> None:
        self.canvas = canvas
        self.canvas_path = path
        self.active_node_id = None

    def forget_node(self, node_id: str) -> None:
        """drop references to a deleted node."""
        if self.active_node_id == node_id:
            self.active_node_id = None

    def get_session_file(self) -> Path:
        """get path to session state file."""
        return self.app_dir / SESSION_FILE

    def save_session(self) -> None:
        """save current session state for crash recovery."""
        session = {
            "canvas_path": str(self.canvas_path) if self.canvas_path else None,
            "last_saved_at": self._last_saved_at,
            "timestamp": datetime.now().isoformat(),
        }
        try:
            with open(self.get_session_file(), "w") as f:
                json.dump(session, f)
        except OSError as e:
            logging.debug(f"failed to save session: {e}")

    def load_session(self) -> Optional[dict]:
        """load previous session state."""
        try:
            with open(self.get_session_file()) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError):
            return None

    def save(self, path: Optional[Path] = None) -> Path:
        """write the canvas to path (or the current path) and mark clean."""
        path = path or self.canvas_path or self.app_dir / DEFAULT_CANVAS_FILE
        save_canvas_file(self.canvas, path)
        self.canvas_path = path
        self.mark_clean()
        self.save_session()
        return path

    def auto_save(self) -> bool:
        """auto-save canvas if dirty and path is set. returns True if saved."""
        if not self._dirty or not self.canvas or not self.canvas_path:
            return False
        try:
            self.save()
            return True
        except CanvasFileError as e:
            logging.warning(f"auto-save failed: {e}")
            return False

    async def start_autosave(self) -> None:
        """start background auto-save task."""
        if self._autosave_task is not None or self.autosave_interval <= 0:
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    async def stop_autosave(self) -> None:
        """stop background auto-save task."""
        if self._autosave_task:
            self._autosave_task.cancel()
            try:
                await self._autosave_task
            except asyncio.CancelledError:
                pass
            self._autosave_task = None

    async def _autosave_loop(self) -> None:
        """background loop for auto-saving."""
        while True:
            await asyncio.sleep(self.autosave_interval)
            if self.auto_save():
                logging.debug(f"auto-saved {self.canvas_path}")

    def recover_from_crash(self) -> bool:
        """reopen the canvas of the last session. returns True if recovered."""
        session = self.load_session()
        if not session or not session.get("canvas_path"):
            return False
        path = Path(session["canvas_path"])
        if not path.is_file():
            return False
        canvas = Canvas()
        try:
            load_into(canvas, read_canvas_text(path))
        except CanvasFileError as e:
            logging.warning(f"could not reopen {path}: {e}")
            return False
        self.set_canvas(canvas, path)
        self._dirty = False
        return True


state = AppState()


def _require_canvas() -> Canvas:
    if state.canvas is None:
        raise HTTPException(status_code=404, detail="no canvas loaded")
    return state.canvas


def _require_node(node_id: str) -> CanvasNode:
    canvas = _require_canvas()
    node = canvas.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    return node


def _require_nodes(node_ids: list[str]) -> Canvas:
    canvas = _require_canvas()
    for node_id in node_ids:
        if node_id not in canvas:
            raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    return canvas


def _canvas_response(warnings: Optional[list[str]] = None) -> CanvasResponse:
    """helper to build CanvasResponse with current state info."""
    canvas = _require_canvas()
    return CanvasResponse(
        version=CURRENT_VERSION,
        nodes=[node_to_dict(n) for n in canvas.nodes],
        edges=[edge_to_dict(e) for e in canvas.edges],
        active_node_id=state.active_node_id,
        is_dirty=state.is_dirty,
        last_saved_at=state._last_saved_at,
        canvas_path=str(state.canvas_path) if state.canvas_path else None,
        warnings=warnings or [],
    )


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: recover from crash and start auto-save
    state.recover_from_crash()
    await state.start_autosave()
    yield
    # shutdown: save any pending changes
    state.auto_save()
    await state.stop_autosave()


# --- app ---

app = FastAPI(
    title="doc canvas api",
    description="REST API for the doc canvas node editor",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/status")
async def status():
    """get current application status including dirty state and session info."""
    return {
        "has_canvas": state.canvas is not None,
        "canvas_path": str(state.canvas_path) if state.canvas_path else None,
        "is_dirty": state.is_dirty,
        "last_saved_at": state._last_saved_at,
        "autosave_interval": state.autosave_interval,
        "node_count": len(state.canvas) if state.canvas else 0,
        "edge_count": len(state.canvas.edges) if state.canvas else 0,
        "active_node_id": state.active_node_id,
        "mock": state.mock,
    }


@app.get("/canvas", response_model=CanvasResponse)
async def get_canvas():
    """get current canvas state."""
    return _canvas_response()


@app.post("/canvas/new", response_model=CanvasResponse)
async def new_canvas():
    """start an empty canvas."""
    state.auto_save()
    state.set_canvas(Canvas(), None)
    state.mark_clean()
    return _canvas_response()


@app.post("/canvas/load")
async def load_canvas(req: CanvasLoad):
    """load canvas from a file path or raw file text.

    no path and no content is a cancelled open: nothing changes.
    """
    path: Optional[Path] = None
    text = req.content
    if req.path:
        path = Path(req.path).expanduser()
        if not path.exists():
            raise HTTPException(status_code=404, detail=f"file not found: {req.path}")
        try:
            text = read_canvas_text(path)
        except CanvasFileError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if text is None or not text.strip():
        return {"loaded": False}

    # Auto-save current canvas before loading new one
    state.auto_save()

    canvas = Canvas()
    try:
        loaded = load_into(canvas, text)
    except CanvasFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    state.set_canvas(canvas, path)
    state.mark_clean()
    state.save_session()
    response = _canvas_response(warnings=loaded.warnings)
    return {"loaded": True, "file_version": loaded.version, **response.model_dump()}


@app.post("/canvas/save")
async def save_canvas(req: CanvasSave):
    """save canvas to file."""
    _require_canvas()
    path = Path(req.path).expanduser() if req.path else None
    try:
        saved = state.save(path)
    except CanvasFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"saved": str(saved), "is_dirty": False}


@app.post("/canvas/layout", response_model=CanvasResponse)
async def layout_canvas():
    """arrange all nodes left to right."""
    canvas = _require_canvas()
    moved = apply_layout(canvas, LayeredLayout())
    if moved:
        state.mark_dirty()
    return _canvas_response()


@app.post("/node")
async def create_node(req: NodeCreate):
    """create a new node."""
    canvas = _require_canvas()
    position = Position(req.position.x, req.position.y) if req.position else Position(400, 300)

    if req.type == NodeType.TEXT.value:
        node = CanvasNode.create_text(req.content, req.summary, position)
    elif req.type == NodeType.IMAGE.value:
        if not req.src or not is_relative_image_src(req.src):
            raise HTTPException(status_code=400, detail="image nodes need a relative src")
        node = CanvasNode.create_image(req.src, req.alt, position)
    else:
        raise HTTPException(status_code=400, detail=f"invalid type: {req.type}")
    if req.id:
        node.id = req.id
    if req.width is not None:
        node.width = req.width
    if req.height is not None:
        node.height = req.height

    try:
        canvas.add_node(node)
    except DuplicateIdError as e:
        raise HTTPException(status_code=409, detail=str(e))
    state.mark_dirty()
    return node_to_dict(node)


@app.put("/node/{node_id}/data")
async def update_node_data(node_id: str, req: NodeDataUpdate):
    """merge payload fields into a node."""
    node = _require_node(node_id)
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="no fields to update")
    if "src" in changes and not is_relative_image_src(changes["src"] or ""):
        raise HTTPException(status_code=400, detail="image src must be a relative path")
    if not state.canvas.update_node_data(node_id, **changes):
        raise HTTPException(
            status_code=400,
            detail=f"invalid update {sorted(changes)} for {node.type.value}",
        )
    state.mark_dirty()
    return node_to_dict(node)


@app.patch("/node/{node_id}/geometry")
async def update_node_geometry(node_id: str, req: GeometryUpdate):
    """move or resize a node."""
    node = _require_node(node_id)
    position = Position(req.position.x, req.position.y) if req.position else None
    state.canvas.update_node_geometry(node_id, position=position, width=req.width, height=req.height)
    state.mark_dirty()
    return node_to_dict(node)


@app.delete("/node/{node_id}")
async def delete_node(node_id: str):
    """delete a node and every edge touching it."""
    canvas = _require_canvas()
    if canvas.delete_node(node_id) is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    state.forget_node(node_id)
    state.mark_dirty()
    return {"deleted": node_id, "active_node_id": state.active_node_id}


@app.post("/nodes/changes", response_model=CanvasResponse)
async def apply_changes(req: ChangeSet):
    """apply incremental renderer changes to nodes and edges."""
    canvas = _require_canvas()
    try:
        node_changes = [_parse_change(c, node_from_dict) for c in req.nodes]
        edge_changes = [_parse_change(c, edge_from_dict) for c in req.edges]
    except CanvasFileError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        canvas.apply_changes(node_changes, edge_changes)
    except DuplicateIdError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    for change in node_changes:
        if change.get("type") == "remove":
            state.forget_node(change.get("id"))
    state.mark_dirty()
    return _canvas_response()


def _parse_change(change: dict, parse_item) -> dict:
    """convert the json item of an add/replace change to a model object."""
    if change.get("type") not in ("add", "replace"):
        return change
    item = change.get("item")
    if not isinstance(item, dict):
        raise CanvasFileError(f"{change.get('type')} change needs an item")
    return {**change, "item": parse_item(item)}


@app.post("/edge")
async def create_edge(req: EdgeCreate):
    """link source (older context) to target (newer)."""
    canvas = _require_canvas()
    try:
        edge = canvas.connect(
            req.source, req.target,
            source_handle=req.source_handle,
            target_handle=req.target_handle,
            edge_type=req.type,
        )
    except UnknownNodeError as e:
        raise HTTPException(status_code=404, detail=str(e))
    state.mark_dirty()
    return edge_to_dict(edge)


@app.delete("/edge/{edge_id}")
async def delete_edge(edge_id: str):
    """remove a single edge."""
    canvas = _require_canvas()
    if canvas.delete_edge(edge_id) is None:
        raise HTTPException(status_code=404, detail=f"edge not found: {edge_id}")
    state.mark_dirty()
    return {"deleted": edge_id}


@app.post("/active/{node_id}")
async def set_active(node_id: str):
    """mark the node being edited."""
    _require_node(node_id)
    state.active_node_id = node_id
    return {"active_node_id": node_id}


@app.get("/node/{node_id}/context")
async def node_context(node_id: str):
    """backward traversal from a single node."""
    canvas = _require_canvas()
    _require_node(node_id)
    result = traverse_backward(canvas, node_id)
    return {
        "node_ids": result.node_ids,
        "warning": result.warning.to_dict() if result.warning else None,
        "context": format_text_context(result.nodes),
    }


@app.post("/context")
async def context(req: NodeIds):
    """union of backward traversals from several nodes."""
    canvas = _require_nodes(req.node_ids)
    result = collect_context(canvas, req.node_ids)
    return {
        "node_ids": result.node_ids,
        "warnings": [w.to_dict() for w in result.warnings],
        "context": format_text_context(result.nodes),
        "images": image_sources(result.nodes),
    }


@app.post("/generate/text")
async def generate_text(req: GenerateRequest):
    """generate a text node from the prompt and the selection's context."""
    canvas = _require_nodes(req.node_ids)
    try:
        outcome = await generate_text_node(canvas, state.text_client, req.prompt, req.node_ids)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    state.mark_dirty()
    return {"nodes": [node_to_dict(n) for n in outcome.nodes], "warnings": outcome.warnings}


@app.post("/generate/image")
async def generate_image(req: GenerateRequest):
    """generate an image node (plus a prompt note) from the selection's context."""
    canvas = _require_nodes(req.node_ids)
    try:
        outcome = await generate_image_node(
            canvas, state.image_client, state.images, req.prompt, req.node_ids
        )
    except (GenerationError, ImagePathError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    state.mark_dirty()
    return {"nodes": [node_to_dict(n) for n in outcome.nodes], "warnings": outcome.warnings}


@app.post("/import")
async def import_file(req: ImportRequest):
    """add a dropped file as a node."""
    canvas = _require_canvas()
    path = Path(req.path).expanduser()
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"file not found: {req.path}")
    try:
        imported = state.images.import_file(path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    position = Position(req.position.x, req.position.y) if req.position else Position(400, 300)
    if imported.kind == "image":
        node = CanvasNode.create_image(imported.content, imported.name, position)
    else:
        node = CanvasNode.create_text(imported.content, imported.name, position)
    canvas.add_node(node)
    state.mark_dirty()
    return node_to_dict(node)


@app.post("/export/order")
async def export_order_endpoint(req: NodeIds):
    """node ids in export order (upstream first)."""
    canvas = _require_nodes(req.node_ids)
    plan = export_order(canvas, req.node_ids)
    return {"node_ids": plan.node_ids, "warnings": [w.message for w in plan.warnings]}


@app.post("/export/markdown")
async def export_markdown_endpoint(req: NodeIds):
    """markdown document of the selection and its context."""
    canvas = _require_nodes(req.node_ids)
    plan = export_order(canvas, req.node_ids)
    return {
        "markdown": export_markdown(plan.nodes),
        "node_ids": plan.node_ids,
        "warnings": [w.message for w in plan.warnings],
    }


@app.post("/export/slides")
async def export_slides(req: NodeIds):
    """marp slide deck of the selection and its context."""
    canvas = _require_nodes(req.node_ids)
    deck = await build_slide_deck(canvas, req.node_ids, state.images.data_url)
    return {
        "markdown": deck.markdown,
        "slide_count": deck.slide_count,
        "skipped": deck.skipped,
        "warnings": deck.warnings,
    }


@app.get("/image/{src:path}")
async def get_image(src: str):
    """serve an image from the image root."""
    try:
        path = state.images.resolve_path(src)
    except ImagePathError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"image not found: {src}")
    return FileResponse(path)


# --- entrypoint ---

def serve(
    host: str = "127.0.0.1",
    port: int = 8000,
    mock: bool = False,
    autosave_interval: int = DEFAULT_AUTOSAVE_INTERVAL,
    reload: bool = False,
) -> None:
    """configure state and run uvicorn."""
    import uvicorn

    global state
    state = AppState(mock=mock, autosave_interval=autosave_interval)

    uvicorn.run(
        "doc_canvas.api.server:app",
        host=host,
        port=port,
        reload=reload,
    )


def main():
    """run the api server."""
    import argparse

    parser = argparse.ArgumentParser(description="doc canvas api server")
    parser.add_argument("--host", default="127.0.0.1", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--mock", "-m", action="store_true", help="use mock clients")
    parser.add_argument("--reload", action="store_true", help="enable auto-reload")
    parser.add_argument(
        "--autosave-interval",
        type=int,
        default=DEFAULT_AUTOSAVE_INTERVAL,
        help=f"auto-save interval in seconds, 0 disables (default: {DEFAULT_AUTOSAVE_INTERVAL})"
    )

    args = parser.parse_args()
    serve(
        host=args.host,
        port=args.port,
        mock=args.mock,
        autosave_interval=args.autosave_interval,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
