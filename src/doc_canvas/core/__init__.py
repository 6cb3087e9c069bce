"""core primitives shared between the server and the cli."""

from .models import (
    CanvasNode,
    CanvasEdge,
    NodeType,
    Position,
    TextNodeData,
    ImageNodeData,
    GraphError,
    DuplicateIdError,
    UnknownNodeError,
    DEFAULT_SOURCE_HANDLE,
    DEFAULT_TARGET_HANDLE,
)
from .canvas import Canvas
from .traversal import (
    TraversalResult,
    TraversalWarning,
    ContextSet,
    traverse_backward,
    collect_context,
    format_text_context,
)
from .export import ExportPlan, SlideDeck, export_order, export_markdown, build_slide_deck
from .persistence import (
    CURRENT_VERSION,
    CanvasFileError,
    LoadedCanvas,
    serialize_canvas,
    deserialize_canvas,
    migrate,
    load_into,
    load_canvas_file,
    read_canvas_text,
    save_canvas_file,
)
from .layout import LayoutAdapter, LayeredLayout, apply_layout
from .images import ImageStore, ImagePathError
from .config import AppConfig, load_config, save_config, get_app_dir
from .client import ClaudeClient, MockClient, OpenRouterImageClient, GenerationError
from .generation import GenerationOutcome, generate_text_node, generate_image_node

__all__ = [
    # models
    "CanvasNode",
    "CanvasEdge",
    "NodeType",
    "Position",
    "TextNodeData",
    "ImageNodeData",
    "GraphError",
    "DuplicateIdError",
    "UnknownNodeError",
    "DEFAULT_SOURCE_HANDLE",
    "DEFAULT_TARGET_HANDLE",
    # graph store
    "Canvas",
    # traversal
    "TraversalResult",
    "TraversalWarning",
    "ContextSet",
    "traverse_backward",
    "collect_context",
    "format_text_context",
    # export
    "ExportPlan",
    "SlideDeck",
    "export_order",
    "export_markdown",
    "build_slide_deck",
    # persistence
    "CURRENT_VERSION",
    "CanvasFileError",
    "LoadedCanvas",
    "serialize_canvas",
    "deserialize_canvas",
    "migrate",
    "load_into",
    "load_canvas_file",
    "read_canvas_text",
    "save_canvas_file",
    # layout
    "LayoutAdapter",
    "LayeredLayout",
    "apply_layout",
    # images and config
    "ImageStore",
    "ImagePathError",
    "AppConfig",
    "load_config",
    "save_config",
    "get_app_dir",
    # generation
    "ClaudeClient",
    "MockClient",
    "OpenRouterImageClient",
    "GenerationError",
    "GenerationOutcome",
    "generate_text_node",
    "generate_image_node",
]
