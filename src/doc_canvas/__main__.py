"""cli entrypoint for doc canvas."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.canvas import Canvas
from .core.config import load_config
from .core.export import build_slide_deck, export_markdown, export_order
from .core.images import ImageStore
from .core.layout import LayeredLayout, apply_layout
from .core.models import NodeType
from .core.persistence import CURRENT_VERSION, CanvasFileError, load_canvas_file, save_canvas_file
from .core.traversal import collect_context, format_text_context

console = Console()
err_console = Console(stderr=True)


def _load(path: str) -> tuple[Canvas, list[str], str]:
    loaded = load_canvas_file(Path(path))
    return loaded.to_canvas(), loaded.warnings, loaded.version


def _check_nodes(canvas: Canvas, node_ids: list[str]) -> bool:
    missing = [n for n in node_ids if n not in canvas]
    if missing:
        err_console.print(f"[red]node not found: {', '.join(missing)}[/]")
        return False
    return True


def _print_warnings(warnings: list[str]) -> None:
    for message in warnings:
        err_console.print(f"[yellow]warning:[/] {message}")


def _write(text: str, out: Optional[str]) -> None:
    if out:
        Path(out).write_text(text, encoding="utf-8")
        console.print(f"Wrote {out}", style="green")
    else:
        # plain stdout so the output can be piped
        sys.stdout.write(text)


def cmd_serve(args) -> int:
    from .api.server import serve

    serve(
        host=args.host,
        port=args.port,
        mock=args.mock,
        autosave_interval=args.autosave_interval,
        reload=args.reload,
    )
    return 0


def cmd_context(args) -> int:
    """show the context chain feeding the given nodes."""
    canvas, warnings, _ = _load(args.file)
    _print_warnings(warnings)
    if not _check_nodes(canvas, args.nodes):
        return 1

    context = collect_context(canvas, args.nodes)
    if args.text:
        _write(format_text_context(context.nodes), None)
    else:
        table = Table(title="context", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("id")
        table.add_column("type")
        table.add_column("summary")
        for i, node in enumerate(context.nodes, 1):
            if node.type is NodeType.TEXT:
                label = node.text.summary or node.text.content[:60]
            else:
                label = node.image.alt or node.image.src
            table.add_row(str(i), node.id, node.type.value, label)
        console.print(table)
    _print_warnings([w.message for w in context.warnings])
    return 0


def cmd_export(args) -> int:
    """export the given nodes and their context as markdown or marp slides."""
    canvas, warnings, _ = _load(args.file)
    _print_warnings(warnings)
    if not _check_nodes(canvas, args.nodes):
        return 1

    if args.slides:
        root = Path(args.image_root) if args.image_root else load_config().image_root()
        deck = asyncio.run(build_slide_deck(canvas, args.nodes, ImageStore(root).data_url))
        _print_warnings(deck.warnings)
        _write(deck.markdown, args.output)
    else:
        plan = export_order(canvas, args.nodes)
        _print_warnings([w.message for w in plan.warnings])
        _write(export_markdown(plan.nodes) + "\n", args.output)
    return 0


def cmd_migrate(args) -> int:
    """rewrite a canvas file in the current format."""
    canvas, warnings, version = _load(args.file)
    _print_warnings(warnings)
    out = Path(args.output or args.file)
    save_canvas_file(canvas, out)
    console.print(f"migrated {args.file} ({version} -> {CURRENT_VERSION}) to {out}", style="green")
    return 0


def cmd_layout(args) -> int:
    """arrange a canvas file left to right."""
    canvas, warnings, _ = _load(args.file)
    _print_warnings(warnings)
    moved = apply_layout(canvas, LayeredLayout())
    out = Path(args.output or args.file)
    save_canvas_file(canvas, out)
    console.print(f"laid out {moved} node(s), wrote {out}", style="green")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doc-canvas",
        description="doc canvas - node-based document editor with llm generation",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the api server")
    serve.add_argument("--host", default="127.0.0.1", help="host to bind")
    serve.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    serve.add_argument("--mock", "-m", action="store_true", help="use mock clients")
    serve.add_argument("--reload", action="store_true", help="enable auto-reload")
    serve.add_argument(
        "--autosave-interval", type=int, default=30,
        help="auto-save interval in seconds, 0 disables (default: 30)",
    )
    serve.set_defaults(func=cmd_serve)

    context = sub.add_parser("context", help="show the context chain of nodes")
    context.add_argument("file", help="canvas json file")
    context.add_argument("nodes", nargs="+", help="node ids")
    context.add_argument("--text", action="store_true", help="print the joined context text")
    context.set_defaults(func=cmd_context)

    export = sub.add_parser("export", help="export nodes and their context")
    export.add_argument("file", help="canvas json file")
    export.add_argument("nodes", nargs="+", help="node ids")
    export.add_argument("--slides", action="store_true", help="marp slide deck instead of markdown")
    export.add_argument("--image-root", help="image directory (default: from config)")
    export.add_argument("--output", "-o", help="output file (default: stdout)")
    export.set_defaults(func=cmd_export)

    migrate = sub.add_parser("migrate", help="upgrade a canvas file to the current version")
    migrate.add_argument("file", help="canvas json file")
    migrate.add_argument("--output", "-o", help="output file (default: in place)")
    migrate.set_defaults(func=cmd_migrate)

    layout = sub.add_parser("layout", help="auto-arrange a canvas file")
    layout.add_argument("file", help="canvas json file")
    layout.add_argument("--output", "-o", help="output file (default: in place)")
    layout.set_defaults(func=cmd_layout)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return args.func(args)
    except CanvasFileError as e:
        err_console.print(f"[red]error:[/] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
