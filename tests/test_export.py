"""tests for export ordering and slide decks."""

import pytest

from doc_canvas.core.canvas import Canvas
from doc_canvas.core.export import (
    MARP_FRONT_MATTER,
    build_slide_deck,
    export_markdown,
    export_order,
)
from doc_canvas.core.images import ImageStore
from doc_canvas.core.models import CanvasNode, Position

from conftest import edge, text_node


class TestExportOrder:
    """tests for export_order."""

    def test_chain(self, chain_canvas):
        """targets [c] over a -> b -> c export as [a, b, c]."""
        plan = export_order(chain_canvas, ["c"])
        assert plan.node_ids == ["a", "b", "c"]
        assert plan.warnings == []

    def test_upstream_before_downstream(self):
        """for every included edge u -> v, u comes first."""
        canvas = Canvas()
        for node_id in ("a", "b", "c", "d"):
            canvas.add_node(text_node(node_id))
        canvas.add_edge(edge("e1", "a", "b"))
        canvas.add_edge(edge("e2", "b", "c"))
        canvas.add_edge(edge("e3", "b", "d"))
        plan = export_order(canvas, ["d", "c"])
        order = plan.node_ids
        assert sorted(order) == ["a", "b", "c", "d"]
        for e in canvas.edges:
            assert order.index(e.source) < order.index(e.target)

    def test_excludes_nodes_outside_context(self, chain_canvas):
        chain_canvas.add_node(text_node("other"))
        assert export_order(chain_canvas, ["b"]).node_ids == ["a", "b"]

    def test_deterministic(self, branch_canvas):
        first = export_order(branch_canvas, ["w", "x", "y"]).node_ids
        for _ in range(5):
            assert export_order(branch_canvas, ["w", "x", "y"]).node_ids == first

    def test_cycle_terminates(self):
        canvas = Canvas()
        for node_id in ("a", "b"):
            canvas.add_node(text_node(node_id))
        canvas.add_edge(edge("e1", "a", "b"))
        canvas.add_edge(edge("e2", "b", "a"))
        plan = export_order(canvas, ["a"])
        assert sorted(plan.node_ids) == ["a", "b"]
        assert [w.kind for w in plan.warnings] == ["loop"]


class TestExportMarkdown:
    """tests for export_markdown."""

    def test_joins_text_in_order(self, chain_canvas):
        plan = export_order(chain_canvas, ["c"])
        assert export_markdown(plan.nodes) == "content of a\n\n---\n\ncontent of b\n\n---\n\ncontent of c"

    def test_images_left_out(self):
        nodes = [text_node("a", "only text"), CanvasNode.create_image("x.png")]
        assert export_markdown(nodes) == "only text"


class TestSlideDeck:
    """tests for build_slide_deck."""

    @pytest.fixture
    def mixed_canvas(self):
        """text -> image -> missing image -> text."""
        canvas = Canvas()
        canvas.add_node(text_node("t1", "# title"))
        img = CanvasNode.create_image("pics/cat.png", alt="cat", position=Position(0, 0))
        img.id = "img"
        missing = CanvasNode.create_image("pics/gone.png", position=Position(0, 0))
        missing.id = "gone"
        canvas.add_node(img)
        canvas.add_node(missing)
        canvas.add_node(text_node("t2", "the end"))
        canvas.add_edge(edge("e1", "t1", "img"))
        canvas.add_edge(edge("e2", "img", "gone"))
        canvas.add_edge(edge("e3", "gone", "t2"))
        return canvas

    @pytest.mark.asyncio
    async def test_deck(self, mixed_canvas, image_root):
        """missing images drop their slide with a single warning."""
        store = ImageStore(image_root)
        deck = await build_slide_deck(mixed_canvas, ["t2"], store.data_url)

        assert deck.markdown.startswith(MARP_FRONT_MATTER)
        assert deck.slide_count == 3
        assert deck.skipped == ["gone"]
        assert len(deck.warnings) == 1
        assert "1 image slide(s)" in deck.warnings[0]
        assert "![cat](data:image/png;base64," in deck.markdown
        assert deck.markdown.index("# title") < deck.markdown.index("the end")

    @pytest.mark.asyncio
    async def test_async_resolver(self, mixed_canvas):
        async def resolve(src):
            if src == "pics/gone.png":
                raise FileNotFoundError(src)
            return "data:image/png;base64,AAAA"

        deck = await build_slide_deck(mixed_canvas, ["t2"], resolve)
        assert "![cat](data:image/png;base64,AAAA)" in deck.markdown
        assert deck.skipped == ["gone"]
