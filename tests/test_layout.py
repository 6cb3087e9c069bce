"""tests for the layout adapter boundary."""

from doc_canvas.core.canvas import Canvas
from doc_canvas.core.layout import LayeredLayout, LayoutAdapter, LayoutNode, apply_layout
from doc_canvas.core.models import CanvasNode, Position

from conftest import edge, text_node


class FixedLayout:
    """adapter returning preset centers."""

    def __init__(self, centers):
        self.centers = centers
        self.received = None

    def layout(self, nodes, edges):
        self.received = (nodes, edges)
        return self.centers


class TestApplyLayout:
    """tests for apply_layout write-back."""

    def test_centers_become_top_left(self):
        """a 250x150 node centered at (500, 300) lands at (375, 225)."""
        canvas = Canvas()
        canvas.add_node(text_node("a"))
        moved = apply_layout(canvas, FixedLayout({"a": (500, 300)}))
        node = canvas.get_node("a")
        assert moved == 1
        assert (node.position.x, node.position.y) == (375, 225)

    def test_default_sizes_used_when_unknown(self):
        canvas = Canvas()
        img = CanvasNode.create_image("a.png", width=None, height=None)
        canvas.add_node(img)
        adapter = FixedLayout({img.id: (150, 100)})
        apply_layout(canvas, adapter)
        assert (img.position.x, img.position.y) == (0, 0)
        (layout_node,) = adapter.received[0]
        assert (layout_node.width, layout_node.height) == (300, 200)

    def test_unknown_ids_ignored(self, chain_canvas):
        moved = apply_layout(chain_canvas, FixedLayout({"ghost": (0, 0)}))
        assert moved == 0

    def test_adapter_receives_edges(self, chain_canvas):
        adapter = FixedLayout({})
        apply_layout(chain_canvas, adapter)
        assert adapter.received[1] == [("a", "b"), ("b", "c")]

    def test_protocol(self):
        assert isinstance(LayeredLayout(), LayoutAdapter)
        assert isinstance(FixedLayout({}), LayoutAdapter)


class TestLayeredLayout:
    """tests for the built-in left-to-right layout."""

    def test_chain_goes_left_to_right(self, chain_canvas):
        apply_layout(chain_canvas, LayeredLayout())
        xs = [chain_canvas.get_node(n).position.x for n in ("a", "b", "c")]
        assert xs[0] < xs[1] < xs[2]
        # 250 wide columns, 200 apart
        assert xs[1] - xs[0] == 450

    def test_siblings_share_a_column(self, branch_canvas):
        apply_layout(branch_canvas, LayeredLayout())
        x = branch_canvas.get_node("x").position
        y = branch_canvas.get_node("y").position
        assert x.x == y.x
        assert abs(x.y - y.y) == 150 + 100

    def test_cycles_still_lay_out(self):
        layout = LayeredLayout()
        nodes = [LayoutNode("a", 100, 100), LayoutNode("b", 100, 100)]
        centers = layout.layout(nodes, [("a", "b"), ("b", "a")])
        assert set(centers) == {"a", "b"}

    def test_empty(self):
        assert LayeredLayout().layout([], []) == {}

    def test_edges_to_unknown_nodes_ignored(self):
        centers = LayeredLayout().layout([LayoutNode("a", 10, 10)], [("a", "ghost")])
        assert list(centers) == ["a"]

    def test_positions_are_written_through_the_store(self):
        canvas = Canvas()
        canvas.add_node(text_node("a", x=999, y=999))
        apply_layout(canvas, LayeredLayout())
        assert canvas.get_node("a").position == Position(0, -75)
