"""tests for the entity model."""

import re

import pytest

from doc_canvas.core.models import (
    DEFAULT_SOURCE_HANDLE,
    DEFAULT_TARGET_HANDLE,
    CanvasEdge,
    CanvasNode,
    DuplicateIdError,
    GraphError,
    ImageNodeData,
    NodeType,
    Position,
    TextNodeData,
    UnknownNodeError,
    generate_node_id,
    is_relative_image_src,
)


class TestNodeType:
    """tests for NodeType wire values."""

    def test_wire_values(self):
        """node types serialize under their canvas renderer names."""
        assert NodeType.TEXT.value == "customNode"
        assert NodeType.IMAGE.value == "imageNode"

    def test_from_value(self):
        assert NodeType("imageNode") is NodeType.IMAGE


class TestCanvasNode:
    """tests for CanvasNode creation."""

    def test_create_text_defaults(self):
        """text nodes get a fresh id and the 250x150 default size."""
        node = CanvasNode.create_text("hello", "hi")
        assert node.type == NodeType.TEXT
        assert node.text.content == "hello"
        assert node.text.summary == "hi"
        assert (node.width, node.height) == (250, 150)
        assert node.image is None

    def test_create_image_defaults(self):
        """image nodes default to 300x200."""
        node = CanvasNode.create_image("Image/a.png", alt="a cat", position=Position(1, 2))
        assert node.type == NodeType.IMAGE
        assert node.image.src == "Image/a.png"
        assert node.image.alt == "a cat"
        assert (node.width, node.height) == (300, 200)
        assert node.text is None

    def test_payload_must_match_type(self):
        """a text node cannot carry an image payload."""
        with pytest.raises(ValueError):
            CanvasNode(id="n", type=NodeType.TEXT, position=Position(0, 0), data=ImageNodeData(src="a.png"))

    def test_effective_size_fills_defaults(self):
        node = CanvasNode(id="n", type=NodeType.IMAGE, position=Position(0, 0), data=ImageNodeData(src="a.png"))
        assert node.effective_size == (300, 200)

    def test_copy_is_independent(self):
        """copy() does not share position or payload."""
        node = CanvasNode.create_text("one")
        clone = node.copy()
        clone.position.x = 99
        clone.text.content = "two"
        assert node.position.x == 0
        assert node.text.content == "one"

    def test_ids_are_unique(self):
        ids = {CanvasNode.create_text().id for _ in range(50)}
        assert len(ids) == 50

    def test_id_format(self):
        """ids look like node-<ms>-<9 chars>."""
        assert re.fullmatch(r"node-\d+-[a-z0-9]{9}", generate_node_id())


class TestPayloads:
    """tests for payload serialization."""

    def test_text_to_dict(self):
        assert TextNodeData("c", "s").to_dict() == {"content": "c", "summary": "s"}

    def test_image_to_dict_omits_missing_alt(self):
        assert ImageNodeData("a.png").to_dict() == {"src": "a.png"}
        assert ImageNodeData("a.png", "x").to_dict() == {"src": "a.png", "alt": "x"}


class TestCanvasEdge:
    """tests for CanvasEdge."""

    def test_create_applies_default_handles(self):
        """missing handles default to right-source / left-target."""
        e = CanvasEdge.create("a", "b", source_handle=None, target_handle="")
        assert e.source_handle == DEFAULT_SOURCE_HANDLE == "right-source"
        assert e.target_handle == DEFAULT_TARGET_HANDLE == "left-target"
        assert e.type == "default"

    def test_create_keeps_given_handles(self):
        e = CanvasEdge.create("a", "b", source_handle="top", target_handle="bottom")
        assert (e.source_handle, e.target_handle) == ("top", "bottom")


class TestRelativeImageSrc:
    """tests for is_relative_image_src."""

    @pytest.mark.parametrize("src", ["a.png", "Image/a.png", "Import/x_1.jpg"])
    def test_relative(self, src):
        assert is_relative_image_src(src) is True

    @pytest.mark.parametrize(
        "src",
        ["", "/abs/a.png", "C:\\pics\\a.png", "C:/pics/a.png", "data:image/png;base64,AAAA"],
    )
    def test_not_relative(self, src):
        assert is_relative_image_src(src) is False


class TestGraphErrors:
    def test_hierarchy(self):
        assert issubclass(DuplicateIdError, GraphError)
        assert issubclass(UnknownNodeError, GraphError)
        assert not issubclass(UnknownNodeError, KeyError)

    def test_message_is_not_quoted(self):
        assert str(UnknownNodeError("node not found: x")) == "node not found: x"
