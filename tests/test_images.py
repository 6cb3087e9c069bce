"""tests for the image root."""

import base64

import pytest

from doc_canvas.core.images import (
    IMPORT_SUBDIR,
    MAX_IMPORT_CHARS,
    ImagePathError,
    ImageStore,
    extract_data_url,
)

from conftest import PNG_BYTES


class TestResolvePath:
    """paths must stay inside the image root."""

    def test_relative(self, image_root):
        store = ImageStore(image_root)
        assert store.resolve_path("pics/cat.png") == (image_root / "pics" / "cat.png").resolve()

    @pytest.mark.parametrize(
        "src",
        ["/etc/passwd", "../secret.png", "pics/../../secret.png", "C:\\x.png", "data:image/png;base64,AA"],
    )
    def test_rejected(self, image_root, src):
        with pytest.raises(ImagePathError):
            ImageStore(image_root).resolve_path(src)


class TestDataUrl:
    """tests for data_url."""

    def test_png(self, image_root):
        url = ImageStore(image_root).data_url("pics/cat.png")
        assert url == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    def test_mime_from_extension(self, image_root):
        (image_root / "a.jpeg").write_bytes(b"x")
        (image_root / "b.webp").write_bytes(b"x")
        store = ImageStore(image_root)
        assert store.data_url("a.jpeg").startswith("data:image/jpeg;base64,")
        assert store.data_url("b.webp").startswith("data:image/webp;base64,")

    def test_missing_file(self, image_root):
        with pytest.raises(OSError):
            ImageStore(image_root).data_url("pics/none.png")


class TestSaveDataUrl:
    """tests for save_data_url."""

    def test_saves_under_root(self, temp_dir):
        store = ImageStore(temp_dir / "out")
        url = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        src = store.save_data_url(url)
        assert src.startswith("image_") and src.endswith(".png")
        assert (temp_dir / "out" / src).read_bytes() == PNG_BYTES

    def test_same_second_does_not_overwrite(self, temp_dir):
        store = ImageStore(temp_dir)
        url = "data:image/jpeg;base64," + base64.b64encode(b"abc").decode()
        first = store.save_data_url(url)
        second = store.save_data_url(url)
        assert first != second
        assert first.endswith(".jpg")

    @pytest.mark.parametrize("url", ["https://x/y.png", "data:text/plain;base64,AA", "data:image/png;base64,@@@"])
    def test_invalid(self, temp_dir, url):
        with pytest.raises(ImagePathError):
            ImageStore(temp_dir).save_data_url(url)


class TestImportFile:
    """tests for import_file."""

    def test_markdown(self, temp_dir):
        path = temp_dir / "notes.md"
        path.write_text("# notes")
        imported = ImageStore(temp_dir / "img").import_file(path)
        assert (imported.kind, imported.content, imported.name) == ("text", "# notes", "notes.md")

    def test_text_truncated(self, temp_dir):
        path = temp_dir / "big.txt"
        path.write_text("x" * (MAX_IMPORT_CHARS + 10))
        assert len(ImageStore(temp_dir).import_file(path).content) == MAX_IMPORT_CHARS

    def test_image_copied_into_import_dir(self, temp_dir):
        path = temp_dir / "photo.PNG"
        path.write_bytes(PNG_BYTES)
        root = temp_dir / "img"
        imported = ImageStore(root).import_file(path)
        assert imported.kind == "image"
        assert imported.content.startswith(f"{IMPORT_SUBDIR}/photo_")
        assert (root / imported.content).read_bytes() == PNG_BYTES

    def test_unsupported(self, temp_dir):
        path = temp_dir / "data.csv"
        path.write_text("a,b")
        with pytest.raises(ValueError, match="Unsupported file type"):
            ImageStore(temp_dir).import_file(path)


class TestExtractDataUrl:
    def test_found(self):
        text = "here you go: data:image/png;base64,iVBORw0K== enjoy"
        assert extract_data_url(text) == "data:image/png;base64,iVBORw0K=="

    def test_absent(self):
        assert extract_data_url("no image here") is None
