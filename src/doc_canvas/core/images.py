"""image root: where image node files live.

image nodes only ever store paths relative to this root. the store
resolves them (refusing anything that escapes the root), turns them into
data urls for generation requests and slide export, and saves generated
or imported images under the root.
"""

from __future__ import annotations

import base64
import binascii
import re
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Literal, Optional

from .models import is_relative_image_src

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}
TEXT_EXTENSIONS = {".txt", ".md"}
IMPORT_SUBDIR = "Import"
MAX_IMPORT_CHARS = 50_000

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
_EXTENSIONS = {"image/jpeg": "jpg", "image/gif": "gif", "image/webp": "webp"}

DATA_URL_PATTERN = re.compile(r"data:image/[^;]+;base64,[a-zA-Z0-9+/=]+")


class ImagePathError(ValueError):
    """image path is absolute, escapes the image root, or is malformed."""

    pass


@dataclass
class ImportedFile:
    """a dropped file, ready to become a node."""

    kind: Literal["text", "image"]
    content: str  # text content, or image src relative to the root
    name: str


class ImageStore:
    """files under one image root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve_path(self, src: str) -> Path:
        """absolute path for a relative src under the root."""
        if not is_relative_image_src(src):
            raise ImagePathError(f"absolute paths are not allowed: {src}")
        if ".." in PurePosixPath(src.replace("\\", "/")).parts:
            raise ImagePathError(f"path traversal is not allowed: {src}")
        root = self.root.resolve()
        path = (root / src).resolve()
        if path != root and root not in path.parents:
            raise ImagePathError(f"resolved path is outside the image root: {src}")
        return path

    def data_url(self, src: str) -> str:
        """read an image and return it as a base64 data url.

        raises ImagePathError for bad paths and OSError if unreadable.
        """
        path = self.resolve_path(src)
        data = path.read_bytes()
        mime = _MIME_TYPES.get(path.suffix.lower(), "image/png")
        return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"

    def save_data_url(self, data_url: str, prefix: str = "image") -> str:
        """store a data url under the root and return its relative src."""
        if not data_url.startswith("data:image/") or "," not in data_url:
            raise ImagePathError("invalid data url format")
        header, b64 = data_url.split(",", 1)
        mime = header.split(";")[0][len("data:"):]
        try:
            data = base64.b64decode(b64, validate=True)
        except binascii.Error as e:
            raise ImagePathError(f"failed to decode base64 data: {e}") from e

        ext = _EXTENSIONS.get(mime, "png")
        self.root.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.root / f"{prefix}_{stamp}.{ext}"
        counter = 1
        while target.exists():
            target = self.root / f"{prefix}_{stamp}_{counter}.{ext}"
            counter += 1
        target.write_bytes(data)
        return target.relative_to(self.root).as_posix()

    def import_file(self, path: Path) -> ImportedFile:
        """turn a dropped file into node content.

        text and markdown are read, pdfs go through pdfplumber, images are
        copied into the Import folder under the root.
        """
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix in TEXT_EXTENSIONS:
            content = path.read_text(encoding="utf-8", errors="replace")
            return ImportedFile("text", content[:MAX_IMPORT_CHARS], path.name)

        if suffix == ".pdf":
            return ImportedFile("text", _read_pdf(path), path.name)

        if suffix in IMAGE_EXTENSIONS:
            import_dir = self.root / IMPORT_SUBDIR
            import_dir.mkdir(parents=True, exist_ok=True)
            target = import_dir / f"{path.stem}_{int(time.time() * 1000)}{path.suffix}"
            shutil.copyfile(path, target)
            return ImportedFile("image", target.relative_to(self.root).as_posix(), path.name)

        raise ValueError(f"Unsupported file type: {suffix or path.name}")


def _read_pdf(path: Path) -> str:
    import pdfplumber

    pages = []
    with pdfplumber.open(path) as pdf:
        for page in pdf.pages:
            text = page.extract_text()
            if text:
                pages.append(text)
    return "\n---\n".join(pages)[:MAX_IMPORT_CHARS]


def extract_data_url(text: str) -> Optional[str]:
    """first image data url embedded in text, if any."""
    match = DATA_URL_PATTERN.search(text)
    return match.group(0) if match else None
