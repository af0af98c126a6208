from __future__ import annotations

import io
import os
import secrets
import time
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename


MAX_IMAGES = 10
MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_EXT = {"jpeg", "jpg", "png", "gif", "webp"}
ALLOWED_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}


@dataclass
class InvalidImageError(Exception):
    code: str
    message: str
    filename: str = ""

    def to_payload(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.filename:
            payload["filename"] = self.filename
        return payload


def _extension(filename: str) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def detect_image_format(content: bytes) -> str:
    """Decode the header with Pillow; returns the format name (JPEG, PNG...)."""
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
            fmt = (img.format or "").upper()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return ""
    return fmt


def read_image_upload(storage) -> tuple[bytes, str]:
    """
    Validates one werkzeug FileStorage and returns (content, extension).
    Raises InvalidImageError for a disallowed name, oversize or undecodable file.
    """
    filename = secure_filename(storage.filename or "")
    ext = _extension(filename)
    if ext not in ALLOWED_EXT:
        raise InvalidImageError("IMAGE_TYPE_NOT_ALLOWED", "Only image files are allowed", filename)
    content = storage.read(MAX_IMAGE_BYTES + 1)
    if len(content) > MAX_IMAGE_BYTES:
        raise InvalidImageError("IMAGE_TOO_LARGE", "Each image must be 5MB or smaller", filename)
    if not content:
        raise InvalidImageError("IMAGE_EMPTY", "Image file is empty", filename)
    if detect_image_format(content) not in ALLOWED_FORMATS:
        raise InvalidImageError("IMAGE_TYPE_NOT_ALLOWED", "Only image files are allowed", filename)
    return content, ext


@dataclass
class PreparedImage:
    """A validated upload with its storage name chosen but nothing on disk yet."""

    name: str
    content: bytes

    @property
    def url(self) -> str:
        return f"/uploads/{self.name}"


def prepare_image_uploads(files: list) -> list[PreparedImage]:
    """
    Validate every file and pick a storage name for each. Raises on the first
    rejected file; the disk is not touched.
    """
    files = [f for f in (files or []) if f is not None and (f.filename or "")]
    if len(files) > MAX_IMAGES:
        raise InvalidImageError("TOO_MANY_IMAGES", f"At most {MAX_IMAGES} images are allowed")
    prepared: list[PreparedImage] = []
    for storage in files:
        content, ext = read_image_upload(storage)
        name = f"images-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"
        prepared.append(PreparedImage(name=name, content=content))
    return prepared


def write_image_uploads(prepared: list[PreparedImage], upload_dir: str) -> list[str]:
    """Store prepared images under upload_dir; returns their public /uploads/ URLs."""
    os.makedirs(upload_dir, exist_ok=True)
    for img in prepared:
        with open(os.path.join(upload_dir, img.name), "wb") as fh:
            fh.write(img.content)
    return [img.url for img in prepared]
