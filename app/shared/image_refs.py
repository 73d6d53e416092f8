"""Image reference helpers.

A chat never holds image bytes. Every image is a string reference of one of
three kinds: inline data (``data:<mime>;base64,...``), a path served by this
API (``/api/images/<type>/<filename>``, optionally with a ``?t=`` cache
buster), or an absolute external URL.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from enum import Enum

STORED_PREFIX = "/api/images/"

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.+)$", re.DOTALL)

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ImageRefKind(str, Enum):
    INLINE = "inline"
    STORED = "stored"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class StoredImagePath:
    image_type: str
    filename: str


def classify(ref: str) -> ImageRefKind:
    if ref.startswith("data:"):
        return ImageRefKind.INLINE
    if ref.startswith(STORED_PREFIX):
        return ImageRefKind.STORED
    if ref.startswith("http://") or ref.startswith("https://"):
        return ImageRefKind.EXTERNAL
    return ImageRefKind.UNKNOWN


def parse_stored_path(ref: str) -> StoredImagePath | None:
    """Split a server path into image type and filename, dropping any query string."""
    if classify(ref) is not ImageRefKind.STORED:
        return None
    path = ref[len(STORED_PREFIX):].split("?", 1)[0]
    parts = path.split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return StoredImagePath(image_type=parts[0], filename=parts[1])


def stored_path(image_type: str, filename: str) -> str:
    return f"{STORED_PREFIX}{image_type}/{filename}"


def decode_data_uri(ref: str) -> tuple[str, bytes]:
    """Return ``(mime_type, bytes)`` of an inline image.

    Raises:
        ValueError: If the reference is not base64 inline data.
    """
    match = _DATA_URI.match(ref)
    if not match:
        raise ValueError("Invalid base64 format")
    try:
        return match.group("mime"), base64.b64decode(match.group("payload"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def encode_data_uri(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def extension_for(mime_type: str | None) -> str:
    return MIME_EXTENSIONS.get((mime_type or "").lower(), "png")


def mime_type_for(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    for mime, known in MIME_EXTENSIONS.items():
        if known == ext:
            return mime
    return "image/png"
