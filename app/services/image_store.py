"""Filesystem store for chat images.

Images live under ``<data_dir>/images/<type>/`` and are addressed by the
server path ``/api/images/<type>/<filename>``. Filenames are prefixed with
the owning chat id so a chat's files can be removed together.
"""

import asyncio
import logging
import re
import time
from pathlib import Path

import httpx

from app.core.config import settings
from app.exceptions.image import ImageDownloadError, ImageNotFoundError, InvalidImageError
from app.shared.image_refs import (
    ImageRefKind,
    classify,
    decode_data_uri,
    encode_data_uri,
    extension_for,
    mime_type_for,
    parse_stored_path,
    stored_path,
)

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("input", "generated")

_SAFE_KEY = re.compile(r"^[\w.-]+$")


def upload_filename(chat_id: str, message_index: int, image_index: int, mime_type: str | None) -> str:
    return f"{chat_id}_{message_index}_{image_index}.{extension_for(mime_type)}"


def generated_filename(chat_id: str, message_index: int, version_index: int, image_index: int) -> str:
    return f"{chat_id}_msg{message_index}_v{version_index}_{image_index}.png"


def with_cache_buster(ref: str) -> str:
    return f"{ref}?t={int(time.time() * 1000)}"


class ImageStore:
    """Reads and writes image files for the image endpoints and the generation client."""

    def __init__(self, root: Path | None = None, http_timeout: float = 30.0):
        self.root = Path(root or settings.images_dir)
        self.http_timeout = http_timeout

    def ensure_dirs(self) -> None:
        for image_type in IMAGE_TYPES:
            (self.root / image_type).mkdir(parents=True, exist_ok=True)

    def path_for(self, image_type: str, key: str) -> Path:
        """Resolve a file path, refusing unknown types and keys that could escape the store."""
        if image_type not in IMAGE_TYPES:
            raise InvalidImageError("Unknown image type", details={"type": image_type})
        if not key or ".." in key or not _SAFE_KEY.match(key):
            raise InvalidImageError("Invalid image filename", details={"filename": key})
        return self.root / image_type / key

    async def put(self, image_type: str, key: str, data: bytes) -> str:
        """Write ``data`` and return the server path of the stored image."""
        path = self.path_for(image_type, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
        logger.debug(f"Stored {image_type} image {key} ({len(data)} bytes)")
        return stored_path(image_type, key)

    async def get(self, image_type: str, key: str) -> bytes:
        path = self.path_for(image_type, key)
        if not path.is_file():
            raise ImageNotFoundError(image_type, key)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, image_type: str, key: str) -> bool:
        path = self.path_for(image_type, key)
        if not path.is_file():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def delete_for_chat(self, chat_id: str) -> int:
        """Remove every image whose filename starts with ``<chat_id>_``."""
        prefix = f"{chat_id}_"
        removed = 0
        for image_type in IMAGE_TYPES:
            directory = self.root / image_type
            if not directory.is_dir():
                continue
            for path in directory.iterdir():
                if path.is_file() and path.name.startswith(prefix):
                    try:
                        await asyncio.to_thread(path.unlink)
                        removed += 1
                    except OSError as e:
                        logger.warning(f"Failed to delete image {path.name}: {str(e)}")
        logger.info(f"Deleted {removed} images for chat {chat_id}")
        return removed

    async def save_upload(
        self,
        data: bytes,
        mime_type: str | None,
        chat_id: str,
        message_index: int,
        image_index: int,
    ) -> tuple[str, str]:
        """Store an uploaded input image. Returns ``(reference, filename)``."""
        if mime_type and not mime_type.startswith("image/"):
            raise InvalidImageError("Only image files are allowed", details={"content_type": mime_type})
        if len(data) > settings.max_upload_size:
            raise InvalidImageError("Image exceeds the upload size limit", details={"size": len(data)})
        filename = upload_filename(chat_id, message_index, image_index, mime_type)
        ref = await self.put("input", filename, data)
        return with_cache_buster(ref), filename

    async def save_generated(
        self,
        chat_id: str,
        message_index: int,
        version_index: int,
        image_index: int,
        base64_data: str | None = None,
        image_url: str | None = None,
    ) -> tuple[str, str]:
        """Persist a generated image given as inline data or a downloadable URL."""
        if base64_data:
            try:
                _, data = decode_data_uri(base64_data)
            except ValueError as e:
                raise InvalidImageError(str(e)) from e
        elif image_url:
            data = await self.download(image_url)
        else:
            raise InvalidImageError("No image data provided")

        filename = generated_filename(chat_id, message_index, version_index, image_index)
        ref = await self.put("generated", filename, data)
        return with_cache_buster(ref), filename

    async def download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            raise ImageDownloadError(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ImageDownloadError(url, str(e) or e.__class__.__name__) from e

    async def read_reference(self, ref: str) -> str | None:
        """Turn a server path into inline data; ``None`` when it cannot be read."""
        if classify(ref) is not ImageRefKind.STORED:
            return None
        parsed = parse_stored_path(ref)
        if parsed is None:
            return None
        try:
            data = await self.get(parsed.image_type, parsed.filename)
        except (ImageNotFoundError, InvalidImageError) as e:
            logger.warning(f"Skipping unreadable stored image {ref}: {e.message}")
            return None
        return encode_data_uri(data, mime_type_for(parsed.filename))
