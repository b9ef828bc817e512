"""
Object storage for wish photos.

Templates send photos inline (base64 or a ``data:`` URL). They are decoded,
checked against the size and type limits, and written to object storage; only
the resulting URL is ever stored on the wish row.
"""
import asyncio
import base64
import binascii
import mimetypes
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from inviteflow.core.config import settings
from inviteflow.core.errors import StorageError, ValidationError
from inviteflow.core.logging import logger

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=.-]+)*;base64,(?P<data>.*)$", re.DOTALL)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


@dataclass(frozen=True)
class InlineImage:
    content: bytes
    content_type: str
    extension: str


def decode_inline_image(
    image_data: str,
    image_type: Optional[str] = None,
    image_filename: Optional[str] = None,
) -> InlineImage:
    """
    Decode an inline image and enforce ``WISH_IMAGE_MAX_BYTES`` and
    ``WISH_IMAGE_ALLOWED_TYPES``.

    The MIME type comes from the data URL prefix, then ``image_type``, then the
    filename, defaulting to JPEG.
    """
    data = image_data.strip()
    mime = None
    match = _DATA_URL.match(data)
    if match:
        mime = match.group("mime")
        data = match.group("data")
    if not mime:
        mime = image_type
    if not mime and image_filename:
        mime = mimetypes.guess_type(image_filename)[0]
    mime = (mime or "image/jpeg").lower()

    if mime not in settings.wish_image_types:
        raise ValidationError(f"image type {mime} is not allowed")

    # Reject before decoding anything obviously oversized
    if len(data) > (settings.WISH_IMAGE_MAX_BYTES * 4) // 3 + 4:
        raise ValidationError("image is too large")
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("image data is not valid base64") from e
    if not content:
        raise ValidationError("image is empty")
    if len(content) > settings.WISH_IMAGE_MAX_BYTES:
        raise ValidationError("image is too large")

    extension = _EXTENSIONS.get(mime) or (mimetypes.guess_extension(mime) or ".bin").lstrip(".")
    return InlineImage(content=content, content_type=mime, extension=extension)


class MediaStorage:
    """
    Filesystem-backed object store.

    Objects are written under ``MEDIA_ROOT`` and addressed by
    ``MEDIA_BASE_URL`` + key, which the app serves as static files.
    """

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.MEDIA_ROOT)
        self.base_url = base_url or settings.MEDIA_BASE_URL
        if not self.base_url.endswith("/"):
            self.base_url += "/"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}{key}"

    async def put(self, key: str, content: bytes) -> str:
        path = self.root / key
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            logger.error(f"Object upload failed for {key}: {e}")
            raise StorageError("image upload failed") from e
        logger.info(f"Stored object {key} ({len(content)} bytes)")
        return self.url_for(key)

    @staticmethod
    def _write(path: Path, content: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)

    async def upload_wish_image(self, event_id, image: InlineImage) -> str:
        key = f"wishes/{event_id}/{uuid.uuid4().hex}.{image.extension}"
        return await self.put(key, image.content)


media_storage = MediaStorage()
