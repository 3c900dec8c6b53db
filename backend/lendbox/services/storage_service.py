"""
Photo storage on the local filesystem under settings.UPLOAD_DIR.

The rest of the system only ever sees the returned relative path
("loan_photos/3f2a..._1729330000.jpg"), never raw bytes. Files are written
to a temporary name and moved into place, so a reader never sees a
half-written photo.
"""
import base64
import binascii
import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Optional

from lendbox.core.config import settings
from lendbox.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

LOAN_PHOTOS = "loan_photos"
RETURN_PHOTOS = "return_photos"
ITEM_IMAGES = "items"
ORGANIZATION_LOGOS = "organizations"

_DATA_URI = re.compile(r"^data:image/(\w+);base64,", re.IGNORECASE)
_ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}


def _root() -> Path:
    root = Path(settings.UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    return root


def store(data: bytes, folder: str, extension: str = "jpg") -> str:
    """Write bytes under ``folder`` and return the relative storage path."""
    if not data:
        raise ValidationError("Photo is empty")
    if len(data) > settings.MAX_PHOTO_BYTES:
        raise ValidationError("Photo is too large")

    extension = extension.lower()
    if extension not in _ALLOWED_EXTENSIONS:
        raise ValidationError(f"Unsupported image type: {extension}")

    directory = _root() / folder
    directory.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid.uuid4().hex}_{int(time.time())}.{extension}"
    target = directory / filename
    tmp_path = target.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, target)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise

    relative = f"{folder}/{filename}"
    logger.info(f"Stored {len(data)} bytes at {relative}")
    return relative


def store_base64(payload: str, folder: str) -> str:
    """Decode a base64 photo (optionally a ``data:image/<ext>;base64,`` URI) and store it.

    Camera captures from the borrower page arrive in this form.
    """
    payload = (payload or "").strip()
    match = _DATA_URI.match(payload)
    if match:
        extension = match.group(1)
        payload = payload[match.end():]
    else:
        extension = "jpg"

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Could not save the photo. Make sure it is a valid image.")
    return store(data, folder, extension)


def discard(path: Optional[str]) -> None:
    """Remove a stored file whose loan was never saved. Missing files are ignored."""
    if not path:
        return
    try:
        (_root() / path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
    else:
        logger.info(f"Discarded {path}")


def public_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return f"{settings.MEDIA_URL.rstrip('/')}/{path}"
