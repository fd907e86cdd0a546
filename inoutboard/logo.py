"""Dashboard logo upload.

The image arrives as a base64 data URL. It is size-checked and sniffed
before anything touches the disk, then written through a temp file so a
failed upload never leaves a partial logo behind.
"""

import base64
import binascii
import logging
import os
import re
import tempfile
from pathlib import Path

from inoutboard.errors import PayloadError

logger = logging.getLogger(__name__)

MAX_LOGO_BYTES = 2 * 1024 * 1024

_DATA_URL = re.compile(r"^data:(image/[a-zA-Z+.-]+);base64,(.+)$", re.DOTALL)


def sniff_image_type(data: bytes) -> str | None:
    """Content type from the file's magic bytes, None if not a known image."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def decode_logo(image: str) -> bytes:
    if not image:
        raise PayloadError("No image provided")
    match = _DATA_URL.match(image.strip())
    if match is None:
        raise PayloadError("Invalid image data")
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadError("Invalid image data") from exc
    if len(data) > MAX_LOGO_BYTES:
        raise PayloadError("Image must be under 2 MB")
    if sniff_image_type(data) is None:
        raise PayloadError("Unsupported image format")
    return data


def save_logo(image: str, path: Path) -> int:
    """Validate a data-URL image and store it at ``path``; returns bytes written."""
    data = decode_logo(image)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".logo-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("logo updated (%d bytes) at %s", len(data), path)
    return len(data)
