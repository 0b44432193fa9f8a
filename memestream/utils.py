"""
Helpers for base64 image payloads sent by the frontend.
"""

from __future__ import annotations

import base64
import binascii
import re

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

_DATA_URL_PREFIX = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?[^,]*,")

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def strip_data_url(image_data: str) -> str:
    """Drop a leading ``data:...;base64,`` prefix, if any."""
    match = _DATA_URL_PREFIX.match(image_data)
    if not match:
        return image_data
    return image_data[match.end():]


def data_url_mime_type(image_data: str) -> str:
    match = _DATA_URL_PREFIX.match(image_data)
    if match and match.group("mime"):
        return match.group("mime").lower()
    return DEFAULT_IMAGE_MIME_TYPE


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "jpg")


def decode_image(image_data: str) -> bytes:
    """
    Decode a base64 image, with or without its data-URL prefix.

    Raises ``ValueError`` when the payload is not valid base64.
    """
    payload = "".join(strip_data_url(image_data).split())
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
