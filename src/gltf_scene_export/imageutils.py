"""
Image Encoding

Turns raw image handles (PIL images) into PNG bytes or data URIs.
PNG encoding runs in a worker thread so several textures can encode
while the event loop keeps going.
"""

import asyncio
import base64
import io
from typing import Any

from PIL import Image

from .constants import IMAGE_MIME_TYPE

# Modes Pillow can write straight to PNG
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def image_to_png_bytes(image: Any) -> bytes:
    """Encode a PIL image (or pass already-encoded bytes through)"""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    if not isinstance(image, Image.Image):
        raise TypeError(f"Cannot encode image of type {type(image).__name__}")

    if image.mode not in PNG_MODES:
        image = image.convert("RGBA")

    stream = io.BytesIO()
    image.save(stream, format="PNG")
    return stream.getvalue()


async def encode_png(image: Any) -> bytes:
    return await asyncio.to_thread(image_to_png_bytes, image)


def bytes_to_data_uri(data: bytes, mime_type: str = "application/octet-stream") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def image_to_data_uri(image: Any) -> str:
    return bytes_to_data_uri(image_to_png_bytes(image), IMAGE_MIME_TYPE)
