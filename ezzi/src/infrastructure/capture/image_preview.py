"""Thumbnail previews for queued screenshots."""

import base64
import io
from pathlib import Path
from typing import Tuple

from PIL import Image

PREVIEW_SIZE: Tuple[int, int] = (320, 320)


def encode_png_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_preview(path: Path, size: Tuple[int, int] = PREVIEW_SIZE) -> str:
    """Return a ``data:image/png;base64,...`` thumbnail of the image at ``path``."""
    with Image.open(path) as image:
        image.thumbnail(size)
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=True)
    return f"data:image/png;base64,{encode_png_base64(buffer.getvalue())}"
