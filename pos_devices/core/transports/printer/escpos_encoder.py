"""
ESC/POS job encoding.

Builds the raw byte stream for one print job with python-escpos' ``Dummy``
printer, which records commands instead of sending them. Images arrive as
base64 (optionally a ``data:`` URI) or a file path and are scaled to the
paper width and dithered to 1-bit with Pillow before rasterising.
"""

import base64
import binascii
import io
import os
from dataclasses import dataclass
from typing import Union

from escpos.printer import Dummy
from PIL import Image

from ...logging_utils import get_module_logger

logger = get_module_logger("EscPosEncoder")

# 80 mm paper at 203 dpi
DEFAULT_PAPER_WIDTH = 576
DEFAULT_THRESHOLD = 180


@dataclass(frozen=True)
class ImageOptions:
    width: int = DEFAULT_PAPER_WIDTH
    dither: bool = True
    threshold: int = DEFAULT_THRESHOLD


def load_image(source: Union[str, bytes]) -> Image.Image:
    """Open an image from raw bytes, a file path or a base64 string."""
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    if os.path.isfile(source):
        return Image.open(source)
    payload = source.split(",", 1)[1] if source.startswith("data:") else source
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image data is neither a file path nor valid base64") from exc
    return Image.open(io.BytesIO(raw))


def prepare_image(image: Image.Image, options: ImageOptions = ImageOptions()) -> Image.Image:
    """Flatten transparency, fit to paper width and reduce to 1-bit."""
    if image.mode in ("RGBA", "LA", "P"):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        image = background
    gray = image.convert("L")

    if gray.width > options.width:
        height = max(1, round(gray.height * options.width / gray.width))
        gray = gray.resize((options.width, height), Image.Resampling.LANCZOS)

    if options.dither:
        return gray.convert("1")
    threshold = options.threshold
    return gray.point(lambda value: 255 if value >= threshold else 0).convert("1", dither=Image.Dither.NONE)


class EscPosEncoder:
    """Encodes text and image jobs, each ending with a centred feed and cut."""

    def __init__(self, image_options: ImageOptions = ImageOptions()):
        self.image_options = image_options

    def encode_text(self, text: str) -> bytes:
        printer = Dummy()
        printer.text(text)
        printer.set(align="center")
        printer.text("\n")
        printer.cut()
        return printer.output

    def encode_image(self, source: Union[str, bytes]) -> bytes:
        image = prepare_image(load_image(source), self.image_options)
        logger.debug("Encoding %dx%d image", image.width, image.height)
        printer = Dummy()
        printer.set(align="center")
        printer.image(image)
        printer.set(align="center")
        printer.text("\n")
        printer.cut()
        return printer.output

    def encode(self, data: str, is_image: bool = False) -> bytes:
        return self.encode_image(data) if is_image else self.encode_text(data)


__all__ = [
    "DEFAULT_PAPER_WIDTH",
    "EscPosEncoder",
    "ImageOptions",
    "load_image",
    "prepare_image",
]
