# pixel_sinks.py
"""
Pixel sinks for the ILBM decoder.

Both classes satisfy `ilbmdecoder.PixelSink`: allocated once with the image
size, then one RGBA row (width * 4 bytes) per decoded scanline.
"""

from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from ilbmdecoder import load


class PILImageSink:
    """Collects rows into a Pillow RGBA image (fully transparent to start)."""

    def __init__(self):
        self.image: Optional[Image.Image] = None

    def allocate(self, width: int, height: int):
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    def write_row(self, y: int, row: bytes):
        if not row:
            return
        line = Image.frombytes("RGBA", (self.image.width, 1), bytes(row))
        self.image.paste(line, (0, y))


class NumpySink:
    """Collects rows into a (height, width, 4) uint8 array."""

    def __init__(self):
        self.pixels: Optional[np.ndarray] = None

    def allocate(self, width: int, height: int):
        self.pixels = np.zeros((height, width, 4), dtype=np.uint8)

    def write_row(self, y: int, row: bytes):
        self.pixels[y] = np.frombuffer(bytes(row), dtype=np.uint8).reshape(-1, 4)


def decode_ilbm(data: bytes, debug=None, warn=None) -> Image.Image:
    """Decode a whole ILBM buffer into an RGBA Pillow image."""
    sink = PILImageSink()
    session = load(data, sink, debug=debug, warn=warn)
    session.decode_all()
    return sink.image


def open_ilbm(path) -> Image.Image:
    return decode_ilbm(Path(path).read_bytes())
