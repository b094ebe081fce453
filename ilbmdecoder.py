#!/usr/bin/env python3
"""
ilbmdecoder.py - IFF/ILBM decoder (no Pillow)

Reads:
- FORM/ILBM container, walking its chunks in file order
- BMHD bitmap header, CMAP palette, CAMG display mode flags
- BODY planar pixel data, raw or ByteRun1 (PackBits) compressed
Produces:
    one RGBA row per `DecodeSession.decode_next_scanline()` call, written
    into a pixel sink supplied by the caller (see pixel_sinks.py)
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass
from typing import (Callable, Iterator, List, NamedTuple, Optional, Protocol,
                    Tuple, runtime_checkable)

log = logging.getLogger(__name__)

# Chunk identifiers
ID_FORM = b"FORM"
ID_ILBM = b"ILBM"  # InterLeaved BitMap
ID_BMHD = b"BMHD"  # BitMap HeaDer
ID_CMAP = b"CMAP"  # Color MAP
ID_CAMG = b"CAMG"  # Commodore AMiGa display mode
ID_BODY = b"BODY"

# The few fields in fixed locations
OFF_FORM = 0x00
OFF_SIZE = 0x04
OFF_ILBM = 0x08
OFF_FIRST_CHUNK = 0x0C

CHUNK_HEADER_SIZE = 8

# width, height, left, top, planes, masking, compression, pad,
# transparent color, x aspect, y aspect, page width, page height
BMHD_FMT = ">HHhhBBBxHBBHH"
BMHD_SIZE = struct.calcsize(BMHD_FMT)

MAX_BITPLANES = 8


class ErrorKind(enum.Enum):
    MALFORMED_CONTAINER = "malformed container"
    UNSUPPORTED_FEATURE = "unsupported feature"
    ORDERING_VIOLATION = "ordering violation"
    PALETTE_TOO_SMALL = "palette too small"
    PALETTE_TOO_LARGE = "palette too large"
    ASPECT_MISMATCH = "aspect mismatch"
    UNRECOGNIZED_CHUNK = "unrecognized chunk"
    UNSUPPORTED_MODE = "unsupported display mode"

    @property
    def fatal(self) -> bool:
        return self not in (ErrorKind.PALETTE_TOO_LARGE,
                            ErrorKind.ASPECT_MISMATCH,
                            ErrorKind.UNRECOGNIZED_CHUNK,
                            ErrorKind.UNSUPPORTED_MODE)


class IlbmError(Exception):
    """Fatal decode failure. `kind` tells callers what went wrong without
    parsing the message; offset/expected/found locate it in the file."""

    kind = ErrorKind.MALFORMED_CONTAINER

    def __init__(self, message: str, offset: Optional[int] = None,
                 expected=None, found=None):
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.expected = expected
        self.found = found

    def __str__(self):
        text = self.message
        if self.offset is not None:
            text += f" (at offset 0x{self.offset:x})"
        return text


class MalformedContainer(IlbmError):
    kind = ErrorKind.MALFORMED_CONTAINER


class UnsupportedFeature(IlbmError):
    kind = ErrorKind.UNSUPPORTED_FEATURE


class OrderingViolation(IlbmError):
    kind = ErrorKind.ORDERING_VIOLATION


class PaletteTooSmall(IlbmError):
    kind = ErrorKind.PALETTE_TOO_SMALL


class Compression(enum.IntEnum):
    NONE = 0
    BYTERUN1 = 1  # UnPackBits aka run length encoding


class Masking(enum.IntEnum):
    NONE = 0               # image is opaque
    HAS_MASK = 1           # mask interleaved as an extra bitplane
    TRANSPARENT_COLOR = 2  # GIF-like transparency
    LASSO = 3              # MacPaint lasso transparency


class ModeFlags(enum.IntFlag):
    LACE = 0x0004   # interlaced (double vertical pixels)
    EHB = 0x0080    # extra half brite
    HAM = 0x0800    # hold and modify
    HIRES = 0x8000  # hi-res (double horizontal pixels)


class RGB(NamedTuple):
    r: int
    g: int
    b: int


@runtime_checkable
class PixelSink(Protocol):
    """Where decoded rows go: allocated once after BMHD, then one
    width * 4 byte RGBA row per scanline."""

    def allocate(self, width: int, height: int) -> None: ...
    def write_row(self, y: int, row: bytes) -> None: ...


class Diagnostics:
    """The debug/warn channels. Defaults to this module's logger."""

    def __init__(self, debug: Optional[Callable[[str], None]] = None,
                 warn: Optional[Callable[[str], None]] = None):
        self._debug = debug or log.debug
        self._warn = warn or log.warning
        self.warnings: List[Tuple[ErrorKind, str]] = []

    def debug(self, msg: str):
        self._debug(msg)

    def warn(self, kind: ErrorKind, msg: str):
        self.warnings.append((kind, msg))
        self._warn(msg)


# ---------------------------------------------------------------------
# Byte reader
# ---------------------------------------------------------------------
class ByteReader:
    """Bounds-checked big-endian reads at absolute offsets in [start, end)."""

    def __init__(self, data, start: int = 0, end: Optional[int] = None):
        self.data = data
        self.start = start
        self.end = len(data) if end is None else end

    def _check(self, offset: int, size: int):
        if offset < self.start or offset + size > self.end:
            raise MalformedContainer(
                f"Read of {size} byte(s) past end of data "
                f"(readable range 0x{self.start:x}-0x{self.end:x})",
                offset=offset, expected=self.end, found=offset + size)

    def u8(self, offset: int) -> int:
        self._check(offset, 1)
        return self.data[offset]

    def s8(self, offset: int) -> int:
        self._check(offset, 1)
        return struct.unpack_from(">b", self.data, offset)[0]

    def u16(self, offset: int) -> int:
        self._check(offset, 2)
        return struct.unpack_from(">H", self.data, offset)[0]

    def s16(self, offset: int) -> int:
        self._check(offset, 2)
        return struct.unpack_from(">h", self.data, offset)[0]

    def u32(self, offset: int) -> int:
        self._check(offset, 4)
        return struct.unpack_from(">I", self.data, offset)[0]

    def read(self, offset: int, size: int) -> bytes:
        self._check(offset, size)
        return bytes(self.data[offset:offset + size])

    def tag(self, offset: int) -> bytes:
        return self.read(offset, 4)

    def sub(self, offset: int, size: int) -> "ByteReader":
        self._check(offset, size)
        return ByteReader(self.data, offset, offset + size)


def tag_name(tag: bytes) -> str:
    return tag.decode("latin-1")


# ---------------------------------------------------------------------
# ByteRun1 (PackBits) decompression
# ---------------------------------------------------------------------
def unpack_bits_into(out: bytearray, reader: ByteReader, offset: int) -> int:
    """Fill `out` with ByteRun1 data starting at `offset`.

    Returns the offset just past the consumed input. A run that would
    overshoot `out`, or input that runs past the reader's end, is fatal.
    """
    pos = 0
    size = len(out)

    while pos < size:
        code = reader.s8(offset)
        offset += 1

        if code >= 0:
            # copy next code + 1 bytes literally
            count = code + 1
            if pos + count > size:
                raise MalformedContainer(
                    f"Literal run of {count} bytes overruns scanline "
                    f"({size - pos} left)",
                    offset=offset - 1, expected=size - pos, found=count)
            out[pos:pos + count] = reader.read(offset, count)
            offset += count
            pos += count
        elif code > -128:
            # repeat next byte -code + 1 times
            count = 1 - code
            if pos + count > size:
                raise MalformedContainer(
                    f"Repeat run of {count} bytes overruns scanline "
                    f"({size - pos} left)",
                    offset=offset - 1, expected=size - pos, found=count)
            out[pos:pos + count] = bytes((reader.u8(offset),)) * count
            offset += 1
            pos += count
        # -128 is a no-op

    return offset


def copy_into(out: bytearray, reader: ByteReader, offset: int) -> int:
    """Uncompressed BODY: take the next len(out) bytes verbatim."""
    out[:] = reader.read(offset, len(out))
    return offset + len(out)


def unpack_bits(data: bytes, size: int) -> bytes:
    """Decompress a standalone ByteRun1 buffer to exactly `size` bytes."""
    out = bytearray(size)
    unpack_bits_into(out, ByteReader(data), 0)
    return bytes(out)


# ---------------------------------------------------------------------
# BMHD / CMAP / CAMG
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ImageDescriptor:
    width: int
    height: int
    bitplanes: int
    masking: Masking
    compression: Compression
    transparent_color: Optional[int] = None
    x_aspect: int = 0
    y_aspect: int = 0
    left: int = 0
    top: int = 0
    page_width: int = 0
    page_height: int = 0

    @property
    def row_bytes(self) -> int:
        # bytes per row per plane == smallest even integer >= width / 8
        return ((self.width + 15) >> 4) << 1

    @property
    def plane_count(self) -> int:
        if self.masking == Masking.HAS_MASK:
            return self.bitplanes + 1
        return self.bitplanes

    @property
    def scanline_bytes(self) -> int:
        return self.row_bytes * self.plane_count

    @property
    def palette_size(self) -> int:
        return 1 << self.bitplanes


def decode_bmhd(reader: ByteReader, offset: int, length: int,
                diag: Diagnostics) -> ImageDescriptor:
    if length != BMHD_SIZE:
        raise UnsupportedFeature(f"{length} is wrong size for BMHD chunk",
                                 offset=offset, expected=BMHD_SIZE, found=length)

    (width, height, left, top, bitplanes, masking, compression,
     transparent_color, x_aspect, y_aspect, page_width,
     page_height) = struct.unpack(BMHD_FMT, reader.read(offset, BMHD_SIZE))

    if x_aspect != y_aspect:
        diag.warn(ErrorKind.ASPECT_MISMATCH,
                  f"Aspect ratio {x_aspect}:{y_aspect} is not 1:1; "
                  "image will not be scaled to correct it")

    if compression not in (Compression.NONE, Compression.BYTERUN1):
        raise UnsupportedFeature(
            f"Compression type 0x{compression:x} is not supported",
            offset=offset + 10, found=compression)

    if masking == Masking.LASSO:
        raise UnsupportedFeature("Lasso masking not supported",
                                 offset=offset + 9, found=masking)
    if masking not in (Masking.NONE, Masking.HAS_MASK,
                       Masking.TRANSPARENT_COLOR):
        raise UnsupportedFeature(f"Unknown masking type 0x{masking:x}",
                                 offset=offset + 9, found=masking)

    if bitplanes == 0:
        raise MalformedContainer("BMHD declares zero bitplanes",
                                 offset=offset + 8, found=bitplanes)
    if bitplanes > MAX_BITPLANES:
        raise UnsupportedFeature(
            f"{bitplanes} bitplanes not supported (max {MAX_BITPLANES})",
            offset=offset + 8, expected=MAX_BITPLANES, found=bitplanes)

    descriptor = ImageDescriptor(
        width=width,
        height=height,
        bitplanes=bitplanes,
        masking=Masking(masking),
        compression=Compression(compression),
        transparent_color=(transparent_color
                           if masking == Masking.TRANSPARENT_COLOR else None),
        x_aspect=x_aspect,
        y_aspect=y_aspect,
        left=left,
        top=top,
        page_width=page_width,
        page_height=page_height,
    )

    diag.debug(f"width: {width}")
    diag.debug(f"height: {height}")
    diag.debug(f"bitplanes: {bitplanes}")
    diag.debug(f"xaspect: {x_aspect}")
    diag.debug(f"yaspect: {y_aspect}")
    diag.debug(f"rowBytes: {descriptor.row_bytes}")
    diag.debug(f"masking: {descriptor.masking.name}")
    if descriptor.transparent_color is not None:
        diag.debug(f"transparentColour: {descriptor.transparent_color}")
    return descriptor


def decode_camg(reader: ByteReader, offset: int, length: int,
                diag: Diagnostics) -> ModeFlags:
    camg = reader.u32(offset)
    diag.debug(f"CAMG: {camg:x}")

    flags = ModeFlags(camg)
    if flags & ModeFlags.EHB:
        raise UnsupportedFeature("Extra halfbrite mode not supported",
                                 offset=offset, found=camg)
    if flags & ModeFlags.HAM:
        diag.warn(ErrorKind.UNSUPPORTED_MODE,
                  "HAM images are decoded as plain planar data; "
                  "colors will not be correct")
    return flags


def decode_cmap(reader: ByteReader, offset: int, length: int,
                descriptor: ImageDescriptor, diag: Diagnostics) -> List[RGB]:
    if length % 3:
        raise MalformedContainer(
            f"CMAP length {length} is not a multiple of 3",
            offset=offset, found=length)

    entries = length // 3
    expected = descriptor.palette_size

    # every pixel value needs a color
    if entries < expected:
        raise PaletteTooSmall(f"CMAP {entries} too small (should be {expected})",
                              offset=offset, expected=expected, found=entries)
    if entries > expected:
        diag.warn(ErrorKind.PALETTE_TOO_LARGE,
                  f"CMAP too large ({entries} entries, {expected} used)")

    raw = reader.read(offset, length)
    cmap = [RGB(*raw[i:i + 3]) for i in range(0, length, 3)]
    diag.debug(f"CMAP entries: {entries}")
    return cmap


# ---------------------------------------------------------------------
# Planar to chunky
# ---------------------------------------------------------------------
def deinterleave_scanline(line, width: int, row_bytes: int, planes: int,
                          out: List[int]):
    """OR each plane's bit into the per-column index (plane 0 = bit 0).

    `line` holds `planes` sub-rows of `row_bytes` bytes each, MSB first.
    """
    for plane in range(planes):
        base = plane * row_bytes
        value = 1 << plane
        for x in range(width):
            if line[base + (x >> 3)] & (0x80 >> (x & 7)):
                out[x] |= value


class DecodeSession:
    """Cursor state for turning BODY data into rows, one per call.

    Built by `load()` once BMHD, CMAP and BODY have been seen, so the
    descriptor and palette are always present.
    """

    def __init__(self, descriptor: ImageDescriptor, palette: List[RGB],
                 body: ByteReader, sink: PixelSink, diagnostics: Diagnostics,
                 mode_flags: ModeFlags = ModeFlags(0)):
        self.descriptor = descriptor
        self.palette = palette
        self.body = body
        self.sink = sink
        self.mode_flags = mode_flags
        self.warnings = diagnostics.warnings

        self.y = 0
        self.offset = body.start
        # encoded, then decoded scanline for all planes
        self.scanline = bytearray(descriptor.scanline_bytes)
        # palette index per column, cleared after each row
        self.indices = [0] * descriptor.width
        self._error: Optional[IlbmError] = None

    @property
    def width(self) -> int:
        return self.descriptor.width

    @property
    def height(self) -> int:
        return self.descriptor.height

    @property
    def done(self) -> bool:
        return self.y >= self.descriptor.height

    def decode_next_scanline(self) -> bool:
        """Decode and emit the next row. False once every row is done."""
        if self._error is not None:
            raise self._error
        if self.done:
            return False

        try:
            self._read_scanline()
            deinterleave_scanline(self.scanline, self.descriptor.width,
                                  self.descriptor.row_bytes,
                                  self.descriptor.plane_count, self.indices)
            row = self._resolve_scanline()
        except IlbmError as exc:
            self._error = exc
            raise

        self.sink.write_row(self.y, row)
        self.y += 1
        return True

    def rows(self) -> Iterator[int]:
        """Pull-style driver: yields each row index after it is written."""
        while self.decode_next_scanline():
            yield self.y - 1

    def decode_all(self) -> int:
        count = 0
        for _ in self.rows():
            count += 1
        return count

    def _read_scanline(self):
        if self.descriptor.compression == Compression.BYTERUN1:
            self.offset = unpack_bits_into(self.scanline, self.body, self.offset)
        else:
            self.offset = copy_into(self.scanline, self.body, self.offset)

    def _resolve_scanline(self) -> bytearray:
        d = self.descriptor
        palette = self.palette
        indices = self.indices
        mask_bit = 1 << d.bitplanes
        row = bytearray(d.width * 4)

        for x in range(d.width):
            idx = indices[x]
            transparent = False

            if d.masking == Masking.HAS_MASK:
                if idx == mask_bit:
                    transparent = True
                else:
                    idx &= mask_bit - 1
            elif d.masking == Masking.TRANSPARENT_COLOR:
                transparent = idx == d.transparent_color

            # transparent pixels stay (0, 0, 0, 0)
            if not transparent:
                r, g, b = palette[idx]
                p = x * 4
                row[p:p + 4] = (r, g, b, 0xFF)

            indices[x] = 0

        return row


# ---------------------------------------------------------------------
# Container walk
# ---------------------------------------------------------------------
def load(data, sink: PixelSink, debug: Optional[Callable[[str], None]] = None,
         warn: Optional[Callable[[str], None]] = None) -> DecodeSession:
    """Walk a FORM/ILBM buffer and return a session ready to decode rows.

    `sink.allocate(width, height)` is called once, right after BMHD.
    Raises an IlbmError subclass on anything fatal.
    """
    diag = Diagnostics(debug, warn)
    reader = ByteReader(data)
    file_size = len(data)

    # ILBM data is always in a FORM chunk
    if reader.tag(OFF_FORM) != ID_FORM:
        raise MalformedContainer("Not an IFF/ILBM file (first chunk not FORM)",
                                 offset=OFF_FORM, expected=ID_FORM,
                                 found=reader.tag(OFF_FORM))

    form_size = reader.u32(OFF_SIZE)

    # FORM size may be smaller than the file (appended data is allowed)
    # but never larger
    if form_size + CHUNK_HEADER_SIZE > file_size:
        raise MalformedContainer(
            f"FORM size too big for file (FORM chunk size: {form_size} "
            f"file size: {file_size})",
            offset=OFF_SIZE, expected=file_size - CHUNK_HEADER_SIZE,
            found=form_size)

    if reader.tag(OFF_ILBM) != ID_ILBM:
        raise MalformedContainer("First chunk in FORM is not ILBM",
                                 offset=OFF_ILBM, expected=ID_ILBM,
                                 found=reader.tag(OFF_ILBM))

    end = form_size + CHUNK_HEADER_SIZE
    form = reader.sub(0, end)

    descriptor: Optional[ImageDescriptor] = None
    palette: Optional[List[RGB]] = None
    mode_flags = ModeFlags(0)
    session: Optional[DecodeSession] = None

    pos = OFF_FIRST_CHUNK
    while pos < end:
        if pos + CHUNK_HEADER_SIZE > end:
            raise MalformedContainer("Truncated chunk header", offset=pos,
                                     expected=CHUNK_HEADER_SIZE, found=end - pos)
        chunk_id = form.tag(pos)
        length = form.u32(pos + 4)
        data_pos = pos + CHUNK_HEADER_SIZE
        if data_pos + length > end:
            raise MalformedContainer(
                f"{tag_name(chunk_id)} chunk of {length} bytes runs past "
                "end of FORM",
                offset=pos, expected=end - data_pos, found=length)
        payload = form.sub(data_pos, length)

        if chunk_id == ID_BMHD:
            if descriptor is not None:
                raise MalformedContainer("Duplicate BMHD chunk", offset=pos)
            descriptor = decode_bmhd(payload, data_pos, length, diag)
            sink.allocate(descriptor.width, descriptor.height)
        elif chunk_id == ID_CMAP:
            if descriptor is None:
                raise OrderingViolation("Invalid file - CMAP chunk before BMHD",
                                        offset=pos)
            palette = decode_cmap(payload, data_pos, length, descriptor, diag)
        elif chunk_id == ID_CAMG:
            if descriptor is None:
                raise OrderingViolation("Invalid file - CAMG chunk before BMHD",
                                        offset=pos)
            mode_flags = decode_camg(payload, data_pos, length, diag)
        elif chunk_id == ID_BODY:
            if descriptor is None:
                raise OrderingViolation("Invalid file - BODY chunk before BMHD",
                                        offset=pos)
            if palette is None:
                raise OrderingViolation("Invalid file - BODY chunk before CMAP",
                                        offset=pos)
            if session is not None:
                diag.warn(ErrorKind.UNRECOGNIZED_CHUNK,
                          "Skipping second BODY chunk")
            else:
                session = DecodeSession(descriptor, palette, payload, sink, diag)
        else:
            diag.warn(ErrorKind.UNRECOGNIZED_CHUNK,
                      f"Skipping unrecognised chunk: {tag_name(chunk_id)}")

        # chunk size doesn't include the id and size fields
        pos = data_pos + length
        # chunks begin on an even boundary
        pos += pos % 2

    if descriptor is None:
        raise MalformedContainer("No BMHD chunk in file")
    if session is None:
        raise MalformedContainer("No BODY chunk in file")

    session.mode_flags = mode_flags
    return session


def header_info(session: DecodeSession) -> dict:
    """Human-readable summary, in the order the viewer lists it."""
    d = session.descriptor
    info = {
        "Image Dimensions": f"{d.width} × {d.height}",
        "Bitplanes": d.bitplanes,
        "Compression": d.compression.name,
        "Masking": d.masking.name,
        "Row Bytes": d.row_bytes,
        "Aspect": f"{d.x_aspect}:{d.y_aspect}",
        "Page Size": f"{d.page_width} × {d.page_height}",
        "Palette Entries": len(session.palette),
        "CAMG": f"0x{int(session.mode_flags):08x}",
    }
    if d.transparent_color is not None:
        info["Transparent Color"] = d.transparent_color
    if session.mode_flags:
        info["Mode Flags"] = ", ".join(
            f.name for f in ModeFlags if f in session.mode_flags)
    return info
