import pytest

from ilbmdecoder import (ByteReader, Compression, Diagnostics, ErrorKind,
                         ImageDescriptor, MalformedContainer, Masking,
                         ModeFlags, PaletteTooSmall, RGB, UnsupportedFeature,
                         decode_bmhd, decode_camg, decode_cmap)
from ilbm_builder import bmhd, camg, cmap


def payload(chunk_bytes):
    length = int.from_bytes(chunk_bytes[4:8], "big")
    return chunk_bytes[8:8 + length]


def parse_bmhd(chunk_bytes, diag=None):
    data = payload(chunk_bytes)
    return decode_bmhd(ByteReader(data), 0, len(data), diag or Diagnostics())


def descriptor(bitplanes=3, masking=Masking.NONE):
    return ImageDescriptor(width=8, height=1, bitplanes=bitplanes,
                           masking=masking, compression=Compression.NONE)


# ---- BMHD ----

def test_bmhd_fields():
    d = parse_bmhd(bmhd(320, 200, 5, compression=1, x_aspect=10, y_aspect=10))
    assert (d.width, d.height, d.bitplanes) == (320, 200, 5)
    assert d.compression is Compression.BYTERUN1
    assert d.masking is Masking.NONE
    assert d.transparent_color is None
    assert (d.page_width, d.page_height) == (320, 200)
    assert d.row_bytes == 40
    assert d.scanline_bytes == 200
    assert d.palette_size == 32


@pytest.mark.parametrize("width,stride", [(1, 2), (8, 2), (16, 2), (17, 4), (33, 6), (320, 40)])
def test_row_bytes_rounds_to_words(width, stride):
    assert parse_bmhd(bmhd(width, 1, 1)).row_bytes == stride


def test_mask_plane_adds_a_plane():
    d = parse_bmhd(bmhd(16, 1, 4, masking=1))
    assert d.masking is Masking.HAS_MASK
    assert d.plane_count == 5
    assert d.scanline_bytes == 10


def test_transparent_color_only_with_color_key():
    assert parse_bmhd(bmhd(8, 1, 3, masking=2, transparent=5)).transparent_color == 5
    assert parse_bmhd(bmhd(8, 1, 3, masking=0, transparent=5)).transparent_color is None


def test_descriptor_is_immutable():
    d = parse_bmhd(bmhd(8, 1, 1))
    with pytest.raises(AttributeError):
        d.width = 16


def test_wrong_bmhd_size():
    with pytest.raises(UnsupportedFeature) as exc:
        parse_bmhd(bmhd(8, 1, 1, size=18))
    assert exc.value.expected == 20
    assert exc.value.found == 18


def test_unsupported_compression():
    with pytest.raises(UnsupportedFeature, match="Compression type 0x2"):
        parse_bmhd(bmhd(8, 1, 1, compression=2))


def test_lasso_masking_rejected():
    with pytest.raises(UnsupportedFeature, match="Lasso"):
        parse_bmhd(bmhd(8, 1, 1, masking=3))


def test_unknown_masking_rejected():
    with pytest.raises(UnsupportedFeature, match="Unknown masking type 0x7"):
        parse_bmhd(bmhd(8, 1, 1, masking=7))


def test_zero_bitplanes():
    with pytest.raises(MalformedContainer):
        parse_bmhd(bmhd(8, 1, 0))


def test_truecolor_rejected():
    with pytest.raises(UnsupportedFeature):
        parse_bmhd(bmhd(8, 1, 24))


def test_aspect_mismatch_warns(channels):
    diag = Diagnostics(channels.debug, channels.warn)
    d = parse_bmhd(bmhd(8, 1, 1, x_aspect=10, y_aspect=11), diag)
    assert d.width == 8
    assert diag.warnings[0][0] is ErrorKind.ASPECT_MISMATCH
    assert len(channels.warn_lines) == 1


def test_debug_output(channels):
    parse_bmhd(bmhd(8, 2, 1, masking=2, transparent=1), Diagnostics(channels.debug, channels.warn))
    assert "width: 8" in channels.debug_lines
    assert "height: 2" in channels.debug_lines
    assert "transparentColour: 1" in channels.debug_lines
    assert channels.warn_lines == []


# ---- CAMG ----

def parse_camg(flags, diag=None):
    data = payload(camg(flags))
    return decode_camg(ByteReader(data), 0, len(data), diag or Diagnostics())


def test_camg_flags():
    flags = parse_camg(0x8004)
    assert ModeFlags.HIRES in flags
    assert ModeFlags.LACE in flags


def test_ehb_rejected():
    with pytest.raises(UnsupportedFeature, match="halfbrite"):
        parse_camg(0x0080)


def test_ham_warns_but_continues():
    diag = Diagnostics()
    flags = parse_camg(0x0800, diag)
    assert ModeFlags.HAM in flags
    assert diag.warnings[0][0] is ErrorKind.UNSUPPORTED_MODE
    assert not ErrorKind.UNSUPPORTED_MODE.fatal


# ---- CMAP ----

def parse_cmap(colors, desc, diag=None):
    data = payload(cmap(colors))
    return decode_cmap(ByteReader(data), 0, len(data), desc, diag or Diagnostics())


def test_cmap_entries():
    pal = parse_cmap([(1, 2, 3), (4, 5, 6)], descriptor(bitplanes=1))
    assert pal == [RGB(1, 2, 3), RGB(4, 5, 6)]
    assert pal[1].g == 5


def test_cmap_too_small():
    with pytest.raises(PaletteTooSmall) as exc:
        parse_cmap([(0, 0, 0)] * 4, descriptor(bitplanes=3))
    assert exc.value.kind is ErrorKind.PALETTE_TOO_SMALL
    assert (exc.value.expected, exc.value.found) == (8, 4)


def test_cmap_too_large_warns():
    diag = Diagnostics()
    pal = parse_cmap([(9, 9, 9)] * 32, descriptor(bitplanes=3), diag)
    assert len(pal) == 32
    assert [k for k, _ in diag.warnings] == [ErrorKind.PALETTE_TOO_LARGE]


def test_cmap_mask_plane_needs_only_color_entries():
    pal = parse_cmap([(0, 0, 0)] * 4, descriptor(bitplanes=2, masking=Masking.HAS_MASK))
    assert len(pal) == 4


def test_cmap_length_not_multiple_of_three():
    data = b"\x00" * 7
    with pytest.raises(MalformedContainer):
        decode_cmap(ByteReader(data), 0, 7, descriptor(bitplanes=1), Diagnostics())
