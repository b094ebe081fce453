import numpy as np
from PIL import Image

import ilbm2png
from ilbmdecoder import PixelSink, load
from pixel_sinks import NumpySink, PILImageSink, decode_ilbm, open_ilbm
from ilbm_builder import GRAY4, build_ilbm

ROWS = [[0, 1, 2, 3], [3, 2, 1, 0], [1, 1, 2, 2]]


def sample(**kwargs):
    return build_ilbm(ROWS, 4, 2, GRAY4, **kwargs)


def test_pil_sink():
    img = decode_ilbm(sample(compression=1))
    assert img.mode == "RGBA"
    assert img.size == (4, 3)
    assert img.getpixel((0, 0)) == (0, 0, 0, 255)
    assert img.getpixel((0, 1)) == (255, 255, 255, 255)
    assert img.getpixel((3, 2)) == (170, 170, 170, 255)


def test_pil_sink_starts_transparent():
    sink = PILImageSink()
    session = load(sample(), sink)
    session.decode_next_scanline()
    assert sink.image.getpixel((0, 1)) == (0, 0, 0, 0)
    assert sink.image.getpixel((1, 0)) == (85, 85, 85, 255)


def test_pil_sink_transparency():
    img = decode_ilbm(sample(masking=2, transparent=1))
    alpha = [img.getpixel((x, 0))[3] for x in range(4)]
    assert alpha == [255, 0, 255, 255]


def test_numpy_sink():
    sink = NumpySink()
    session = load(sample(), sink)
    assert sink.pixels.shape == (3, 4, 4)
    session.decode_all()
    expected = np.array([[GRAY4[i] + (255,) for i in row] for row in ROWS], dtype=np.uint8)
    np.testing.assert_array_equal(sink.pixels, expected)


def test_open_ilbm(tmp_path):
    path = tmp_path / "pic.iff"
    path.write_bytes(sample())
    assert open_ilbm(path).getpixel((2, 0)) == (170, 170, 170, 255)


def test_decode_ilbm_channels(channels):
    decode_ilbm(sample(), debug=channels.debug, warn=channels.warn)
    assert "bitplanes: 2" in channels.debug_lines


def test_cli_converts(tmp_path, capsys):
    src = tmp_path / "pic.iff"
    dest = tmp_path / "pic.png"
    src.write_bytes(sample(compression=1))
    assert ilbm2png.main([str(src), str(dest)]) == 0
    out = capsys.readouterr().out
    assert "Image Dimensions: 4 × 3" in out
    assert "Compression: BYTERUN1" in out
    with Image.open(dest) as img:
        assert img.size == (4, 3)
        assert img.convert("RGBA").getpixel((1, 1)) == (170, 170, 170, 255)


def test_cli_header_only(tmp_path, capsys):
    src = tmp_path / "pic.iff"
    src.write_bytes(sample())
    assert ilbm2png.main([str(src)]) == 0
    assert "Filename: pic.iff" in capsys.readouterr().out


def test_cli_reports_errors(tmp_path, capsys):
    src = tmp_path / "bad.iff"
    src.write_bytes(b"FORM\x00\x00\x00\x04ILBX")
    assert ilbm2png.main([str(src)]) == 1
    assert "Error:" in capsys.readouterr().err


def test_cli_missing_file(tmp_path, capsys):
    assert ilbm2png.main([str(tmp_path / "nope.iff")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_sinks_match_the_sink_interface(sink):
    assert isinstance(PILImageSink(), PixelSink)
    assert isinstance(NumpySink(), PixelSink)
    assert isinstance(sink, PixelSink)
    assert not isinstance(object(), PixelSink)
