#!/usr/bin/env python3
"""
ilbm2png.py - print an ILBM file's header and optionally convert it to PNG

Usage:
    python ilbm2png.py [-v] picture.iff [picture.png]
"""

import argparse
import logging
import sys
from pathlib import Path

from ilbmdecoder import IlbmError, header_info, load
from pixel_sinks import PILImageSink


def convert(src: Path, dest: Path = None) -> dict:
    """Decode `src`; save it to `dest` when given. Returns the header info."""
    sink = PILImageSink()
    session = load(src.read_bytes(), sink)
    info = {"Filename": src.name, "File Size": f"{src.stat().st_size} bytes"}
    info.update(header_info(session))

    if dest is not None:
        session.decode_all()
        sink.image.save(dest)
    return info


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Decode an IFF/ILBM picture.")
    ap.add_argument("src", type=Path, help="ILBM file to read")
    ap.add_argument("dest", type=Path, nargs="?",
                    help="write the decoded image here (format from extension)")
    ap.add_argument("-v", "--verbose", action="store_true",
                    help="show decoder debug output")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s: %(message)s")

    try:
        info = convert(args.src, args.dest)
    except (IlbmError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for k, v in info.items():
        print(f"{k}: {v}")
    if args.dest is not None:
        print(f"Wrote {args.dest}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
