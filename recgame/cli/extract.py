#!/usr/bin/env python3
"""Write the decompressed header and the raw body of a recorded game to files.

The input can be a recording or a .zip archive containing one. The output
files feed recgame-dump and `recgame-body --raw`.
"""

import argparse
import io
import sys
from pathlib import Path

from recgame import stream
from recgame.cli import load_rec_bytes
from recgame.errors import RecGameError


def output_paths(rec_path, header_path=None, body_path=None):
    rec_path = Path(rec_path)
    stem = rec_path.stem
    return (
        Path(header_path) if header_path else rec_path.parent / (stem + '.header.bin'),
        Path(body_path) if body_path else rec_path.parent / (stem + '.body.bin'),
    )


def extract(rec_path, header_path=None, body_path=None):
    raw = load_rec_bytes(rec_path)
    header_path, body_path = output_paths(rec_path, header_path, body_path)

    header_length, chapter_address, prefix_size = stream.read_prefix(io.BytesIO(raw))
    header, body = stream.split(raw)
    header_path.write_bytes(header.getvalue())
    body_path.write_bytes(body.getvalue())

    print(f"prefix={prefix_size} header_length={header_length} chapter_address={chapter_address}")
    print(f"header {len(header.getvalue())} bytes (decompressed) -> {header_path}")
    print(f"body   {len(body.getvalue())} bytes -> {body_path}")


def main():
    parser = argparse.ArgumentParser(
        description='Extract header and body from a recorded game (or a ZIP containing one).'
    )
    parser.add_argument('rec_path', help='Path to the recorded game or a .zip archive containing one')
    parser.add_argument('--header', metavar='PATH',
                        help='Output path for the decompressed header (default: <name>.header.bin)')
    parser.add_argument('--body', metavar='PATH',
                        help='Output path for the body (default: <name>.body.bin)')
    args = parser.parse_args()
    try:
        extract(args.rec_path, args.header, args.body)
    except RecGameError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
