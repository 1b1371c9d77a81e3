#!/usr/bin/env python3
"""Hex-dump byte ranges from a recorded game's header or body.

The header is decompressed before dumping. Offsets are relative to the
section. With --around, the dump is centred on an offset and that line is
flagged, which is handy next to a HeaderDecodeError or PartialBodyError.

Examples:
    recgame-dump rec.mgx header --offset 600 --length 256
    recgame-dump rec.zip body --offset 0x2e0
    recgame-dump rec.mgx header --around 0x1a2b
"""

import argparse
import sys

from recgame import stream
from recgame.cli import auto_int, load_rec_bytes
from recgame.errors import RecGameError
from recgame.util import hexdump

DEFAULT_LENGTH = 256


def window(total, offset, length, around):
    """Clamp the requested range to the section; returns (offset, length)."""
    if around is not None:
        offset = max(0, around - length // 2)
    if offset >= total:
        raise ValueError(f"offset {offset} (0x{offset:x}) >= section size {total} (0x{total:x})")
    return offset, min(length, total - offset)


def main():
    parser = argparse.ArgumentParser(
        description='Hex-dump byte ranges from a recorded game header (decompressed) or body.'
    )
    parser.add_argument('rec_path', help='Path to the recorded game or .zip archive')
    parser.add_argument('section', choices=['header', 'body'], help='Which section to dump')
    parser.add_argument('--offset', '-s', type=auto_int, default=0,
                        help='Start offset in bytes (decimal or 0x hex, default: 0)')
    parser.add_argument('--length', '-n', type=auto_int, default=DEFAULT_LENGTH,
                        help=f'Number of bytes to dump (default: {DEFAULT_LENGTH})')
    parser.add_argument('--around', '-a', type=auto_int, default=None,
                        help='Centre the dump on this offset and flag it with >>')
    args = parser.parse_args()

    try:
        header, body = stream.split(load_rec_bytes(args.rec_path))
        data = (header if args.section == 'header' else body).getvalue()
        offset, length = window(len(data), args.offset, args.length, args.around)
    except (RecGameError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[{args.section}] offset=0x{offset:x} length=0x{length:x} total=0x{len(data):x}")
    print(hexdump(data[offset:offset + length], base_offset=offset, mark=args.around))


if __name__ == '__main__':
    main()
