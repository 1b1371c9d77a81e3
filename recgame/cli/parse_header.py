#!/usr/bin/env python3
"""Parse the header of a recorded game.

Input: a recording or a .zip archive containing one.
Output: parsed header data as JSON, written to -o file (or stdout).
"""

import argparse
import sys

from recgame import stream
from recgame.cli import load_rec_bytes, setup_logging, write_json
from recgame.fast import header as fast_header
from recgame.fast import version as fast_version


def main():
    parser = argparse.ArgumentParser(
        description='Parse the header of a recorded game (or ZIP).'
    )
    parser.add_argument('rec_path', help='Path to the recorded game or .zip archive')
    parser.add_argument('-o', '--output', metavar='PATH',
                        help='Write parsed JSON to this file (default: stdout)')
    parser.add_argument('--indent', type=int, default=2,
                        help='JSON indentation (default: 2, use 0 for compact)')
    parser.add_argument('--encoding', default=None,
                        help='Text encoding for pre-HD recordings (default: gbk)')
    parser.add_argument('--no-map', action='store_true',
                        help='Leave terrain tiles out of the output')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging from the header parser')
    args = parser.parse_args()
    setup_logging(args.debug)

    raw = load_rec_bytes(args.rec_path)

    try:
        data, _ = stream.split(raw)
        version = fast_version.detect(data)
        kwargs = {'encoding': args.encoding} if args.encoding else {}
        result = fast_header.parse(data, version, **kwargs)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.no_map:
        result.map.tiles = []
    write_json(result, args.output, args.indent)


if __name__ == '__main__':
    main()
