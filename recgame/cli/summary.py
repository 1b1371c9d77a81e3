#!/usr/bin/env python3
"""Print everything known about a recorded game as JSON."""

import argparse
import sys

from recgame.cli import load_rec_bytes, setup_logging, write_json
from recgame.summary import RecordedGame


def main():
    parser = argparse.ArgumentParser(
        description='Summarize a recorded game (or ZIP) as JSON.'
    )
    parser.add_argument('rec_path', help='Path to the recorded game or .zip archive')
    parser.add_argument('-o', '--output', metavar='PATH',
                        help='Write JSON to this file (default: stdout)')
    parser.add_argument('--indent', type=int, default=2,
                        help='JSON indentation (default: 2, use 0 for compact)')
    parser.add_argument('--encoding', default='gbk',
                        help='Text encoding for pre-HD recordings (default: gbk)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    setup_logging(args.debug)

    game = RecordedGame(load_rec_bytes(args.rec_path), encoding=args.encoding)
    try:
        result = game.output()
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    write_json(result, args.output, args.indent)


if __name__ == '__main__':
    main()
