#!/usr/bin/env python3
"""Walk the body of a recorded game operation by operation.

Input: a recording (or .zip), or with --raw an extracted .body.bin file as
produced by recgame-extract.
Output: one JSON object per operation on stdout (JSON Lines). With
--decoded, a single JSON object with the fully decoded body instead.
"""

import argparse
import io
import json
import sys
from collections import Counter
from pathlib import Path

from recgame import fast, stream
from recgame.cli import _Encoder, load_rec_bytes, setup_logging, write_json
from recgame.errors import RecGameError
from recgame.fast import version as fast_version


def load_body(args):
    """Return (body cursor, FormatVersion or None)."""
    if args.raw:
        path = Path(args.path)
        if not path.exists():
            print(f"Error: file not found: {path}", file=sys.stderr)
            sys.exit(1)
        return io.BytesIO(path.read_bytes()), None
    header, body = stream.split(load_rec_bytes(args.path))
    return body, fast_version.detect(header)


def walk(data, end, indent=None):
    """Print every operation; returns a count per operation type."""
    counts = Counter()
    info = fast.meta(data)
    print(json.dumps({'op': 'meta', 'offset': 0, 'payload': info}, indent=indent))
    while True:
        offset = data.tell()
        try:
            op_type, payload = fast.operation(data, end)
        except EOFError:
            break
        counts[op_type.name] += 1
        record = {'op': op_type.name, 'offset': offset}
        if payload is not None:
            record['payload'] = payload
        print(json.dumps(record, cls=_Encoder, indent=indent))
    return counts


def main():
    parser = argparse.ArgumentParser(
        description='Walk the body of a recorded game (JSON Lines output).'
    )
    parser.add_argument('path', help='Recorded game, .zip archive, or extracted body with --raw')
    parser.add_argument('--raw', action='store_true', help='PATH is an extracted body file')
    parser.add_argument('--decoded', action='store_true',
                        help='Print the decoded body instead of single operations (needs a recording)')
    parser.add_argument('--indent', type=int, default=None, help='JSON indentation (default: compact)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    setup_logging(args.debug)

    try:
        data, version = load_body(args)
        if args.decoded:
            if version is None:
                parser.error('--decoded needs the full recording')
            write_json(fast.parse(data, version), indent=args.indent)
            return
        end = data.seek(0, io.SEEK_END)
        if version is not None and version.family in fast.POSTGAME_FAMILIES:
            end -= fast.POSTGAME_SIZE
        data.seek(0)
        counts = walk(data, end, args.indent)
    except (RecGameError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(', '.join(f'{name}={count}' for name, count in sorted(counts.items())), file=sys.stderr)


if __name__ == '__main__':
    main()
