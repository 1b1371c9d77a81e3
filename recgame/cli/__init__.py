"""Helpers shared by the command line tools."""
import dataclasses
import json
import logging
import sys
import zipfile
from enum import Enum
from pathlib import Path

REC_EXTENSIONS = ('.mgz', '.mgx', '.mgl', '.aoe2record')


class _Encoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Enum):
            return obj.name
        if isinstance(obj, bytes):
            return obj.hex()
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, Exception):
            return str(obj)
        return super().default(obj)


def load_rec_bytes(path):
    """Return raw bytes of the recording, unpacking a ZIP if necessary."""
    path = Path(path)
    if not path.exists():
        print(f"Error: file not found: {path}", file=sys.stderr)
        sys.exit(1)
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            names = zf.namelist()
            rec_names = [n for n in names if n.lower().endswith(REC_EXTENSIONS)]
            if not rec_names:
                rec_names = names[:1]
            if not rec_names:
                print("Error: ZIP archive is empty", file=sys.stderr)
                sys.exit(1)
            if len(rec_names) > 1:
                print(f"Warning: multiple candidates in ZIP, using '{rec_names[0]}'", file=sys.stderr)
            return zf.read(rec_names[0])
    return path.read_bytes()


def auto_int(x):
    """Accept decimal or hex (0x...) integers."""
    return int(x, 0)


def setup_logging(debug):
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(name)s %(levelname)s %(message)s',
            stream=sys.stderr,
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def write_json(result, output=None, indent=2):
    """Write JSON to a file, or to stdout when no path is given."""
    indent = indent if indent and indent > 0 else None
    text = json.dumps(result, cls=_Encoder, indent=indent)
    if output:
        out = Path(output)
        out.write_text(text)
        print(f"Written to {out}", file=sys.stderr)
    else:
        print(text)
