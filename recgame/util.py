"""Shared helpers for recorded game parsing."""
import io
import re
import struct
from enum import Enum

DEFAULT_ENCODING = 'gbk'


class Version(Enum):
    """Recorded game format family."""
    AOK = 1
    AOC = 2
    AOFE = 3
    USERPATCH12 = 4
    USERPATCH13 = 5
    USERPATCH14 = 6
    USERPATCH15 = 7
    MCP = 8
    HD = 9
    DE = 10


UTF8_FAMILIES = (Version.HD, Version.DE)
GAME_VERSIONS = {
    'VER 9.3': Version.AOK,
    'TRL 9.3': Version.AOK,
    'VER 9.4': Version.AOC,
    'VER 9.5': Version.AOFE,
    'VER 9.8': Version.USERPATCH12,
    'VER 9.9': Version.USERPATCH13,
    'VER 9.A': Version.USERPATCH14,
    'VER 9.B': Version.USERPATCH14,
    'VER 9.C': Version.USERPATCH14,
    'VER 9.D': Version.USERPATCH14,
    'VER 9.E': Version.USERPATCH15,
    'VER 9.F': Version.USERPATCH15,
    'MCP 9.F': Version.MCP,
}
VERSION_NUMBER = re.compile(r'(\d+)\.([0-9A-Za-z])')


def get_version(game_version, save_version):
    """Map a printed game version and save version to a format family.

    Returns None when the printed version is not one we know.
    """
    if game_version == 'VER 9.4':
        if save_version >= 12.97:
            return Version.DE
        if save_version >= 12.36:
            return Version.HD
    return GAME_VERSIONS.get(game_version)


def version_number(game_version):
    """Rank a printed version, e.g. 'VER 9.C' -> 912."""
    match = VERSION_NUMBER.search(game_version)
    if not match:
        return None
    return int(match.group(1)) * 100 + int(match.group(2), 36)


def closest_version(game_version):
    """Pick the known family closest to an unrecognised version string.

    Ties go to the older family. Strings without a version number are
    treated as plain AOC.
    """
    number = version_number(game_version)
    if number is None:
        return Version.AOC
    candidates = []
    for known, family in GAME_VERSIONS.items():
        if not known.startswith('VER'):
            continue
        rank = version_number(known)
        candidates.append((abs(rank - number), rank, family))
    return min(candidates, key=lambda c: (c[0], c[1]))[2]


def unpack(fmt, data, shorten=True):
    """Read and unpack a struct format from a stream."""
    output = struct.unpack(fmt, data.read(struct.calcsize(fmt)))
    if len(output) == 1 and shorten:
        return output[0]
    return output


def remaining(data):
    """Number of bytes left in a seekable stream."""
    cur = data.tell()
    end = data.seek(0, io.SEEK_END)
    data.seek(cur)
    return end - cur


def transcode(raw, encoding=DEFAULT_ENCODING):
    """Decode a null-terminated legacy string, replacing bad bytes."""
    return raw.split(b'\x00', 1)[0].decode(encoding, errors='replace')


def family_encoding(family, encoding=DEFAULT_ENCODING):
    """HD and DE store text as UTF-8; older versions use a legacy code page."""
    if family in UTF8_FAMILIES:
        return 'utf-8'
    return encoding


def as_hex(data):
    """Space separated hex for log lines."""
    return ' '.join(f'{b:02x}' for b in data)


def hexdump(data, base_offset=0, mark=None):
    """Return a hex dump string, optionally marking a specific offset with >>."""
    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i:i+16]
        offset = base_offset + i
        marker = '>>' if mark is not None and offset <= mark < offset + 16 else '  '
        hex_part = ' '.join(f'{b:02x}' for b in chunk)
        asc_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in chunk)
        lines.append(f"{marker} {offset:08x}  {hex_part:<47}  {asc_part}")
    return '\n'.join(lines)


def format_time(time, ms_fix=1000):
    """Format a game time as HH:MM:SS.

    Zero usually means "did not happen" in recorded games, so it formats as '-'.
    """
    if time <= 0:
        return '-'
    seconds = int(time / ms_fix)
    return '%02d:%02d:%02d' % (seconds // 3600, (seconds // 60) % 60, seconds % 60)
