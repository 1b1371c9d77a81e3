"""Detect the recorded game format version."""
import io
import logging
import struct
from dataclasses import dataclass
from typing import Optional

from recgame.errors import HeaderDecodeError, UnknownFormatVersion
from recgame.util import Version, closest_version, get_version, remaining, unpack

LOGGER = logging.getLogger(__name__)
NEW_STYLE_SAVE = -1
METADATA_FAMILIES = (Version.HD, Version.DE)


@dataclass(frozen=True)
class FormatVersion:
    """Detected format, and where the structured header starts."""
    family: Version
    game_version: str
    save_version: float
    start: int
    build: Optional[int] = None
    timestamp: Optional[int] = None
    metadata_offset: Optional[int] = None
    metadata_length: int = 0
    known: bool = True

    @property
    def label(self):
        return self.family.name

    @property
    def warning(self):
        """UnknownFormatVersion when the version string was not recognised."""
        if self.known:
            return None
        return UnknownFormatVersion(self.game_version, self.family)


def parse_save_version(header):
    """Read the save version, including the newer integer form."""
    save = unpack('<f', header)
    if save == NEW_STYLE_SAVE:
        save = unpack('<I', header)
        LOGGER.debug("[parse_save_version] new-style save int=%d", save)
        if save == 37:
            save = 37.0
        else:
            save /= (1 << 16)
    return round(save, 2)


def detect(header):
    """Detect the format version.

    Leaves the cursor at the start of the structured header.
    """
    header.seek(0)
    try:
        game = unpack('<7sx', header)
        save = parse_save_version(header)
        game_version = game.decode('ascii', errors='replace').rstrip('\x00 ')
        family = get_version(game_version, save)
        known = family is not None
        if not known:
            family = closest_version(game_version)
            LOGGER.warning("unknown game version %r (save %.2f), parsing as %s", game_version, save, family.name)
        LOGGER.debug("[detect] game_version=%s save=%.2f family=%s", game_version, save, family)
        build = timestamp = None
        if family is Version.DE:
            if save >= 25.22:
                build = unpack('<I', header)
            if save >= 26.16:
                timestamp = unpack('<I', header)
            LOGGER.debug("[detect] build=%s timestamp=%s pos=%d", build, timestamp, header.tell())
        metadata_offset = None
        metadata_length = 0
        if family in METADATA_FAMILIES:
            metadata_length = unpack('<I', header)
            metadata_offset = header.tell()
            if metadata_length > remaining(header):
                raise HeaderDecodeError(
                    'metadata_length', metadata_offset - 4,
                    f"block of {metadata_length} bytes, {remaining(header)} left"
                )
            header.seek(metadata_length, io.SEEK_CUR)
            LOGGER.debug("[detect] skipped %d bytes of lobby metadata pos=%d", metadata_length, header.tell())
    except struct.error as e:
        raise HeaderDecodeError('version', header.tell(), str(e)) from e
    return FormatVersion(
        family=family,
        game_version=game_version,
        save_version=save,
        start=header.tell(),
        build=build,
        timestamp=timestamp,
        metadata_offset=metadata_offset,
        metadata_length=metadata_length,
        known=known
    )
