"""Decode Age of Empires II recorded games."""
from recgame.errors import (
    DecompressionError, HeaderDecodeError, PartialBodyError, PlayerNotFound,
    RecGameError, TruncatedFileError, UnknownFormatVersion
)
from recgame.summary import RecordedGame
