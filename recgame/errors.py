"""Errors raised (or carried as warnings) while decoding recorded games."""


class RecGameError(RuntimeError):
    """Base class for recorded game errors."""


class TruncatedFileError(RecGameError):
    """The declared header length does not fit in the file."""


class DecompressionError(RecGameError):
    """The header region is not a valid deflate stream."""


class HeaderDecodeError(RecGameError):
    """A header field could not be read.

    `field` names the count, length or stage that failed and `offset` is
    the position in the decompressed header.
    """

    def __init__(self, field, offset, reason=None):
        self.field = field
        self.offset = offset
        self.reason = reason
        message = f"could not decode {field} at header offset {offset}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PartialBodyError(RecGameError):
    """The body stream stopped making sense; what came before is kept."""

    def __init__(self, offset, reason):
        self.offset = offset
        self.reason = reason
        super().__init__(f"body truncated at offset {offset}: {reason}")


class UnknownFormatVersion(RecGameError):
    """The version string is not recognised; a close family was used instead."""

    def __init__(self, game_version, fallback):
        self.game_version = game_version
        self.fallback = fallback
        super().__init__(f"unknown version {game_version!r}, parsing as {fallback.name}")


class PlayerNotFound(RecGameError, LookupError):
    """No player matches the lookup."""
