"""Split recorded game files into header and body regions."""
import io
import logging
import struct
import zlib

from recgame.errors import DecompressionError, TruncatedFileError

LOGGER = logging.getLogger(__name__)
ZLIB_WBITS = -15
CHAPTER_ADDRESS_LIMIT = 100_000_000


def read_prefix(data):
    """Read the region prefix.

    Returns (header_length, chapter_address, prefix_size). The chapter
    address only exists in mgx-style files; a deflate stream never starts
    with a word this small, so that is how we tell them apart.
    """
    data.seek(0)
    raw = data.read(8)
    if len(raw) < 4:
        raise TruncatedFileError(f"file too small to be a recorded game ({len(raw)} bytes)")
    header_length, = struct.unpack_from('<I', raw)
    chapter_address = None
    if len(raw) == 8:
        check, = struct.unpack_from('<I', raw, 4)
        if check < CHAPTER_ADDRESS_LIMIT:
            chapter_address = check
    prefix_size = 4 if chapter_address is None else 8
    data.seek(prefix_size)
    return header_length, chapter_address, prefix_size


def decompress(compressed):
    """Decompress the header payload (raw deflate, no zlib framing)."""
    try:
        return zlib.decompress(compressed, wbits=ZLIB_WBITS)
    except zlib.error as e:
        raise DecompressionError(f"failed to decompress header: {e}") from e


def split(data):
    """Split a recorded game into (header, body) cursors.

    The header comes back decompressed. Accepts a seekable binary stream
    or a bytes-like object.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        data = io.BytesIO(data)
    size = data.seek(0, io.SEEK_END)
    header_length, chapter_address, prefix_size = read_prefix(data)
    LOGGER.debug("[split] size=%d header_length=%d chapter_address=%s", size, header_length, chapter_address)
    if header_length > size:
        raise TruncatedFileError(f"header_length ({header_length}) exceeds file size ({size})")
    compressed = data.read(max(header_length - prefix_size, 0))
    decompressed = decompress(compressed)
    LOGGER.debug("[split] decompressed %d -> %d bytes", len(compressed), len(decompressed))
    header = io.BytesIO(decompressed)
    data.seek(header_length)
    body = io.BytesIO(data.read())
    return header, body
