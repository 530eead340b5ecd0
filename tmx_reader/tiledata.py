"""
Decoding of tile layer <data> payloads.

=============================================================================
DATA ENCODINGS
=============================================================================

A tile layer stores one packed 32-bit GID per cell, row-major, starting at
the top-left corner. The <data> element selects how those numbers are
written:

1. XML (no encoding attribute, deprecated by Tiled):
       <data><tile gid="1"/><tile gid="2"/>...</data>

2. CSV:
       <data encoding="csv">
       1,2,3,
       4,5,6
       </data>

3. Base64 of little-endian uint32 values, optionally compressed:
       <data encoding="base64" compression="zlib">eJxjZGBgYAIAAA4AAw==</data>

   compression: (none) | zlib | gzip | zstd

=============================================================================
OUTPUT
=============================================================================

decode_tile_data() always returns a read-only numpy uint32 array of exactly
``expected_count`` raw GIDs. A wrong count is a hard error, the data is
never padded or truncated.
=============================================================================
"""

import base64
import binascii
import gzip
import logging
import zlib
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np
import zstandard

from .errors import (
    CellCountMismatch, DecompressionFailed, InvalidAttribute, InvalidTileData,
    TruncatedTileData,
)

logger = logging.getLogger(__name__)

MAX_RAW_GID = 0xFFFFFFFF


class Encoding(Enum):
    XML = 'xml'
    CSV = 'csv'
    BASE64 = 'base64'

    @classmethod
    def from_attribute(cls, raw: Optional[str]) -> 'Encoding':
        """Map the ``encoding`` attribute (absent means XML) to an Encoding."""
        if raw is None:
            return cls.XML
        try:
            return cls(raw)
        except ValueError:
            raise InvalidAttribute('encoding', 'csv|base64', raw, 'data') from None


def decode_tile_data(encoding: Union[Encoding, str, None],
                     compression: Optional[str],
                     payload: Union[str, Sequence[int]],
                     expected_count: int) -> np.ndarray:
    """
    Decode a layer's tile payload into raw packed GIDs.

    Parameters:
    -----------
    encoding : Encoding, str or None
        Value of the ``encoding`` attribute (None = per-cell XML)
    compression : str or None
        Value of the ``compression`` attribute; only used with base64
    payload : str or sequence of int
        The element text for csv/base64, the collected <tile gid> values for XML
    expected_count : int
        Number of cells the layer must have (map width * height)

    Returns:
    --------
    np.ndarray : read-only uint32 array of length ``expected_count``
    """
    if not isinstance(encoding, Encoding):
        encoding = Encoding.from_attribute(encoding)

    if encoding is Encoding.XML:
        gids = _from_ints(payload)
    elif encoding is Encoding.CSV:
        gids = _decode_csv(payload)
    else:
        gids = _decode_base64(payload, compression)

    if encoding is not Encoding.BASE64 and compression:
        logger.debug("Ignoring compression %r for %s tile data",
                     compression, encoding.value)

    if len(gids) != expected_count:
        raise CellCountMismatch(expected_count, len(gids))

    gids.setflags(write=False)
    return gids


# =============================================================================
# PER-ENCODING DECODERS
# =============================================================================

def _from_ints(values: Sequence[int]) -> np.ndarray:
    for value in values:
        if not 0 <= value <= MAX_RAW_GID:
            raise InvalidTileData(f"GID {value} does not fit in 32 bits")
    return np.array(values, dtype=np.uint32)


def _decode_csv(text: str) -> np.ndarray:
    # Rows end with a trailing comma, so empty tokens are simply skipped
    values = []
    for token in text.split(','):
        token = token.strip()
        if not token:
            continue
        if not (token.isascii() and token.isdigit()):
            raise InvalidTileData(f"invalid CSV tile value {token!r}")
        values.append(int(token))
    return _from_ints(values)


def _decode_base64(text: str, compression: Optional[str]) -> np.ndarray:
    # Tiled wraps the payload in newlines/indentation
    compact = ''.join(text.split())
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidTileData(f"invalid base64 tile data: {exc}") from exc

    if compression:
        raw = decompress(raw, compression)

    if len(raw) % 4:
        raise TruncatedTileData(len(raw))

    # Little-endian uint32 per cell, converted to native byte order
    return np.frombuffer(raw, dtype='<u4').astype(np.uint32)


def decompress(data: bytes, compression: str) -> bytes:
    """Undo the ``compression`` of a base64-decoded tile payload."""
    if compression == 'zlib':
        try:
            return zlib.decompress(data)
        except zlib.error as exc:
            raise DecompressionFailed(compression, str(exc)) from exc

    if compression == 'gzip':
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecompressionFailed(compression, str(exc)) from exc

    if compression == 'zstd':
        # decompressobj() copes with frames that omit the content size, but
        # does not complain about a cut-off frame: check eof ourselves
        dctx = zstandard.ZstdDecompressor().decompressobj()
        try:
            raw = dctx.decompress(data)
        except zstandard.ZstdError as exc:
            raise DecompressionFailed(compression, str(exc)) from exc
        if not dctx.eof:
            raise DecompressionFailed(compression, "incomplete frame")
        if dctx.unused_data:
            raise DecompressionFailed(compression, "trailing data after frame")
        return raw

    raise DecompressionFailed(compression, "unknown compression")
