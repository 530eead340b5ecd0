"""
Exceptions raised while loading TMX / TSX documents.

Every failure aborts the parse: there is no partial map. Each exception
keeps the values needed to diagnose the problem as attributes, so callers
can report them without re-parsing the document.

    TmxError
    ├── MalformedDocument           XML syntax, unbalanced tags
    ├── UnexpectedEndOfDocument     document ended before the map closed
    ├── SchemaError
    │   ├── MissingAttribute
    │   └── InvalidAttribute
    ├── TileDataError
    │   ├── InvalidTileData         bad CSV token / bad base64
    │   ├── DecompressionFailed
    │   ├── TruncatedTileData
    │   └── CellCountMismatch
    ├── UnresolvedTileId
    ├── OverlappingTilesets
    └── ExternalTilesetUnavailable
"""

from typing import Optional


class TmxError(Exception):
    """Base class for all loader errors."""


class MalformedDocument(TmxError):
    """The document is not well-formed XML (or not structured as expected)."""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None):
        self.message = message
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)


class UnexpectedEndOfDocument(TmxError):
    """The event stream ended (or closed an element) while ``element`` was open."""

    def __init__(self, element: Optional[str] = None, found: Optional[str] = None):
        self.element = element
        self.found = found
        if element is None:
            message = "document ended before a <map> element was parsed"
        elif found is None:
            message = f"document ended inside <{element}>"
        else:
            message = f"unexpected </{found}> inside <{element}>"
        super().__init__(message)


# =============================================================================
# SCHEMA ERRORS
# =============================================================================

class SchemaError(TmxError):
    """An element is present but its attributes violate the format."""


class MissingAttribute(SchemaError):

    def __init__(self, element: str, name: str):
        self.element = element
        self.name = name
        super().__init__(f"<{element}> is missing required attribute '{name}'")


class InvalidAttribute(SchemaError):

    def __init__(self, name: str, expected_type: str, raw_value: str,
                 element: Optional[str] = None):
        self.name = name
        self.expected_type = expected_type
        self.raw_value = raw_value
        self.element = element
        where = f"<{element}> " if element else ""
        super().__init__(
            f"{where}attribute '{name}' expected {expected_type}, got {raw_value!r}"
        )


# =============================================================================
# TILE DATA ERRORS
# =============================================================================

class TileDataError(TmxError):
    """The payload of a <data> element could not be decoded."""


class InvalidTileData(TileDataError):
    pass


class DecompressionFailed(TileDataError):

    def __init__(self, compression: str, reason: str):
        self.compression = compression
        self.reason = reason
        super().__init__(f"cannot decompress {compression!r} tile data: {reason}")


class TruncatedTileData(TileDataError):

    def __init__(self, byte_length: int):
        self.byte_length = byte_length
        super().__init__(
            f"tile data is {byte_length} bytes long, not a multiple of 4"
        )


class CellCountMismatch(TileDataError):

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} tile cells, decoded {actual}")


# =============================================================================
# RESOLUTION ERRORS
# =============================================================================

class UnresolvedTileId(TmxError):
    """No tileset owns the (flag-free) global tile id ``gid``."""

    def __init__(self, gid: int):
        self.gid = gid
        super().__init__(f"no tileset contains GID {gid}")


class OverlappingTilesets(TmxError):

    def __init__(self, first: str, second: str):
        self.first = first
        self.second = second
        super().__init__(f"GID ranges of tilesets {first!r} and {second!r} overlap")


class ExternalTilesetUnavailable(TmxError):
    """The caller-supplied loader could not produce the referenced tileset."""

    def __init__(self, reference: str, reason: Optional[str] = None):
        self.reference = reference
        self.reason = reason
        message = f"external tileset {reference!r} is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
