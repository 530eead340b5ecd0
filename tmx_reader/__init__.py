"""
TMX Reader - loader for Tiled map (.tmx) and tileset (.tsx) documents

Requisitos:
    pip install numpy zstandard
"""

from .attributes import Color, Orientation
from .errors import (
    CellCountMismatch, DecompressionFailed, ExternalTilesetUnavailable,
    InvalidAttribute, InvalidTileData, MalformedDocument, MissingAttribute,
    OverlappingTilesets, SchemaError, TileDataError, TmxError,
    TruncatedTileData, UnexpectedEndOfDocument, UnresolvedTileId,
)
from .events import read_events
from .files import FileTilesetResolver, load_map
from .gid import GidResolver, LayerTile, TileFlags, pack_gid, unpack_gid
from .model import (
    Ellipse, Frame, GroupLayer, Image, ImageLayer, Map, MapObject,
    ObjectGroup, Point, Polygon, Polyline, Rectangle, Terrain, Tile,
    TileLayer, Tileset,
)
from .options import ParserOptions
from .parser import MapParser, parse_map, parse_tileset
from .properties import Property, parse_properties
from .tiledata import Encoding, decode_tile_data

__version__ = "1.0.0"
__all__ = [
    "parse_map",
    "parse_tileset",
    "load_map",
    "FileTilesetResolver",
    "MapParser",
    "ParserOptions",
    "read_events",
    "decode_tile_data",
    "Encoding",
    "unpack_gid",
    "pack_gid",
    "GidResolver",
    "LayerTile",
    "TileFlags",
    "parse_properties",
    "Property",
    "Color",
    "Orientation",
    "Map",
    "Tileset",
    "Tile",
    "Terrain",
    "Frame",
    "Image",
    "TileLayer",
    "ObjectGroup",
    "ImageLayer",
    "GroupLayer",
    "MapObject",
    "Rectangle",
    "Ellipse",
    "Point",
    "Polygon",
    "Polyline",
    "TmxError",
    "MalformedDocument",
    "UnexpectedEndOfDocument",
    "SchemaError",
    "MissingAttribute",
    "InvalidAttribute",
    "TileDataError",
    "InvalidTileData",
    "DecompressionFailed",
    "TruncatedTileData",
    "CellCountMismatch",
    "UnresolvedTileId",
    "OverlappingTilesets",
    "ExternalTilesetUnavailable",
]
