"""
In-memory map model.

All classes are frozen dataclasses built once by the parser. Layer kinds
and object shapes are separate classes joined in Unions (tagged variants):
each carries only its own fields, and isinstance() tells them apart.

    Map
    ├── tilesets: Tileset, ...          ordered as declared
    │   └── tiles: {local id: Tile}     per-tile overrides only
    └── layers: Layer, ...              render order = sequence order
        ├── TileLayer    tiles: LayerTile | None per cell, row-major
        ├── ObjectGroup  objects: MapObject, ...
        ├── ImageLayer   image
        └── GroupLayer   layers: Layer, ...  (nested)
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import numpy as np

from .attributes import Color, Orientation
from .errors import UnresolvedTileId
from .gid import NO_FLAGS, GidResolver, LayerTile, TileFlags
from .properties import Property

Properties = Mapping[str, Property]
Point2D = Tuple[float, float]


# =============================================================================
# TILESETS
# =============================================================================

@dataclass(frozen=True)
class Image:
    """Image reference; ``source`` is relative to the document declaring it."""
    source: str
    width: Optional[int] = None
    height: Optional[int] = None
    trans: Optional[Color] = None


@dataclass(frozen=True)
class Frame:
    """One animation step: show ``tile_id`` for ``duration`` milliseconds."""
    tile_id: int
    duration: int


@dataclass(frozen=True)
class Terrain:
    name: str
    tile: int
    properties: Properties = field(default_factory=dict)


@dataclass(frozen=True)
class Tile:
    """
    Metadata for one tile of a tileset.

    Only tiles with something special (properties, their own image in a
    collection tileset, collision shapes, animation, terrain) are listed.
    ``terrain`` and ``animation`` are kept as read, never interpreted.
    """
    id: int
    type: str = ""
    probability: float = 1.0
    properties: Properties = field(default_factory=dict)
    image: Optional[Image] = None
    object_group: Optional['ObjectGroup'] = None
    animation: Tuple[Frame, ...] = ()
    terrain: Optional[str] = None


@dataclass(frozen=True)
class Tileset:
    """
    A set of tiles owning GIDs [first_gid, first_gid + tile_count).

    ``source`` is the external reference (TSX path) when the tileset was
    not inlined in the map.
    """
    first_gid: int
    name: str
    tile_width: int
    tile_height: int
    tile_count: int = 0
    columns: int = 0
    spacing: int = 0
    margin: int = 0
    image: Optional[Image] = None
    tiles: Mapping[int, Tile] = field(default_factory=dict)
    properties: Properties = field(default_factory=dict)
    source: Optional[str] = None
    tile_offset: Point2D = (0.0, 0.0)
    terrain_types: Tuple[Terrain, ...] = ()

    @property
    def last_gid(self) -> int:
        return self.first_gid + self.tile_count - 1

    def contains_gid(self, gid: int) -> bool:
        return self.first_gid <= gid < self.first_gid + self.tile_count

    def get_tile(self, tile_id: int) -> Optional[Tile]:
        return self.tiles.get(tile_id)


# =============================================================================
# OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Rectangle:
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Ellipse:
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Point:
    pass


@dataclass(frozen=True)
class Polygon:
    points: Tuple[Point2D, ...]


@dataclass(frozen=True)
class Polyline:
    points: Tuple[Point2D, ...]


Shape = Union[Rectangle, Ellipse, Point, Polygon, Polyline]


@dataclass(frozen=True)
class MapObject:
    """
    Object placed in an object group.

    Position and size are in pixels; polygon/polyline points are relative to
    (x, y). Tile objects have ``gid`` set (flags already split off).
    """
    id: int
    name: str = ""
    type: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0
    gid: Optional[int] = None
    flags: TileFlags = NO_FLAGS
    visible: bool = True
    shape: Shape = field(default_factory=Rectangle)
    properties: Properties = field(default_factory=dict)


# =============================================================================
# LAYERS
# =============================================================================

@dataclass(frozen=True)
class TileLayer:
    """
    Grid of tiles, ``width * height`` cells in row-major order.

    ``tiles`` holds the resolved references (None = empty cell) and ``gids``
    the raw packed values as a read-only uint32 array.
    """
    name: str
    width: int
    height: int
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    parallax_x: float = 1.0
    parallax_y: float = 1.0
    tint_color: Optional[Color] = None
    properties: Properties = field(default_factory=dict)
    tiles: Tuple[Optional[LayerTile], ...] = ()
    gids: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint32),
                             compare=False, repr=False)

    def get_tile(self, x: int, y: int) -> Optional[LayerTile]:
        """Tile at column x, row y; None when empty or out of bounds."""
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.tiles[y * self.width + x]
        return None

    def as_array(self) -> np.ndarray:
        """Raw packed GIDs shaped (height, width)."""
        return self.gids.reshape(self.height, self.width)


@dataclass(frozen=True)
class ObjectGroup:
    name: str = ""
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    parallax_x: float = 1.0
    parallax_y: float = 1.0
    tint_color: Optional[Color] = None
    properties: Properties = field(default_factory=dict)
    color: Optional[Color] = None
    draw_order: str = "topdown"
    objects: Tuple[MapObject, ...] = ()


@dataclass(frozen=True)
class ImageLayer:
    name: str = ""
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    parallax_x: float = 1.0
    parallax_y: float = 1.0
    tint_color: Optional[Color] = None
    properties: Properties = field(default_factory=dict)
    image: Optional[Image] = None
    repeat_x: bool = False
    repeat_y: bool = False


@dataclass(frozen=True)
class GroupLayer:
    """Folder of layers; may contain further groups."""
    name: str = ""
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    parallax_x: float = 1.0
    parallax_y: float = 1.0
    tint_color: Optional[Color] = None
    properties: Properties = field(default_factory=dict)
    layers: Tuple['Layer', ...] = ()


Layer = Union[TileLayer, ObjectGroup, ImageLayer, GroupLayer]


# =============================================================================
# MAP
# =============================================================================

@dataclass(frozen=True)
class Map:
    """
    A parsed TMX map.

    Usage:
        tiled_map = parse_map(data)
        ground = tiled_map.get_layer_by_name("Ground")
        cell = ground.get_tile(5, 10)
        if cell is not None:
            tileset = tiled_map.tilesets[cell.tileset_index]
    """
    version: str
    orientation: Orientation
    width: int
    height: int
    tile_width: int
    tile_height: int
    tilesets: Tuple[Tileset, ...] = ()
    layers: Tuple[Layer, ...] = ()
    properties: Properties = field(default_factory=dict)
    background_color: Optional[Color] = None
    tiled_version: str = ""
    render_order: str = "right-down"
    infinite: bool = False
    next_object_id: Optional[int] = None
    hex_side_length: Optional[int] = None
    stagger_axis: Optional[str] = None
    stagger_index: Optional[str] = None

    @cached_property
    def _resolver(self) -> GidResolver:
        return GidResolver(self.tilesets)

    # -------------------------------------------------------------------------
    # TILESET LOOKUP
    # -------------------------------------------------------------------------

    def get_tileset_by_gid(self, gid: int) -> Optional[Tileset]:
        """Tileset owning ``gid`` (flag bits are ignored), or None."""
        tile = self.resolve_gid(gid)
        if tile is None:
            return None
        return self.tilesets[tile.tileset_index]

    def resolve_gid(self, raw: int) -> Optional[LayerTile]:
        """Resolve a packed GID; None for 0 or a GID no tileset owns."""
        try:
            return self._resolver.resolve(raw)
        except UnresolvedTileId:
            return None

    def get_tile(self, layer_tile: LayerTile) -> Optional[Tile]:
        """Per-tile metadata for a resolved reference, if the tileset has any."""
        return self.tilesets[layer_tile.tileset_index].get_tile(layer_tile.tile_id)

    def tile_properties(self, layer: TileLayer, x: int, y: int) -> Properties:
        """Custom properties of the tile drawn at (x, y) in ``layer``."""
        cell = layer.get_tile(x, y)
        if cell is None:
            return {}
        tile = self.get_tile(cell)
        return tile.properties if tile is not None else {}

    def object_tile(self, obj: MapObject) -> Optional[LayerTile]:
        # gid="0" is a tile object without tile
        if not obj.gid:
            return None
        tileset_index, tile_id = self._resolver.locate(obj.gid)
        return LayerTile(tileset_index, tile_id, obj.flags)

    # -------------------------------------------------------------------------
    # LAYER LOOKUP
    # -------------------------------------------------------------------------

    def iter_layers(self) -> Iterator[Layer]:
        """Every non-group layer, depth first, in render order."""
        def flatten(layers):
            for layer in layers:
                if isinstance(layer, GroupLayer):
                    yield from flatten(layer.layers)
                else:
                    yield layer

        return flatten(self.layers)

    def get_layer_by_name(self, name: str) -> Optional[Layer]:
        """First layer called ``name``, searching inside groups too."""
        def search(layers):
            for layer in layers:
                if layer.name == name:
                    return layer
                if isinstance(layer, GroupLayer):
                    found = search(layer.layers)
                    if found is not None:
                        return found
            return None

        return search(self.layers)

    @property
    def tile_layers(self) -> List[TileLayer]:
        return [layer for layer in self.iter_layers() if isinstance(layer, TileLayer)]

    @property
    def object_groups(self) -> List[ObjectGroup]:
        return [layer for layer in self.iter_layers() if isinstance(layer, ObjectGroup)]

    @property
    def image_layers(self) -> List[ImageLayer]:
        return [layer for layer in self.iter_layers() if isinstance(layer, ImageLayer)]

    def tilesets_by_name(self) -> Dict[str, Tileset]:
        return {tileset.name: tileset for tileset in self.tilesets}
