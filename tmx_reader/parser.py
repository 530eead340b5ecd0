"""
TMX map assembler.

=============================================================================
HOW A MAP IS READ
=============================================================================

The document is consumed once, front to back, as a stream of events from
events.read_events(). MapParser walks that stream with a small state
machine:

    AWAITING_MAP_ROOT ──<map>──> PARSING_MAP_ATTRIBUTES
                                        │
                                        v
                                 PARSING_CHILDREN ──end of document──> DONE
                                   │
                                   ├── <tileset>     inline body, or source="x.tsx"
                                   ├── <layer>       <data> -> tiledata.decode_tile_data
                                   ├── <objectgroup> <object>...
                                   ├── <imagelayer>  <image>
                                   ├── <group>       nested layers (recursive)
                                   └── <properties>

Every element is handled by one method that consumes exactly its own
events, from the start tag to the matching end tag, so nesting is handled
by plain recursion.

Tile layers are decoded while reading but RESOLVED only after </map>: the
GID -> tileset lookup needs the complete tileset list.

=============================================================================
EXTERNAL TILESETS
=============================================================================

    <tileset firstgid="1" source="terrain.tsx"/>

The parser never opens files. It hands the reference string to the
``resolve_external_tileset`` callback supplied by the caller and uses the
Tileset it returns (with the map's firstgid). parse_tileset() parses such a
TSX document, see files.FileTilesetResolver for a filesystem version.
=============================================================================
"""

import logging
from dataclasses import replace
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .attributes import Attributes, Orientation
from .errors import (
    ExternalTilesetUnavailable, InvalidAttribute, MalformedDocument,
    UnexpectedEndOfDocument,
)
from .events import (
    EndDocument, EndElement, Event, Source, StartElement, Text, iter_children,
    iter_content, read_events, skip_element,
)
from .gid import NO_FLAGS, GidResolver, unpack_gid
from .model import (
    Ellipse, Frame, GroupLayer, Image, ImageLayer, Layer, Map, MapObject,
    ObjectGroup, Point, Polygon, Polyline, Rectangle, Terrain, Tile, TileLayer,
    Tileset,
)
from .options import DEFAULT_OPTIONS, ParserOptions
from .properties import Property, parse_properties
from .tiledata import Encoding, decode_tile_data

logger = logging.getLogger(__name__)

ResolveExternalTileset = Callable[[str], Tileset]

LAYER_ELEMENTS = ('layer', 'objectgroup', 'imagelayer', 'group')

_NO_PROPERTIES = MappingProxyType({})


class ParserState(Enum):
    AWAITING_MAP_ROOT = 'awaiting map root'
    PARSING_MAP_ATTRIBUTES = 'parsing map attributes'
    PARSING_CHILDREN = 'parsing children'
    DONE = 'done'


class MapParser:
    """
    Builds a Map from one TMX document.

    Parameters:
    -----------
    resolve_external_tileset : callable, optional
        ``f(reference) -> Tileset`` used for <tileset source="...">.
        Without it, any external tileset is ExternalTilesetUnavailable.
    options : ParserOptions, optional

    A parser instance holds no state between documents beyond its
    configuration; ``state`` only reports where the current parse stands.
    """

    def __init__(self, resolve_external_tileset: Optional[ResolveExternalTileset] = None,
                 options: Optional[ParserOptions] = None):
        self.resolve_external_tileset = resolve_external_tileset
        self.options = options or DEFAULT_OPTIONS
        self.state = ParserState.AWAITING_MAP_ROOT

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def parse(self, source: Source) -> Map:
        """Parse a complete map document (bytes, str or stream)."""
        return self.parse_events(read_events(source, self.options.chunk_size))

    def parse_events(self, events: Iterable[Event]) -> Map:
        """Parse a map from an already-produced event stream."""
        events = iter(events)
        self.state = ParserState.AWAITING_MAP_ROOT
        tiled_map = None

        for event in events:
            if isinstance(event, StartElement):
                if tiled_map is not None:
                    raise MalformedDocument(f"unexpected <{event.name}> after </map>")
                if event.name == 'map':
                    tiled_map = self._parse_map(events, event)
                else:
                    self._skip_unknown(events, event, 'document')
            elif isinstance(event, EndElement):
                raise UnexpectedEndOfDocument('map' if tiled_map is None else None,
                                              event.name)
            elif isinstance(event, EndDocument):
                if tiled_map is None:
                    raise UnexpectedEndOfDocument()
                self.state = ParserState.DONE
                return tiled_map

        raise UnexpectedEndOfDocument('map' if tiled_map is None else None)

    def parse_tileset(self, source: Source, first_gid: int = 1) -> Tileset:
        """
        Parse a standalone tileset (TSX) document.

        External tilesets carry no firstgid, that lives in the referencing
        map: pass it as ``first_gid`` (1 is fine when GIDs do not matter).
        """
        events = read_events(source, self.options.chunk_size)
        tileset = None
        for event in events:
            if isinstance(event, StartElement):
                if tileset is not None or event.name != 'tileset':
                    raise MalformedDocument(
                        f"expected a <tileset> root element, found <{event.name}>")
                attrs = Attributes('tileset', event.attributes)
                tileset = self._parse_tileset_body(events, attrs, first_gid)
            elif isinstance(event, EndDocument):
                if tileset is None:
                    raise UnexpectedEndOfDocument('tileset')
                return tileset
        raise UnexpectedEndOfDocument('tileset')

    # =========================================================================
    # MAP
    # =========================================================================

    def _parse_map(self, events: Iterator[Event], start: StartElement) -> Map:
        self.state = ParserState.PARSING_MAP_ATTRIBUTES
        attrs = Attributes('map', start.attributes)

        width = attrs.required('width', 'uint')
        height = attrs.required('height', 'uint')
        infinite = attrs.optional('infinite', 'bool', False)
        if infinite:
            # Infinite maps store <chunk>s of varying position and size
            raise InvalidAttribute('infinite', 'finite map (0)', attrs.get('infinite'), 'map')

        header = dict(
            version=attrs.required('version'),
            orientation=attrs.enum('orientation', Orientation),
            width=width,
            height=height,
            tile_width=attrs.required('tilewidth', 'uint'),
            tile_height=attrs.required('tileheight', 'uint'),
            background_color=attrs.optional('backgroundcolor', 'color'),
            tiled_version=attrs.optional('tiledversion', default=''),
            render_order=attrs.optional('renderorder', default='right-down'),
            infinite=infinite,
            next_object_id=attrs.optional('nextobjectid', 'uint'),
            hex_side_length=attrs.optional('hexsidelength', 'int'),
            stagger_axis=attrs.optional('staggeraxis'),
            stagger_index=attrs.optional('staggerindex'),
        )

        self.state = ParserState.PARSING_CHILDREN
        tilesets: List[Tileset] = []
        layers: List[Layer] = []
        properties = _NO_PROPERTIES

        for child in iter_children(events, 'map'):
            if child.name == 'tileset':
                tilesets.append(self._parse_map_tileset(events, child))
            elif child.name in LAYER_ELEMENTS:
                layers.append(self._parse_layer(events, child, width, height))
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                self._skip_unknown(events, child, 'map')

        # ---------------------------------------------------------------------
        # GID RESOLUTION (needs every tileset)
        # ---------------------------------------------------------------------
        resolver = GidResolver(tilesets)
        layers = [self._resolve_layer(layer, resolver) for layer in layers]

        tiled_map = Map(tilesets=tuple(tilesets), layers=tuple(layers),
                        properties=properties, **header)
        logger.info("Parsed %dx%d %s map: %d tilesets, %d layers",
                    width, height, tiled_map.orientation.value,
                    len(tilesets), len(layers))
        return tiled_map

    def _resolve_layer(self, layer: Layer, resolver: GidResolver) -> Layer:
        if isinstance(layer, TileLayer):
            return replace(layer, tiles=resolver.resolve_all(layer.gids))
        if isinstance(layer, GroupLayer):
            return replace(layer, layers=tuple(
                self._resolve_layer(child, resolver) for child in layer.layers))
        if isinstance(layer, ObjectGroup):
            for obj in layer.objects:
                if obj.gid:
                    resolver.locate(obj.gid)
        return layer

    # =========================================================================
    # TILESETS
    # =========================================================================

    def _parse_map_tileset(self, events: Iterator[Event], start: StartElement) -> Tileset:
        attrs = Attributes('tileset', start.attributes)
        first_gid = attrs.required('firstgid', 'uint')
        if first_gid < 1:
            raise InvalidAttribute('firstgid', 'integer >= 1', attrs.get('firstgid'), 'tileset')

        reference = attrs.get('source')
        if reference is None:
            return self._parse_tileset_body(events, attrs, first_gid)

        # A reference has no body worth reading
        skip_element(events, 'tileset')
        tileset = self._load_external_tileset(reference)
        logger.debug("Loaded external tileset %r (firstgid=%d)", reference, first_gid)
        return replace(tileset, first_gid=first_gid, source=reference)

    def _load_external_tileset(self, reference: str) -> Tileset:
        if self.resolve_external_tileset is None:
            raise ExternalTilesetUnavailable(reference, "no external tileset loader supplied")
        try:
            tileset = self.resolve_external_tileset(reference)
        except ExternalTilesetUnavailable:
            raise
        except Exception as exc:
            raise ExternalTilesetUnavailable(reference, str(exc)) from exc
        if tileset is None:
            raise ExternalTilesetUnavailable(reference, "loader returned no tileset")
        return tileset

    def _parse_tileset_body(self, events: Iterator[Event], attrs: Attributes,
                            first_gid: int) -> Tileset:
        """Parse the attributes and children of an open <tileset>."""
        name = attrs.optional('name', default='')
        tile_width = attrs.required('tilewidth', 'uint')
        tile_height = attrs.required('tileheight', 'uint')
        spacing = attrs.optional('spacing', 'uint', 0)
        margin = attrs.optional('margin', 'uint', 0)
        tile_count = attrs.optional('tilecount', 'uint')
        columns = attrs.optional('columns', 'uint')

        image = None
        tiles: Dict[int, Tile] = {}
        properties = _NO_PROPERTIES
        tile_offset = (0.0, 0.0)
        terrain_types: Tuple[Terrain, ...] = ()

        for child in iter_children(events, 'tileset'):
            if child.name == 'image':
                image = self._parse_image(events, child)
            elif child.name == 'tile':
                tile = self._parse_tile(events, child)
                tiles[tile.id] = tile
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            elif child.name == 'tileoffset':
                offset = Attributes('tileoffset', child.attributes)
                tile_offset = (offset.optional('x', 'float', 0.0),
                               offset.optional('y', 'float', 0.0))
                skip_element(events, 'tileoffset')
            elif child.name == 'terraintypes':
                terrain_types = self._parse_terrain_types(events)
            else:
                self._skip_unknown(events, child, 'tileset')

        # ---------------------------------------------------------------------
        # TILE COUNT
        # ---------------------------------------------------------------------
        # Old files omit tilecount/columns: derive them from the image grid
        #     columns = (image width - 2 * margin + spacing) // (tile width + spacing)
        grid_columns = grid_rows = None
        if image is not None and image.width and image.height and tile_width and tile_height:
            grid_columns = (image.width - 2 * margin + spacing) // (tile_width + spacing)
            grid_rows = (image.height - 2 * margin + spacing) // (tile_height + spacing)
        if columns is None:
            columns = grid_columns or 0
        if tile_count is None:
            if grid_columns is not None:
                tile_count = grid_columns * grid_rows
            elif tiles:
                tile_count = max(tiles) + 1
            else:
                tile_count = 0

        logger.debug("Parsed tileset %r: firstgid=%d, %d tiles", name, first_gid, tile_count)
        return Tileset(
            first_gid=first_gid,
            name=name,
            tile_width=tile_width,
            tile_height=tile_height,
            tile_count=tile_count,
            columns=columns,
            spacing=spacing,
            margin=margin,
            image=image,
            tiles=MappingProxyType(tiles),
            properties=properties,
            tile_offset=tile_offset,
            terrain_types=terrain_types,
        )

    def _parse_tile(self, events: Iterator[Event], start: StartElement) -> Tile:
        attrs = Attributes('tile', start.attributes)
        tile_id = attrs.required('id', 'uint')
        # Tiled 1.9 renamed 'type' to 'class'
        tile_type = attrs.optional('type') or attrs.optional('class') or ''

        properties = _NO_PROPERTIES
        image = None
        object_group = None
        animation: Tuple[Frame, ...] = ()
        for child in iter_children(events, 'tile'):
            if child.name == 'properties':
                properties = self._parse_properties(events)
            elif child.name == 'image':
                image = self._parse_image(events, child)
            elif child.name == 'objectgroup':
                object_group = self._parse_object_group(events, child)
            elif child.name == 'animation':
                animation = self._parse_animation(events)
            else:
                self._skip_unknown(events, child, 'tile')

        return Tile(
            id=tile_id,
            type=tile_type,
            probability=attrs.optional('probability', 'float', 1.0),
            properties=properties,
            image=image,
            object_group=object_group,
            animation=animation,
            terrain=attrs.get('terrain'),
        )

    def _parse_animation(self, events: Iterator[Event]) -> Tuple[Frame, ...]:
        frames = []
        for child in iter_children(events, 'animation'):
            if child.name == 'frame':
                attrs = Attributes('frame', child.attributes)
                frames.append(Frame(attrs.required('tileid', 'uint'),
                                    attrs.required('duration', 'uint')))
                skip_element(events, 'frame')
            else:
                self._skip_unknown(events, child, 'animation')
        return tuple(frames)

    def _parse_terrain_types(self, events: Iterator[Event]) -> Tuple[Terrain, ...]:
        terrains = []
        for child in iter_children(events, 'terraintypes'):
            if child.name != 'terrain':
                self._skip_unknown(events, child, 'terraintypes')
                continue
            attrs = Attributes('terrain', child.attributes)
            properties = _NO_PROPERTIES
            for item in iter_children(events, 'terrain'):
                if item.name == 'properties':
                    properties = self._parse_properties(events)
                else:
                    self._skip_unknown(events, item, 'terrain')
            terrains.append(Terrain(attrs.optional('name', default=''),
                                    attrs.optional('tile', 'int', -1),
                                    properties))
        return tuple(terrains)

    def _parse_image(self, events: Iterator[Event], start: StartElement) -> Image:
        attrs = Attributes('image', start.attributes)
        # Embedded <data> images are not supported; skip the body
        skip_element(events, 'image')
        return Image(
            source=attrs.optional('source', default=''),
            width=attrs.optional('width', 'uint'),
            height=attrs.optional('height', 'uint'),
            trans=attrs.optional('trans', 'color'),
        )

    # =========================================================================
    # LAYERS
    # =========================================================================

    def _parse_layer(self, events: Iterator[Event], start: StartElement,
                     map_width: int, map_height: int) -> Layer:
        """Single point where layer variants are constructed."""
        if start.name == 'layer':
            layer = self._parse_tile_layer(events, start, map_width, map_height)
        elif start.name == 'objectgroup':
            layer = self._parse_object_group(events, start)
        elif start.name == 'imagelayer':
            layer = self._parse_image_layer(events, start)
        else:
            layer = self._parse_group(events, start, map_width, map_height)
        logger.debug("Parsed <%s> %r", start.name, layer.name)
        return layer

    @staticmethod
    def _layer_fields(attrs: Attributes) -> dict:
        """Attributes shared by every layer kind."""
        return dict(
            name=attrs.optional('name', default=''),
            id=attrs.optional('id', 'uint', 0),
            visible=attrs.optional('visible', 'bool', True),
            opacity=attrs.optional('opacity', 'fraction', 1.0),
            offset_x=attrs.optional('offsetx', 'float', 0.0),
            offset_y=attrs.optional('offsety', 'float', 0.0),
            parallax_x=attrs.optional('parallaxx', 'float', 1.0),
            parallax_y=attrs.optional('parallaxy', 'float', 1.0),
            tint_color=attrs.optional('tintcolor', 'color'),
        )

    def _parse_tile_layer(self, events: Iterator[Event], start: StartElement,
                          map_width: int, map_height: int) -> TileLayer:
        attrs = Attributes('layer', start.attributes)
        fields = self._layer_fields(attrs)

        gids = None
        properties = _NO_PROPERTIES
        for child in iter_children(events, 'layer'):
            if child.name == 'data':
                gids = self._parse_data(events, child, map_width * map_height)
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                self._skip_unknown(events, child, 'layer')

        if gids is None:
            raise MalformedDocument(f"<layer> {fields['name']!r} has no <data>")

        # Cells are filled in once all tilesets are known
        return TileLayer(width=map_width, height=map_height,
                         properties=properties, gids=gids, **fields)

    def _parse_data(self, events: Iterator[Event], start: StartElement,
                    expected_count: int):
        attrs = Attributes('data', start.attributes)
        encoding = Encoding.from_attribute(attrs.get('encoding'))
        compression = attrs.get('compression')

        if encoding is Encoding.XML:
            # One <tile gid="..."/> per cell, empty cells may omit gid
            cells = []
            for item in iter_children(events, 'data'):
                if item.name == 'tile':
                    cells.append(Attributes('tile', item.attributes).optional('gid', 'uint', 0))
                    skip_element(events, 'tile')
                else:
                    self._skip_unknown(events, item, 'data')
            return decode_tile_data(encoding, compression, cells, expected_count)

        parts = []
        for item in iter_content(events, 'data'):
            if isinstance(item, Text):
                parts.append(item.content)
            else:
                self._skip_unknown(events, item, 'data')
        return decode_tile_data(encoding, compression, ''.join(parts), expected_count)

    def _parse_object_group(self, events: Iterator[Event], start: StartElement) -> ObjectGroup:
        attrs = Attributes('objectgroup', start.attributes)
        fields = self._layer_fields(attrs)

        objects = []
        properties = _NO_PROPERTIES
        for child in iter_children(events, 'objectgroup'):
            if child.name == 'object':
                objects.append(self._parse_object(events, child))
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                self._skip_unknown(events, child, 'objectgroup')

        return ObjectGroup(
            properties=properties,
            color=attrs.optional('color', 'color'),
            draw_order=attrs.optional('draworder', default='topdown'),
            objects=tuple(objects),
            **fields,
        )

    def _parse_image_layer(self, events: Iterator[Event], start: StartElement) -> ImageLayer:
        attrs = Attributes('imagelayer', start.attributes)
        fields = self._layer_fields(attrs)

        image = None
        properties = _NO_PROPERTIES
        for child in iter_children(events, 'imagelayer'):
            if child.name == 'image':
                image = self._parse_image(events, child)
                # <image source=""> is how Tiled saves an image layer without image
                if not image.source:
                    image = None
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                self._skip_unknown(events, child, 'imagelayer')

        return ImageLayer(
            properties=properties,
            image=image,
            repeat_x=attrs.optional('repeatx', 'bool', False),
            repeat_y=attrs.optional('repeaty', 'bool', False),
            **fields,
        )

    def _parse_group(self, events: Iterator[Event], start: StartElement,
                     map_width: int, map_height: int) -> GroupLayer:
        attrs = Attributes('group', start.attributes)
        fields = self._layer_fields(attrs)

        layers = []
        properties = _NO_PROPERTIES
        for child in iter_children(events, 'group'):
            if child.name in LAYER_ELEMENTS:
                layers.append(self._parse_layer(events, child, map_width, map_height))
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                self._skip_unknown(events, child, 'group')

        return GroupLayer(properties=properties, layers=tuple(layers), **fields)

    # =========================================================================
    # OBJECTS
    # =========================================================================

    def _parse_object(self, events: Iterator[Event], start: StartElement) -> MapObject:
        attrs = Attributes('object', start.attributes)
        width = attrs.optional('width', 'float', 0.0)
        height = attrs.optional('height', 'float', 0.0)

        gid = None
        flags = NO_FLAGS
        raw_gid = attrs.optional('gid', 'uint')
        if raw_gid is not None:
            gid, flags = unpack_gid(raw_gid)

        shape = Rectangle(width, height)
        properties = _NO_PROPERTIES
        for child in iter_children(events, 'object'):
            if child.name == 'ellipse':
                shape = Ellipse(width, height)
                skip_element(events, 'ellipse')
            elif child.name == 'point':
                shape = Point()
                skip_element(events, 'point')
            elif child.name == 'polygon':
                shape = Polygon(self._parse_points(child))
                skip_element(events, 'polygon')
            elif child.name == 'polyline':
                shape = Polyline(self._parse_points(child))
                skip_element(events, 'polyline')
            elif child.name == 'properties':
                properties = self._parse_properties(events)
            else:
                # <text> objects keep their bounding rectangle
                self._skip_unknown(events, child, 'object')

        return MapObject(
            id=attrs.optional('id', 'uint', 0),
            name=attrs.optional('name', default=''),
            type=attrs.optional('type') or attrs.optional('class') or '',
            x=attrs.optional('x', 'float', 0.0),
            y=attrs.optional('y', 'float', 0.0),
            width=width,
            height=height,
            rotation=attrs.optional('rotation', 'float', 0.0),
            gid=gid,
            flags=flags,
            visible=attrs.optional('visible', 'bool', True),
            shape=shape,
            properties=properties,
        )

    @staticmethod
    def _parse_points(start: StartElement) -> Tuple[Tuple[float, float], ...]:
        """Parse points="x1,y1 x2,y2 ..." of a polygon/polyline."""
        raw = Attributes(start.name, start.attributes).required('points')
        points = []
        for pair in raw.split():
            coords = pair.split(',')
            try:
                if len(coords) != 2:
                    raise ValueError(pair)
                points.append((float(coords[0]), float(coords[1])))
            except ValueError as exc:
                raise InvalidAttribute('points', 'list of x,y pairs', raw, start.name) from exc
        return tuple(points)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _parse_properties(self, events: Iterator[Event]) -> 'MappingProxyType[str, Property]':
        return parse_properties(events, self.options.strict_elements)

    def _skip_unknown(self, events: Iterator[Event], child: StartElement, parent: str) -> None:
        if self.options.strict_elements:
            raise MalformedDocument(f"unexpected <{child.name}> in <{parent}>")
        logger.debug("Skipping <%s> in <%s>", child.name, parent)
        skip_element(events, child.name)


# =============================================================================
# MODULE-LEVEL SHORTCUTS
# =============================================================================

def parse_map(source: Source,
              resolve_external_tileset: Optional[ResolveExternalTileset] = None,
              options: Optional[ParserOptions] = None) -> Map:
    """
    Parse a TMX document into a Map.

    Parameters:
    -----------
    source : bytes, str or stream
        The map document
    resolve_external_tileset : callable, optional
        Called with the ``source`` of each external tileset; must return a
        Tileset (for example from parse_tileset()) or raise
    options : ParserOptions, optional
    """
    return MapParser(resolve_external_tileset, options).parse(source)


def parse_tileset(source: Source, first_gid: int = 1,
                  options: Optional[ParserOptions] = None) -> Tileset:
    """Parse a standalone TSX tileset document."""
    return MapParser(options=options).parse_tileset(source, first_gid)
