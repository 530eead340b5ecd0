"""
Global tile IDs (GIDs) and their flip flags.

=============================================================================
PACKED GID LAYOUT
=============================================================================

Every cell of a tile layer (and every tile object) stores a 32-bit value:

    bit 31  30  29  28 ........................... 0
        H   V   D   global tile id
        |   |   |
        |   |   +-- flipped diagonally (swap x/y, used for 90° rotations)
        |   +------ flipped vertically
        +---------- flipped horizontally

Masking the three flags off gives the global tile id. 0 means "no tile".

=============================================================================
GID -> TILESET
=============================================================================

Each tileset owns the half-open range [firstgid, firstgid + tilecount):

    Tileset A (firstgid=1,   tilecount=100):  GIDs 1..100
    Tileset B (firstgid=101, tilecount=50):   GIDs 101..150

    GID 120 -> tileset B, local id 120 - 101 = 19
    GID 160 -> nobody      -> UnresolvedTileId

The owner is the tileset with the greatest firstgid <= gid, whatever order
the tilesets were declared in. Overlapping ranges are refused up front.
=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .errors import OverlappingTilesets, UnresolvedTileId

if TYPE_CHECKING:
    from .model import Tileset

logger = logging.getLogger(__name__)

FLIPPED_HORIZONTALLY_FLAG = 1 << 31
FLIPPED_VERTICALLY_FLAG = 1 << 30
FLIPPED_DIAGONALLY_FLAG = 1 << 29
ALL_FLIP_FLAGS = (FLIPPED_HORIZONTALLY_FLAG | FLIPPED_VERTICALLY_FLAG
                  | FLIPPED_DIAGONALLY_FLAG)
GID_MASK = 0xFFFFFFFF & ~ALL_FLIP_FLAGS


class TileFlags(NamedTuple):
    flipped_horizontally: bool = False
    flipped_vertically: bool = False
    flipped_diagonally: bool = False


NO_FLAGS = TileFlags()


@dataclass(frozen=True)
class LayerTile:
    """
    A resolved tile reference.

    tileset_index points into Map.tilesets (declaration order), so cells
    never hold the Tileset itself.
    """
    tileset_index: int
    tile_id: int
    flags: TileFlags = NO_FLAGS

    @property
    def flipped_horizontally(self) -> bool:
        return self.flags.flipped_horizontally

    @property
    def flipped_vertically(self) -> bool:
        return self.flags.flipped_vertically

    @property
    def flipped_diagonally(self) -> bool:
        return self.flags.flipped_diagonally


def unpack_gid(raw: int) -> Tuple[int, TileFlags]:
    """Split a packed value into (global tile id, flags)."""
    flags = TileFlags(
        bool(raw & FLIPPED_HORIZONTALLY_FLAG),
        bool(raw & FLIPPED_VERTICALLY_FLAG),
        bool(raw & FLIPPED_DIAGONALLY_FLAG),
    )
    return raw & GID_MASK, flags


def pack_gid(gid: int, flags: TileFlags = NO_FLAGS) -> int:
    """Inverse of unpack_gid()."""
    if not 0 <= gid <= GID_MASK:
        raise ValueError(f"global tile id {gid} does not fit in 29 bits")
    raw = gid
    if flags.flipped_horizontally:
        raw |= FLIPPED_HORIZONTALLY_FLAG
    if flags.flipped_vertically:
        raw |= FLIPPED_VERTICALLY_FLAG
    if flags.flipped_diagonally:
        raw |= FLIPPED_DIAGONALLY_FLAG
    return raw


class GidResolver:
    """
    Maps packed GIDs to LayerTile references for one ordered tileset list.

    Parameters:
    -----------
    tilesets : sequence of Tileset
        The map's tilesets in declaration order. Only ``first_gid``,
        ``tile_count`` and ``name`` are used.

    Raises OverlappingTilesets if two non-empty GID ranges intersect.
    """

    def __init__(self, tilesets: Sequence['Tileset']):
        # Ascending by firstgid; empty tilesets own no GIDs
        order = sorted((i for i, tileset in enumerate(tilesets) if tileset.tile_count > 0),
                       key=lambda i: tilesets[i].first_gid)

        for lower, upper in zip(order, order[1:]):
            if tilesets[upper].first_gid < tilesets[lower].first_gid + tilesets[lower].tile_count:
                raise OverlappingTilesets(tilesets[lower].name, tilesets[upper].name)

        self._indices = np.array(order, dtype=np.int64)
        self._first_gids = np.array([tilesets[i].first_gid for i in order],
                                    dtype=np.int64)
        self._end_gids = self._first_gids + np.array(
            [tilesets[i].tile_count for i in order], dtype=np.int64)

    def locate(self, gid: int) -> Tuple[int, int]:
        """
        Find the tileset owning a flag-free ``gid``.

        Returns:
        --------
        (tileset index, local tile id)
        """
        # Greatest firstgid <= gid wins: scan from the highest firstgid down
        for pos in range(len(self._first_gids) - 1, -1, -1):
            first_gid = int(self._first_gids[pos])
            if first_gid <= gid:
                if gid >= self._end_gids[pos]:
                    break
                return int(self._indices[pos]), gid - first_gid
        raise UnresolvedTileId(gid)

    def resolve(self, raw: int) -> Optional[LayerTile]:
        """Resolve one packed value; None for an empty cell (flags dropped)."""
        gid, flags = unpack_gid(raw)
        if gid == 0:
            return None
        tileset_index, tile_id = self.locate(gid)
        return LayerTile(tileset_index, tile_id, flags)

    def resolve_all(self, raw_gids: np.ndarray) -> Tuple[Optional[LayerTile], ...]:
        """
        Resolve a whole layer at once.

        The tileset lookup is vectorized with searchsorted; equal packed
        values share a single LayerTile instance.
        """
        raw_gids = np.asarray(raw_gids, dtype=np.uint32)
        gids = (raw_gids & np.uint32(GID_MASK)).astype(np.int64)
        positions = np.searchsorted(self._first_gids, gids, side='right') - 1

        occupied = gids != 0
        safe_positions = positions.clip(min=0)
        if len(self._end_gids):
            outside = (positions < 0) | (gids >= self._end_gids[safe_positions])
        else:
            outside = np.ones(gids.shape, dtype=bool)
        unresolved = occupied & outside
        if unresolved.any():
            raise UnresolvedTileId(int(gids[np.argmax(unresolved)]))

        cache: Dict[int, Optional[LayerTile]] = {0: None}
        cells = []
        for raw, gid, pos in zip(raw_gids.tolist(), gids.tolist(),
                                 safe_positions.tolist()):
            if raw not in cache:
                _, flags = unpack_gid(raw)
                cache[raw] = None if gid == 0 else LayerTile(
                    int(self._indices[pos]), gid - int(self._first_gids[pos]), flags)
            cells.append(cache[raw])
        return tuple(cells)
