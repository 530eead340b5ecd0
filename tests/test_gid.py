"""Tests for GID unpacking and tileset resolution."""

import numpy as np
import pytest

from tmx_reader.errors import OverlappingTilesets, UnresolvedTileId
from tmx_reader.gid import (
    FLIPPED_DIAGONALLY_FLAG, FLIPPED_HORIZONTALLY_FLAG, FLIPPED_VERTICALLY_FLAG,
    GidResolver, LayerTile, TileFlags, pack_gid, unpack_gid,
)
from tmx_reader.model import Tileset


def make_tileset(first_gid: int, tile_count: int, name: str = '') -> Tileset:
    return Tileset(first_gid=first_gid, name=name or f'ts{first_gid}',
                   tile_width=16, tile_height=16, tile_count=tile_count)


class TestFlags:
    """Test flip flag extraction."""

    def test_no_flags(self) -> None:
        assert unpack_gid(42) == (42, TileFlags(False, False, False))

    def test_each_flag(self) -> None:
        """Test each bit maps to its own flag."""
        assert unpack_gid(5 | FLIPPED_HORIZONTALLY_FLAG) == (5, TileFlags(True, False, False))
        assert unpack_gid(5 | FLIPPED_VERTICALLY_FLAG) == (5, TileFlags(False, True, False))
        assert unpack_gid(5 | FLIPPED_DIAGONALLY_FLAG) == (5, TileFlags(False, False, True))

    @pytest.mark.parametrize("raw", [
        0, 1, 0x1FFFFFFF, 0xFFFFFFFF, 0x80000001, 0x40000000, 0x20000123, 0xE0000007,
    ])
    def test_unpack_then_pack(self, raw: int) -> None:
        """Test splitting and recombining reproduces the raw value."""
        gid, flags = unpack_gid(raw)
        assert pack_gid(gid, flags) == raw

    def test_pack_overflow(self) -> None:
        """Test ids that collide with the flag bits."""
        with pytest.raises(ValueError):
            pack_gid(1 << 29)


class TestGidResolver:
    """Test GID -> tileset lookup."""

    def test_locate(self) -> None:
        """Test the owning tileset and local id."""
        resolver = GidResolver([make_tileset(1, 100), make_tileset(101, 50)])
        assert resolver.locate(1) == (0, 0)
        assert resolver.locate(100) == (0, 99)
        assert resolver.locate(120) == (1, 19)

    def test_out_of_range(self) -> None:
        """Test GIDs past every tileset."""
        resolver = GidResolver([make_tileset(1, 100), make_tileset(101, 50)])
        with pytest.raises(UnresolvedTileId) as excinfo:
            resolver.locate(160)
        assert excinfo.value.gid == 160

    def test_gap_between_tilesets(self) -> None:
        """Test a GID in a gap belongs to nobody."""
        resolver = GidResolver([make_tileset(1, 10), make_tileset(101, 10)])
        with pytest.raises(UnresolvedTileId):
            resolver.locate(50)

    def test_declaration_order_kept(self) -> None:
        """Test greatest firstgid <= gid wins, indices follow declaration order."""
        resolver = GidResolver([make_tileset(101, 50), make_tileset(1, 100)])
        assert resolver.locate(120) == (0, 19)
        assert resolver.locate(5) == (1, 4)

    def test_overlap_rejected(self) -> None:
        """Test overlapping ranges are refused."""
        with pytest.raises(OverlappingTilesets) as excinfo:
            GidResolver([make_tileset(1, 100, 'a'), make_tileset(50, 10, 'b')])
        assert (excinfo.value.first, excinfo.value.second) == ('a', 'b')

    def test_empty_tileset_ignored(self) -> None:
        """Test a tileset without tiles owns no GIDs."""
        resolver = GidResolver([make_tileset(1, 0), make_tileset(1, 4)])
        assert resolver.locate(2) == (1, 1)

    def test_resolve_empty_cell(self) -> None:
        """Test 0 is empty, even with flag bits set."""
        resolver = GidResolver([make_tileset(1, 4)])
        assert resolver.resolve(0) is None
        assert resolver.resolve(FLIPPED_HORIZONTALLY_FLAG) is None

    def test_resolve_keeps_flags(self) -> None:
        resolver = GidResolver([make_tileset(1, 4)])
        tile = resolver.resolve(2 | FLIPPED_VERTICALLY_FLAG)
        assert tile == LayerTile(0, 1, TileFlags(False, True, False))
        assert tile.flipped_vertically

    def test_resolve_all(self) -> None:
        """Test whole-layer resolution matches single lookups."""
        tilesets = [make_tileset(1, 4), make_tileset(5, 4)]
        resolver = GidResolver(tilesets)
        raw = np.array([1, 0, 6 | FLIPPED_DIAGONALLY_FLAG, 1, 8], dtype=np.uint32)
        cells = resolver.resolve_all(raw)
        assert cells == tuple(resolver.resolve(int(value)) for value in raw)
        assert cells[0] is cells[3]

    def test_resolve_all_unresolved(self) -> None:
        """Test the first unknown GID is reported."""
        resolver = GidResolver([make_tileset(1, 4)])
        with pytest.raises(UnresolvedTileId) as excinfo:
            resolver.resolve_all(np.array([1, 9, 12], dtype=np.uint32))
        assert excinfo.value.gid == 9

    def test_no_tilesets(self) -> None:
        """Test an empty layer needs no tileset, any tile does."""
        resolver = GidResolver([])
        assert resolver.resolve_all(np.zeros(3, dtype=np.uint32)) == (None, None, None)
        with pytest.raises(UnresolvedTileId):
            resolver.resolve_all(np.array([1], dtype=np.uint32))
