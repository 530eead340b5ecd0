"""Tests for loading maps and tilesets from disk."""

from pathlib import Path

import pytest

from tmx_reader import ExternalTilesetUnavailable, FileTilesetResolver, load_map


@pytest.fixture
def map_tree(tmp_path: Path, make_map, csv_layer, terrain_tsx) -> Path:
    """maps/level.tmx referencing ../tilesets/terrain.tsx twice."""
    (tmp_path / 'tilesets').mkdir()
    (tmp_path / 'tilesets' / 'terrain.tsx').write_bytes(terrain_tsx)
    (tmp_path / 'maps').mkdir()
    tilesets = ('<tileset firstgid="1" source="../tilesets/terrain.tsx"/>\n'
                '<tileset firstgid="5" source="../tilesets/terrain.tsx"/>')
    map_path = tmp_path / 'maps' / 'level.tmx'
    map_path.write_bytes(make_map(csv_layer([1, 3, 5, 8]), tilesets=tilesets))
    return map_path


class TestLoadMap:
    """Test load_map() with external tilesets."""

    def test_relative_tilesets(self, map_tree: Path) -> None:
        """Test references are resolved from the map's directory."""
        tiled_map = load_map(map_tree)
        assert [tileset.first_gid for tileset in tiled_map.tilesets] == [1, 5]
        assert all(tileset.source == '../tilesets/terrain.tsx' for tileset in tiled_map.tilesets)
        cells = tiled_map.layers[0].tiles
        assert [(cell.tileset_index, cell.tile_id) for cell in cells] == [(0, 0), (0, 2), (1, 0), (1, 3)]

    def test_str_path(self, map_tree: Path) -> None:
        assert load_map(str(map_tree)).width == 2

    def test_missing_tileset(self, tmp_path: Path, make_map) -> None:
        """Test a missing TSX file names the reference."""
        map_path = tmp_path / 'level.tmx'
        map_path.write_bytes(make_map(tilesets='<tileset firstgid="1" source="gone.tsx"/>'))
        with pytest.raises(ExternalTilesetUnavailable) as excinfo:
            load_map(map_path)
        assert excinfo.value.reference == 'gone.tsx'

    def test_missing_map(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            load_map(tmp_path / 'nothing.tmx')


class TestFileTilesetResolver:
    """Test the TSX loader callback."""

    def test_cached_per_file(self, map_tree: Path) -> None:
        """Test each file is parsed once per resolver."""
        resolver = FileTilesetResolver(map_tree.parent)
        first = resolver('../tilesets/terrain.tsx')
        second = resolver('../maps/../tilesets/terrain.tsx')
        assert first is second
        assert first.name == 'terrain'
        assert first.get_tile(2).type == 'water'
