"""Shared fixtures: small in-memory TMX / TSX documents."""

import base64
import gzip
import zlib
from typing import Callable, Optional, Sequence

import numpy as np
import pytest
import zstandard

TERRAIN_TILESET = (
    '<tileset firstgid="1" name="terrain" tilewidth="16" tileheight="16" '
    'tilecount="4" columns="2">\n'
    '  <image source="terrain.png" width="32" height="32"/>\n'
    '</tileset>'
)

TERRAIN_TSX = b"""<?xml version="1.0" encoding="UTF-8"?>
<tileset version="1.10" tiledversion="1.10.2" name="terrain" tilewidth="16" tileheight="16" tilecount="4" columns="2">
 <image source="terrain.png" width="32" height="32"/>
 <tile id="2" type="water">
  <properties>
   <property name="solid" type="bool" value="true"/>
  </properties>
 </tile>
</tileset>
"""


def pack_values(values: Sequence[int]) -> bytes:
    """Little-endian uint32 bytes, as stored in base64 tile data."""
    return np.array(values, dtype='<u4').tobytes()


def compress(data: bytes, compression: Optional[str]) -> bytes:
    if compression is None:
        return data
    if compression == 'zlib':
        return zlib.compress(data)
    if compression == 'gzip':
        return gzip.compress(data)
    if compression == 'zstd':
        return zstandard.ZstdCompressor().compress(data)
    raise ValueError(compression)


def encode_base64(values: Sequence[int], compression: Optional[str] = None) -> str:
    return base64.b64encode(compress(pack_values(values), compression)).decode('ascii')


@pytest.fixture
def terrain_tileset() -> str:
    return TERRAIN_TILESET


@pytest.fixture
def terrain_tsx() -> bytes:
    return TERRAIN_TSX


@pytest.fixture
def make_map() -> Callable[..., bytes]:
    """Factory: wrap layer XML in a <map> with the terrain tileset."""
    def factory(body: str = '', width: int = 2, height: int = 2,
                tilesets: str = TERRAIN_TILESET, extra: str = '') -> bytes:
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<map version="1.10" tiledversion="1.10.2" orientation="orthogonal" '
            f'renderorder="right-down" width="{width}" height="{height}" '
            f'tilewidth="16" tileheight="16" infinite="0" nextobjectid="1"{extra}>\n'
            f'{tilesets}\n{body}\n</map>\n'
        ).encode('utf-8')

    return factory


@pytest.fixture
def csv_layer() -> Callable[..., str]:
    """Factory: a <layer> with CSV data."""
    def factory(values: Sequence[int], name: str = 'Ground', layer_id: int = 1) -> str:
        payload = ',\n'.join(str(value) for value in values)
        return (f'<layer id="{layer_id}" name="{name}" width="2" height="2">\n'
                f'  <data encoding="csv">\n{payload}\n</data>\n</layer>')

    return factory


@pytest.fixture
def base64_layer() -> Callable[..., str]:
    """Factory: a <layer> with base64 (optionally compressed) data."""
    def factory(values: Sequence[int], compression: Optional[str] = None,
                name: str = 'Ground') -> str:
        attribute = f' compression="{compression}"' if compression else ''
        return (f'<layer id="1" name="{name}" width="2" height="2">\n'
                f'  <data encoding="base64"{attribute}>\n'
                f'   {encode_base64(values, compression)}\n'
                f'  </data>\n</layer>')

    return factory
