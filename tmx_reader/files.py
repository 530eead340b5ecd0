"""
Filesystem helpers around the in-memory parser.

parse_map() only ever sees bytes. These helpers read a .tmx file from disk
and resolve its external tilesets relative to the map's directory:

    maps/
    ├── level1.tmx      <tileset firstgid="1" source="../tilesets/terrain.tsx"/>
    └── ...
    tilesets/
    └── terrain.tsx

Image ``source`` paths are left untouched, relative to the file that
declares them.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import ExternalTilesetUnavailable
from .model import Map, Tileset
from .options import ParserOptions
from .parser import parse_map, parse_tileset

logger = logging.getLogger(__name__)


class FileTilesetResolver:
    """
    External tileset loader reading TSX files from disk.

    Parameters:
    -----------
    base_dir : str or Path
        Directory the ``source`` references are relative to (the map's
        directory)
    options : ParserOptions, optional
        Used when parsing each TSX document

    Each referenced file is parsed once per resolver; the returned Tileset
    is immutable, so sharing it between references is safe.
    """

    def __init__(self, base_dir: Union[str, Path], options: Optional[ParserOptions] = None):
        self.base_dir = Path(base_dir)
        self.options = options
        self._cache: Dict[Path, Tileset] = {}

    def __call__(self, reference: str) -> Tileset:
        path = (self.base_dir / reference).resolve()
        if path in self._cache:
            return self._cache[path]

        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ExternalTilesetUnavailable(reference, exc.strerror or str(exc)) from exc

        logger.debug("Reading external tileset %s", path)
        tileset = parse_tileset(data, options=self.options)
        self._cache[path] = tileset
        return tileset


def load_map(path: Union[str, Path], options: Optional[ParserOptions] = None) -> Map:
    """
    Load a .tmx file from disk.

    Parameters:
    -----------
    path : str or Path
        Path to the .tmx file
    options : ParserOptions, optional

    Returns:
    --------
    Map : Parsed map, external tilesets included

    Raises:
    -------
    OSError : If the map file cannot be read
    TmxError : If the document (or a referenced tileset) is invalid
    """
    path = Path(path)
    data = path.read_bytes()
    tiled_map = parse_map(data, FileTilesetResolver(path.parent, options), options)
    logger.debug("Loaded %s", path)
    return tiled_map
