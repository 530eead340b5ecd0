"""Per-parse configuration."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ParserOptions:
    """
    Knobs for a single parse.

    chunk_size:      bytes handed to the XML pull parser per step
    strict_elements: reject unknown child elements instead of skipping them
                     (Tiled writes editor-only elements such as
                     <editorsettings> and <wangsets> that a loader can ignore)
    """
    chunk_size: int = 64 * 1024
    strict_elements: bool = False

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


DEFAULT_OPTIONS = ParserOptions()
