"""
Pull-style XML event reader.

=============================================================================
WHY EVENTS INSTEAD OF A TREE?
=============================================================================

ElementTree normally builds the whole document before you can look at it.
The map assembler instead walks the document front to back, one event at a
time, so it can keep a small explicit state machine and stop at the first
error with the element that caused it.

    <map width="2">            StartElement('map', (('width', '2'),))
      <data>1,2</data>         StartElement('data', ()), Text('1,2'),
                               EndElement('data')
    </map>                     EndElement('map')
                               EndDocument()

The reader has no idea what a map is: unknown element names are perfectly
valid events. It only guarantees well-formed XML, raising MalformedDocument
(with line/column) on bad bytes or unbalanced tags.

Each call to read_events() builds its own pull parser, so two parses never
share reader state.
=============================================================================
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import IO, Iterator, List, Optional, Tuple, Union

from .errors import MalformedDocument, UnexpectedEndOfDocument
from .options import DEFAULT_OPTIONS


@dataclass(frozen=True)
class StartElement:
    name: str
    attributes: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class EndElement:
    name: str


@dataclass(frozen=True)
class Text:
    content: str


@dataclass(frozen=True)
class EndDocument:
    pass


Event = Union[StartElement, EndElement, Text, EndDocument]
Source = Union[bytes, bytearray, memoryview, str, IO[bytes], IO[str]]


def read_events(source: Source,
                chunk_size: int = DEFAULT_OPTIONS.chunk_size) -> Iterator[Event]:
    """
    Lazily yield parse events for ``source``.

    Parameters:
    -----------
    source : bytes, str or a binary/text stream
        The complete document (streams are read in ``chunk_size`` pieces)
    chunk_size : int
        Amount of input fed to the parser before draining its events

    The generator is forward-only: once exhausted it cannot be restarted.
    The last event is always EndDocument.
    """
    parser = ET.XMLPullParser(events=('start', 'end'))
    # Stack of [element, last closed child] for text/tail bookkeeping
    open_elements: List[list] = []

    try:
        for chunk in _chunks(source, chunk_size):
            parser.feed(chunk)
            yield from _drain(parser, open_elements)
        parser.close()
        yield from _drain(parser, open_elements)
    except ET.ParseError as exc:
        line, column = getattr(exc, 'position', (None, None))
        raise MalformedDocument(str(exc), line, column) from exc

    yield EndDocument()


def _drain(parser: ET.XMLPullParser, open_elements: List[list]) -> Iterator[Event]:
    # -------------------------------------------------------------------------
    # TEXT RECONSTRUCTION
    # -------------------------------------------------------------------------
    # ElementTree stores character data as element.text (before the first
    # child) and child.tail (after each child). Both are complete by the time
    # the next start/end event is reported, so we emit them right there.
    for kind, element in parser.read_events():
        if kind == 'start':
            if open_elements:
                text = _pending_text(open_elements[-1])
                if text:
                    yield Text(text)
            open_elements.append([element, None])
            yield StartElement(_local_name(element.tag),
                               tuple(element.attrib.items()))
        else:
            entry = open_elements.pop()
            text = _pending_text(entry)
            if text:
                yield Text(text)
            if open_elements:
                open_elements[-1][1] = element
            yield EndElement(_local_name(element.tag))


def _pending_text(entry: list) -> Optional[str]:
    element, last_child = entry
    return element.text if last_child is None else last_child.tail


def _local_name(tag: str) -> str:
    # '{namespace}name' -> 'name'
    return tag.rsplit('}', 1)[-1]


def _chunks(source: Source, chunk_size: int) -> Iterator[Union[bytes, str]]:
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]
    elif isinstance(source, str):
        for start in range(0, len(source), chunk_size):
            yield source[start:start + chunk_size]
    elif hasattr(source, 'read'):
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                break
            yield chunk
    else:
        raise TypeError(
            f"expected bytes, str or a readable stream, got {type(source).__name__}"
        )


# =============================================================================
# WALKING HELPERS
# =============================================================================
# Consumers share one event iterator. Each helper starts right after the
# parent's StartElement and stops after its matching EndElement, so whatever
# consumes a yielded child must consume that child's EndElement as well.

def iter_content(events: Iterator[Event], parent: str) -> Iterator[Union[StartElement, Text]]:
    """Yield child StartElements and Text events of the open ``parent``."""
    for event in events:
        if isinstance(event, (StartElement, Text)):
            yield event
        elif isinstance(event, EndElement):
            if event.name != parent:
                raise UnexpectedEndOfDocument(parent, event.name)
            return
        else:
            raise UnexpectedEndOfDocument(parent)
    raise UnexpectedEndOfDocument(parent)


def iter_children(events: Iterator[Event], parent: str) -> Iterator[StartElement]:
    """Yield the child StartElements of the open ``parent``, ignoring text."""
    for event in iter_content(events, parent):
        if isinstance(event, StartElement):
            yield event


def skip_element(events: Iterator[Event], name: str) -> None:
    """Consume the rest of the open element ``name``, children included."""
    for child in iter_children(events, name):
        skip_element(events, child.name)


def collect_text(events: Iterator[Event], name: str) -> str:
    """Consume the open element ``name`` and return its text; children are skipped."""
    parts = []
    for event in iter_content(events, name):
        if isinstance(event, Text):
            parts.append(event.content)
        else:
            skip_element(events, event.name)
    return ''.join(parts)
