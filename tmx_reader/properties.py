"""
Custom properties.

Any map, tileset, tile, layer or object can carry a <properties> block:

    <properties>
        <property name="solid" type="bool" value="true"/>
        <property name="health" type="int" value="100"/>
        <property name="description" value="A wooden door"/>
        <property name="dialogue">Line one
    Line two</property>
        <property name="stats" type="class" propertytype="Stats">
            <properties>
                <property name="speed" type="float" value="1.5"/>
            </properties>
        </property>
    </properties>

=============================================================================
SUPPORTED TYPES
=============================================================================

    string  (default)   str
    file                str (path relative to the document)
    int                 int
    float               float
    bool                bool        "true"/"false" (also "1"/"0")
    color               Color, or None for an unset color (value="")
    object              int         id of the referenced object (0 = none)
    class               mapping of nested properties

Multi-line strings are written as element text instead of a value
attribute. A name used twice in one block is not an error: the later
entry replaces the earlier one.
=============================================================================
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from .attributes import Attributes, coerce
from .errors import InvalidAttribute, MalformedDocument, MissingAttribute
from .events import Event, StartElement, Text, iter_children, iter_content, skip_element

logger = logging.getLogger(__name__)

PROPERTY_TYPES = ('string', 'file', 'int', 'float', 'bool', 'color', 'object', 'class')


@dataclass(frozen=True)
class Property:
    name: str
    type: str = "string"
    value: Any = None


def property_value(name: str, type_name: str, raw: str) -> Any:
    """Convert the textual ``raw`` value of property ``name`` to ``type_name``."""
    element = f'property name="{name}"'
    if type_name in ('string', 'file'):
        return raw
    if type_name == 'int':
        return coerce('value', raw, 'int', element)
    if type_name == 'float':
        return coerce('value', raw, 'float', element)
    if type_name == 'bool':
        return coerce('value', raw, 'bool', element)
    if type_name == 'color':
        # Tiled writes value="" for a color that was never set
        if not raw:
            return None
        return coerce('value', raw, 'color', element)
    if type_name == 'object':
        return coerce('value', raw, 'uint', element)
    raise InvalidAttribute('type', '|'.join(PROPERTY_TYPES), type_name, element)


def parse_properties(events: Iterator[Event],
                     strict: bool = False) -> Mapping[str, Property]:
    """
    Parse the body of an open <properties> element.

    Parameters:
    -----------
    events : iterator of events
        Positioned right after the <properties> start tag; consumed up to
        and including </properties>
    strict : bool
        Reject unknown child elements instead of skipping them

    Returns:
    --------
    Read-only mapping of property name -> Property
    """
    result: Dict[str, Property] = {}
    for child in iter_children(events, 'properties'):
        if child.name != 'property':
            if strict:
                raise MalformedDocument(f"unexpected <{child.name}> in <properties>")
            logger.debug("Skipping <%s> in <properties>", child.name)
            skip_element(events, child.name)
            continue

        prop = _parse_property(events, child, strict)
        if prop.name in result:
            logger.debug("Property %r defined twice; keeping the last value", prop.name)
        result[prop.name] = prop

    return MappingProxyType(result)


def _parse_property(events: Iterator[Event], start: StartElement,
                    strict: bool) -> Property:
    attrs = Attributes('property', start.attributes)
    name = attrs.required('name')
    type_name = attrs.optional('type', default='string')

    text_parts = []
    members: Optional[Mapping[str, Property]] = None
    for item in iter_content(events, 'property'):
        if isinstance(item, Text):
            text_parts.append(item.content)
        elif item.name == 'properties' and type_name == 'class':
            members = parse_properties(events, strict)
        else:
            skip_element(events, item.name)

    if type_name == 'class':
        return Property(name, type_name, members if members is not None else MappingProxyType({}))

    raw = attrs.get('value')
    if raw is None:
        if not text_parts:
            raise MissingAttribute('property', 'value')
        raw = ''.join(text_parts)

    return Property(name, type_name, property_value(name, type_name, raw))


def property_values(properties: Mapping[str, Property]) -> Dict[str, Any]:
    """Plain {name: value} view of a property mapping."""
    return {name: prop.value for name, prop in properties.items()}
