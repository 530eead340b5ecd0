"""
Typed access to XML attribute values.

TMX stores everything as text. This module turns that text into Python
values and reports bad input as InvalidAttribute / MissingAttribute with the
element and attribute name attached.

=============================================================================
RECOGNIZED TYPES
=============================================================================

    'string'   -> str (as is)
    'int'      -> int, base 10, optional sign          "-12", "+3", "7"
    'uint'     -> int >= 0                             "0", "42"
    'float'    -> float                                "1.5", "-3", "1e3"
    'bool'     -> bool                                 "0", "1", "true", "false"
    'color'    -> Color                                "#RRGGBB", "#AARRGGBB"
    'fraction' -> float in [0.0, 1.0]                  "0.75", "75%"

Enumerated values (map orientation, ...) go through Attributes.enum().
=============================================================================
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Type, TypeVar

from .errors import InvalidAttribute, MissingAttribute

E = TypeVar('E', bound=Enum)

_INT_RE = re.compile(r'[+-]?[0-9]+')
_FLOAT_RE = re.compile(r'[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')


class Orientation(Enum):
    ORTHOGONAL = 'orthogonal'
    ISOMETRIC = 'isometric'
    STAGGERED = 'staggered'
    HEXAGONAL = 'hexagonal'


@dataclass(frozen=True)
class Color:
    """
    RGBA color.

    Tiled writes colors as #RRGGBB or, when not fully opaque, #AARRGGBB
    (alpha FIRST). The leading '#' is optional; hex digits are
    case-insensitive.
    """
    red: int
    green: int
    blue: int
    alpha: int = 255

    @classmethod
    def from_hex(cls, value: str) -> 'Color':
        digits = value[1:] if value.startswith('#') else value
        if len(digits) not in (6, 8) or not all(c in '0123456789abcdefABCDEF' for c in digits):
            raise ValueError(f"not a #RRGGBB or #AARRGGBB color: {value!r}")
        channels = [int(digits[i:i + 2], 16) for i in range(0, len(digits), 2)]
        if len(channels) == 3:
            red, green, blue = channels
            return cls(red, green, blue)
        alpha, red, green, blue = channels
        return cls(red, green, blue, alpha)

    def to_hex(self) -> str:
        if self.alpha == 255:
            return f"#{self.red:02x}{self.green:02x}{self.blue:02x}"
        return f"#{self.alpha:02x}{self.red:02x}{self.green:02x}{self.blue:02x}"

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.red, self.green, self.blue, self.alpha)


# =============================================================================
# COERCION FUNCTIONS
# =============================================================================
# Each takes the raw text and returns the value, raising ValueError on bad
# input. coerce() wraps that ValueError into InvalidAttribute.

def to_int(raw: str) -> int:
    if not _INT_RE.fullmatch(raw.strip()):
        raise ValueError(raw)
    return int(raw)


def to_uint(raw: str) -> int:
    value = to_int(raw)
    if value < 0:
        raise ValueError(raw)
    return value


def to_float(raw: str) -> float:
    # float() alone would also take "nan", "inf" and "1_0"
    if not _FLOAT_RE.fullmatch(raw.strip()):
        raise ValueError(raw)
    return float(raw)


def to_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ('1', 'true'):
        return True
    if lowered in ('0', 'false'):
        return False
    raise ValueError(raw)


def to_fraction(raw: str) -> float:
    text = raw.strip()
    if text.endswith('%'):
        value = to_float(text[:-1]) / 100.0
    else:
        value = to_float(text)
    if not 0.0 <= value <= 1.0:
        raise ValueError(raw)
    return value


COERCIONS: Dict[str, Callable[[str], Any]] = {
    'string': str,
    'int': to_int,
    'uint': to_uint,
    'float': to_float,
    'bool': to_bool,
    'color': Color.from_hex,
    'fraction': to_fraction,
}


def coerce(name: str, raw: str, expected_type: str,
           element: Optional[str] = None) -> Any:
    """Convert ``raw`` to ``expected_type`` or raise InvalidAttribute."""
    try:
        converter = COERCIONS[expected_type]
    except KeyError:
        raise ValueError(f"unknown attribute type {expected_type!r}") from None
    try:
        return converter(raw)
    except ValueError as exc:
        raise InvalidAttribute(name, expected_type, raw, element) from exc


# =============================================================================
# ATTRIBUTE ACCESSOR
# =============================================================================

class Attributes:
    """
    Attributes of one start tag, with typed lookups.

        attrs = Attributes('layer', event.attributes)
        name = attrs.required('name')
        opacity = attrs.optional('opacity', 'fraction', 1.0)
    """

    def __init__(self, element: str, attributes: Iterable[Tuple[str, str]]):
        self.element = element
        self._values: Dict[str, str] = dict(attributes)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def required(self, name: str, expected_type: str = 'string') -> Any:
        raw = self._values.get(name)
        if raw is None:
            raise MissingAttribute(self.element, name)
        return coerce(name, raw, expected_type, self.element)

    def optional(self, name: str, expected_type: str = 'string',
                 default: Any = None) -> Any:
        raw = self._values.get(name)
        if raw is None:
            return default
        return coerce(name, raw, expected_type, self.element)

    def enum(self, name: str, enum_type: Type[E],
             default: Optional[E] = None) -> Optional[E]:
        """Look up an enumerated value; required when ``default`` is None."""
        raw = self._values.get(name)
        if raw is None:
            if default is None:
                raise MissingAttribute(self.element, name)
            return default
        try:
            return enum_type(raw)
        except ValueError:
            choices = '|'.join(member.value for member in enum_type)
            raise InvalidAttribute(name, choices, raw, self.element) from None
