"""
Value codec between store-native RDF values and domain-native values.

Store values are a small tagged variant:

- Literal: lexical text with an optional language tag and a datatype IRI
- Resource: an opaque resource identifier (IRI or prefixed name)
- Blank: a store-scoped anonymous anchor, used for reification
- QuotedTriple: an RDF-star triple term; representable in the store but
  outside what a statement value can hold

Every variant carries a ``kind`` tag (ValueKind) and the codec dispatches on
that tag. Literals are mapped through an immutable datatype table shared by
all codec instances, so decoding needs no per-call mapper state.
"""

from __future__ import annotations

import logging
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Mapping, Optional, Tuple, Union

from kbgraph.errors import UnsupportedValueKind
from kbgraph.handles import ResourceHandle

logger = logging.getLogger(__name__)


# =============================================================================
# Well-known datatype IRIs
# =============================================================================

XSD = "http://www.w3.org/2001/XMLSchema#"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"

XSD_STRING = XSD + "string"
XSD_NORMALIZED_STRING = XSD + "normalizedString"
XSD_TOKEN = XSD + "token"
XSD_BOOLEAN = XSD + "boolean"
XSD_INTEGER = XSD + "integer"
XSD_DECIMAL = XSD + "decimal"
XSD_DOUBLE = XSD + "double"
XSD_FLOAT = XSD + "float"
XSD_DATE = XSD + "date"
XSD_DATETIME = XSD + "dateTime"
XSD_TIME = XSD + "time"
RDF_LANGSTRING = RDF + "langString"

# Integer types derived from xsd:integer all decode to int
XSD_INTEGER_TYPES = tuple(
    XSD + name
    for name in (
        "integer", "int", "long", "short", "byte",
        "nonNegativeInteger", "nonPositiveInteger",
        "positiveInteger", "negativeInteger",
        "unsignedLong", "unsignedInt", "unsignedShort", "unsignedByte",
    )
)


class ValueKind(IntEnum):
    """
    Store value kind enumeration.

    Same numbering as the columnar ``o_kind`` column of the quad store.
    """
    RESOURCE = 0
    LITERAL = 1
    BLANK = 2
    QUOTED_TRIPLE = 3


def new_anchor_id() -> str:
    """Allocate a fresh blank node label."""
    return "b" + uuid.uuid4().hex


# =============================================================================
# Store value variants
# =============================================================================

@dataclass(frozen=True, slots=True)
class Literal:
    """
    An RDF literal.

    Attributes:
        text: Lexical form
        language: Language tag (language-tagged literals only)
        datatype: Datatype IRI; forced to rdf:langString when a language is set
    """
    text: str
    language: Optional[str] = None
    datatype: str = XSD_STRING

    kind: ClassVar[ValueKind] = ValueKind.LITERAL

    def __post_init__(self):
        if self.language is not None:
            if not self.language:
                raise ValueError("Language tag cannot be empty")
            # Language tags are case-insensitive
            object.__setattr__(self, "language", self.language.lower())
            object.__setattr__(self, "datatype", RDF_LANGSTRING)
        elif self.datatype == RDF_LANGSTRING:
            raise ValueError("rdf:langString literal requires a language tag")


@dataclass(frozen=True, slots=True)
class Resource:
    """A reference to a named store resource."""
    id: str

    kind: ClassVar[ValueKind] = ValueKind.RESOURCE


@dataclass(frozen=True, slots=True)
class Blank:
    """An anonymous store-scoped anchor. Never exposed past the codec."""
    id: str = field(default_factory=new_anchor_id)

    kind: ClassVar[ValueKind] = ValueKind.BLANK


@dataclass(frozen=True, slots=True)
class QuotedTriple:
    """An RDF-star triple term."""
    subject: "StoreValue"
    predicate: "StoreValue"
    object: "StoreValue"

    kind: ClassVar[ValueKind] = ValueKind.QUOTED_TRIPLE


StoreValue = Union[Literal, Resource, Blank, QuotedTriple]

STORE_VALUE_TYPES = (Literal, Resource, Blank, QuotedTriple)


def is_store_value(value: Any) -> bool:
    """Check whether a value is in store representation."""
    return isinstance(value, STORE_VALUE_TYPES)


# =============================================================================
# Datatype table
# =============================================================================

def _parse_boolean(lex: str) -> bool:
    lex = lex.strip()
    if lex in ("true", "1"):
        return True
    if lex in ("false", "0"):
        return False
    raise ValueError(f"Invalid xsd:boolean lexical form: {lex!r}")


_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

# xsd:date may carry a timezone; Python dates cannot, so it is dropped
_DATE_PATTERN = re.compile(r"^(-?\d{4,}-\d{2}-\d{2})(Z|[+-]\d{2}:\d{2})?$")

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def _parse_decimal(lex: str) -> Decimal:
    lex = lex.strip()
    # Decimal() also takes NaN, Infinity and exponents, which xsd:decimal does not
    if not _DECIMAL_PATTERN.match(lex):
        raise ValueError(f"Invalid xsd:decimal lexical form: {lex!r}")
    return Decimal(lex)


def _parse_date(lex: str) -> date:
    match = _DATE_PATTERN.match(lex.strip())
    if not match:
        raise ValueError(f"Invalid xsd:date lexical form: {lex!r}")
    return date.fromisoformat(match.group(1))


def _microseconds(fraction: "re.Match[str]") -> str:
    return "." + fraction.group(1)[:6].ljust(6, "0")


def _parse_iso(parser: Callable[[str], Any]) -> Callable[[str], Any]:
    # Before Python 3.11 fromisoformat rejects a trailing 'Z' and fractions
    # that are not 3 or 6 digits long
    def parse(lex: str) -> Any:
        lex = lex.strip()
        if lex.endswith("Z"):
            lex = lex[:-1] + "+00:00"
        lex = _FRACTION_PATTERN.sub(_microseconds, lex, count=1)
        return parser(lex)
    return parse


def _build_datatype_table() -> Mapping[str, Callable[[str], Any]]:
    table: dict[str, Callable[[str], Any]] = {
        XSD_STRING: str,
        XSD_NORMALIZED_STRING: str,
        XSD_TOKEN: str,
        RDF_LANGSTRING: str,
        XSD_BOOLEAN: _parse_boolean,
        XSD_DECIMAL: _parse_decimal,
        XSD_DOUBLE: float,
        XSD_FLOAT: float,
        XSD_DATE: _parse_date,
        XSD_DATETIME: _parse_iso(datetime.fromisoformat),
        XSD_TIME: _parse_iso(time.fromisoformat),
    }
    for iri in XSD_INTEGER_TYPES:
        table[iri] = int
    return MappingProxyType(table)


DEFAULT_DATATYPES: Mapping[str, Callable[[str], Any]] = _build_datatype_table()


def _format_double(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "INF" if value > 0 else "-INF"
    return repr(value)


# =============================================================================
# Codec
# =============================================================================

class ValueCodec:
    """
    Converts between store values and native values.

    decode(store_value) -> (native, language)
    encode(native, language) -> store_value

    The datatype table is read-only and may be shared across codecs.
    Thread-safety: stateless, safe to share.
    """

    def __init__(self, datatypes: Mapping[str, Callable[[str], Any]] = DEFAULT_DATATYPES):
        self._datatypes = datatypes

    @property
    def datatypes(self) -> Mapping[str, Callable[[str], Any]]:
        return self._datatypes

    def decode(self, value: Any) -> Tuple[Any, Optional[str]]:
        """
        Decode a store value.

        Returns:
            (native value, language tag). Resources come back unchanged,
            blank anchors as (None, None).

        Raises:
            UnsupportedValueKind: for quoted triples and non-store values
        """
        kind = value.kind if isinstance(value, STORE_VALUE_TYPES) else None

        if kind == ValueKind.LITERAL:
            return self._decode_literal(value), value.language
        elif kind == ValueKind.RESOURCE:
            return value, None
        elif kind == ValueKind.BLANK:
            return None, None

        raise UnsupportedValueKind(value)

    def _decode_literal(self, literal: Literal) -> Any:
        parser = self._datatypes.get(literal.datatype)
        if parser is None:
            return literal.text
        try:
            return parser(literal.text)
        except ValueError as e:
            logger.warning(
                f"Cannot map literal {literal.text!r} to <{literal.datatype}>, "
                f"keeping lexical form: {e}"
            )
            return literal.text

    def encode(self, native: Any, language: Optional[str] = None) -> StoreValue:
        """
        Encode a native value into its store representation.

        None encodes to a fresh blank anchor; ResourceHandle encodes to a
        Resource with the same id.

        Raises:
            ValueError: language tag given for a non-string value
            UnsupportedValueKind: no store representation for the native type
        """
        if language is not None:
            if not isinstance(native, str):
                raise ValueError(
                    f"Language tag '{language}' requires a string value, "
                    f"got {type(native).__name__}"
                )
            return Literal(native, language=language)

        if native is None:
            return Blank()
        if isinstance(native, Resource):
            return native
        if isinstance(native, ResourceHandle):
            return Resource(native.id)
        if isinstance(native, str):
            return Literal(native)
        # bool before int, datetime before date: subclass order
        if isinstance(native, bool):
            return Literal("true" if native else "false", datatype=XSD_BOOLEAN)
        if isinstance(native, int):
            return Literal(str(native), datatype=XSD_INTEGER)
        if isinstance(native, float):
            return Literal(_format_double(native), datatype=XSD_DOUBLE)
        if isinstance(native, Decimal):
            return Literal(format(native.normalize(), "f"), datatype=XSD_DECIMAL)
        if isinstance(native, datetime):
            return Literal(native.isoformat(), datatype=XSD_DATETIME)
        if isinstance(native, date):
            return Literal(native.isoformat(), datatype=XSD_DATE)
        if isinstance(native, time):
            return Literal(native.isoformat(), datatype=XSD_TIME)

        raise UnsupportedValueKind(native, f"No store representation for {type(native).__name__}")

    def normalize(self, native: Any, language: Optional[str] = None) -> Optional[StoreValue]:
        """
        Canonical store form of a native value, used for matching.

        Blank-backed (None) values have no comparable form and yield None.
        """
        if native is None:
            return None
        return self.encode(native, language)

    def normalize_store_value(self, value: StoreValue) -> Optional[StoreValue]:
        """Canonical form of a value read from the store."""
        return self.normalize(*self.decode(value))


DEFAULT_CODEC = ValueCodec()


def decode(value: Any) -> Tuple[Any, Optional[str]]:
    """Decode with the shared default codec."""
    return DEFAULT_CODEC.decode(value)


def encode(native: Any, language: Optional[str] = None) -> StoreValue:
    """Encode with the shared default codec."""
    return DEFAULT_CODEC.encode(native, language)


def normalize(native: Any, language: Optional[str] = None) -> Optional[StoreValue]:
    """Normalize with the shared default codec."""
    return DEFAULT_CODEC.normalize(native, language)
