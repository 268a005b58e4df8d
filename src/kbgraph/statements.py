"""
Statements and qualifiers.

A Statement is the mutable, logical view of one subject-predicate-value
fact in a knowledge base. Values are held in native form (str, int,
Decimal, date, ..., Resource) and converted from store form through the
value codec whenever a store value is assigned, so the value and its
language tag always change together.

A Statement tracks its provenance: the set of physical store entries
backing it. A fresh Statement has empty provenance (transient); the
KnowledgeBaseService attaches provenance when it finds matching entries
or writes new ones.

Copy semantics:
- Statement.shared_view(other) shares the provenance set and qualifier
  list with ``other`` (same fact, same backing rows)
- statement.deep_clone() returns an independent copy

Matching rules are plain functions so they can be used without a store:
- exact_match: same subject, predicate, normalized value and language
- loose_match: same subject and predicate

Thread-safety: NOT thread-safe. Use external synchronization.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Set, Tuple

from kbgraph.handles import ResourceHandle
from kbgraph.values import DEFAULT_CODEC, ValueCodec, is_store_value

if TYPE_CHECKING:
    from kbgraph.storage.quads import StoreEntry


def _assign_value(
    value: Any,
    language: Optional[str],
    codec: ValueCodec,
) -> Tuple[Any, Optional[str]]:
    """Resolve a (value, language) pair for assignment."""
    if is_store_value(value):
        if language is not None:
            raise ValueError("Language tag must not be given with a store value")
        return codec.decode(value)

    language = language or None
    if language is not None:
        if not isinstance(value, str):
            raise ValueError(
                f"Language tag '{language}' requires a string value, got {type(value).__name__}"
            )
        language = language.lower()
    return value, language


# =============================================================================
# Qualifier
# =============================================================================

class Qualifier:
    """
    A property/value extension attached to one statement.

    Stored in the knowledge base through reification of the owning
    statement's entries. ``statement`` is a back reference set when the
    qualifier is attached; the owning statement's qualifier list is the
    only ownership edge.
    """

    def __init__(
        self,
        predicate: ResourceHandle,
        value: Any = None,
        language: Optional[str] = None,
    ):
        if predicate is None:
            raise ValueError("Qualifier predicate is required")
        self.statement: Optional[Statement] = None
        self.predicate = predicate
        self._value: Any = None
        self._language: Optional[str] = None
        self.set_value(value, language)

    @property
    def value(self) -> Any:
        return self._value

    @property
    def language(self) -> Optional[str]:
        return self._language

    def set_value(self, value: Any, language: Optional[str] = None) -> None:
        """Replace value and language tag together."""
        self._value, self._language = _assign_value(value, language, DEFAULT_CODEC)

    def copy(self) -> "Qualifier":
        """An unattached copy with the same predicate and value."""
        return Qualifier(self.predicate, self._value, self._language)

    def key(self, codec: ValueCodec = DEFAULT_CODEC) -> Tuple[str, Any]:
        """Identity of the qualifier's content, for deduplication."""
        return (self.predicate.id, codec.normalize(self._value, self._language))

    def __repr__(self) -> str:
        owner = self.statement.statement_id if self.statement is not None else None
        return (
            f"Qualifier(predicate={self.predicate.id!r}, value={self._value!r}, "
            f"language={self._language!r}, statement={owner!r})"
        )


# =============================================================================
# Statement
# =============================================================================

class Statement:
    """
    A logical subject-predicate-value fact.

    Call KnowledgeBaseService.init_statement() after constructing one to
    attach the provenance of matching store entries before upserting.

    Attributes:
        statement_id: Opaque identifier (optional)
        subject: Handle of the subject resource
        predicate: Handle of the predicate (may be set later)
        inferred: True when a reasoner-derived entry backs the statement
        provenance: Store entries backing the statement
        qualifiers: Attached qualifiers, in insertion order
    """

    def __init__(
        self,
        subject: ResourceHandle,
        predicate: Optional[ResourceHandle] = None,
        value: Any = None,
        statement_id: Optional[str] = None,
        language: Optional[str] = None,
        inferred: bool = False,
    ):
        if subject is None:
            raise ValueError("Statement subject is required")
        self.statement_id = statement_id
        self.subject = subject
        self.predicate = predicate
        self.inferred = inferred
        self.provenance: Set["StoreEntry"] = set()
        self.qualifiers: List[Qualifier] = []
        self._value: Any = None
        self._language: Optional[str] = None
        self.set_value(value, language)

    @classmethod
    def from_ids(
        cls,
        statement_id: Optional[str],
        subject_id: str,
        predicate_id: Optional[str] = None,
        value: Any = None,
    ) -> "Statement":
        """Build a statement from raw identifier strings."""
        return cls(
            ResourceHandle(subject_id),
            ResourceHandle(predicate_id) if predicate_id else None,
            value,
            statement_id=statement_id,
        )

    @classmethod
    def shared_view(cls, other: "Statement") -> "Statement":
        """
        A second view of the same fact.

        The view shares ``provenance`` and ``qualifiers`` with ``other``:
        qualifiers added or provenance refreshed through either object are
        visible through both. Scalar fields (value, predicate, ...) are
        copied. Use deep_clone() for an independent copy.
        """
        view = cls.__new__(cls)
        view.statement_id = other.statement_id
        view.subject = other.subject
        view.predicate = other.predicate
        view.inferred = other.inferred
        view.provenance = other.provenance
        view.qualifiers = other.qualifiers
        view._value = other._value
        view._language = other._language
        return view

    def deep_clone(self) -> "Statement":
        """An independent copy with its own provenance set and qualifiers."""
        clone = Statement(
            self.subject,
            self.predicate,
            self._value,
            statement_id=self.statement_id,
            language=self._language,
            inferred=self.inferred,
        )
        clone.provenance = set(self.provenance)
        for qualifier in self.qualifiers:
            clone.add_qualifier(qualifier.copy())
        return clone

    @property
    def value(self) -> Any:
        return self._value

    @property
    def language(self) -> Optional[str]:
        return self._language

    def set_value(self, value: Any, language: Optional[str] = None) -> None:
        """
        Replace the statement value.

        A store value (Literal, Resource, Blank) is decoded and its language
        tag replaces the current one; a blank anchor becomes None. A native
        value replaces the language tag with ``language``.

        Raises:
            ValueError: language given with a store value or a non-string
            UnsupportedValueKind: store value the codec cannot decode
        """
        self._value, self._language = _assign_value(value, language, DEFAULT_CODEC)

    @property
    def is_persisted(self) -> bool:
        """True once store entries back this statement."""
        return bool(self.provenance)

    def add_qualifier(self, qualifier: Qualifier) -> None:
        """
        Attach a qualifier to this statement.

        No duplicate detection is done.

        Raises:
            ValueError: statement has no subject/predicate yet, or the
                qualifier already belongs to another statement
        """
        if self.subject is None or self.predicate is None:
            raise ValueError("Cannot attach a qualifier before subject and predicate are set")
        if qualifier.statement is not None and qualifier.statement is not self:
            raise ValueError(f"{qualifier!r} is already attached to another statement")
        qualifier.statement = self
        self.qualifiers.append(qualifier)

    def remove_qualifier(self, qualifier: Qualifier) -> None:
        """Detach a qualifier (by identity)."""
        for i, q in enumerate(self.qualifiers):
            if q is qualifier:
                del self.qualifiers[i]
                qualifier.statement = None
                return
        raise ValueError(f"{qualifier!r} is not attached to this statement")

    def __repr__(self) -> str:
        return (
            f"Statement(statement_id={self.statement_id!r}, "
            f"subject={self.subject.id!r}, "
            f"predicate={self.predicate.id if self.predicate else None!r}, "
            f"value={self._value!r}, language={self._language!r}, "
            f"inferred={self.inferred}, provenance={len(self.provenance)}, "
            f"qualifiers={len(self.qualifiers)})"
        )


# =============================================================================
# Matching
# =============================================================================

def statement_key(statement: Statement, codec: ValueCodec = DEFAULT_CODEC) -> Tuple:
    """(subject id, predicate id, normalized value, language) of a statement."""
    return (
        statement.subject.id,
        statement.predicate.id if statement.predicate else None,
        codec.normalize(statement.value, statement.language),
        statement.language,
    )


def loose_match(a: Statement, b: Statement) -> bool:
    """Same subject and predicate, values ignored."""
    if a.predicate is None or b.predicate is None:
        return False
    return a.subject.id == b.subject.id and a.predicate.id == b.predicate.id


def exact_match(a: Statement, b: Statement, codec: ValueCodec = DEFAULT_CODEC) -> bool:
    """
    Same subject, predicate, normalized value and language.

    Blank-backed (None) values never match: an anonymous anchor has no
    identity outside the store.
    """
    if not loose_match(a, b):
        return False
    key_a = statement_key(a, codec)
    key_b = statement_key(b, codec)
    if key_a[2] is None or key_b[2] is None:
        return False
    return key_a == key_b


class MatchRule(str, Enum):
    """Rule used to match a statement against store entries."""
    EXACT = "exact"
    LOOSE = "loose"

    def matches(self, a: Statement, b: Statement) -> bool:
        if self is MatchRule.LOOSE:
            return loose_match(a, b)
        return exact_match(a, b)
