"""
Exception hierarchy for the knowledge-base statement layer.

Every failure raised by kbgraph derives from KnowledgeBaseError so callers
at the service boundary can catch the whole family in one place.
Programming errors (broken local invariants) raise ValueError instead.
"""

from __future__ import annotations

from typing import Any, Optional


class KnowledgeBaseError(Exception):
    """Base class for knowledge-base errors."""
    pass


class UnsupportedValueKind(KnowledgeBaseError):
    """
    A value falls outside the categories the codec understands.

    Signals a store/schema mismatch (e.g. an RDF-star triple term where a
    literal, resource or blank node was expected). Never retried.
    """

    def __init__(self, value: Any, message: Optional[str] = None):
        self.value = value
        super().__init__(message or f"Unsupported value kind: {type(value).__name__} ({value!r})")


class ReadOnlyKnowledgeBaseError(KnowledgeBaseError):
    """A mutating operation targeted a knowledge base flagged read-only."""

    def __init__(self, kb_id: str):
        self.kb_id = kb_id
        super().__init__(f"Knowledge base '{kb_id}' is read-only")


class InferredStatementImmutableError(KnowledgeBaseError):
    """A destructive edit targeted a reasoner-derived fact with no explicit backing."""

    def __init__(self, statement: Any):
        self.statement = statement
        super().__init__(
            f"Statement {statement!r} is inferred and has no explicit provenance; "
            "it cannot be deleted"
        )


class StoreError(KnowledgeBaseError):
    """Opaque failure from the backing store (IO, malformed data, engine errors)."""
    pass
