"""
Transport records for statements (e.g. UI state).

Statements serialize to pydantic models carrying the statement id, the
subject and predicate handles, the value, its language, the inferred flag
and the qualifiers. Values travel in store form (lexical text + datatype,
or resource id) so the native type survives the round trip through the
codec; handle values keep their label. Provenance is never serialized; it
is re-derived with KnowledgeBaseService.init_statement().
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from kbgraph.handles import ResourceHandle
from kbgraph.statements import Qualifier, Statement
from kbgraph.values import DEFAULT_CODEC, Literal, Resource, ValueCodec, ValueKind


class HandleRecord(BaseModel):
    """A resource handle."""
    id: str = Field(..., min_length=1)
    label: Optional[str] = None


class ValueRecord(BaseModel):
    """A value in store form."""
    kind: str = Field(..., pattern="^(literal|resource|handle)$")
    lexical: str = Field(..., description="Lexical form or resource id")
    datatype: Optional[str] = Field(default=None, description="Datatype IRI for literals")
    label: Optional[str] = Field(default=None, description="Label of a handle value")


class QualifierRecord(BaseModel):
    """A qualifier of a statement."""
    predicate: HandleRecord
    value: Optional[ValueRecord] = None
    language: Optional[str] = None


class StatementRecord(BaseModel):
    """A statement without provenance."""
    statement_id: Optional[str] = None
    subject: HandleRecord
    predicate: Optional[HandleRecord] = None
    value: Optional[ValueRecord] = None
    language: Optional[str] = None
    inferred: bool = False
    qualifiers: List[QualifierRecord] = Field(default_factory=list)


def _handle_record(handle: Optional[ResourceHandle]) -> Optional[HandleRecord]:
    if handle is None:
        return None
    return HandleRecord(id=handle.id, label=handle.label)


def _handle(record: Optional[HandleRecord]) -> Optional[ResourceHandle]:
    if record is None:
        return None
    return ResourceHandle(record.id, record.label)


def value_record(value: Any, language: Optional[str], codec: ValueCodec = DEFAULT_CODEC) -> Optional[ValueRecord]:
    if value is None:
        return None
    if isinstance(value, ResourceHandle):
        return ValueRecord(kind="handle", lexical=value.id, label=value.label)
    encoded = codec.encode(value, language)
    if encoded.kind == ValueKind.RESOURCE:
        return ValueRecord(kind="resource", lexical=encoded.id)
    return ValueRecord(kind="literal", lexical=encoded.text, datatype=encoded.datatype)


def record_value(record: Optional[ValueRecord], language: Optional[str]) -> Any:
    """Value for a record: a handle, or a store value the codec decodes on assignment."""
    if record is None:
        return None
    if record.kind == "handle":
        return ResourceHandle(record.lexical, record.label)
    if record.kind == "resource":
        return Resource(record.lexical)
    if language is not None:
        return Literal(record.lexical, language=language)
    if record.datatype:
        return Literal(record.lexical, datatype=record.datatype)
    return Literal(record.lexical)


def to_record(statement: Statement, codec: ValueCodec = DEFAULT_CODEC) -> StatementRecord:
    """Serialize a statement (provenance excluded)."""
    return StatementRecord(
        statement_id=statement.statement_id,
        subject=_handle_record(statement.subject),
        predicate=_handle_record(statement.predicate),
        value=value_record(statement.value, statement.language, codec),
        language=statement.language,
        inferred=statement.inferred,
        qualifiers=[
            QualifierRecord(
                predicate=_handle_record(q.predicate),
                value=value_record(q.value, q.language, codec),
                language=q.language,
            )
            for q in statement.qualifiers
        ],
    )


def from_record(record: StatementRecord) -> Statement:
    """Rebuild a transient statement from a record."""
    statement = Statement(
        _handle(record.subject),
        _handle(record.predicate),
        record_value(record.value, record.language),
        statement_id=record.statement_id,
        inferred=record.inferred,
    )
    for q in record.qualifiers:
        statement.add_qualifier(Qualifier(_handle(q.predicate), record_value(q.value, q.language)))
    return statement


def to_json(statement: Statement) -> str:
    return to_record(statement).model_dump_json()


def from_json(data: str) -> Statement:
    return from_record(StatementRecord.model_validate_json(data))
