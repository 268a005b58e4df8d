"""
kbgraph: knowledge-base statements over a quad store.

Maps between the RDF value model (literals, resources, blank anchors) and
mutable statements with qualifiers, provenance and inferred-fact tracking.
"""

__version__ = "0.1.0"

from kbgraph.errors import (
    KnowledgeBaseError,
    UnsupportedValueKind,
    ReadOnlyKnowledgeBaseError,
    InferredStatementImmutableError,
    StoreError,
)
from kbgraph.handles import ResourceHandle
from kbgraph.values import (
    ValueKind,
    Literal,
    Resource,
    Blank,
    QuotedTriple,
    ValueCodec,
    decode,
    encode,
    normalize,
)
from kbgraph.statements import (
    Statement,
    Qualifier,
    MatchRule,
    exact_match,
    loose_match,
)
from kbgraph.config import (
    KnowledgeBase,
    ConfigValidator,
    ConfigValidationError,
    load_knowledge_base,
    save_knowledge_base,
)
from kbgraph.storage import QuadStore, StoreEntry, ReificationMode
from kbgraph.service import KnowledgeBaseService

__all__ = [
    # Errors
    "KnowledgeBaseError",
    "UnsupportedValueKind",
    "ReadOnlyKnowledgeBaseError",
    "InferredStatementImmutableError",
    "StoreError",
    # Values
    "ValueKind",
    "Literal",
    "Resource",
    "Blank",
    "QuotedTriple",
    "ValueCodec",
    "decode",
    "encode",
    "normalize",
    # Statements
    "ResourceHandle",
    "Statement",
    "Qualifier",
    "MatchRule",
    "exact_match",
    "loose_match",
    # Configuration
    "KnowledgeBase",
    "ConfigValidator",
    "ConfigValidationError",
    "load_knowledge_base",
    "save_knowledge_base",
    # Storage
    "QuadStore",
    "StoreEntry",
    "ReificationMode",
    "KnowledgeBaseService",
]
