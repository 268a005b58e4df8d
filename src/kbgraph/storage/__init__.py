"""
kbgraph storage layer.

Columnar quad store, RDF import/export and qualifier reification.
"""

from kbgraph.storage.quads import QuadStore, StoreEntry, ANY_GRAPH
from kbgraph.storage.reification import (
    ReificationMode,
    NoReification,
    RdfReification,
    strategy_for,
)
from kbgraph.storage.rdfio import (
    from_oxigraph,
    to_oxigraph,
    parse_entries,
    serialize_entries,
)

__all__ = [
    "QuadStore",
    "StoreEntry",
    "ANY_GRAPH",
    "ReificationMode",
    "NoReification",
    "RdfReification",
    "strategy_for",
    "from_oxigraph",
    "to_oxigraph",
    "parse_entries",
    "serialize_entries",
]
