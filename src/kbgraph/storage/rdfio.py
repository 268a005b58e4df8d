"""
RDF text import/export through pyoxigraph.

pyoxigraph does the parsing and serialization (Turtle, TriG, N-Triples,
N-Quads, RDF/XML); this module only translates between pyoxigraph terms
and the store value variant.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Union

from pyoxigraph import (
    BlankNode,
    DefaultGraph,
    Literal as OxLiteral,
    NamedNode,
    Quad,
    RdfFormat,
    Triple as OxTriple,
    parse as oxigraph_parse,
    serialize as oxigraph_serialize,
)

from kbgraph.errors import StoreError, UnsupportedValueKind
from kbgraph.storage.quads import StoreEntry
from kbgraph.values import (
    Blank,
    Literal,
    QuotedTriple,
    Resource,
    StoreValue,
    ValueKind,
    XSD_STRING,
)

logger = logging.getLogger(__name__)


# Map file suffix / short name to pyoxigraph format
FORMAT_MAP = {
    "ttl": RdfFormat.TURTLE,
    "turtle": RdfFormat.TURTLE,
    "nt": RdfFormat.N_TRIPLES,
    "ntriples": RdfFormat.N_TRIPLES,
    "nq": RdfFormat.N_QUADS,
    "nquads": RdfFormat.N_QUADS,
    "trig": RdfFormat.TRIG,
    "rdf": RdfFormat.RDF_XML,
    "xml": RdfFormat.RDF_XML,
}


def resolve_format(fmt: Union[str, RdfFormat]) -> RdfFormat:
    """Resolve a format name or suffix ('ttl', '.nq', ...) to an RdfFormat."""
    if isinstance(fmt, RdfFormat):
        return fmt
    key = fmt.lower().lstrip(".")
    if key not in FORMAT_MAP:
        raise ValueError(f"Unknown RDF format '{fmt}'. Valid options: {sorted(FORMAT_MAP)}")
    return FORMAT_MAP[key]


def from_oxigraph(term) -> StoreValue:
    """
    Convert a pyoxigraph term to a store value.

    Raises:
        UnsupportedValueKind: for terms with no store representation
    """
    if isinstance(term, NamedNode):
        return Resource(term.value)
    elif isinstance(term, BlankNode):
        return Blank(term.value)
    elif isinstance(term, OxLiteral):
        if term.language:
            return Literal(term.value, language=term.language)
        return Literal(term.value, datatype=term.datatype.value)
    elif isinstance(term, OxTriple):
        return QuotedTriple(
            from_oxigraph(term.subject),
            from_oxigraph(term.predicate),
            from_oxigraph(term.object),
        )
    raise UnsupportedValueKind(term)


def to_oxigraph(value: StoreValue):
    """Convert a store value to a pyoxigraph term."""
    kind = value.kind
    if kind == ValueKind.RESOURCE:
        return NamedNode(value.id)
    elif kind == ValueKind.BLANK:
        return BlankNode(value.id)
    elif kind == ValueKind.LITERAL:
        if value.language is not None:
            return OxLiteral(value.text, language=value.language)
        if value.datatype == XSD_STRING:
            return OxLiteral(value.text)
        return OxLiteral(value.text, datatype=NamedNode(value.datatype))
    elif kind == ValueKind.QUOTED_TRIPLE:
        return OxTriple(
            to_oxigraph(value.subject),
            to_oxigraph(value.predicate),
            to_oxigraph(value.object),
        )
    raise UnsupportedValueKind(value)


def parse_entries(
    data: Union[str, bytes],
    fmt: Union[str, RdfFormat],
    graph: Optional[str] = None,
    base_iri: Optional[str] = None,
) -> Iterator[StoreEntry]:
    """
    Parse RDF text into store entries.

    Triples of the default graph are placed in ``graph``; quads of named
    graphs keep their graph name. Blank nodes are relabelled so that
    anchors of separate documents never collide.

    Raises:
        StoreError: malformed input
    """
    rdf_format = resolve_format(fmt)
    try:
        # Blank labels are document-scoped: each parse gets fresh ones
        quads = list(oxigraph_parse(data, rdf_format, base_iri=base_iri, rename_blank_nodes=True))
    except (SyntaxError, ValueError) as e:
        raise StoreError(f"Failed to parse {rdf_format}: {e}") from e

    for quad in quads:
        if isinstance(quad.graph_name, DefaultGraph):
            graph_name = graph
        else:
            graph_name = quad.graph_name.value
        yield StoreEntry(
            subject=from_oxigraph(quad.subject),
            predicate=Resource(quad.predicate.value),
            object=from_oxigraph(quad.object),
            graph=graph_name,
        )


def serialize_entries(
    entries: Iterable[StoreEntry],
    fmt: Union[str, RdfFormat] = RdfFormat.N_QUADS,
) -> str:
    """Serialize store entries as RDF text."""
    rdf_format = resolve_format(fmt)
    quads = []
    for entry in entries:
        graph_name = NamedNode(entry.graph) if entry.graph is not None else DefaultGraph()
        quads.append(Quad(
            to_oxigraph(entry.subject),
            NamedNode(entry.predicate.id),
            to_oxigraph(entry.object),
            graph_name,
        ))

    if rdf_format.supports_datasets:
        payload = quads
    else:
        payload = [q.triple for q in quads]
    try:
        return oxigraph_serialize(payload, format=rdf_format).decode("utf-8")
    except (SyntaxError, ValueError) as e:
        raise StoreError(f"Failed to serialize {rdf_format}: {e}") from e
