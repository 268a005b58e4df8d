"""
Reification strategies for statement qualifiers.

Qualifiers are facts about a statement. The store only holds triples, so
a statement entry that carries qualifiers is reified: a blank anchor
stands for the entry and the qualifiers hang off that anchor.

RDF reification (ReificationMode.RDF), per entry (s, p, o) in graph g:

    _:b  rdf:type       rdf:Statement  g
    _:b  rdf:subject    s              g
    _:b  rdf:predicate  p              g
    _:b  rdf:object     o              g
    _:b  q1             v1             g    # one per qualifier

ReificationMode.NONE keeps plain triples only and has no qualifiers.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Sequence, Tuple

from kbgraph.storage.quads import QuadStore, StoreEntry
from kbgraph.values import RDF, Blank, Resource, StoreValue, ValueKind

logger = logging.getLogger(__name__)


RDF_TYPE = Resource(RDF + "type")
RDF_STATEMENT = Resource(RDF + "Statement")
RDF_SUBJECT = Resource(RDF + "subject")
RDF_PREDICATE = Resource(RDF + "predicate")
RDF_OBJECT = Resource(RDF + "object")

# Predicates describing the anchor itself rather than a qualifier
REIFICATION_VOCABULARY = frozenset(
    r.id for r in (RDF_TYPE, RDF_SUBJECT, RDF_PREDICATE, RDF_OBJECT)
)

QualifierPair = Tuple[Resource, StoreValue]


class ReificationMode(str, Enum):
    """How qualifiers are represented in the store."""
    NONE = "none"   # Plain triples, no qualifiers
    RDF = "rdf"     # rdf:Statement reification


class NoReification:
    """Plain triples; qualifiers are not supported."""

    mode = ReificationMode.NONE
    supports_qualifiers = False

    def anchors(self, store: QuadStore, entry: StoreEntry) -> List[Blank]:
        return []

    def read_qualifiers(self, store: QuadStore, entry: StoreEntry) -> List[QualifierPair]:
        return []

    def write_qualifiers(
        self,
        store: QuadStore,
        entry: StoreEntry,
        qualifiers: Sequence[QualifierPair],
    ) -> int:
        if qualifiers:
            raise ValueError("Knowledge base does not support qualifiers (reification: none)")
        return 0

    def remove_qualifiers(self, store: QuadStore, entry: StoreEntry) -> int:
        return 0


class RdfReification(NoReification):
    """Standard RDF reification with rdf:Statement anchors."""

    mode = ReificationMode.RDF
    supports_qualifiers = True

    def anchors(self, store: QuadStore, entry: StoreEntry) -> List[Blank]:
        """Blank anchors reifying ``entry`` in its graph."""
        result = []
        for candidate in store.match(predicate=RDF_SUBJECT, object=entry.subject, graph=entry.graph):
            anchor = candidate.subject
            if anchor.kind != ValueKind.BLANK or anchor in result:
                continue
            if (
                StoreEntry(anchor, RDF_PREDICATE, entry.predicate, entry.graph) in store
                and StoreEntry(anchor, RDF_OBJECT, entry.object, entry.graph) in store
            ):
                result.append(anchor)
        return result

    def read_qualifiers(self, store: QuadStore, entry: StoreEntry) -> List[QualifierPair]:
        """(predicate, value) pairs attached to ``entry``, in store order."""
        pairs = []
        for anchor in self.anchors(store, entry):
            for fact in store.match(subject=anchor, graph=entry.graph):
                if fact.predicate.id not in REIFICATION_VOCABULARY:
                    pairs.append((fact.predicate, fact.object))
        return pairs

    def write_qualifiers(
        self,
        store: QuadStore,
        entry: StoreEntry,
        qualifiers: Sequence[QualifierPair],
    ) -> int:
        """Reify ``entry`` under a fresh anchor and attach the qualifiers."""
        if not qualifiers:
            return 0
        anchor = Blank()
        g = entry.graph
        facts = [
            StoreEntry(anchor, RDF_TYPE, RDF_STATEMENT, g),
            StoreEntry(anchor, RDF_SUBJECT, entry.subject, g),
            StoreEntry(anchor, RDF_PREDICATE, entry.predicate, g),
            StoreEntry(anchor, RDF_OBJECT, entry.object, g),
        ]
        facts.extend(StoreEntry(anchor, predicate, value, g) for predicate, value in qualifiers)
        store.add_all(facts)
        logger.debug(f"Reified {entry} as _:{anchor.id} with {len(qualifiers)} qualifiers")
        return len(qualifiers)

    def remove_qualifiers(self, store: QuadStore, entry: StoreEntry) -> int:
        """Drop every anchor of ``entry`` together with its qualifiers."""
        removed = 0
        for anchor in self.anchors(store, entry):
            removed += store.remove_all(store.match(subject=anchor, graph=entry.graph))
        return removed


_STRATEGIES = {
    ReificationMode.NONE: NoReification(),
    ReificationMode.RDF: RdfReification(),
}


def strategy_for(mode: ReificationMode) -> NoReification:
    """The reification strategy for a mode."""
    return _STRATEGIES[ReificationMode(mode)]
