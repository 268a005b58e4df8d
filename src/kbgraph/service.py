"""
Knowledge base service: the boundary between statements and the store.

Responsibilities:
- Registering knowledge bases and their quad stores
- Reconciling transient statements with backing entries (init_statement)
- Writing statements and their qualifiers (upsert_statement)
- Deleting statements with every backing entry (delete_statement)
- Listing the statements of a subject (list_statements)
- Read-only and inferred-fact protection

Provenance model: a statement is backed by every entry with the same
subject, predicate and value, in any graph. Entries in the knowledge
base's inferred graph are reasoner-derived; all others are explicit.
Inferred entries are never written or replaced by upserts, and a
statement backed only by inferred entries cannot be deleted.

Thread-safety: NOT thread-safe. Callers serialize writes per knowledge base.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from kbgraph.config import KnowledgeBase
from kbgraph.errors import (
    InferredStatementImmutableError,
    ReadOnlyKnowledgeBaseError,
)
from kbgraph.handles import ResourceHandle
from kbgraph.statements import MatchRule, Qualifier, Statement
from kbgraph.storage.quads import QuadStore, StoreEntry
from kbgraph.storage.rdfio import parse_entries, serialize_entries
from kbgraph.storage.reification import strategy_for
from kbgraph.values import DEFAULT_CODEC, Resource, StoreValue, ValueCodec, ValueKind

logger = logging.getLogger(__name__)


class KnowledgeBaseService:
    """
    Statement-level access to knowledge bases.

    Usage:
        service = KnowledgeBaseService()
        kb = KnowledgeBase(id="places")
        service.register(kb)

        st = Statement.from_ids(None, "doc:1", "skos:prefLabel", "Galicia")
        service.init_statement(kb, st)     # attaches provenance if the fact exists
        st.set_value("Galicia", language="en")
        service.upsert_statement(kb, st)   # writes it, provenance refreshed
    """

    def __init__(self, codec: ValueCodec = DEFAULT_CODEC):
        self._codec = codec
        self._stores: Dict[str, QuadStore] = {}
        self._knowledge_bases: Dict[str, KnowledgeBase] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, kb: KnowledgeBase, store: Optional[QuadStore] = None) -> QuadStore:
        """Attach a store to a knowledge base (a fresh one if none given)."""
        if kb.id in self._stores:
            raise ValueError(f"Knowledge base '{kb.id}' already exists")
        store = store if store is not None else QuadStore()
        self._stores[kb.id] = store
        self._knowledge_bases[kb.id] = kb
        logger.info(f"Registered knowledge base '{kb.id}' ({len(store)} entries)")
        return store

    def unregister(self, kb: KnowledgeBase) -> None:
        self.store_for(kb)
        del self._stores[kb.id]
        del self._knowledge_bases[kb.id]

    def store_for(self, kb: KnowledgeBase) -> QuadStore:
        if kb.id not in self._stores:
            raise ValueError(f"Knowledge base '{kb.id}' does not exist")
        return self._stores[kb.id]

    def list_knowledge_bases(self) -> List[KnowledgeBase]:
        return list(self._knowledge_bases.values())

    def _check_writable(self, kb: KnowledgeBase) -> QuadStore:
        store = self.store_for(kb)
        if kb.read_only:
            raise ReadOnlyKnowledgeBaseError(kb.id)
        return store

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _normalized(self, value: StoreValue) -> Optional[StoreValue]:
        """Canonical form of a stored object; quoted triples have none."""
        if value.kind == ValueKind.QUOTED_TRIPLE:
            return None
        return self._codec.normalize_store_value(value)

    def _find_entries(
        self,
        store: QuadStore,
        statement: Statement,
        rule: MatchRule,
    ) -> List[StoreEntry]:
        candidates = store.match(
            subject=Resource(statement.subject.id),
            predicate=Resource(statement.predicate.id),
        )
        if rule is MatchRule.LOOSE:
            return candidates

        target = self._codec.normalize(statement.value, statement.language)
        if target is None:
            return []
        return [e for e in candidates if self._normalized(e.object) == target]

    def _read_qualifiers(
        self,
        kb: KnowledgeBase,
        store: QuadStore,
        entries: Iterable[StoreEntry],
    ) -> List[Qualifier]:
        strategy = strategy_for(kb.reification)
        qualifiers: "OrderedDict[Tuple, Qualifier]" = OrderedDict()
        for entry in entries:
            for predicate, value in strategy.read_qualifiers(store, entry):
                if value.kind == ValueKind.BLANK:
                    # Nested structures have no native value to edit or write back
                    logger.debug(f"Skipping blank-valued qualifier {predicate.id} on {entry}")
                    continue
                qualifier = Qualifier(ResourceHandle(predicate.id), value)
                qualifiers.setdefault(qualifier.key(self._codec), qualifier)
        return list(qualifiers.values())

    def _split_provenance(
        self,
        kb: KnowledgeBase,
        entries: Iterable[StoreEntry],
    ) -> Tuple[List[StoreEntry], List[StoreEntry]]:
        """(explicit, inferred) entries."""
        explicit, inferred = [], []
        for entry in entries:
            (inferred if kb.is_inferred_graph(entry.graph) else explicit).append(entry)
        return explicit, inferred

    # ------------------------------------------------------------------
    # Statement operations
    # ------------------------------------------------------------------

    def init_statement(
        self,
        kb: KnowledgeBase,
        statement: Statement,
        rule: MatchRule = MatchRule.EXACT,
    ) -> Statement:
        """
        Reconcile a statement with the store.

        On a hit the statement's provenance is replaced by the matching
        entries, its qualifiers by those reified on them, and ``inferred``
        reflects whether any entry is reasoner-derived. On a miss the
        provenance is emptied and qualifiers are left as they are.

        With MatchRule.LOOSE every value of (subject, predicate) is
        attached, so a following upsert replaces them with the
        statement's value.

        Repeated calls against an unchanged store attach the same result.
        """
        if statement.predicate is None:
            raise ValueError("Cannot initialize a statement without a predicate")

        store = self.store_for(kb)
        found = self._find_entries(store, statement, rule)

        # In place: shared views hold the same containers
        statement.provenance.clear()
        statement.provenance.update(found)

        if found:
            _, inferred = self._split_provenance(kb, found)
            statement.inferred = bool(inferred)
            qualifiers = self._read_qualifiers(kb, store, found)
            statement.qualifiers.clear()
            for qualifier in qualifiers:
                statement.add_qualifier(qualifier)

        logger.debug(
            f"init_statement {statement.subject.id} {statement.predicate.id} "
            f"({rule.value}) in '{kb.id}': {len(found)} entries"
        )
        return statement

    def upsert_statement(self, kb: KnowledgeBase, statement: Statement) -> Statement:
        """
        Write a statement and its qualifiers.

        The statement's explicit entries (and their qualifiers) are replaced
        by one entry for the current value in the knowledge base's explicit
        graph, carrying the statement's qualifier set. Inferred entries are
        kept in provenance only while they still match the value.

        Raises:
            ReadOnlyKnowledgeBaseError: knowledge base is read-only
            ValueError: no predicate/value, or qualifiers the knowledge base
                cannot store
        """
        store = self._check_writable(kb)

        if statement.predicate is None:
            raise ValueError("Cannot upsert a statement without a predicate")
        if statement.value is None:
            raise ValueError("Cannot upsert a statement without a value")

        strategy = strategy_for(kb.reification)
        if statement.qualifiers and not strategy.supports_qualifiers:
            raise ValueError(
                f"Knowledge base '{kb.id}' does not support qualifiers "
                f"(reification: {kb.reification.value})"
            )

        # Encode everything before touching the store
        new_object = self._codec.encode(statement.value, statement.language)
        qualifier_pairs = []
        for qualifier in statement.qualifiers:
            if qualifier.value is None:
                raise ValueError(f"Cannot store {qualifier!r} without a value")
            qualifier_pairs.append((
                Resource(qualifier.predicate.id),
                self._codec.encode(qualifier.value, qualifier.language),
            ))
        new_entry = StoreEntry(
            subject=Resource(statement.subject.id),
            predicate=Resource(statement.predicate.id),
            object=new_object,
            graph=kb.explicit_graph,
        )

        explicit, inferred = self._split_provenance(kb, statement.provenance)
        for entry in explicit:
            strategy.remove_qualifiers(store, entry)
            store.remove(entry)

        store.add(new_entry)
        strategy.remove_qualifiers(store, new_entry)
        strategy.write_qualifiers(store, new_entry, qualifier_pairs)

        target = self._codec.normalize_store_value(new_object)
        retained = [e for e in inferred if self._normalized(e.object) == target]

        statement.provenance.clear()
        statement.provenance.add(new_entry)
        statement.provenance.update(retained)
        statement.inferred = bool(retained)

        logger.info(
            f"Upserted {statement.subject.id} {statement.predicate.id} in '{kb.id}' "
            f"(replaced {len(explicit)} entries, {len(qualifier_pairs)} qualifiers)"
        )
        return statement

    def delete_statement(self, kb: KnowledgeBase, statement: Statement) -> None:
        """
        Delete a statement: every provenance entry and its qualifiers.

        Raises:
            ReadOnlyKnowledgeBaseError: knowledge base is read-only
            InferredStatementImmutableError: only inferred entries back it
        """
        store = self._check_writable(kb)

        explicit, inferred = self._split_provenance(kb, statement.provenance)
        if not explicit and (inferred or statement.inferred):
            raise InferredStatementImmutableError(statement)

        if not statement.provenance:
            logger.debug(f"delete_statement on transient {statement!r}: nothing to remove")
            return

        strategy = strategy_for(kb.reification)
        removed = 0
        for entry in explicit + inferred:
            strategy.remove_qualifiers(store, entry)
            if store.remove(entry):
                removed += 1

        statement.provenance.clear()
        statement.inferred = False
        logger.info(
            f"Deleted {statement.subject.id} "
            f"{statement.predicate.id if statement.predicate else None} "
            f"from '{kb.id}' ({removed} entries)"
        )

    def list_statements(
        self,
        kb: KnowledgeBase,
        subject: Union[ResourceHandle, str],
        include_inferred: bool = True,
    ) -> List[Statement]:
        """
        Persisted statements about a subject, one per distinct fact.

        Physical entries of the same fact (e.g. explicit and inferred
        copies) are grouped into one statement's provenance.
        """
        if isinstance(subject, str):
            subject = ResourceHandle(subject)
        store = self.store_for(kb)

        groups: "OrderedDict[Tuple, List[StoreEntry]]" = OrderedDict()
        for entry in store.match(subject=Resource(subject.id)):
            normalized = self._codec.normalize_store_value(entry.object)
            # Blank-backed values group by their anchor
            key = (entry.predicate.id, normalized if normalized is not None else entry.object)
            groups.setdefault(key, []).append(entry)

        statements = []
        for (predicate_id, _), entries in groups.items():
            explicit, inferred = self._split_provenance(kb, entries)
            if not include_inferred and not explicit:
                continue
            statement = Statement(subject, ResourceHandle(predicate_id), entries[0].object)
            statement.provenance.update(entries)
            statement.inferred = bool(inferred)
            for qualifier in self._read_qualifiers(kb, store, entries):
                statement.add_qualifier(qualifier)
            statements.append(statement)
        return statements

    def add_inferred(
        self,
        kb: KnowledgeBase,
        subject: Union[ResourceHandle, str],
        predicate: Union[ResourceHandle, str],
        value: Any,
        language: Optional[str] = None,
    ) -> StoreEntry:
        """Materialize a reasoner-derived entry in the inferred graph."""
        store = self._check_writable(kb)
        subject_id = subject.id if isinstance(subject, ResourceHandle) else subject
        predicate_id = predicate.id if isinstance(predicate, ResourceHandle) else predicate
        entry = StoreEntry(
            subject=Resource(subject_id),
            predicate=Resource(predicate_id),
            object=self._codec.encode(value, language),
            graph=kb.inferred_graph,
        )
        store.add(entry)
        logger.debug(f"Inferred {subject_id} {predicate_id} in '{kb.id}'")
        return entry

    # ------------------------------------------------------------------
    # Bulk import / export
    # ------------------------------------------------------------------

    def load(self, kb: KnowledgeBase, data: Union[str, bytes], fmt: str = "ttl") -> int:
        """
        Load RDF text into the knowledge base.

        Triples go to the explicit graph; named graphs of quad formats are
        kept. Returns the number of new entries.
        """
        store = self._check_writable(kb)
        entries = list(parse_entries(data, fmt, graph=kb.explicit_graph))
        count = store.add_all(entries)
        logger.info(f"Loaded {count} entries into '{kb.id}' ({len(entries)} parsed)")
        return count

    def export(self, kb: KnowledgeBase, fmt: str = "nq", include_inferred: bool = True) -> str:
        """Serialize the knowledge base's entries as RDF text."""
        store = self.store_for(kb)
        entries = [
            e for e in store
            if include_inferred or not kb.is_inferred_graph(e.graph)
        ]
        return serialize_entries(entries, fmt)
