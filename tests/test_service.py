"""Tests for the knowledge base service (statement reconciliation and writes)."""
import pytest

from kbgraph.config import KnowledgeBase
from kbgraph.errors import InferredStatementImmutableError, ReadOnlyKnowledgeBaseError
from kbgraph.handles import ResourceHandle
from kbgraph.service import KnowledgeBaseService
from kbgraph.statements import MatchRule, Qualifier, Statement
from kbgraph.storage.quads import QuadStore, StoreEntry
from kbgraph.storage.reification import ReificationMode, RdfReification
from kbgraph.values import XSD_INTEGER, Blank, Literal, Resource


PREF_LABEL = "skos:prefLabel"


@pytest.fixture
def service():
    return KnowledgeBaseService()


@pytest.fixture
def kb(service):
    kb = KnowledgeBase(id="places")
    service.register(kb)
    return kb


@pytest.fixture
def store(service, kb):
    return service.store_for(kb)


def galicia(value="Galicia", language="en"):
    return Statement(ResourceHandle("doc:1"), ResourceHandle(PREF_LABEL), value, language=language)


def qualifier_keys(statement):
    return [q.key() for q in statement.qualifiers]


# ========== Registration Tests ==========

class TestRegistration:
    def test_register_creates_store(self, service, kb):
        assert isinstance(service.store_for(kb), QuadStore)
        assert service.list_knowledge_bases() == [kb]

    def test_register_existing_store(self, service):
        store = QuadStore()
        kb = KnowledgeBase(id="other")
        assert service.register(kb, store) is store

    def test_register_twice(self, service, kb):
        with pytest.raises(ValueError, match="already exists"):
            service.register(kb)

    def test_unknown_knowledge_base(self, service):
        with pytest.raises(ValueError, match="does not exist"):
            service.init_statement(KnowledgeBase(id="missing"), galicia())

    def test_unregister(self, service, kb):
        service.unregister(kb)
        with pytest.raises(ValueError):
            service.store_for(kb)


# ========== End-to-end Tests ==========

class TestEndToEnd:
    def test_insert_and_rediscover(self, service, kb):
        st = galicia()
        assert st.qualifiers == []
        assert st.inferred is False

        service.init_statement(kb, st)
        assert st.provenance == set()

        service.upsert_statement(kb, st)
        assert len(st.provenance) == 1
        (entry,) = st.provenance

        fresh = galicia()
        service.init_statement(kb, fresh)
        assert fresh.provenance == {entry}
        assert fresh.inferred is False

    def test_written_entry(self, service, kb, store):
        st = service.upsert_statement(kb, galicia())
        (entry,) = st.provenance
        assert entry == StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en"))
        assert entry in store

    def test_explicit_graph(self, service):
        kb = KnowledgeBase(id="graphs", explicit_graph="urn:g:main")
        service.register(kb)
        st = service.upsert_statement(kb, galicia())
        assert {e.graph for e in st.provenance} == {"urn:g:main"}


# ========== init_statement Tests ==========

class TestInitStatement:
    def test_idempotent(self, service, kb):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), Resource("ex:wikipedia")))
        st.add_qualifier(Qualifier(ResourceHandle("ex:rank"), 1))
        service.upsert_statement(kb, st)

        fresh = galicia()
        service.init_statement(kb, fresh)
        first = (set(fresh.provenance), qualifier_keys(fresh))
        service.init_statement(kb, fresh)
        second = (set(fresh.provenance), qualifier_keys(fresh))
        assert first == second
        assert len(fresh.qualifiers) == 2

    def test_miss_keeps_qualifiers(self, service, kb):
        st = galicia()
        q = Qualifier(ResourceHandle("ex:source"), "draft")
        st.add_qualifier(q)
        service.init_statement(kb, st)
        assert st.provenance == set()
        assert st.qualifiers == [q]

    def test_miss_clears_stale_provenance(self, service, kb, store):
        st = service.upsert_statement(kb, galicia())
        store.clear()
        service.init_statement(kb, st)
        assert st.provenance == set()

    def test_qualifiers_restored(self, service, kb):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:note"), "nota", language="gl"))
        st.add_qualifier(Qualifier(ResourceHandle("ex:rank"), 1))
        service.upsert_statement(kb, st)

        fresh = service.init_statement(kb, galicia())
        note, rank = fresh.qualifiers
        assert note.predicate == ResourceHandle("ex:note")
        assert (note.value, note.language) == ("nota", "gl")
        assert rank.value == 1
        assert note.statement is fresh and rank.statement is fresh

    def test_value_normalization(self, service, kb, store):
        store.add(StoreEntry(Resource("doc:1"), Resource("ex:count"), Literal("01", datatype=XSD_INTEGER)))
        st = Statement(ResourceHandle("doc:1"), ResourceHandle("ex:count"), 1)
        service.init_statement(kb, st)
        assert len(st.provenance) == 1

    def test_language_must_match(self, service, kb):
        service.upsert_statement(kb, galicia())
        st = service.init_statement(kb, galicia(language="gl"))
        assert st.provenance == set()

    def test_multiple_backing_entries(self, service, kb, store):
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en")))
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en"), "urn:g:import"))
        st = service.init_statement(kb, galicia())
        assert len(st.provenance) == 2
        assert st.inferred is False

    def test_requires_predicate(self, service, kb):
        with pytest.raises(ValueError):
            service.init_statement(kb, Statement(ResourceHandle("doc:1")))

    def test_shared_view_sees_refresh(self, service, kb):
        service.upsert_statement(kb, galicia())
        st = galicia()
        view = Statement.shared_view(st)
        service.init_statement(kb, st)
        assert view.provenance == st.provenance
        assert len(view.provenance) == 1


# ========== upsert_statement Tests ==========

class TestUpsertStatement:
    def test_replaces_own_entry(self, service, kb, store):
        st = service.upsert_statement(kb, galicia())
        st.set_value("Galiza", language="gl")
        service.upsert_statement(kb, st)

        assert len(store) == 1
        (entry,) = st.provenance
        assert entry.object == Literal("Galiza", language="gl")

    def test_replaces_qualifiers(self, service, kb, store):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "a"))
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "b"))
        service.upsert_statement(kb, st)

        st.qualifiers.clear()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "c"))
        service.upsert_statement(kb, st)

        (entry,) = st.provenance
        pairs = RdfReification().read_qualifiers(store, entry)
        assert pairs == [(Resource("ex:source"), Literal("c"))]
        # entry + 4 reification quads + 1 qualifier
        assert len(store) == 6

    def test_removing_all_qualifiers(self, service, kb, store):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "a"))
        service.upsert_statement(kb, st)
        st.qualifiers.clear()
        service.upsert_statement(kb, st)
        assert len(store) == 1

    def test_requires_value(self, service, kb):
        with pytest.raises(ValueError, match="without a value"):
            service.upsert_statement(kb, Statement(ResourceHandle("doc:1"), ResourceHandle(PREF_LABEL)))

    def test_requires_predicate(self, service, kb):
        with pytest.raises(ValueError, match="without a predicate"):
            service.upsert_statement(kb, Statement(ResourceHandle("doc:1"), value="x"))

    def test_qualifier_without_value_rejected(self, service, kb, store):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source")))
        with pytest.raises(ValueError):
            service.upsert_statement(kb, st)
        assert len(store) == 0

    def test_qualifiers_need_reification(self, service):
        kb = KnowledgeBase(id="plain", reification=ReificationMode.NONE)
        store = service.register(kb)
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "a"))
        with pytest.raises(ValueError, match="does not support qualifiers"):
            service.upsert_statement(kb, st)
        assert len(store) == 0
        assert st.provenance == set()

    def test_plain_statement_without_reification(self, service):
        kb = KnowledgeBase(id="plain", reification=ReificationMode.NONE)
        store = service.register(kb)
        service.upsert_statement(kb, galicia())
        assert len(store) == 1


# ========== Exact vs Loose Matching Tests ==========

class TestMatchRules:
    def test_exact_miss_appends_new_value(self, service, kb):
        service.upsert_statement(kb, galicia())

        st = galicia("Galiza", "gl")
        service.init_statement(kb, st, MatchRule.EXACT)
        assert st.provenance == set()
        service.upsert_statement(kb, st)

        values = {(s.value, s.language) for s in service.list_statements(kb, "doc:1")}
        assert values == {("Galicia", "en"), ("Galiza", "gl")}

    def test_loose_match_updates_in_place(self, service, kb):
        service.upsert_statement(kb, galicia())

        st = galicia("Galiza", "gl")
        service.init_statement(kb, st, MatchRule.LOOSE)
        assert len(st.provenance) == 1
        service.upsert_statement(kb, st)

        statements = service.list_statements(kb, "doc:1")
        assert [(s.value, s.language) for s in statements] == [("Galiza", "gl")]
        assert statements[0].provenance == st.provenance

    def test_loose_match_collapses_values(self, service, kb):
        service.upsert_statement(kb, galicia())
        service.upsert_statement(kb, galicia("Galiza", "gl"))

        st = galicia("Galicia", "es")
        service.init_statement(kb, st, MatchRule.LOOSE)
        assert len(st.provenance) == 2
        service.upsert_statement(kb, st)
        assert len(service.list_statements(kb, "doc:1")) == 1


# ========== Read-only Tests ==========

class TestReadOnly:
    @pytest.fixture
    def read_only(self, service):
        kb = KnowledgeBase(id="frozen", read_only=True)
        store = service.register(kb)
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en")))
        return kb

    def test_upsert_rejected(self, service, read_only):
        st = service.init_statement(read_only, galicia())
        before = set(st.provenance)
        st.set_value("Galiza", language="gl")

        with pytest.raises(ReadOnlyKnowledgeBaseError) as exc:
            service.upsert_statement(read_only, st)
        assert exc.value.kb_id == "frozen"
        assert st.provenance == before
        assert len(service.store_for(read_only)) == 1

    def test_delete_rejected(self, service, read_only):
        st = service.init_statement(read_only, galicia())
        with pytest.raises(ReadOnlyKnowledgeBaseError):
            service.delete_statement(read_only, st)
        assert len(service.store_for(read_only)) == 1

    def test_reads_allowed(self, service, read_only):
        assert len(service.init_statement(read_only, galicia()).provenance) == 1
        assert len(service.list_statements(read_only, "doc:1")) == 1

    def test_load_rejected(self, service, read_only):
        with pytest.raises(ReadOnlyKnowledgeBaseError):
            service.load(read_only, "<http://example.org/a> <http://example.org/b> <http://example.org/c> .", "nt")

    def test_add_inferred_rejected(self, service, read_only):
        with pytest.raises(ReadOnlyKnowledgeBaseError):
            service.add_inferred(read_only, "doc:1", "rdf:type", Resource("ex:Region"))


# ========== Inferred Statement Tests ==========

class TestInferredStatements:
    def test_inferred_flag(self, service, kb):
        service.add_inferred(kb, "doc:1", PREF_LABEL, "Galicia", language="en")
        st = service.init_statement(kb, galicia())
        assert st.inferred is True
        assert {e.graph for e in st.provenance} == {kb.inferred_graph}

    def test_inferred_only_cannot_be_deleted(self, service, kb, store):
        service.add_inferred(kb, "doc:1", PREF_LABEL, "Galicia", language="en")
        st = service.init_statement(kb, galicia())
        with pytest.raises(InferredStatementImmutableError) as exc:
            service.delete_statement(kb, st)
        assert exc.value.statement is st
        assert len(store) == 1
        assert len(st.provenance) == 1

    def test_inferred_flag_without_provenance(self, service, kb):
        st = galicia()
        st.inferred = True
        with pytest.raises(InferredStatementImmutableError):
            service.delete_statement(kb, st)

    def test_asserting_inferred_fact(self, service, kb, store):
        service.add_inferred(kb, "doc:1", PREF_LABEL, "Galicia", language="en")
        st = service.init_statement(kb, galicia())
        service.upsert_statement(kb, st)

        assert len(st.provenance) == 2
        assert st.inferred is True

        service.delete_statement(kb, st)
        assert len(store) == 0
        assert st.provenance == set()
        assert st.inferred is False

    def test_changing_inferred_value_drops_inferred_entry(self, service, kb, store):
        inferred = service.add_inferred(kb, "doc:1", PREF_LABEL, "Galicia", language="en")
        st = service.init_statement(kb, galicia())
        st.set_value("Galiza", language="gl")
        service.upsert_statement(kb, st)

        assert st.inferred is False
        assert inferred not in st.provenance
        # The reasoner-derived entry itself is untouched
        assert inferred in store

    def test_list_excluding_inferred(self, service, kb):
        service.upsert_statement(kb, galicia())
        service.add_inferred(kb, "doc:1", "rdf:type", Resource("ex:Region"))

        assert len(service.list_statements(kb, "doc:1")) == 2
        explicit_only = service.list_statements(kb, "doc:1", include_inferred=False)
        assert [s.predicate.id for s in explicit_only] == [PREF_LABEL]


# ========== delete_statement Tests ==========

class TestDeleteStatement:
    def test_delete_removes_qualifiers(self, service, kb, store):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), "a"))
        service.upsert_statement(kb, st)
        assert len(store) == 6

        service.delete_statement(kb, st)
        assert len(store) == 0
        assert not st.is_persisted

    def test_delete_every_backing_entry(self, service, kb, store):
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en")))
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en"), "urn:g:import"))
        st = service.init_statement(kb, galicia())
        service.delete_statement(kb, st)
        assert len(store) == 0

    def test_delete_transient_is_noop(self, service, kb, store):
        service.upsert_statement(kb, galicia())
        service.delete_statement(kb, galicia())
        assert len(store) == 1

    def test_delete_leaves_other_values(self, service, kb):
        service.upsert_statement(kb, galicia())
        other = service.upsert_statement(kb, galicia("Galiza", "gl"))
        service.delete_statement(kb, other)
        assert [s.value for s in service.list_statements(kb, "doc:1")] == ["Galicia"]


# ========== list_statements Tests ==========

class TestListStatements:
    def test_groups_backing_entries(self, service, kb, store):
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en")))
        store.add(StoreEntry(Resource("doc:1"), Resource(PREF_LABEL), Literal("Galicia", language="en"), "urn:g:import"))
        store.add(StoreEntry(Resource("doc:1"), Resource("ex:count"), Literal("3", datatype=XSD_INTEGER)))

        statements = service.list_statements(kb, ResourceHandle("doc:1"))
        assert len(statements) == 2
        label, count = statements
        assert len(label.provenance) == 2
        assert count.value == 3

    def test_blank_value_is_absent(self, service, kb, store):
        store.add(StoreEntry(Resource("doc:1"), Resource("ex:address"), Blank("addr")))
        (st,) = service.list_statements(kb, "doc:1")
        assert st.value is None
        assert st.language is None
        assert st.is_persisted

    def test_qualifiers_listed(self, service, kb):
        st = galicia()
        st.add_qualifier(Qualifier(ResourceHandle("ex:source"), Resource("ex:wikipedia")))
        service.upsert_statement(kb, st)

        (listed,) = service.list_statements(kb, "doc:1")
        assert listed.qualifiers[0].value == Resource("ex:wikipedia")

    def test_unknown_subject(self, service, kb):
        assert service.list_statements(kb, "doc:404") == []


# ========== Import / Export Tests ==========

TURTLE = """
@prefix skos: <http://www.w3.org/2004/02/skos/core#> .
<http://example.org/doc1> skos:prefLabel "Galicia"@en , "Galiza"@gl ;
    <http://example.org/population> 2695645 .
"""


class TestImportExport:
    def test_load_turtle(self, service, kb):
        assert service.load(kb, TURTLE, "ttl") == 3
        statements = service.list_statements(kb, "http://example.org/doc1")
        values = {(s.value, s.language) for s in statements}
        assert values == {("Galicia", "en"), ("Galiza", "gl"), (2695645, None)}

    def test_loaded_fact_is_matched(self, service, kb):
        service.load(kb, TURTLE, "ttl")
        st = Statement.from_ids(None, "http://example.org/doc1", "http://example.org/population", 2695645)
        service.init_statement(kb, st)
        assert len(st.provenance) == 1

    def test_export(self, service, kb):
        service.upsert_statement(kb, galicia())
        service.add_inferred(kb, "doc:1", "rdf:type", Resource("ex:Region"))

        everything = service.export(kb, "nq")
        assert '"Galicia"@en' in everything
        assert "ex:Region" in everything
        assert "ex:Region" not in service.export(kb, "nq", include_inferred=False)

    def test_separate_loads_keep_anchors_apart(self, service, kb):
        template = """
<http://x/d> <http://x/p> "{value}" .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> <http://www.w3.org/1999/02/22-rdf-syntax-ns#Statement> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#subject> <http://x/d> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#predicate> <http://x/p> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#object> "{value}" .
_:a <http://x/q> "q-{value}" .
"""
        service.load(kb, template.format(value="one"), "nt")
        service.load(kb, template.format(value="two"), "nt")

        st = service.init_statement(kb, Statement.from_ids(None, "http://x/d", "http://x/p", "one"))
        assert [q.value for q in st.qualifiers] == ["q-one"]

    def test_loaded_language_tag_case(self, service, kb, store):
        service.load(kb, '<http://x/d> <http://x/p> "Galicia"@en-US .', "nt")
        st = Statement.from_ids(None, "http://x/d", "http://x/p")
        st.set_value("Galicia", language="en-US")
        service.init_statement(kb, st)
        assert len(st.provenance) == 1

        service.upsert_statement(kb, st)
        assert len(store) == 1


NESTED_QUALIFIER = """
<http://x/d> <http://x/p> "one" .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#type> <http://www.w3.org/1999/02/22-rdf-syntax-ns#Statement> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#subject> <http://x/d> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#predicate> <http://x/p> .
_:a <http://www.w3.org/1999/02/22-rdf-syntax-ns#object> "one" .
_:a <http://x/q> _:nested .
_:a <http://x/source> "import" .
_:nested <http://x/city> "Vigo" .
"""


class TestBlankQualifiers:
    def test_blank_valued_qualifier_skipped(self, service, kb):
        service.load(kb, NESTED_QUALIFIER, "nt")
        st = service.init_statement(kb, Statement.from_ids(None, "http://x/d", "http://x/p", "one"))
        assert [(q.predicate.id, q.value) for q in st.qualifiers] == [("http://x/source", "import")]

    def test_loaded_fact_stays_editable(self, service, kb):
        service.load(kb, NESTED_QUALIFIER, "nt")
        st = service.init_statement(kb, Statement.from_ids(None, "http://x/d", "http://x/p", "one"))
        st.set_value("uno")
        service.upsert_statement(kb, st)

        (listed,) = service.list_statements(kb, "http://x/d")
        assert listed.value == "uno"
        assert [q.value for q in listed.qualifiers] == ["import"]
