"""
In-memory quad store backed by a Polars DataFrame.

Each row is one physical entry (graph, subject, predicate, object). Terms
are stored column-wise with a kind tag, so literals keep their lexical
form, datatype and language separately:

    g       Utf8   graph name (null = default graph)
    s_kind  UInt8  ValueKind of the subject
    s       Utf8   subject id / blank label
    p       Utf8   predicate id
    o_kind  UInt8  ValueKind of the object
    o_lex   Utf8   object id / blank label / lexical form
    o_dt    Utf8   literal datatype (null for non-literals)
    o_lang  Utf8   literal language (null unless language-tagged)

The store has set semantics: adding an entry twice keeps one row.
It supports pattern matching only; it is not a query engine.

Thread-safety: NOT thread-safe. The service boundary serializes writes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import polars as pl

from kbgraph.errors import StoreError
from kbgraph.values import (
    Blank,
    Literal,
    QuotedTriple,
    Resource,
    StoreValue,
    ValueKind,
)

logger = logging.getLogger(__name__)


# Sentinel for "any graph" in match(); None means the default graph
ANY_GRAPH = object()

SCHEMA = {
    "g": pl.Utf8,
    "s_kind": pl.UInt8,
    "s": pl.Utf8,
    "p": pl.Utf8,
    "o_kind": pl.UInt8,
    "o_lex": pl.Utf8,
    "o_dt": pl.Utf8,
    "o_lang": pl.Utf8,
}


@dataclass(frozen=True, slots=True)
class StoreEntry:
    """
    One physical quad in the store.

    StoreEntry values are the provenance identities of statements: two
    entries are the same backing row iff all four positions are equal.
    """
    subject: StoreValue
    predicate: Resource
    object: StoreValue
    graph: Optional[str] = None


# =============================================================================
# Term <-> column conversion
# =============================================================================

def _term_columns(term: StoreValue) -> Tuple[int, str, Optional[str], Optional[str]]:
    kind = term.kind
    if kind == ValueKind.LITERAL:
        return int(kind), term.text, term.datatype, term.language
    elif kind == ValueKind.RESOURCE or kind == ValueKind.BLANK:
        return int(kind), term.id, None, None
    elif kind == ValueKind.QUOTED_TRIPLE:
        return int(kind), json.dumps(_term_to_json(term)), None, None
    raise StoreError(f"Cannot store term {term!r}")


def _term_from_columns(
    kind: int,
    lex: str,
    datatype: Optional[str] = None,
    language: Optional[str] = None,
) -> StoreValue:
    kind = ValueKind(kind)
    if kind == ValueKind.LITERAL:
        if language is not None:
            return Literal(lex, language=language)
        return Literal(lex, datatype=datatype) if datatype else Literal(lex)
    elif kind == ValueKind.RESOURCE:
        return Resource(lex)
    elif kind == ValueKind.BLANK:
        return Blank(lex)
    return _term_from_json(json.loads(lex))


def _term_to_json(term: StoreValue) -> Dict[str, Any]:
    if term.kind == ValueKind.QUOTED_TRIPLE:
        return {
            "kind": int(term.kind),
            "s": _term_to_json(term.subject),
            "p": _term_to_json(term.predicate),
            "o": _term_to_json(term.object),
        }
    kind, lex, datatype, language = _term_columns(term)
    return {"kind": kind, "lex": lex, "dt": datatype, "lang": language}


def _term_from_json(data: Dict[str, Any]) -> StoreValue:
    if data["kind"] == ValueKind.QUOTED_TRIPLE:
        return QuotedTriple(
            _term_from_json(data["s"]),
            _term_from_json(data["p"]),
            _term_from_json(data["o"]),
        )
    return _term_from_columns(data["kind"], data["lex"], data.get("dt"), data.get("lang"))


def _entry_row(entry: StoreEntry) -> Dict[str, Any]:
    s_kind, s, _, _ = _term_columns(entry.subject)
    o_kind, o_lex, o_dt, o_lang = _term_columns(entry.object)
    return {
        "g": entry.graph,
        "s_kind": s_kind,
        "s": s,
        "p": entry.predicate.id,
        "o_kind": o_kind,
        "o_lex": o_lex,
        "o_dt": o_dt,
        "o_lang": o_lang,
    }


def _row_entry(row: Dict[str, Any]) -> StoreEntry:
    return StoreEntry(
        subject=_term_from_columns(row["s_kind"], row["s"]),
        predicate=Resource(row["p"]),
        object=_term_from_columns(row["o_kind"], row["o_lex"], row["o_dt"], row["o_lang"]),
        graph=row["g"],
    )


def _col_eq(name: str, value: Any) -> pl.Expr:
    """Null-aware equality filter (null equals null, never a value)."""
    if value is None:
        return pl.col(name).is_null()
    return pl.col(name).eq_missing(value)


# =============================================================================
# Quad store
# =============================================================================

class QuadStore:
    """
    Columnar quad store.

    Usage:
        store = QuadStore()
        store.add(StoreEntry(Resource("doc:1"), Resource("rdfs:label"), Literal("x")))
        store.match(subject=Resource("doc:1"))
        store.save("kb.parquet")
    """

    def __init__(self, df: Optional[pl.DataFrame] = None):
        self._df = df if df is not None else self._create_empty_dataframe()

    @staticmethod
    def _create_empty_dataframe() -> pl.DataFrame:
        return pl.DataFrame(schema=SCHEMA)

    def __len__(self) -> int:
        return self._df.height

    def __iter__(self) -> Iterator[StoreEntry]:
        for row in self._df.iter_rows(named=True):
            yield _row_entry(row)

    def __contains__(self, entry: StoreEntry) -> bool:
        return self._filter_entry(entry).height > 0

    def __repr__(self) -> str:
        return f"QuadStore(entries={len(self)}, graphs={len(self.graphs())})"

    def to_dataframe(self) -> pl.DataFrame:
        """The underlying quad table."""
        return self._df

    def graphs(self) -> List[Optional[str]]:
        """Graph names in use (None for the default graph)."""
        return self._df.get_column("g").unique(maintain_order=True).to_list()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, entry: StoreEntry) -> bool:
        """Add an entry. Returns False if it was already present."""
        if entry in self:
            return False
        row = pl.DataFrame([_entry_row(entry)], schema=SCHEMA)
        self._df = pl.concat([self._df, row], how="vertical")
        return True

    def add_all(self, entries: Iterable[StoreEntry]) -> int:
        """Bulk add. Returns the number of new entries."""
        rows = [_entry_row(e) for e in entries]
        if not rows:
            return 0
        before = self._df.height
        batch = pl.DataFrame(rows, schema=SCHEMA)
        self._df = pl.concat([self._df, batch], how="vertical").unique(maintain_order=True)
        return self._df.height - before

    def remove(self, entry: StoreEntry) -> bool:
        """Remove an entry. Returns False if it was not present."""
        before = self._df.height
        self._df = self._df.filter(~self._entry_expr(entry))
        return self._df.height < before

    def remove_all(self, entries: Iterable[StoreEntry]) -> int:
        return sum(1 for e in list(entries) if self.remove(e))

    def clear(self, graph: Any = ANY_GRAPH) -> int:
        """Remove every entry, or every entry of one graph."""
        before = self._df.height
        if graph is ANY_GRAPH:
            self._df = self._create_empty_dataframe()
        else:
            self._df = self._df.filter(~_col_eq("g", graph))
        return before - self._df.height

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def match(
        self,
        subject: Optional[StoreValue] = None,
        predicate: Optional[Resource] = None,
        object: Optional[StoreValue] = None,
        graph: Any = ANY_GRAPH,
    ) -> List[StoreEntry]:
        """
        Entries matching a pattern, in insertion order.

        None leaves a position unbound, except ``graph`` where None means
        the default graph and ANY_GRAPH leaves it unbound.
        """
        exprs = []
        if subject is not None:
            s_kind, s, _, _ = _term_columns(subject)
            exprs.append((pl.col("s_kind") == s_kind) & (pl.col("s") == s))
        if predicate is not None:
            exprs.append(pl.col("p") == predicate.id)
        if object is not None:
            exprs.append(self._object_expr(object))
        if graph is not ANY_GRAPH:
            exprs.append(_col_eq("g", graph))

        df = self._df
        if exprs:
            df = df.filter(pl.all_horizontal(exprs))
        return [_row_entry(row) for row in df.iter_rows(named=True)]

    @staticmethod
    def _object_expr(term: StoreValue) -> pl.Expr:
        o_kind, o_lex, o_dt, o_lang = _term_columns(term)
        return (
            (pl.col("o_kind") == o_kind)
            & (pl.col("o_lex") == o_lex)
            & _col_eq("o_dt", o_dt)
            & _col_eq("o_lang", o_lang)
        )

    def _entry_expr(self, entry: StoreEntry) -> pl.Expr:
        s_kind, s, _, _ = _term_columns(entry.subject)
        return (
            _col_eq("g", entry.graph)
            & (pl.col("s_kind") == s_kind)
            & (pl.col("s") == s)
            & (pl.col("p") == entry.predicate.id)
            & self._object_expr(entry.object)
        )

    def _filter_entry(self, entry: StoreEntry) -> pl.DataFrame:
        return self._df.filter(self._entry_expr(entry))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> Path:
        """Write the quad table to a Parquet file."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._df.write_parquet(path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise StoreError(f"Failed to save quad store to {path}: {e}") from e
        logger.info(f"Saved {len(self)} entries to {path}")
        return path

    @classmethod
    def open(cls, path: Union[str, Path]) -> "QuadStore":
        """Read a quad table written by save()."""
        path = Path(path)
        try:
            df = pl.read_parquet(path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise StoreError(f"Failed to open quad store {path}: {e}") from e
        missing = set(SCHEMA) - set(df.columns)
        if missing:
            raise StoreError(f"Quad store {path} is missing columns: {sorted(missing)}")
        store = cls(df.select(list(SCHEMA)).cast(SCHEMA))
        logger.info(f"Opened {len(store)} entries from {path}")
        return store
