"""
MemoryStore — in-process RecordStore.

Rows are kept as JSON text per type, so every read hands out a fresh object
and values behave exactly as they would after a JSONB round-trip. Predicates
run through Expr.eval; ordering follows jsonb rules with missing attributes
sorted last ascending (first descending), as PostgreSQL does.

Strings compare by code point, which is PostgreSQL's "C" collation. The
database RecordStoreServer creates uses it; a StoreClient pointed at a
database with a linguistic collation orders strings differently.

All access is serialised on a re-entrant lock; hooked writes hold it for the
whole event, so concurrent saves on the same group never interleave.
"""

import itertools
import json
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from store.backend import RecordStore, parse_order
from store.base import KEY, Record, to_plain_json
from store.predicates import MISSING, jsonb_key, matches


def _order_value(ctx, name):
    v = ctx.get(name, MISSING)
    if v is MISSING:
        return (1,)
    return (0, jsonb_key(v))


class MemoryStore(RecordStore):
    """
    Usage:
        store = MemoryStore()
        store.save(Page(folder="/", title="Home"))
        store.all(Page, Field("folder") == "/", order=["ordering"])
    """

    def __init__(self):
        super().__init__()
        self._tables: Dict[str, Dict[int, str]] = {}   # type_name → {id: json}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # ── Transactions ──────────────────────────────────────────────────

    @contextmanager
    def transaction(self):
        """
        Hold the store lock; on failure restore the rows as they were when
        this block was entered. Nested blocks behave as savepoints.
        """
        with self._lock:
            saved = {t: dict(rows) for t, rows in self._tables.items()}
            try:
                yield
            except BaseException:
                self._tables = saved
                raise

    # ── Reads ─────────────────────────────────────────────────────────

    def read(self, cls, record_id) -> Optional[Record]:
        with self._lock:
            raw = self._table(cls).get(record_id)
            if raw is None:
                return None
            return cls.from_json(raw, record_id=record_id)

    def count(self, cls, predicate=None) -> int:
        with self._lock:
            return len(self._matching(cls, predicate))

    def find_one(self, cls, predicate=None, order=()):
        with self._lock:
            rows = self._sorted(self._matching(cls, predicate), order)
            if not rows:
                return None
            record_id, _ = rows[0]
            return self.read(cls, record_id)

    def all(self, cls, predicate=None, order=(KEY,)) -> List[Record]:
        with self._lock:
            rows = self._sorted(self._matching(cls, predicate), order)
            return [self.read(cls, record_id) for record_id, _ in rows]

    # ── Plain writes ──────────────────────────────────────────────────

    def update_many(self, cls, predicate, assignments) -> int:
        values = to_plain_json(dict(assignments))
        with self._lock:
            table = self._table(cls)
            touched = 0
            for record_id, _ in self._matching(cls, predicate):
                data = json.loads(table[record_id])
                data.update(values)
                table[record_id] = json.dumps(data)
                touched += 1
            return touched

    def set_field(self, cls, record_id, field, value) -> bool:
        with self._lock:
            table = self._table(cls)
            raw = table.get(record_id)
            if raw is None:
                return False
            data = json.loads(raw)
            data[field] = to_plain_json(value)
            table[record_id] = json.dumps(data)
            return True

    # ── Row primitives ────────────────────────────────────────────────

    def _insert(self, cls, json_data) -> int:
        with self._lock:
            record_id = next(self._ids)
            self._table(cls)[record_id] = json_data
            return record_id

    def _replace(self, cls, record_id, json_data) -> bool:
        with self._lock:
            table = self._table(cls)
            if record_id not in table:
                return False
            table[record_id] = json_data
            return True

    def _remove(self, cls, record_id) -> bool:
        with self._lock:
            return self._table(cls).pop(record_id, None) is not None

    # ── Internal helpers ──────────────────────────────────────────────

    def _table(self, cls) -> Dict[int, str]:
        return self._tables.setdefault(cls.type_name(), {})

    def _matching(self, cls, predicate):
        """(id, context) pairs matching predicate, in insertion order."""
        rows = []
        for record_id, raw in self._table(cls).items():
            ctx = json.loads(raw)
            ctx[KEY] = record_id
            if matches(predicate, ctx):
                rows.append((record_id, ctx))
        return rows

    def _sorted(self, rows, order):
        rows = list(rows)
        # Stable sorts from the last key to the first give a lexicographic order
        for name, descending in reversed(parse_order(order)):
            rows.sort(key=lambda r: _order_value(r[1], name), reverse=descending)
        return rows
