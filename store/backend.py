"""
RecordStore ABC — the contract behaviours and applications depend on.

Two write paths:
- hooked: save() / delete() dispatch lifecycle hooks attached per type
- plain:  update_many() / set_field() never dispatch hooks

Concrete backends (MemoryStore, StoreClient) implement the row primitives;
hook dispatch and transactional wrapping of hooked writes live here.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from store.base import Record, KEY, _JSONEncoder
from store.predicates import all_of, after, before


log = logging.getLogger("store.backend")


class StoreUnavailable(Exception):
    """Raised when the backing store cannot be reached or fails mid-call."""

    def __init__(self, operation, cause=None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store unavailable during {operation}: {cause}")


class RecordNotFound(Exception):
    """Raised when a hooked write addresses a row that does not exist."""

    def __init__(self, type_name, record_id):
        self.type_name = type_name
        self.record_id = record_id
        super().__init__(f"No {type_name} record with id {record_id!r}")


class _Vetoed(Exception):
    """Unwinds the delete transaction when a hook refuses the delete."""

    def __init__(self, hook):
        self.hook = hook
        super().__init__(f"Delete vetoed by {hook!r}")


@dataclass
class Neighbours:
    """Adjacent rows around a reference position in an ordering."""
    prev: Optional[Record] = None
    next: Optional[Record] = None


def parse_order(order: Sequence[str]):
    """Split ["a", "-b"] into [("a", False), ("b", True)] (name, descending)."""
    parsed = []
    for item in order:
        if item.startswith("-"):
            parsed.append((item[1:], True))
        else:
            parsed.append((item, False))
    return parsed


def lock_key(cls, values: Dict[str, Any]) -> str:
    """Stable text key for a group of a record type."""
    return cls.type_name() + ":" + json.dumps(values, cls=_JSONEncoder, sort_keys=True)


class RecordStore(ABC):
    """Backend-swappable record store with lifecycle hooks.

    Hooks are objects with:
        on_saved(record, created, previous=None)
        on_before_delete(record) -> bool   (False vetoes the delete)

    Usage:
        store.attach(Page, keeper)
        store.save(Page(folder="/", title="Home"))
    """

    def __init__(self):
        self._hooks: Dict[str, List[Any]] = {}   # type_name → [hook]

    # ── Hooks ─────────────────────────────────────────────────────────

    def attach(self, cls, hook):
        """Dispatch lifecycle events for `cls` to `hook`."""
        self._hooks.setdefault(cls.type_name(), []).append(hook)

    def detach(self, cls, hook):
        hooks = self._hooks.get(cls.type_name(), [])
        if hook in hooks:
            hooks.remove(hook)

    def hooks_for(self, cls) -> list:
        return list(self._hooks.get(cls.type_name(), []))

    # ── Hooked writes ─────────────────────────────────────────────────

    def save(self, obj: Record) -> int:
        """
        Insert (no id yet) or update a record, then fire on_saved hooks.
        Runs in one transaction with every corrective write the hooks make.
        The caller's object is refreshed from the stored row afterwards.
        """
        cls = type(obj)
        with self.transaction():
            previous = None
            if obj._store_id is None:
                created = True
                record_id = self._insert(cls, obj.to_json())
            else:
                created = False
                record_id = obj._store_id
                previous = self.read(cls, record_id)
                if previous is None or not self._replace(cls, record_id, obj.to_json()):
                    raise RecordNotFound(cls.type_name(), record_id)
            snapshot = self.read(cls, record_id)
            for hook in self.hooks_for(cls):
                hook.on_saved(snapshot, created, previous=previous)
            fresh = self.read(cls, record_id)
        obj.refresh_from(fresh)
        return record_id

    def delete(self, obj: Record) -> bool:
        """
        Fire on_before_delete hooks, then remove the row.
        Returns False when a hook vetoed the delete.
        """
        cls = type(obj)
        if obj._store_id is None:
            raise RecordNotFound(cls.type_name(), None)
        try:
            with self.transaction():
                snapshot = self.read(cls, obj._store_id)
                if snapshot is None:
                    raise RecordNotFound(cls.type_name(), obj._store_id)
                for hook in self.hooks_for(cls):
                    if not hook.on_before_delete(snapshot):
                        raise _Vetoed(hook)
                self._remove(cls, obj._store_id)
        except _Vetoed as veto:
            # writes made by hooks that ran before the veto are rolled back
            log.warning("Delete of %s %s vetoed by %r",
                        cls.__name__, obj._store_id, veto.hook)
            return False
        obj._store_id = None
        return True

    # ── Plain reads/writes (never fire hooks) ─────────────────────────

    @abstractmethod
    def read(self, cls, record_id) -> Optional[Record]:
        """Return the row with this primary key, or None."""

    @abstractmethod
    def count(self, cls, predicate=None) -> int:
        """Number of rows of `cls` matching `predicate`."""

    @abstractmethod
    def find_one(self, cls, predicate=None, order=()) -> Optional[Record]:
        """First row matching `predicate` in `order` ("-name" descends)."""

    @abstractmethod
    def all(self, cls, predicate=None, order=(KEY,)) -> List[Record]:
        """Every row matching `predicate`, in `order`."""

    @abstractmethod
    def update_many(self, cls, predicate, assignments: Dict[str, Any]) -> int:
        """Bulk-assign fields on every matching row. Returns rows touched."""

    @abstractmethod
    def set_field(self, cls, record_id, field: str, value) -> bool:
        """Assign one field on one row. Returns False if the row is gone."""

    def find_neighbours(self, cls, predicate, order_fields, reference) -> Neighbours:
        """
        Rows immediately before and after `reference` (values for
        `order_fields`) in ascending lexicographic order of `order_fields`.
        """
        order_fields = list(order_fields)
        nxt = self.find_one(
            cls, all_of(predicate, after(order_fields, reference)),
            order=order_fields,
        )
        prev = self.find_one(
            cls, all_of(predicate, before(order_fields, reference)),
            order=["-" + f for f in order_fields],
        )
        return Neighbours(prev=prev, next=nxt)

    # ── Transactions / locking ────────────────────────────────────────

    @abstractmethod
    def transaction(self):
        """Context manager; nested calls join the outermost transaction."""

    def lock(self, key: str):
        """Serialise concurrent events on `key` until the transaction ends."""

    # ── Row primitives for hooked writes ──────────────────────────────

    @abstractmethod
    def _insert(self, cls, json_data: str) -> int:
        """Store a new row and return its primary key."""

    @abstractmethod
    def _replace(self, cls, record_id, json_data: str) -> bool:
        """Overwrite a row's attributes. False if the row is gone."""

    @abstractmethod
    def _remove(self, cls, record_id) -> bool:
        """Remove a row. False if the row is gone."""
