"""
Tests for MemoryStore — the in-process RecordStore backend.

Covers:
- hooked writes (save/delete) and hook dispatch
- plain writes (update_many/set_field) never dispatching hooks
- jsonb-style ordering, including missing attributes
- transactions and rollback
- neighbour lookups
"""

import pytest

from store.backend import RecordNotFound, lock_key, parse_order
from store.base import Record
from store.memory import MemoryStore
from store.models import Page
from store.predicates import Field


class Loose(Record):
    """Record without a fixed schema, for rows that lack attributes."""

    def __init__(self, **attrs):
        self.__dict__.update(attrs)


class Recorder:
    """Hook that records every event it sees."""

    def __init__(self, veto=False):
        self.events = []
        self.veto = veto

    def on_saved(self, record, created, previous=None):
        prev_id = previous._store_id if previous is not None else None
        self.events.append(("saved", record._store_id, created, prev_id))

    def on_before_delete(self, record):
        self.events.append(("delete", record._store_id))
        return not self.veto


@pytest.fixture
def store():
    return MemoryStore()


def _titles(pages):
    return [p.title for p in pages]


# ── Hooked writes ────────────────────────────────────────────────────────

class TestSave:
    def test_insert_assigns_id(self, store):
        page = Page(title="Home")
        record_id = store.save(page)
        assert record_id == page._store_id
        assert record_id is not None

    def test_read_returns_fresh_object(self, store):
        page = Page(title="Home", ordering=3)
        store.save(page)
        loaded = store.read(Page, page._store_id)
        assert loaded is not page
        assert loaded == page
        assert loaded._store_id == page._store_id

    def test_read_missing(self, store):
        assert store.read(Page, 999) is None

    def test_update_in_place(self, store):
        page = Page(title="Home")
        store.save(page)
        page.title = "Start"
        store.save(page)
        assert store.read(Page, page._store_id).title == "Start"
        assert store.count(Page) == 1

    def test_update_of_removed_row(self, store):
        page = Page(title="Home")
        store.save(page)
        copy = store.read(Page, page._store_id)
        store.delete(page)
        with pytest.raises(RecordNotFound):
            store.save(copy)

    def test_hooks_receive_created_and_previous(self, store):
        hook = Recorder()
        store.attach(Page, hook)
        page = Page(title="Home")
        store.save(page)
        store.save(page)
        assert hook.events == [
            ("saved", page._store_id, True, None),
            ("saved", page._store_id, False, page._store_id),
        ]

    def test_caller_sees_hook_writes(self, store):
        class Flagger:
            def on_saved(self, record, created, previous=None):
                store.set_field(Page, record._store_id, "default", True)

        store.attach(Page, Flagger())
        page = Page(title="Home")
        store.save(page)
        assert page.default is True

    def test_hooks_are_per_type(self, store):
        hook = Recorder()
        store.attach(Loose, hook)
        store.save(Page(title="Home"))
        assert hook.events == []

    def test_detach(self, store):
        hook = Recorder()
        store.attach(Page, hook)
        store.detach(Page, hook)
        store.save(Page())
        assert hook.events == []
        assert store.hooks_for(Page) == []


class TestDelete:
    def test_delete(self, store):
        page = Page(title="Home")
        store.save(page)
        record_id = page._store_id
        assert store.delete(page) is True
        assert page._store_id is None
        assert store.read(Page, record_id) is None

    def test_delete_unsaved(self, store):
        with pytest.raises(RecordNotFound):
            store.delete(Page())

    def test_delete_twice(self, store):
        page = Page()
        store.save(page)
        copy = store.read(Page, page._store_id)
        store.delete(page)
        with pytest.raises(RecordNotFound):
            store.delete(copy)

    def test_hook_sees_stored_row(self, store):
        hook = Recorder()
        store.attach(Page, hook)
        page = Page()
        store.save(page)
        record_id = page._store_id
        store.delete(page)
        assert hook.events[-1] == ("delete", record_id)

    def test_veto(self, store):
        store.attach(Page, Recorder(veto=True))
        page = Page(title="Keep")
        store.save(page)
        assert store.delete(page) is False
        assert page._store_id is not None
        assert store.read(Page, page._store_id).title == "Keep"


# ── Plain writes ─────────────────────────────────────────────────────────

class TestPlainWrites:
    def test_update_many(self, store):
        for n in range(3):
            store.save(Page(folder="/", ordering=n))
        store.save(Page(folder="/other"))
        touched = store.update_many(Page, Field("folder") == "/", {"visible": False})
        assert touched == 3
        assert store.count(Page, Field("visible") == False) == 3  # noqa: E712

    def test_update_many_no_match(self, store):
        store.save(Page(folder="/"))
        assert store.update_many(Page, Field("folder") == "/x", {"visible": False}) == 0

    def test_set_field(self, store):
        page = Page()
        store.save(page)
        assert store.set_field(Page, page._store_id, "default", True) is True
        assert store.read(Page, page._store_id).default is True

    def test_set_field_missing_row(self, store):
        assert store.set_field(Page, 42, "default", True) is False

    def test_plain_writes_fire_no_hooks(self, store):
        hook = Recorder()
        page = Page()
        store.save(page)
        store.attach(Page, hook)
        store.update_many(Page, None, {"title": "x"})
        store.set_field(Page, page._store_id, "title", "y")
        assert hook.events == []


# ── Queries and ordering ─────────────────────────────────────────────────

class TestQueries:
    def test_count_with_predicate(self, store):
        store.save(Page(folder="/", ordering=1))
        store.save(Page(folder="/", ordering=2))
        store.save(Page(folder="/products", ordering=1))
        assert store.count(Page) == 3
        assert store.count(Page, Field("folder") == "/") == 2

    def test_all_defaults_to_id_order(self, store):
        for title in ("a", "b", "c"):
            store.save(Page(title=title))
        assert _titles(store.all(Page)) == ["a", "b", "c"]

    def test_order_ascending_and_descending(self, store):
        store.save(Page(title="b", ordering=2))
        store.save(Page(title="a", ordering=1))
        store.save(Page(title="c", ordering=3))
        assert _titles(store.all(Page, order=["ordering"])) == ["a", "b", "c"]
        assert _titles(store.all(Page, order=["-ordering"])) == ["c", "b", "a"]

    def test_lexicographic_order(self, store):
        store.save(Page(title="x2", ordering=1))
        store.save(Page(title="y", ordering=0))
        store.save(Page(title="x1", ordering=1))
        assert _titles(store.all(Page, order=["ordering", "title"])) == ["y", "x1", "x2"]

    def test_find_one(self, store):
        store.save(Page(title="b", ordering=2))
        store.save(Page(title="a", ordering=1))
        assert store.find_one(Page, order=["ordering"]).title == "a"
        assert store.find_one(Page, Field("ordering") > 5) is None

    def test_numbers_sort_numerically(self, store):
        for rank in (10, 9, 100):
            store.save(Loose(rank=rank))
        assert [r.rank for r in store.all(Loose, order=["rank"])] == [9, 10, 100]

    def test_cross_type_order(self, store):
        for rank in (True, 3, "b", None):
            store.save(Loose(rank=rank))
        assert [r.rank for r in store.all(Loose, order=["rank"])] == [None, "b", 3, True]

    def test_missing_sorts_last_ascending(self, store):
        store.save(Loose(name="two", rank=2))
        store.save(Loose(name="none"))
        store.save(Loose(name="one", rank=1))
        names = [r.name for r in store.all(Loose, order=["rank"])]
        assert names == ["one", "two", "none"]
        names = [r.name for r in store.all(Loose, order=["-rank"])]
        assert names == ["none", "two", "one"]

    def test_strings_sort_by_code_point(self, store):
        for rank in ("a", "Z", "B"):
            store.save(Loose(rank=rank))
        assert [r.rank for r in store.all(Loose, order=["rank"])] == ["B", "Z", "a"]

    def test_missing_never_matches(self, store):
        store.save(Loose(name="none"))
        assert store.count(Loose, Field("rank") != 1) == 0


class TestNeighbours:
    @pytest.fixture
    def pages(self, store):
        for n in (1, 2, 3):
            store.save(Page(folder="/", title=f"p{n}", ordering=n))
        store.save(Page(folder="/other", title="o2", ordering=2))

    def test_middle(self, store, pages):
        n = store.find_neighbours(Page, Field("folder") == "/", ["ordering"], (2,))
        assert n.prev.title == "p1"
        assert n.next.title == "p3"

    def test_edges(self, store, pages):
        first = store.find_neighbours(Page, Field("folder") == "/", ["ordering"], (1,))
        assert first.prev is None
        assert first.next.title == "p2"
        last = store.find_neighbours(Page, Field("folder") == "/", ["ordering"], (3,))
        assert last.prev.title == "p2"
        assert last.next is None

    def test_tie_broken_by_id(self, store):
        ids = []
        for title in ("a", "b", "c"):
            page = Page(title=title, ordering=1)
            store.save(page)
            ids.append(page._store_id)
        n = store.find_neighbours(Page, None, ["ordering", "id"], (1, ids[1]))
        assert n.prev.title == "a"
        assert n.next.title == "c"


# ── Transactions ─────────────────────────────────────────────────────────

class TestTransactions:
    def test_rollback_on_error(self, store):
        store.save(Page(title="kept"))
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.save(Page(title="lost"))
                store.update_many(Page, None, {"visible": False})
                raise RuntimeError("boom")
        assert _titles(store.all(Page)) == ["kept"]
        assert store.all(Page)[0].visible is True

    def test_commit(self, store):
        with store.transaction():
            store.save(Page(title="a"))
            store.save(Page(title="b"))
        assert store.count(Page) == 2

    def test_nested_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.save(Page(title="inner"))
                raise RuntimeError("outer fails")
        assert store.count(Page) == 0

    def test_nested_failure_undoes_only_inner_writes(self, store):
        with store.transaction():
            store.save(Page(title="outer"))
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.save(Page(title="inner"))
                    raise RuntimeError("inner fails")
        assert _titles(store.all(Page)) == ["outer"]

    def test_failing_hook_rolls_back_save(self, store):
        class Broken:
            def on_saved(self, record, created, previous=None):
                raise RuntimeError("hook failed")

        store.attach(Page, Broken())
        page = Page(title="Home")
        with pytest.raises(RuntimeError):
            store.save(page)
        assert page._store_id is None
        assert store.count(Page) == 0


class TestHelpers:
    def test_parse_order(self):
        assert parse_order(["a", "-b"]) == [("a", False), ("b", True)]

    def test_lock_key_is_stable(self):
        assert lock_key(Page, {"folder": "/", "b": 1}) == lock_key(Page, {"b": 1, "folder": "/"})
        assert lock_key(Page, {"folder": "/"}) != lock_key(Page, {"folder": "/x"})
