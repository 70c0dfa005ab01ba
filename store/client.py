"""
StoreClient — PostgreSQL-backed RecordStore.

Rows live in the records table: one JSONB document per record, keyed by
type_name. Predicates compile to jsonb conditions (Expr.to_sql), so equality
and ordering follow jsonb semantics.

Connections run in autocommit; hooked writes (save/delete) switch to an
explicit transaction that also covers the hooks' corrective writes.
"""

import json
import logging
from contextlib import contextmanager

import psycopg2

from store.backend import RecordStore, StoreUnavailable, parse_order
from store.base import KEY, _JSONEncoder
from store.predicates import Field, where_sql
from store.querylog import QueryLogConnection


log = logging.getLogger("store.client")

_UNAVAILABLE = (psycopg2.OperationalError, psycopg2.InterfaceError)


class StoreClient(RecordStore):
    """
    Connects to the record store as a specific user.

    Usage:
        client = StoreClient(user="app_admin", password="secret", host="/tmp/pg", port=5432)
        client.attach(Page, keeper)
        client.save(Page(folder="/", title="Home"))
        pages = client.all(Page, order=["ordering"])
        client.close()

    Pass query_log=QueryLog() to record every statement with its timing.
    """

    def __init__(self, user, password, host="localhost", port=5432, dbname="postgres",
                 query_log=None):
        super().__init__()
        self.user = user
        self.query_log = query_log
        try:
            if query_log is not None:
                self.conn = psycopg2.connect(
                    host=host, port=port, dbname=dbname, user=user, password=password,
                    connection_factory=QueryLogConnection,
                )
                self.conn.initialize(query_log)
            else:
                self.conn = psycopg2.connect(
                    host=host, port=port, dbname=dbname, user=user, password=password,
                )
        except _UNAVAILABLE as exc:
            raise StoreUnavailable("connect", exc) from exc
        self.conn.autocommit = True
        self._depth = 0

    # ── Transactions / locking ────────────────────────────────────────

    @contextmanager
    def transaction(self):
        """
        Run the block in one database transaction that commits on success
        and rolls back on any exception. Nested calls run inside the
        outermost one as savepoints, so their failure undoes only their own
        writes.
        """
        if self._depth:
            savepoint = f"sp_{self._depth}"
            with self._cursor("savepoint") as cur:
                cur.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield
            except Exception:
                if not self.conn.closed:
                    with self._cursor("savepoint") as cur:
                        cur.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                raise
            else:
                with self._cursor("savepoint") as cur:
                    cur.execute(f"RELEASE SAVEPOINT {savepoint}")
            finally:
                self._depth -= 1
            return

        old_autocommit = self.conn.autocommit
        self.conn.autocommit = False
        self._depth = 1
        try:
            yield
            self.conn.commit()
        except Exception:
            if not self.conn.closed:
                self.conn.rollback()
            raise
        finally:
            self._depth = 0
            if not self.conn.closed:
                self.conn.autocommit = old_autocommit

    def lock(self, key):
        """Transaction-scoped advisory lock on a text key."""
        with self._cursor("lock") as cur:
            cur.execute("SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))", (key,))

    # ── Reads ─────────────────────────────────────────────────────────

    def read(self, cls, record_id):
        """Return the row with this primary key, or None."""
        with self._cursor("read") as cur:
            cur.execute(
                "SELECT id, data FROM records WHERE type_name = %s AND id = %s",
                (cls.type_name(), record_id),
            )
            row = cur.fetchone()
            if row is None:
                return None
            return self._row_to_object(cls, row)

    def count(self, cls, predicate=None):
        with self._cursor("count") as cur:
            cur.execute(
                f"SELECT COUNT(*) FROM records WHERE type_name = %s AND {where_sql(predicate)}",
                (cls.type_name(),),
            )
            return cur.fetchone()[0]

    def find_one(self, cls, predicate=None, order=()):
        rows = self._select(cls, predicate, order, limit=1)
        return rows[0] if rows else None

    def all(self, cls, predicate=None, order=(KEY,)):
        return self._select(cls, predicate, order)

    # ── Plain writes (no hooks) ───────────────────────────────────────

    def update_many(self, cls, predicate, assignments):
        patch = json.dumps(dict(assignments), cls=_JSONEncoder)
        with self._cursor("update_many") as cur:
            cur.execute(
                f"""
                UPDATE records
                SET data = data || %s::jsonb, updated_at = now()
                WHERE type_name = %s AND {where_sql(predicate)}
                """,
                (patch, cls.type_name()),
            )
            return cur.rowcount

    def set_field(self, cls, record_id, field, value):
        patch = json.dumps({field: value}, cls=_JSONEncoder)
        with self._cursor("set_field") as cur:
            cur.execute(
                """
                UPDATE records
                SET data = data || %s::jsonb, updated_at = now()
                WHERE type_name = %s AND id = %s
                """,
                (patch, cls.type_name(), record_id),
            )
            return cur.rowcount > 0

    # ── Row primitives ────────────────────────────────────────────────

    def _insert(self, cls, json_data):
        with self._cursor("insert") as cur:
            cur.execute(
                """
                INSERT INTO records (type_name, data)
                VALUES (%s, %s::jsonb)
                RETURNING id
                """,
                (cls.type_name(), json_data),
            )
            return cur.fetchone()[0]

    def _replace(self, cls, record_id, json_data):
        with self._cursor("replace") as cur:
            cur.execute(
                """
                UPDATE records SET data = %s::jsonb, updated_at = now()
                WHERE type_name = %s AND id = %s
                """,
                (json_data, cls.type_name(), record_id),
            )
            return cur.rowcount > 0

    def _remove(self, cls, record_id):
        with self._cursor("delete") as cur:
            cur.execute(
                "DELETE FROM records WHERE type_name = %s AND id = %s",
                (cls.type_name(), record_id),
            )
            return cur.rowcount > 0

    # ── Internal helpers ──────────────────────────────────────────────

    @contextmanager
    def _cursor(self, operation):
        """Cursor whose connection-level failures surface as StoreUnavailable."""
        try:
            with self.conn.cursor() as cur:
                yield cur
        except _UNAVAILABLE as exc:
            log.error("%s failed: %s", operation, exc)
            raise StoreUnavailable(operation, exc) from exc

    def _select(self, cls, predicate, order, limit=None):
        sql = f"SELECT id, data FROM records WHERE type_name = %s AND {where_sql(predicate)}"
        params = [cls.type_name()]
        order_sql = ", ".join(
            Field(name).order_sql() + (" DESC" if descending else " ASC")
            for name, descending in parse_order(order)
        )
        if order_sql:
            sql += f" ORDER BY {order_sql}"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)
        with self._cursor("select") as cur:
            cur.execute(sql, params)
            return [self._row_to_object(cls, row) for row in cur.fetchall()]

    def _row_to_object(self, cls, row):
        """Convert a database row to a typed Python object."""
        record_id, data = row
        # data is already a dict (psycopg2 auto-parses JSONB)
        if not isinstance(data, str):
            data = json.dumps(data)
        return cls.from_json(data, record_id=record_id)

    def close(self):
        """Close the database connection."""
        if self.conn and not self.conn.closed:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
