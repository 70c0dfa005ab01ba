"""
Query log — records every statement a StoreClient runs, with its timing,
row counts, driver error and the code that issued it, and renders a summary.

    log = QueryLog(name="pages")
    client = StoreClient(user=..., password=..., query_log=log)
    ...
    print(log.render(sort_by_time=True))

Statements are also emitted at DEBUG on the "store.sql" logger.
"""

import contextlib
import logging
import os
import time
import traceback
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

import psycopg2
import psycopg2.extensions
import psycopg2.extras


sql_log = logging.getLogger("store.sql")

# Frames from these are store plumbing, not the caller
_INTERNAL_DIRS = (
    os.path.join(os.path.dirname(os.path.abspath(__file__)), ""),
    os.path.join(os.path.dirname(os.path.abspath(psycopg2.__file__)), ""),
)
_INTERNAL_FILES = (os.path.abspath(contextlib.__file__),)


def call_site() -> Optional[str]:
    """'file:line in function' of the innermost frame outside the store and driver."""
    for frame in reversed(traceback.extract_stack()):
        path = os.path.abspath(frame.filename)
        if not path.startswith(_INTERNAL_DIRS) and path not in _INTERNAL_FILES:
            return f"{frame.filename}:{frame.lineno} in {frame.name}"
    return None


@dataclass
class QueryEntry:
    """One executed statement."""
    sql: str
    took_ms: float
    error: Optional[str] = None
    affected: int = -1      # rows written by INSERT/UPDATE/DELETE
    num_rows: int = -1      # rows returned by SELECT
    origin: Optional[str] = None


class QueryLog:
    """Bounded in-memory log of executed statements; keeps the newest."""

    def __init__(self, max_entries=200, name="default"):
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.name = name
        self._entries = deque(maxlen=max_entries)
        self._count = 0
        self._total_ms = 0.0

    def record(self, sql, took_ms, error=None, affected=-1, num_rows=-1, origin=None):
        self._count += 1
        self._total_ms += took_ms
        self._entries.append(QueryEntry(
            sql=sql, took_ms=took_ms, error=error,
            affected=affected, num_rows=num_rows, origin=origin,
        ))

    @property
    def entries(self) -> List[QueryEntry]:
        return list(self._entries)

    @property
    def count(self) -> int:
        """Statements recorded since the last clear(), including evicted ones."""
        return self._count

    @property
    def total_ms(self) -> float:
        return self._total_ms

    def clear(self):
        self._entries.clear()
        self._count = 0
        self._total_ms = 0.0

    def render(self, sort_by_time=False) -> str:
        entries = self.entries
        if sort_by_time:
            entries.sort(key=lambda e: e.took_ms, reverse=True)
        noun = "queries" if self._count != 1 else "query"
        lines = [f"({self.name}) {self._count} {noun} took {self._total_ms:.2f} ms"]
        for n, entry in enumerate(entries, start=1):
            line = f"{n}. {entry.sql}"
            if entry.error:
                line += f" {entry.error}"
            if entry.origin:
                line += f"  [{entry.origin}]"
            lines.append(line)
        return "\n".join(lines)


class QueryLogCursor(psycopg2.extensions.cursor):
    """Times each execute() and reports it, including failures, to the connection."""

    def execute(self, query, vars=None):
        self.timestamp = time.perf_counter()
        self.error = None
        try:
            return super().execute(query, vars)
        except psycopg2.Error as exc:
            self.error = str(exc).strip()
            raise
        finally:
            self.connection.log(self.query or query, self)


class QueryLogConnection(psycopg2.extras.LoggingConnection):
    """LoggingConnection feeding a QueryLog as well as the "store.sql" logger."""

    def initialize(self, query_log, logobj=None):
        super().initialize(logobj if logobj is not None else sql_log)
        self.query_log = query_log

    def filter(self, msg, curs):
        took_ms = (time.perf_counter() - curs.timestamp) * 1000
        if isinstance(msg, bytes):
            msg = msg.decode(psycopg2.extensions.encodings[self.encoding], "replace")
        error = getattr(curs, "error", None)
        returned = curs.description is not None
        self.query_log.record(
            msg, took_ms, error=error,
            affected=-1 if returned else curs.rowcount,
            num_rows=curs.rowcount if returned else -1,
            origin=call_site(),
        )
        if error:
            return f"{msg} ({took_ms:.2f} ms) ERROR: {error}"
        return f"{msg} ({took_ms:.2f} ms)"

    def cursor(self, *args, **kwargs):
        kwargs.setdefault("cursor_factory", self.cursor_factory or QueryLogCursor)
        return super().cursor(*args, **kwargs)
