"""
Embedded PostgreSQL server for development and tests.
Uses pgserver for pip-installable PostgreSQL binaries, provisions the
app_admin role, creates the recordstore database it owns (C collation),
and bootstraps the schema there.
"""

import os
import urllib.parse

import psycopg2
import pgserver

from store.client import StoreClient
from store.schema import ADMIN_ROLE, bootstrap_schema


DEFAULT_DATA_DIR = os.environ.get(
    "RECORDSTORE_PGDATA",
    os.path.join(os.path.dirname(__file__), "..", ".pgdata", "recordstore"),
)

ADMIN_PASSWORD = os.environ.get("RECORDSTORE_ADMIN_PASSWORD", "admin_secret")

DATABASE = "recordstore"


class RecordStoreServer:
    """Manages an embedded PostgreSQL instance holding the records table."""

    def __init__(self, data_dir=None, admin_password=None):
        self.data_dir = os.path.abspath(data_dir or DEFAULT_DATA_DIR)
        self.admin_password = admin_password or ADMIN_PASSWORD
        self._pg = None

    def start(self):
        """Start the embedded PostgreSQL server and bootstrap if needed."""
        os.makedirs(self.data_dir, exist_ok=True)
        self._pg = pgserver.get_server(self.data_dir)
        self._bootstrap()
        return self

    # ── Internal ─────────────────────────────────────────────────────

    def _superuser_conn(self):
        """Get a superuser connection (local socket, trust auth)."""
        return psycopg2.connect(self._pg.get_uri())

    def _bootstrap(self):
        """Create the admin role and the schema. Idempotent."""
        conn = self._superuser_conn()
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute(
                "SELECT 1 FROM pg_roles WHERE rolname = %s", (ADMIN_ROLE,)
            )
            if cur.fetchone() is None:
                cur.execute(
                    f"CREATE ROLE {ADMIN_ROLE} LOGIN PASSWORD %s "
                    f"NOSUPERUSER NOCREATEDB NOCREATEROLE",
                    (self.admin_password,),
                )
            else:
                cur.execute(
                    f"ALTER ROLE {ADMIN_ROLE} PASSWORD %s", (self.admin_password,),
                )
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (DATABASE,))
            if cur.fetchone() is None:
                # "C" collation: strings sort by code point, as MemoryStore sorts them
                cur.execute(
                    f"CREATE DATABASE {DATABASE} OWNER {ADMIN_ROLE} "
                    f"ENCODING 'UTF8' LC_COLLATE 'C' LC_CTYPE 'C' TEMPLATE template0"
                )
        conn.close()

        admin_conn = self.admin_conn()
        bootstrap_schema(admin_conn)
        admin_conn.close()

    # ── Public API ───────────────────────────────────────────────────

    def admin_conn(self):
        """Get a connection as app_admin (password auth)."""
        info = self.conn_info()
        return psycopg2.connect(
            host=info["host"],
            port=info["port"],
            dbname=info["dbname"],
            user=ADMIN_ROLE,
            password=self.admin_password,
        )

    def client(self, query_log=None):
        """A StoreClient connected as app_admin."""
        info = self.conn_info()
        return StoreClient(
            user=ADMIN_ROLE, password=self.admin_password,
            host=info["host"], port=info["port"], dbname=info["dbname"],
            query_log=query_log,
        )

    def conn_info(self):
        """Return connection parameters for this server."""
        uri = self._pg.get_uri()
        parsed = urllib.parse.urlparse(uri)
        params = urllib.parse.parse_qs(parsed.query)

        host = params.get("host", ["/tmp"])[0]
        port = parsed.port or 5432

        return {
            "host": host,
            "port": port,
            "dbname": DATABASE,
        }

    def stop(self):
        """Stop the embedded PostgreSQL server."""
        if self._pg:
            self._pg.cleanup()
            self._pg = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
