"""
Database schema: records table (one JSONB row per record, keyed by type)
and its indexes. All DDL runs as app_admin (the table owner).
"""

ADMIN_ROLE = "app_admin"


def bootstrap_schema(admin_conn):
    """Create the records table and indexes. Idempotent."""
    admin_conn.autocommit = True
    with admin_conn.cursor() as cur:
        # ── Table: mutable rows, attributes in JSONB ─────────────────
        cur.execute("""
            CREATE TABLE IF NOT EXISTS records (
                id          BIGSERIAL PRIMARY KEY,
                type_name   TEXT NOT NULL,
                data        JSONB NOT NULL,
                created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
            );
        """)

        # ── Indexes ──────────────────────────────────────────────────
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_type
                ON records (type_name);
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_data
                ON records USING GIN (data);
        """)


def truncate(admin_conn, type_name=None):
    """Remove rows (of one type, or all). Used to reset test fixtures."""
    admin_conn.autocommit = True
    with admin_conn.cursor() as cur:
        if type_name is None:
            cur.execute("TRUNCATE records RESTART IDENTITY;")
        else:
            cur.execute("DELETE FROM records WHERE type_name = %s", (type_name,))
