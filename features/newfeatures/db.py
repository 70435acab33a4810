"""
Postgres backing store for the acknowledgement ledger.

Tables:
  newfeatures_seen — one row per (user, module), holding the last
                     acknowledged version

Used instead of the per-user files when DATABASE_URL is configured.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import psycopg2
import psycopg2.extras

import config
from features.newfeatures.ledger import AcknowledgementLedger

log = logging.getLogger(__name__)

# ── Connection ────────────────────────────────────────────────────────

_pool: list[Any] = []


def _get_conn():
    """Get a Postgres connection (simple single-connection reuse)."""
    if _pool:
        conn = _pool[0]
        if not conn.closed:
            return conn
        _pool.clear()

    conn = psycopg2.connect(config.DATABASE_URL)
    conn.autocommit = True
    _pool.append(conn)
    return conn


@contextmanager
def get_cursor():
    """Yield a dict cursor."""
    conn = _get_conn()
    cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    try:
        yield cur
    finally:
        cur.close()


# ── Schema ────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS newfeatures_seen (
    user_name       TEXT NOT NULL,
    module          TEXT NOT NULL,
    version         NUMERIC NOT NULL,
    updated_at      TIMESTAMPTZ DEFAULT now(),
    PRIMARY KEY (user_name, module)
);
"""


def init_db():
    """Create tables if they don't exist."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("Database schema initialized")
    except Exception as e:
        log.error("Failed to initialize database: %s", e)
        raise


# ── Record access ─────────────────────────────────────────────────────

def get_seen(user: str) -> dict[str, Decimal]:
    """Fetch a user's acknowledged versions, keyed by module."""
    with get_cursor() as cur:
        cur.execute(
            "SELECT module, version FROM newfeatures_seen WHERE user_name = %s",
            (user,),
        )
        return {row["module"]: Decimal(row["version"]) for row in cur.fetchall()}


def upsert_seen(user: str, record: dict[str, Decimal]) -> None:
    """Insert or update every module in a user's record, in one transaction."""
    conn = _get_conn()
    conn.autocommit = False
    try:
        with conn:
            with conn.cursor() as cur:
                for module, version in record.items():
                    cur.execute("""
                        INSERT INTO newfeatures_seen (user_name, module, version)
                        VALUES (%(user_name)s, %(module)s, %(version)s)
                        ON CONFLICT (user_name, module) DO UPDATE SET
                            version = EXCLUDED.version,
                            updated_at = now()
                    """, {
                        "user_name": user,
                        "module": module,
                        "version": version,
                    })
    finally:
        conn.autocommit = True


class PostgresLedger(AcknowledgementLedger):
    """Acknowledgement ledger kept in the newfeatures_seen table."""

    def _read(self, user: str) -> dict[str, Decimal]:
        return get_seen(user)

    def _write(self, user: str, record: dict[str, Decimal]) -> None:
        upsert_seen(user, record)
