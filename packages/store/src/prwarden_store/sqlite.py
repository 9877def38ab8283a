"""SQLiteStore: file-based store for the webhook server.

Token reservations run under ``BEGIN IMMEDIATE``, which takes the database
write lock before the usage sum is read, so "sum, compare, insert" is atomic
across threads and across worker processes sharing the file.

Each operation opens its own short-lived connection. The webhook server runs
handlers on a thread pool, and sqlite3 connections must not be shared
between threads.

Schema:
  organizations: one row per GitHub App installation
  members: (organization, login) → role
  repositories: one row per GitHub repository id; disabled, never deleted
  token_usage: append-only token reservations
  deliveries: webhook delivery ids already processed
"""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from prwarden_store.base import BaseStore
from prwarden_store.models import Member, Organization, Repository

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS organizations (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    installation_id  INTEGER NOT NULL UNIQUE,
    name             TEXT NOT NULL,
    description      TEXT DEFAULT '',
    url              TEXT DEFAULT '',
    avatar_url       TEXT DEFAULT '',
    account_type     TEXT DEFAULT 'TEAM',
    plan             TEXT DEFAULT 'free'
);
CREATE TABLE IF NOT EXISTS members (
    organization_id  INTEGER NOT NULL REFERENCES organizations (id),
    login            TEXT NOT NULL,
    role             TEXT NOT NULL DEFAULT 'member',
    PRIMARY KEY (organization_id, login)
);
CREATE TABLE IF NOT EXISTS repositories (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id      INTEGER NOT NULL UNIQUE,
    organization_id  INTEGER NOT NULL REFERENCES organizations (id),
    name             TEXT NOT NULL,
    full_name        TEXT NOT NULL,
    description      TEXT DEFAULT '',
    url              TEXT DEFAULT '',
    private          INTEGER NOT NULL DEFAULT 0,
    is_enabled       INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS token_usage (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id  INTEGER NOT NULL REFERENCES organizations (id),
    token_count      INTEGER NOT NULL,
    recorded_at      REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS deliveries (
    delivery_id      TEXT PRIMARY KEY,
    received_at      REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_repositories_org ON repositories (organization_id);
CREATE INDEX IF NOT EXISTS idx_token_usage_org  ON token_usage (organization_id, recorded_at);
"""

# Delivery ids older than this are pruned; GitHub does not redeliver after a few days.
_DELIVERY_RETENTION_SECONDS = 7 * 24 * 60 * 60


class SQLiteStore(BaseStore):
    """Stores tenants, repositories and token usage in a local SQLite database file.

    The database file path defaults to `.prwarden.db` in the current working
    directory. Configure via .prwarden.yml: `db_path: /path/to/prwarden.db`.
    """

    def __init__(self, db_path: str = ".prwarden.db", timeout: float = 30.0, clock: Callable[[], float] = time.time):
        self._db_path = db_path
        self._timeout = timeout
        self._clock = clock
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # isolation_level=None: transactions are opened explicitly below.
        conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block under the database write lock; commit on success, roll back on error."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ------------------------------------------------------------------ #
    # Organizations and members                                           #
    # ------------------------------------------------------------------ #

    def upsert_organization(
        self,
        installation_id: int,
        name: str,
        description: str = "",
        url: str = "",
        avatar_url: str = "",
        account_type: str = "TEAM",
    ) -> Organization:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO organizations (installation_id, name, description, url, avatar_url, account_type)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (installation_id) DO UPDATE SET
                  name = excluded.name,
                  description = excluded.description,
                  url = excluded.url,
                  avatar_url = excluded.avatar_url
                """,
                (installation_id, name, description or "", url or "", avatar_url or "", account_type),
            )
            row = conn.execute("SELECT * FROM organizations WHERE installation_id=?", (installation_id,)).fetchone()
        return self._row_to_organization(row)

    def get_organization_by_installation(self, installation_id: int) -> Organization | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM organizations WHERE installation_id=?", (installation_id,)).fetchone()
        return self._row_to_organization(row) if row else None

    def set_plan(self, organization_id: int, plan: str) -> None:
        with self._transaction() as conn:
            conn.execute("UPDATE organizations SET plan=? WHERE id=?", (plan, organization_id))

    def upsert_member(self, organization_id: int, login: str, role: str = "member") -> Member:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO members (organization_id, login, role) VALUES (?, ?, ?)
                ON CONFLICT (organization_id, login) DO UPDATE SET role = excluded.role
                """,
                (organization_id, login, role),
            )
        return Member(organization_id=organization_id, login=login, role=role)

    # ------------------------------------------------------------------ #
    # Repositories                                                        #
    # ------------------------------------------------------------------ #

    def upsert_repository(
        self,
        organization_id: int,
        external_id: int,
        name: str,
        full_name: str,
        description: str = "",
        url: str = "",
        private: bool = False,
        refresh_metadata: bool = True,
    ) -> Repository:
        on_conflict = "is_enabled = 1"
        if refresh_metadata:
            on_conflict += (
                ", name = excluded.name, full_name = excluded.full_name, description = excluded.description,"
                " url = excluded.url, private = excluded.private"
            )
        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO repositories
                  (external_id, organization_id, name, full_name, description, url, private, is_enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1)
                ON CONFLICT (external_id) DO UPDATE SET {on_conflict}
                """,
                (external_id, organization_id, name, full_name, description or "", url or "", int(bool(private))),
            )
            row = conn.execute("SELECT * FROM repositories WHERE external_id=?", (external_id,)).fetchone()
        return self._row_to_repository(row)

    def get_repository(self, external_id: int) -> Repository | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM repositories WHERE external_id=?", (external_id,)).fetchone()
        return self._row_to_repository(row) if row else None

    def list_repositories(self, organization_id: int) -> list[Repository]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM repositories WHERE organization_id=? ORDER BY full_name",
                (organization_id,),
            ).fetchall()
        return [self._row_to_repository(r) for r in rows]

    def disable_repository(self, external_id: int) -> int:
        with self._transaction() as conn:
            cursor = conn.execute("UPDATE repositories SET is_enabled=0 WHERE external_id=?", (external_id,))
        return cursor.rowcount

    def disable_installation_repositories(self, installation_id: int) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE repositories SET is_enabled=0
                WHERE organization_id IN (SELECT id FROM organizations WHERE installation_id=?)
                """,
                (installation_id,),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------ #
    # Token usage                                                         #
    # ------------------------------------------------------------------ #

    def reserve_tokens(self, organization_id: int, token_count: int, limit: int, window_seconds: float) -> bool:
        now = self._clock()
        with self._transaction() as conn:
            usage = self._sum_usage(conn, organization_id, now - window_seconds)
            if usage + token_count > limit:
                logger.info(
                    "Token reservation rejected for organization %s: %d used + %d requested > %d",
                    organization_id,
                    usage,
                    token_count,
                    limit,
                )
                return False
            conn.execute(
                "INSERT INTO token_usage (organization_id, token_count, recorded_at) VALUES (?, ?, ?)",
                (organization_id, token_count, now),
            )
        return True

    def token_usage(self, organization_id: int, window_seconds: float) -> int:
        with self._connect() as conn:
            return self._sum_usage(conn, organization_id, self._clock() - window_seconds)

    @staticmethod
    def _sum_usage(conn: sqlite3.Connection, organization_id: int, since: float) -> int:
        row = conn.execute(
            "SELECT COALESCE(SUM(token_count), 0) FROM token_usage WHERE organization_id=? AND recorded_at >= ?",
            (organization_id, since),
        ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------ #
    # Deliveries                                                          #
    # ------------------------------------------------------------------ #

    def record_delivery(self, delivery_id: str) -> bool:
        now = self._clock()
        with self._transaction() as conn:
            conn.execute("DELETE FROM deliveries WHERE received_at < ?", (now - _DELIVERY_RETENTION_SECONDS,))
            cursor = conn.execute(
                "INSERT OR IGNORE INTO deliveries (delivery_id, received_at) VALUES (?, ?)",
                (delivery_id, now),
            )
        return cursor.rowcount == 1

    def forget_delivery(self, delivery_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM deliveries WHERE delivery_id=?", (delivery_id,))

    # ------------------------------------------------------------------ #
    # Row mapping                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _row_to_organization(row: sqlite3.Row) -> Organization:
        return Organization(
            id=row["id"],
            installation_id=row["installation_id"],
            name=row["name"],
            description=row["description"] or "",
            url=row["url"] or "",
            avatar_url=row["avatar_url"] or "",
            account_type=row["account_type"] or "TEAM",
            plan=row["plan"] or "free",
        )

    @staticmethod
    def _row_to_repository(row: sqlite3.Row) -> Repository:
        return Repository(
            id=row["id"],
            external_id=row["external_id"],
            organization_id=row["organization_id"],
            name=row["name"],
            full_name=row["full_name"],
            description=row["description"] or "",
            url=row["url"] or "",
            private=bool(row["private"]),
            is_enabled=bool(row["is_enabled"]),
        )
