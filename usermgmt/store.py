"""SQLite-backed key-value table holding user records."""
from __future__ import annotations

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .config import Settings
from .models import User

logger = logging.getLogger("usermgmt.store")

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,255}$")


class StoreError(RuntimeError):
    """Raised when the backing store fails to complete an operation."""


class AlreadyExists(StoreError):
    """Raised when a conditional write finds a record under the same id."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"A record with id {user_id!r} already exists")
        self.user_id = user_id


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class UserStore:
    """Point lookups by id or email and a put-if-absent write keyed on id.

    Each record is kept as a JSON item under its id, with the email stored
    alongside in an indexed column so that either key resolves the record.
    """

    def __init__(self, path: Path, *, table_name: str = "UserTable", timeout: float = 5.0) -> None:
        if not _TABLE_NAME_PATTERN.match(table_name):
            raise ValueError(f"Invalid table name {table_name!r}")
        _ensure_directory(path)
        self._path = path
        self._table = table_name
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "UserStore":
        return cls(settings.database_path, table_name=settings.table_name, timeout=settings.store_timeout)

    @property
    def table_name(self) -> str:
        return self._table

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the user table and its email index if they do not already exist."""

        try:
            with self._transaction() as conn:
                conn.executescript(
                    f"""
                    CREATE TABLE IF NOT EXISTS "{self._table}" (
                        id TEXT PRIMARY KEY,
                        email TEXT NOT NULL,
                        item TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS "idx_{self._table}_email" ON "{self._table}"(email);
                    """
                )
        except sqlite3.DatabaseError as exc:
            raise StoreError(f"Failed to initialise table {self._table}: {exc}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._get_one(f'SELECT item FROM "{self._table}" WHERE id = ?', user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        # Concurrent creates may leave more than one row per email; the oldest wins.
        return self._get_one(
            f'SELECT item FROM "{self._table}" WHERE email = ? ORDER BY rowid LIMIT 1',
            email,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def put_if_absent(self, user: User) -> None:
        """Insert ``user`` unless a record already exists for ``user.id``."""

        payload = json.dumps(user.to_item(), separators=(",", ":"))
        try:
            with self._transaction() as conn:
                conn.execute(
                    f'INSERT INTO "{self._table}" (id, email, item) VALUES (?, ?, ?)',
                    (user.id, user.email, payload),
                )
        except sqlite3.IntegrityError as exc:
            raise AlreadyExists(user.id) from exc
        except sqlite3.DatabaseError as exc:
            raise StoreError(f"Failed to write user {user.id}: {exc}") from exc
        logger.debug("Stored user %s in %s", user.id, self._table)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get_one(self, query: str, key: str) -> Optional[User]:
        try:
            with self._transaction() as conn:
                row = conn.execute(query, (key,)).fetchone()
        except sqlite3.DatabaseError as exc:
            raise StoreError(f"Failed to read from {self._table}: {exc}") from exc
        if row is None:
            return None
        return self._row_to_user(row)

    def _row_to_user(self, row: sqlite3.Row) -> User:
        try:
            item = json.loads(row["item"])
            return User.from_item(item)
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreError(f"Corrupt record in {self._table}") from exc


__all__ = ["AlreadyExists", "StoreError", "UserStore"]
