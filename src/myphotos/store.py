from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import StorageError
from .identity import IDENTITY_SCHEME
from .model import Identity, InventoryRecord

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS photos (
  filename TEXT NOT NULL,
  size INTEGER NOT NULL,
  local_path TEXT,
  remote_path TEXT,
  PRIMARY KEY (filename, size)
);

CREATE INDEX IF NOT EXISTS idx_photos_filename ON photos(filename);

CREATE TABLE IF NOT EXISTS store_meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

# Each upsert is one statement, so a reader never sees half of it applied.
# Only the observing origin's column is written.
_UPSERT_LOCAL = """
INSERT INTO photos (filename, size, local_path) VALUES (?, ?, ?)
ON CONFLICT(filename, size) DO UPDATE SET local_path=excluded.local_path
"""

_UPSERT_REMOTE = """
INSERT INTO photos (filename, size, remote_path) VALUES (?, ?, ?)
ON CONFLICT(filename, size) DO UPDATE SET remote_path=excluded.remote_path
"""


def _row_to_record(row: sqlite3.Row) -> InventoryRecord:
    return InventoryRecord(
        filename=row["filename"],
        size=int(row["size"]),
        local_path=row["local_path"] or None,
        remote_path=row["remote_path"] or None,
    )


class InventoryStore:
    """sqlite-backed inventory keyed by ``(filename, size)``.

    Outside `transaction()` every merge commits on its own. Inside it, all
    merges of a scan land in one commit, or none do if the block raises.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Optional[Path] = None) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self.db_path = db_path
        self._tx_depth = 0

    @classmethod
    def open(cls, db_path: Path) -> "InventoryStore":
        db_path = Path(db_path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transaction() issues BEGIN/COMMIT itself.
            conn = sqlite3.connect(str(db_path), isolation_level=None)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open inventory store {db_path}: {e}", cause=e) from e
        store = cls(conn, db_path)
        try:
            store.init()
        except StorageError:
            conn.close()
            raise
        return store

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def init(self) -> None:
        try:
            self._conn.executescript(SCHEMA_SQL)
            meta = {
                r["key"]: r["value"]
                for r in self._conn.execute("SELECT key, value FROM store_meta")
            }
            if not meta:
                self._conn.executemany(
                    "INSERT INTO store_meta (key, value) VALUES (?, ?)",
                    [
                        ("schema_version", str(SCHEMA_VERSION)),
                        ("identity_scheme", IDENTITY_SCHEME),
                    ],
                )
                return
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialise inventory store: {e}", cause=e) from e

        if meta.get("schema_version") != str(SCHEMA_VERSION):
            raise StorageError(
                f"Store schema mismatch in {self.db_path}: found "
                f"{meta.get('schema_version')}, expected {SCHEMA_VERSION}"
            )
        if meta.get("identity_scheme") != IDENTITY_SCHEME:
            raise StorageError(
                "Store was built with a different identity scheme. "
                "Start a fresh store and rescan both sides.\n"
                f"  store scheme  : {meta.get('identity_scheme')}\n"
                f"  current scheme: {IDENTITY_SCHEME}"
            )

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "InventoryStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator["InventoryStore"]:
        if self._tx_depth:
            # Nested use joins the outer transaction.
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            raise StorageError(f"Cannot begin transaction: {e}", cause=e) from e
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self._conn.rollback()
            raise
        self._tx_depth = 0
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"Commit failed: {e}", cause=e) from e

    def _execute(self, sql: str, params: tuple) -> None:
        try:
            self._conn.execute(sql, params)
        except (sqlite3.Error, UnicodeEncodeError) as e:
            raise StorageError(
                f"Merge failed for {params[0]!r} ({params[1]} bytes): {e}", cause=e
            ) from e

    def merge_local(self, identity: Identity, local_path: str) -> None:
        self._execute(_UPSERT_LOCAL, (identity.filename, identity.size, local_path))

    def merge_remote(self, identity: Identity, remote_path: str) -> None:
        self._execute(_UPSERT_REMOTE, (identity.filename, identity.size, remote_path))

    def get(self, identity: Identity) -> Optional[InventoryRecord]:
        try:
            row = self._conn.execute(
                "SELECT filename, size, local_path, remote_path FROM photos "
                "WHERE filename = ? AND size = ?",
                (identity.filename, identity.size),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Lookup failed: {e}", cause=e) from e
        return _row_to_record(row) if row else None

    def records(self) -> List[InventoryRecord]:
        try:
            rows = self._conn.execute(
                "SELECT filename, size, local_path, remote_path FROM photos "
                "ORDER BY filename, size"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Listing failed: {e}", cause=e) from e
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        try:
            return int(self._conn.execute("SELECT COUNT(*) FROM photos").fetchone()[0])
        except sqlite3.Error as e:
            raise StorageError(f"Count failed: {e}", cause=e) from e
