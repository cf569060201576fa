"""SQLite storage: schema, connections, and the account-scoped document store."""

import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from replisync.config import config
from replisync.errors import DocumentExistsError

logger = logging.getLogger("replisync.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    account_id TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL DEFAULT '{}',
    PRIMARY KEY (account_id, id)
);

-- One row per (account, client): the id of the last processed mutation
CREATE TABLE IF NOT EXISTS client_state (
    account_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    last_mutation_id INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (account_id, client_id)
);
"""


async def init_db() -> None:
    """Create the database file and schema if needed."""
    db_path = config.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    try:
        # WAL lets the client-view reads proceed while a batch holds the write lock
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Database ready at {db_path}")


@asynccontextmanager
async def _aconn():
    """Async context manager for an aiosqlite connection.

    The connection runs in autocommit mode; multi-statement units of work go
    through transaction().
    """
    db = await aiosqlite.connect(str(config.db_path), timeout=config.db_timeout, isolation_level=None)
    db.row_factory = aiosqlite.Row
    try:
        yield db
    finally:
        await db.close()


@asynccontextmanager
async def transaction(db: aiosqlite.Connection, mode: str = "IMMEDIATE"):
    """Run a block inside a transaction, committing on success.

    IMMEDIATE takes the database write lock up front, so two writers never
    interleave their read-then-write sequences. DEFERRED suits read-only
    blocks that only need a consistent snapshot.
    """
    if mode not in ("DEFERRED", "IMMEDIATE", "EXCLUSIVE"):
        raise ValueError(f"Unknown transaction mode: {mode}")
    await db.execute(f"BEGIN {mode}")
    try:
        yield db
    except BaseException:
        # Some errors make SQLite roll back on its own
        if db.in_transaction:
            await db.execute("ROLLBACK")
        raise
    await db.execute("COMMIT")


def _prefix_upper_bound(prefix: str) -> str:
    return prefix[:-1] + chr(ord(prefix[-1]) + 1)


class DocumentStore:
    """JSON documents in one account's partition.

    Documents are dicts carrying a string "id". The stored copy never
    includes the account; reads add it back as "accountID".
    """

    def __init__(self, db: aiosqlite.Connection, account_id: str):
        self.db = db
        self.account_id = account_id

    def _row_to_doc(self, row: aiosqlite.Row) -> dict[str, Any]:
        doc = json.loads(row["body"])
        doc["id"] = row["id"]
        doc["accountID"] = self.account_id
        return doc

    @staticmethod
    def _body(doc: dict[str, Any]) -> str:
        return json.dumps({k: v for k, v in doc.items() if k not in ("id", "accountID")})

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        cursor = await self.db.execute(
            "SELECT id, body FROM documents WHERE account_id = ? AND id = ?",
            (self.account_id, doc_id),
        )
        row = await cursor.fetchone()
        return self._row_to_doc(row) if row else None

    async def create(self, doc: dict[str, Any]) -> None:
        """Insert a new document, raising DocumentExistsError on a taken id."""
        try:
            await self.db.execute(
                "INSERT INTO documents (account_id, id, body) VALUES (?, ?, ?)",
                (self.account_id, doc["id"], self._body(doc)),
            )
        except sqlite3.IntegrityError as e:
            raise DocumentExistsError(doc["id"]) from e

    async def upsert(self, doc: dict[str, Any]) -> None:
        await self.db.execute(
            """INSERT INTO documents (account_id, id, body) VALUES (?, ?, ?)
               ON CONFLICT (account_id, id) DO UPDATE SET body = excluded.body""",
            (self.account_id, doc["id"], self._body(doc)),
        )

    async def delete(self, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""
        cursor = await self.db.execute(
            "DELETE FROM documents WHERE account_id = ? AND id = ?",
            (self.account_id, doc_id),
        )
        return cursor.rowcount > 0

    async def query(self, prefix: str = "") -> list[dict[str, Any]]:
        """All documents whose id starts with prefix, ordered by id."""
        if prefix:
            cursor = await self.db.execute(
                """SELECT id, body FROM documents
                   WHERE account_id = ? AND id >= ? AND id < ?
                   ORDER BY id""",
                (self.account_id, prefix, _prefix_upper_bound(prefix)),
            )
        else:
            cursor = await self.db.execute(
                "SELECT id, body FROM documents WHERE account_id = ? ORDER BY id",
                (self.account_id,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_doc(r) for r in rows]
