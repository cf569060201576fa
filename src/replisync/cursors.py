"""Per-client mutation cursors."""

import aiosqlite

from replisync.errors import CursorConflictError


class MutationStore:
    """Reads and writes the last processed mutation id of each client.

    All calls go through the connection handed in, so a read always sees the
    writes made earlier on it. Ordering rules live in the batch processor;
    this class only stores numbers.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get_cursor(self, account_id: str, client_id: str) -> int:
        """Return the client's last mutation id, or 0 for an unknown client."""
        cursor = await self.db.execute(
            "SELECT last_mutation_id FROM client_state WHERE account_id = ? AND client_id = ?",
            (account_id, client_id),
        )
        row = await cursor.fetchone()
        return row["last_mutation_id"] if row else 0

    async def set_cursor(
        self,
        account_id: str,
        client_id: str,
        value: int,
        expected: int | None = None,
    ) -> None:
        """Store a new cursor value.

        Without ``expected`` this is a plain upsert and the last writer wins.
        With it, the write only lands if the stored cursor still equals
        ``expected`` (0 meaning no row yet); otherwise CursorConflictError.
        """
        if expected is None:
            await self.db.execute(
                """INSERT INTO client_state (account_id, client_id, last_mutation_id) VALUES (?, ?, ?)
                   ON CONFLICT (account_id, client_id) DO UPDATE SET last_mutation_id = excluded.last_mutation_id""",
                (account_id, client_id, value),
            )
            return

        if expected == 0:
            cursor = await self.db.execute(
                """INSERT INTO client_state (account_id, client_id, last_mutation_id) VALUES (?, ?, ?)
                   ON CONFLICT (account_id, client_id) DO UPDATE SET last_mutation_id = excluded.last_mutation_id
                   WHERE client_state.last_mutation_id = 0""",
                (account_id, client_id, value),
            )
        else:
            cursor = await self.db.execute(
                """UPDATE client_state SET last_mutation_id = ?
                   WHERE account_id = ? AND client_id = ? AND last_mutation_id = ?""",
                (value, account_id, client_id, expected),
            )
        if cursor.rowcount != 1:
            raise CursorConflictError(account_id, client_id, expected)
