"""Error taxonomy for the batch endpoint.

A sync client has to know whether a failed mutation is worth retrying, so
errors fall in two families:

- Temporary errors (the database is locked or unreachable, a cursor write
  lost a race). These are plain exceptions that propagate to the transport,
  which answers with a 5xx so the client retries the whole batch later.
- Permanent errors: the client sent something the server can never process.
  The mutation is recorded as handled and turned into a no-op, otherwise a
  client bug would make it retry forever.
"""


class PermanentError(Exception):
    """A mutation the server can never apply. Consumes the mutation id."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedBatchError(ValueError):
    """The batch request itself is invalid. Nothing was processed."""


class MutationIDTooHighError(Exception):
    """A mutation id skipped ahead of the client's cursor."""

    def __init__(self, mutation_id: int, expected: int, results: list | None = None):
        super().__init__(
            f"Mutation ID {mutation_id} is too high - next expected mutation is {expected}"
        )
        self.mutation_id = mutation_id
        self.expected = expected
        # Outcomes of the mutations processed before the gap
        self.results = results or []


class CursorConflictError(Exception):
    """A conditional cursor write found a value other than the one it read."""

    def __init__(self, account_id: str, client_id: str, expected: int):
        super().__init__(
            f"Cursor for client {client_id!r} in account {account_id!r} moved away from {expected}"
        )
        self.account_id = account_id
        self.client_id = client_id
        self.expected = expected


class DocumentExistsError(Exception):
    """A create hit an id already present in the account partition."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document {doc_id!r} already exists")
        self.doc_id = doc_id
