"""Exactly-once, in-order application of client mutation batches."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

import aiosqlite

from replisync.config import config
from replisync.cursors import MutationStore
from replisync.db import DocumentStore, transaction
from replisync.errors import (
    CursorConflictError,
    MalformedBatchError,
    MutationIDTooHighError,
    PermanentError,
)
from replisync.mutators import MutationApplier, applier as default_applier

logger = logging.getLogger("replisync.batch")


class MutationOutcome(str, Enum):
    APPLIED = "applied"
    APPLIED_WITH_ERROR = "applied_with_error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Mutation:
    id: int
    name: str
    args: Any = None


@dataclass(frozen=True)
class MutationResult:
    id: int
    outcome: MutationOutcome
    message: str | None = None

    @property
    def reported(self) -> bool:
        """Whether the client hears about this mutation. Plain successes are silent."""
        return self.outcome is not MutationOutcome.APPLIED


class BatchProcessor:
    """Applies one client's batch against the cursor kept for that client.

    For every mutation, in order, the cursor is read fresh and compared with
    the mutation id:

    - id below cursor + 1: already processed, skipped.
    - id above cursor + 1: a gap. MutationIDTooHighError is raised and the
      rest of the batch is not looked at.
    - id equal to cursor + 1: dispatched to the applier, then the cursor is
      advanced. A PermanentError from the handler still advances it, since
      the client must not retry something the server will never accept.

    Each mutation runs in its own transaction. Any other exception rolls back
    the domain write and the cursor together and propagates; mutations
    committed earlier in the batch stay committed.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        account_id: str,
        applier: MutationApplier | None = None,
        compare_and_swap: bool | None = None,
        max_conflict_retries: int | None = None,
    ):
        self.db = db
        self.account_id = account_id
        self.cursors = MutationStore(db)
        self.documents = DocumentStore(db, account_id)
        self.applier = applier or default_applier
        self.compare_and_swap = config.compare_and_swap if compare_and_swap is None else compare_and_swap
        self.max_conflict_retries = (
            config.max_conflict_retries if max_conflict_retries is None else max_conflict_retries
        )

    async def process(self, client_id: str, mutations: Iterable[Mutation]) -> list[MutationResult]:
        """Process a batch and return one result per mutation considered."""
        mutations = list(mutations)
        if not client_id:
            raise MalformedBatchError("clientID field is required")
        for mutation in mutations:
            if mutation.id < 1:
                raise MalformedBatchError("id field of mutation must be non-zero")

        results: list[MutationResult] = []
        for mutation in mutations:
            try:
                result = await self._process_one(client_id, mutation)
            except MutationIDTooHighError as e:
                e.results = results
                logger.warning(f"Rejecting batch from client {client_id}: {e}")
                raise
            results.append(result)

        applied = sum(1 for r in results if r.outcome is not MutationOutcome.SKIPPED)
        logger.info(
            f"Client {client_id}: {applied} applied, {len(results) - applied} skipped "
            f"of {len(mutations)} mutations"
        )
        return results

    async def _process_one(self, client_id: str, mutation: Mutation) -> MutationResult:
        attempt = 0
        while True:
            try:
                async with transaction(self.db):
                    return await self._step(client_id, mutation)
            except CursorConflictError as e:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    raise
                logger.warning(f"{e}; retrying mutation {mutation.id} (attempt {attempt})")

    async def _step(self, client_id: str, mutation: Mutation) -> MutationResult:
        cursor = await self.cursors.get_cursor(self.account_id, client_id)
        expected = cursor + 1

        if mutation.id > expected:
            raise MutationIDTooHighError(mutation.id, expected)

        if mutation.id < expected:
            logger.debug(f"Client {client_id}: mutation {mutation.id} already processed")
            return MutationResult(
                mutation.id,
                MutationOutcome.SKIPPED,
                f"Mutation ID {mutation.id} has already been processed. Skipping.",
            )

        # A rejected mutation must leave no domain writes behind, only the cursor advance
        await self.db.execute("SAVEPOINT apply_mutation")
        try:
            await self.applier.apply(self.documents, mutation.name, mutation.args)
            result = MutationResult(mutation.id, MutationOutcome.APPLIED)
        except PermanentError as e:
            await self.db.execute("ROLLBACK TO apply_mutation")
            logger.warning(f"Client {client_id}: mutation {mutation.id} ({mutation.name}) failed permanently: {e.message}")
            result = MutationResult(mutation.id, MutationOutcome.APPLIED_WITH_ERROR, e.message)
        await self.db.execute("RELEASE apply_mutation")

        await self.cursors.set_cursor(
            self.account_id,
            client_id,
            expected,
            expected=cursor if self.compare_and_swap else None,
        )
        return result
