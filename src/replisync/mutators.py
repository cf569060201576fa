"""Name-keyed dispatch of mutations to their handlers."""

from typing import Any, Awaitable, Callable, Mapping

from replisync import todos
from replisync.db import DocumentStore
from replisync.errors import PermanentError

Mutator = Callable[[DocumentStore, Any], Awaitable[None]]


class MutationApplier:
    """Maps mutation names to async handlers.

    A handler receives the account-scoped document store and the raw args.
    It raises PermanentError for anything the client can never fix by
    retrying; any other exception is treated as a temporary failure.
    """

    def __init__(self, mutators: Mapping[str, Mutator] | None = None):
        self._mutators: dict[str, Mutator] = dict(mutators or {})

    def register(self, name: str):
        """Decorator adding a handler under ``name``."""
        def decorator(func: Mutator) -> Mutator:
            if name in self._mutators:
                raise ValueError(f"Mutator {name!r} is already registered")
            self._mutators[name] = func
            return func
        return decorator

    def names(self) -> list[str]:
        return sorted(self._mutators)

    def copy(self) -> "MutationApplier":
        return MutationApplier(self._mutators)

    async def apply(self, documents: DocumentStore, name: str, args: Any) -> None:
        mutator = self._mutators.get(name)
        if mutator is None:
            raise PermanentError(f"Unknown mutation: {name}")
        await mutator(documents, args)


applier = MutationApplier(todos.MUTATORS)
