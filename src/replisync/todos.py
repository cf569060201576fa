"""Todo mutators and the todo client view."""

import logging
from typing import Any

from pydantic import BaseModel, StrictInt, ValidationError

from replisync.db import DocumentStore
from replisync.errors import DocumentExistsError, PermanentError

logger = logging.getLogger("replisync.todos")

# Todos share the document id space with anything else stored for the account
TODO_PREFIX = "/todo/"


class Todo(BaseModel):
    id: StrictInt
    listID: int = 0
    text: str = ""
    order: str = ""
    complete: bool = False


class TodoUpdate(BaseModel):
    id: StrictInt
    text: str | None = None
    order: str | None = None
    complete: bool | None = None


class TodoRef(BaseModel):
    id: StrictInt


def todo_doc_id(todo_id: int) -> str:
    return f"{TODO_PREFIX}{todo_id}"


def _parse(model: type[BaseModel], args: Any):
    try:
        return model.model_validate(args)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise PermanentError("Could not deserialize arguments: " + "; ".join(problems)) from e


async def create_todo(documents: DocumentStore, args: Any) -> None:
    if isinstance(args, dict) and type(args.get("id")) is not int:
        raise PermanentError("Invalid type for id: must be number")
    todo = _parse(Todo, args)

    doc = todo.model_dump()
    doc["id"] = todo_doc_id(todo.id)
    try:
        await documents.create(doc)
    except DocumentExistsError as e:
        raise PermanentError(f"todo {todo.id} already exists") from e


async def update_todo(documents: DocumentStore, args: Any) -> None:
    update = _parse(TodoUpdate, args)
    doc = await documents.get(todo_doc_id(update.id))
    if doc is None:
        raise PermanentError("specified todo not found")

    # Only the fields the client sent are touched
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    changes.pop("id")
    doc.update(changes)
    await documents.upsert(doc)


async def delete_todo(documents: DocumentStore, args: Any) -> None:
    ref = _parse(TodoRef, args)
    if not await documents.delete(todo_doc_id(ref.id)):
        raise PermanentError("specified todo not found")


MUTATORS = {
    "createTodo": create_todo,
    "updateTodo": update_todo,
    "deleteTodo": delete_todo,
}


async def load_client_view(documents: DocumentStore) -> dict[str, dict]:
    """Every todo of the account, keyed by document id."""
    view = {}
    for doc in await documents.query(TODO_PREFIX):
        try:
            todo_id = int(doc["id"][len(TODO_PREFIX):])
        except ValueError:
            logger.warning(f"Leaving {doc['id']!r} out of the client view: id is not a todo number")
            continue
        fields = {k: v for k, v in doc.items() if k not in ("id", "accountID")}
        todo = Todo(id=todo_id, **fields)
        view[doc["id"]] = todo.model_dump()
    return view
