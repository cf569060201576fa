"""Replicache batch and client-view endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from replisync import db
from replisync.batch import BatchProcessor, Mutation
from replisync.config import config
from replisync.cursors import MutationStore
from replisync.errors import MalformedBatchError, MutationIDTooHighError
from replisync.todos import load_client_view

router = APIRouter(tags=["sync"])


class BatchMutation(BaseModel):
    id: int = Field(ge=0)
    name: str
    args: Any = None


class BatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(default="", alias="clientID")
    mutations: list[BatchMutation] = []


class MutationInfo(BaseModel):
    """Note about a mutation that was skipped or failed permanently."""
    id: int
    error: str


class BatchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mutation_infos: list[MutationInfo] = Field(default_factory=list, alias="mutationInfos")


class ClientViewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(default="", alias="clientID")


class ClientViewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    last_mutation_id: int = Field(alias="lastMutationID")
    client_view: dict[str, dict] = Field(alias="clientView")


def get_account_id() -> str:
    """Account of the calling user.

    Requests are not authenticated yet, so every client shares the
    configured account.
    """
    return config.account_id


@router.post("/replicache-batch", response_model=BatchResponse)
async def push_batch(request: BatchRequest, account_id: str = Depends(get_account_id)):
    """Apply a client's mutations in order, each exactly once.

    Successful mutations are not listed in the response; skipped ones and
    permanent failures come back as {id, error} notes. A gap in mutation ids
    fails the whole request with 400 and the id the server expected next.
    """
    if not request.client_id:
        raise HTTPException(status_code=400, detail="clientID field is required")

    mutations = [Mutation(id=m.id, name=m.name, args=m.args) for m in request.mutations]
    async with db._aconn() as conn:
        processor = BatchProcessor(conn, account_id)
        try:
            results = await processor.process(request.client_id, mutations)
        except MalformedBatchError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except MutationIDTooHighError as e:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": "mutation_id_too_high",
                    "message": str(e),
                    "id": e.mutation_id,
                    "expected": e.expected,
                },
            )

    return BatchResponse(
        mutation_infos=[MutationInfo(id=r.id, error=r.message) for r in results if r.reported]
    )


@router.post("/replicache-client-view", response_model=ClientViewResponse)
async def client_view(request: ClientViewRequest, account_id: str = Depends(get_account_id)):
    """Return the client's cursor together with the account's current todos."""
    if not request.client_id:
        raise HTTPException(status_code=400, detail="clientID field is required")

    async with db._aconn() as conn:
        async with db.transaction(conn, mode="DEFERRED"):
            last_mutation_id = await MutationStore(conn).get_cursor(account_id, request.client_id)
            view = await load_client_view(db.DocumentStore(conn, account_id))

    return ClientViewResponse(last_mutation_id=last_mutation_id, client_view=view)
