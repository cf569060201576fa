import logging
import sqlite3

import pytest
from httpx import AsyncClient


def create(mutation_id, todo_id, text="walk dog"):
    return {
        "id": mutation_id,
        "name": "createTodo",
        "args": {"id": todo_id, "listID": 1, "text": text, "order": "a0", "complete": False},
    }


async def push(client: AsyncClient, mutations, client_id="client-1"):
    return await client.post("/replicache-batch", json={"clientID": client_id, "mutations": mutations})


async def pull(client: AsyncClient, client_id="client-1"):
    return await client.post("/replicache-client-view", json={"clientID": client_id})


@pytest.mark.asyncio
async def test_status(async_client: AsyncClient):
    response = await async_client.get("/api/status")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "running"
    assert "db_path" in data


@pytest.mark.asyncio
async def test_startup_logs_registered_mutators(setup_test_db, caplog):
    from replisync.api import startup

    with caplog.at_level(logging.INFO, logger="replisync.api"):
        await startup()

    assert "Registered mutators: createTodo, deleteTodo, updateTodo" in caplog.text
    assert setup_test_db.exists()


@pytest.mark.asyncio
async def test_push_then_pull(async_client: AsyncClient):
    response = await push(async_client, [create(1, 1), create(2, 2, text="feed cat")])
    assert response.status_code == 200
    assert response.json() == {"mutationInfos": []}

    response = await pull(async_client)
    assert response.status_code == 200
    data = response.json()
    assert data["lastMutationID"] == 2
    assert set(data["clientView"]) == {"/todo/1", "/todo/2"}
    assert data["clientView"]["/todo/2"]["text"] == "feed cat"
    assert data["clientView"]["/todo/2"]["id"] == 2


@pytest.mark.asyncio
async def test_pull_unknown_client(async_client: AsyncClient):
    response = await pull(async_client, "fresh")
    assert response.status_code == 200
    assert response.json() == {"lastMutationID": 0, "clientView": {}}


@pytest.mark.asyncio
async def test_repeated_push_reports_skips(async_client: AsyncClient):
    batch = [create(1, 1), create(2, 2)]
    await push(async_client, batch)

    response = await push(async_client, batch)
    assert response.status_code == 200
    assert response.json()["mutationInfos"] == [
        {"id": 1, "error": "Mutation ID 1 has already been processed. Skipping."},
        {"id": 2, "error": "Mutation ID 2 has already been processed. Skipping."},
    ]
    assert (await pull(async_client)).json()["lastMutationID"] == 2


@pytest.mark.asyncio
async def test_push_with_gap(async_client: AsyncClient):
    response = await push(async_client, [create(1, 1), create(3, 3)])
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "mutation_id_too_high"
    assert detail["id"] == 3
    assert detail["expected"] == 2
    assert detail["message"] == "Mutation ID 3 is too high - next expected mutation is 2"

    data = (await pull(async_client)).json()
    assert data["lastMutationID"] == 1
    assert list(data["clientView"]) == ["/todo/1"]


@pytest.mark.asyncio
async def test_push_permanent_error(async_client: AsyncClient):
    response = await push(async_client, [{"id": 1, "name": "launchRocket", "args": {}}, create(2, 1)])
    assert response.status_code == 200
    assert response.json()["mutationInfos"] == [{"id": 1, "error": "Unknown mutation: launchRocket"}]
    assert (await pull(async_client)).json()["lastMutationID"] == 2


@pytest.mark.asyncio
async def test_push_zero_id(async_client: AsyncClient):
    await push(async_client, [create(1, 1)])

    response = await push(async_client, [create(2, 2), {"id": 0, "name": "createTodo", "args": {}}])
    assert response.status_code == 400
    assert response.json()["detail"] == "id field of mutation must be non-zero"
    assert (await pull(async_client)).json()["lastMutationID"] == 1


@pytest.mark.asyncio
async def test_push_negative_id(async_client: AsyncClient):
    response = await push(async_client, [{"id": -1, "name": "createTodo", "args": {}}])
    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"mutations": []}, {"clientID": "", "mutations": []}])
async def test_push_requires_client_id(async_client: AsyncClient, payload):
    response = await async_client.post("/replicache-batch", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "clientID field is required"


@pytest.mark.asyncio
async def test_pull_requires_client_id(async_client: AsyncClient):
    response = await async_client.post("/replicache-client-view", json={})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_storage_failure_is_retryable(async_client: AsyncClient, monkeypatch):
    from replisync import batch
    from replisync.mutators import applier

    failing = applier.copy()

    @failing.register("explode")
    async def explode(documents, args):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(batch, "default_applier", failing)

    response = await push(async_client, [create(1, 1), {"id": 2, "name": "explode", "args": {}}])
    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "storage_unavailable"

    # Mutation 1 stays applied; the retry skips it and applies 2
    monkeypatch.setattr(batch, "default_applier", applier)
    assert (await pull(async_client)).json()["lastMutationID"] == 1

    response = await push(async_client, [create(1, 1), create(2, 2)])
    assert response.status_code == 200
    assert [info["id"] for info in response.json()["mutationInfos"]] == [1]
    assert (await pull(async_client)).json()["lastMutationID"] == 2


@pytest.mark.asyncio
async def test_account_comes_from_config(async_client: AsyncClient, monkeypatch):
    from replisync.config import config

    await push(async_client, [create(1, 1)])

    monkeypatch.setitem(config._config["account"], "id", "other-account")
    data = (await pull(async_client)).json()
    assert data == {"lastMutationID": 0, "clientView": {}}
