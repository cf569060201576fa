import pytest
from pathlib import Path


@pytest.fixture(autouse=True)
def setup_test_db(tmp_path: Path):
    from replisync.config import config

    # Override paths to use testing files
    db_file = tmp_path / "test.db"
    config._config["database"]["path"] = str(db_file)
    yield db_file


@pytest.fixture
async def init_database(setup_test_db):
    from replisync import db

    await db.init_db()
    yield


@pytest.fixture
async def conn(init_database):
    from replisync import db

    async with db._aconn() as c:
        yield c


@pytest.fixture
async def async_client(init_database):
    from replisync.api import app
    from httpx import AsyncClient, ASGITransport

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
