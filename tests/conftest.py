import asyncio

import pytest
from fastapi.testclient import TestClient

from estoque.database import build_engine, build_sessionmaker, create_tables
from estoque.main import create_app


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'estoque-test.db'}"


@pytest.fixture
def run_db(database_url):
    """
    Run ``scenario(sessionmaker)`` against a fresh database.

    Engine creation, the scenario and disposal share one event loop.
    """
    def runner(scenario):
        async def main():
            engine = build_engine(database_url)
            await create_tables(engine)
            try:
                return await scenario(build_sessionmaker(engine))
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner


@pytest.fixture
def client(database_url):
    app = create_app(engine=build_engine(database_url))
    with TestClient(app) as test_client:
        yield test_client


def _token(client, usuario, senha, nivel):
    response = client.post("/api/auth/register", json={"usuario": usuario, "senha": senha, "nivel": nivel})
    assert response.status_code == 201, response.text
    response = client.post("/api/auth/login", json={"usuario": usuario, "senha": senha})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return _token(client, "gerente", "s3nha-admin", "admin")


@pytest.fixture
def user_headers(client):
    return _token(client, "vendedor", "s3nha-comum", "comum")
