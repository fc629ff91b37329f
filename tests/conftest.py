from __future__ import annotations

import asyncio
import json
from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

OWNER_ID = "owner-1"

UNREGISTERED_BODY = {
    "error": {
        "code": 404,
        "message": "Requested entity was not found.",
        "status": "NOT_FOUND",
        "details": [
            {
                "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                "errorCode": "UNREGISTERED",
            }
        ],
    }
}

UNAVAILABLE_BODY = {
    "error": {"code": 503, "message": "The service is currently unavailable.", "status": "UNAVAILABLE"}
}


@pytest.fixture
def test_ctx(tmp_path, monkeypatch) -> Generator[dict, None, None]:
    import pushcast.database as db_module
    from pushcast.database import Base, configure_sqlite_connection
    from pushcast import models  # noqa: F401

    db_file = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool, future=True)
    event.listen(engine.sync_engine, "connect", configure_sqlite_connection)
    TestingSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    monkeypatch.setattr(db_module, "engine", engine)
    monkeypatch.setattr(db_module, "async_session", TestingSession)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())

    from pushcast.main import app
    from pushcast.utils.auth import get_current_owner

    app.dependency_overrides[get_current_owner] = lambda: OWNER_ID
    client = TestClient(app)

    yield {
        "client": client,
        "session_local": TestingSession,
        "engine": engine,
        "owner_id": OWNER_ID,
    }

    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


@pytest.fixture
def seed(test_ctx):
    """Insert model instances in one transaction."""
    def _seed(*objects):
        async def _run():
            async with test_ctx["session_local"]() as session:
                session.add_all(objects)
                await session.commit()

        asyncio.run(_run())

    return _seed


@pytest.fixture
def fetch(test_ctx):
    """Load one row by primary key, or every row of a model when no id is given."""
    def _fetch(model, ident=None):
        async def _run():
            async with test_ctx["session_local"]() as session:
                if ident is not None:
                    return await session.get(model, ident)
                result = await session.execute(select(model))
                return list(result.scalars().all())

        return asyncio.run(_run())

    return _fetch


class FakeFcm:
    """Records FCM requests and answers per device token."""

    def __init__(self):
        self.responses = {}
        self.requests = []

    def fail(self, token, status_code, body):
        self.responses[token] = (status_code, body)

    @property
    def sent_tokens(self):
        return [r["message"]["token"] for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        token = payload["message"]["token"]
        status_code, body = self.responses.get(
            token, (200, {"name": f"projects/test-project/messages/{len(self.requests)}"})
        )
        return httpx.Response(status_code, json=body)


@pytest.fixture
def fake_fcm(monkeypatch) -> FakeFcm:
    from pushcast.services.dispatcher import delivery_dispatcher
    from pushcast.services.push_gateway import FcmConfig, FcmGateway

    fake = FakeFcm()

    async def static_token():
        return "test-access-token"

    gateway = FcmGateway()
    gateway.configure(
        FcmConfig(project_id="test-project", endpoint="https://fcm.test"),
        token_provider=static_token,
        transport=httpx.MockTransport(fake.handler),
    )
    monkeypatch.setattr(delivery_dispatcher, "gateway", gateway)
    return fake
