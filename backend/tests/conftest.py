from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from family_health.config import settings
from family_health.database import get_db
from family_health.main import app as fastapi_app
from family_health.middleware.rate_limit import build_rate_limiter
from family_health.models.base import Base

# Import all models so metadata is populated
import family_health.models  # noqa: F401

PASSWORD = "securepassword123"
PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    """Point file storage at a per-test directory."""
    path = tmp_path / "uploads"
    path.mkdir()
    monkeypatch.setattr(settings, "upload_dir", str(path))
    return path


@pytest_asyncio.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session with table creation and cleanup."""
    url = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, upload_dir) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP test client with DB dependency override and fresh rate limits."""

    async def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.state.rate_limiter = build_rate_limiter(settings)
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def register_family(
    client: AsyncClient,
    email: str = "admin@example.com",
    family_name: str = "Sharma",
    first_name: str = "Asha",
    last_name: str = "Sharma",
) -> dict:
    """Register a family and return the response body."""
    response = await client.post(
        "/api/v1/auth/register",
        json={
            "email": email,
            "password": PASSWORD,
            "familyName": family_name,
            "firstName": first_name,
            "lastName": last_name,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def auth_headers(client: AsyncClient, email: str = "admin@example.com") -> tuple[dict, str]:
    """Register a family admin and return (headers_dict, family_id)."""
    data = await register_family(client, email=email)
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]["familyId"]


async def login_headers(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def list_members(client: AsyncClient, headers: dict) -> list[dict]:
    response = await client.get("/api/v1/family/members", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["members"]


async def own_member_id(client: AsyncClient, headers: dict) -> str:
    """Member id of the admin created at registration."""
    members = await list_members(client, headers)
    return next(m["id"] for m in members if m["user_id"] is not None)


async def add_member(client: AsyncClient, headers: dict, **fields) -> dict:
    payload = {"name": "Ravi Sharma", **fields}
    response = await client.post("/api/v1/family/members", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["member"]


def pdf_file(name: str = "report.pdf", content: bytes = PDF_BYTES) -> dict:
    return {"file": (name, content, "application/pdf")}
