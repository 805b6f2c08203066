import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from staffchat.core.db import Base, get_db
from staffchat.models.user import User
from staffchat.models import conversation as _conversation_models  # noqa: F401
from staffchat.security.security import create_access_token, hash_password

pytest_plugins = ('pytest_asyncio',)


@pytest.fixture(autouse=True)
def suppress_logging(monkeypatch):
    """Lower logging during tests to reduce noise."""
    import logging
    logging.getLogger().setLevel(logging.WARNING)
    yield


@pytest_asyncio.fixture
async def session_factory(tmp_path_factory):
    """Fresh database file per test; concurrent requests get their own connections."""
    db_dir = tmp_path_factory.mktemp("db")
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_dir / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    async def _make_user(first_name, last_name="", email=None, is_admin=False):
        async with session_factory() as session:
            user = User(
                email=email or f"{first_name.lower()}.{last_name.lower() or 'x'}@example.com",
                first_name=first_name,
                last_name=last_name,
                hashed_password=hash_password("password123"),
                is_admin=is_admin,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _make_user


@pytest.fixture
def auth():
    def _auth(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _auth


@pytest_asyncio.fixture
async def app(session_factory):
    from staffchat.main import app as fastapi_app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
