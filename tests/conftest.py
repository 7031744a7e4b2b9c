"""
Pytest configuration and shared fixtures.

The app runs in-process against an in-memory SQLite database (aiosqlite);
the LLM client is replaced with a scripted fake.
"""

import os

# Must be set before handover.config is imported anywhere
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HANDOVER_FETCH_RETRY_BASE_SECONDS", "0")
os.environ.setdefault("LOG_FORMAT", "text")

from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ai.llm import LLMClient, LLMError
from handover import models
from handover.api import app
from handover.db import get_session
from handover.deps import get_llm_client
from handover.events import stats_cache


class FakeLLMClient(LLMClient):
    """Returns queued replies (or raises queued errors) instead of calling out."""

    def __init__(self):
        super().__init__(api_key="test-key")
        self.replies = []
        self.calls = []

    def queue(self, reply):
        self.replies.append(reply)

    async def complete(self, system, user, max_tokens):
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        if not self.replies:
            raise AssertionError("FakeLLMClient has no queued reply")
        reply = self.replies.pop(0)
        if isinstance(reply, LLMError):
            raise reply
        return reply


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture(autouse=True)
def clear_stats_cache():
    stats_cache.clear()
    yield
    stats_cache.clear()


@pytest_asyncio.fixture
async def client(session_factory, llm):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_llm_client] = lambda: llm
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def as_user(user):
    return {"X-User-Id": user.id}


async def make_user(session, email, role, department=None):
    user = models.User(email=email, role=role, department=department)
    session.add(user)
    await session.commit()
    return user


async def make_handover(session, employee, successor=None, progress=0, tasks=(), created_at=None):
    handover = models.Handover(
        employee_id=employee.id,
        successor_id=successor.id if successor else None,
        progress=progress,
        created_at=created_at or datetime.utcnow(),
    )
    session.add(handover)
    await session.flush()
    for index, task_status in enumerate(tasks):
        session.add(
            models.Task(
                handover_id=handover.id,
                title=f"Task {index + 1}",
                status=task_status,
                created_at=handover.created_at + timedelta(seconds=index),
            )
        )
    await session.commit()
    return handover


@pytest_asyncio.fixture
async def people(session):
    """An admin, an HR manager, an exiting employee and a successor."""
    return {
        "admin": await make_user(session, "admin@company.com", "admin"),
        "hr": await make_user(session, "hr@company.com", "hr-manager", "HR"),
        "employee": await make_user(session, "john.doe@company.com", "exiting", "Sales"),
        "successor": await make_user(session, "sam@company.com", "successor", "Sales"),
        "outsider": await make_user(session, "other@company.com", "successor", "Engineering"),
    }
