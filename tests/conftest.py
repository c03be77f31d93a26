"""
Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database, so nothing leaks between
tests. Outbound messages and text generation are replaced by fakes.
"""

import pytest
from sqlalchemy.pool import StaticPool

from database.db import init_db, make_engine, make_sessionmaker
from database import queries
from tests.helpers import CONTRACT_ACTIONS, FakeLLM, FakeMessenger

@pytest.fixture
async def engine():
    engine = make_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)

@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
async def user(session):
    """An onboarded user at shame level 2 with loss aversion on."""
    user = await queries.get_or_create_user(session, "1001", "UTC")
    await queries.update_user(
        session,
        user,
        name="Sam",
        onboarding_complete=True,
        onboarding_step="complete",
        shame_level=2,
        wake_time="07:00",
        sleep_time="22:00",
        risk_times=["21:00"],
    )
    return user

@pytest.fixture
async def contract(session, user):
    return await queries.create_contract(session, user.id, "fat loss", CONTRACT_ACTIONS, "rules")

@pytest.fixture
def messenger():
    return FakeMessenger()

@pytest.fixture
def llm():
    return FakeLLM()
