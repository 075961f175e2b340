"""
Pytest configuration and fixtures for the IVR session engine tests.
"""
from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import survey_ivr.responses.models  # noqa: F401
from survey_ivr.config import Settings, get_settings
from survey_ivr.ivr.engine import IvrSessionEngine, get_ivr_engine
from survey_ivr.ivr.sessions import CallSessionTable
from survey_ivr.ivr.statistics import IvrStatisticsReporter
from survey_ivr.shared.database import Base, get_db_session
from survey_ivr.surveys.models import Question, QuestionOption, QuestionType, Survey

TEST_WELCOME = "Welcome to the Ministry of Health Survey."
TEST_CLOSING = "Thank you for completing the survey."


@dataclass
class FakeClock:
    """Manually advanced UTC clock."""

    now: datetime = field(default_factory=lambda: datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass(frozen=True)
class QuestionSeed:
    question_type: QuestionType
    text: str
    options: tuple[str, ...] = ()
    order_index: int | None = None


async def create_survey(
    session: AsyncSession,
    title: str,
    questions: list[QuestionSeed],
) -> Survey:
    """Persist a survey with its questions (order_index defaults to list position)."""
    survey = Survey(
        title=title,
        questions=[
            Question(
                question_text=seed.text,
                question_type=seed.question_type,
                order_index=seed.order_index if seed.order_index is not None else index,
                options=[
                    QuestionOption(option_text=text, order_index=position)
                    for position, text in enumerate(seed.options)
                ],
            )
            for index, seed in enumerate(questions)
        ],
    )
    session.add(survey)
    await session.commit()
    return survey


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[Any, None]:
    """In-memory SQLite shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: Any) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Surveys
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def water_survey(db_session: AsyncSession) -> Survey:
    """Two-question survey: a yes/no and a three-option multiple choice."""
    return await create_survey(
        db_session,
        "Water Access",
        [
            QuestionSeed(QuestionType.YESNO, "Do you have clean water?"),
            QuestionSeed(
                QuestionType.MULTIPLE_CHOICE,
                "How far is the source?",
                options=("<1km", "1-5km", ">5km"),
            ),
        ],
    )


@pytest_asyncio.fixture
async def empty_survey(db_session: AsyncSession) -> Survey:
    return await create_survey(db_session, "Empty", [])


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_table(clock: FakeClock) -> CallSessionTable:
    return CallSessionTable(
        token_prefix="ivr_",
        idle_timeout=timedelta(minutes=15),
        retention=timedelta(hours=1),
        clock=clock,
    )


@pytest.fixture
def ivr_engine(session_table: CallSessionTable) -> IvrSessionEngine:
    return IvrSessionEngine(
        session_table,
        reporter=IvrStatisticsReporter(token_prefix="ivr_", recent_limit=10),
        script_welcome=TEST_WELCOME,
        script_closing=TEST_CLOSING,
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="dev",
        debug=True,
        database_url="sqlite+aiosqlite://",
        ivr_test_phone_number="+250788123456",
        ivr_test_responses="1,2,1",
    )


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    ivr_engine: IvrSessionEngine,
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with DB, engine and settings overridden."""
    from survey_ivr.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_ivr_engine] = lambda: ivr_engine
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
