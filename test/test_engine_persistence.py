"""
Engine write-path tests with in-memory catalog / store fakes.

Constraints satisfied:
- no DB: the storage collaborator is replaced by an in-memory repository
- failures are injected to check the answer-then-advance ordering
"""

from __future__ import annotations

from dataclasses import dataclass, field
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from survey_ivr.ivr.engine import IvrSessionEngine
from survey_ivr.ivr.models import CallStatus
from survey_ivr.ivr.sessions import CallSessionTable
from survey_ivr.shared.exceptions import PersistenceFailureError, SurveyNotFoundError
from survey_ivr.surveys.definitions import (
    OptionDefinition,
    QuestionDefinition,
    SurveyDefinition,
)
from survey_ivr.surveys.models import QuestionType


@dataclass
class StoredAnswer:
    question_id: str
    answer_text: str
    position: int


@dataclass
class StoredResponse:
    response_id: str
    anonymous_token: str
    survey_id: str
    answers: list[StoredAnswer] = field(default_factory=list)


class InMemoryCatalog:
    def __init__(self, *surveys: SurveyDefinition) -> None:
        self.surveys = {survey.survey_id: survey for survey in surveys}

    async def get_survey_with_ordered_questions(self, session, survey_id):
        return self.surveys.get(survey_id)


class InMemoryResponseStore:
    def __init__(self) -> None:
        self.responses: dict[str, StoredResponse] = {}
        self.fail_next = 0

    def _maybe_fail(self) -> None:
        if self.fail_next:
            self.fail_next -= 1
            raise OperationalError("INSERT INTO answers", {}, Exception("database is locked"))

    async def find_by_token(self, session, anonymous_token):
        for response in self.responses.values():
            if response.anonymous_token == anonymous_token:
                return response
        return None

    async def create_response(self, session, anonymous_token, survey_id, question_id, answer_text, position):
        self._maybe_fail()
        response = StoredResponse(
            response_id=f"resp-{len(self.responses) + 1}",
            anonymous_token=anonymous_token,
            survey_id=survey_id,
            answers=[StoredAnswer(question_id, answer_text, position)],
        )
        self.responses[response.response_id] = response
        return response

    async def append_answer(self, session, response_id, question_id, answer_text, position):
        self._maybe_fail()
        answer = StoredAnswer(question_id, answer_text, position)
        self.responses[response_id].answers.append(answer)
        return answer


SURVEY = SurveyDefinition(
    survey_id="water",
    title="Water Access",
    questions=(
        QuestionDefinition(
            question_id="q-water",
            question_text="Do you have clean water?",
            question_type=QuestionType.YESNO,
            order_index=0,
        ),
        QuestionDefinition(
            question_id="q-distance",
            question_text="How far is the source?",
            question_type=QuestionType.MULTIPLE_CHOICE,
            order_index=1,
            options=(
                OptionDefinition("o1", "<1km"),
                OptionDefinition("o2", "1-5km"),
                OptionDefinition("o3", ">5km"),
            ),
        ),
    ),
)


@pytest.fixture
def store() -> InMemoryResponseStore:
    return InMemoryResponseStore()


@pytest.fixture
def engine(store: InMemoryResponseStore) -> IvrSessionEngine:
    return IvrSessionEngine(
        CallSessionTable(),
        catalog=InMemoryCatalog(SURVEY),
        response_store=store,
    )


@pytest.fixture
def db() -> AsyncMock:
    return AsyncMock(name="db_session")


class TestTransactionalRespond:
    @pytest.mark.asyncio
    async def test_success_commits_once_per_answer(
        self,
        engine: IvrSessionEngine,
        store: InMemoryResponseStore,
        db: AsyncMock,
    ) -> None:
        call = await engine.start("+1", "water")

        await engine.respond(db, call.call_id, "1")
        await engine.respond(db, call.call_id, "2")

        assert db.commit.await_count == 2
        db.rollback.assert_not_awaited()
        [response] = store.responses.values()
        assert response.anonymous_token == call.anonymous_token
        assert [(a.question_id, a.answer_text) for a in response.answers] == [
            ("q-water", "Yes"),
            ("q-distance", "1-5km"),
        ]

    @pytest.mark.asyncio
    async def test_failure_rolls_back_and_keeps_cursor(
        self,
        engine: IvrSessionEngine,
        store: InMemoryResponseStore,
        db: AsyncMock,
    ) -> None:
        call = await engine.start("+1", "water")
        store.fail_next = 1

        with pytest.raises(PersistenceFailureError):
            await engine.respond(db, call.call_id, "1")

        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()
        assert call.current_question_index == 0
        assert call.status is CallStatus.ACTIVE
        assert call.recorded == []
        assert store.responses == {}

    @pytest.mark.asyncio
    async def test_retry_after_failure_records_same_question(
        self,
        engine: IvrSessionEngine,
        store: InMemoryResponseStore,
        db: AsyncMock,
    ) -> None:
        call = await engine.start("+1", "water")
        await engine.respond(db, call.call_id, "1")
        store.fail_next = 1

        with pytest.raises(PersistenceFailureError):
            await engine.respond(db, call.call_id, "3", sequence=1)

        result = await engine.respond(db, call.call_id, "3", sequence=1)

        assert result.replayed is False
        assert result.answer_text == ">5km"
        assert result.survey_completed is True
        [response] = store.responses.values()
        assert [a.position for a in response.answers] == [0, 1]

    @pytest.mark.asyncio
    async def test_commit_failure_is_a_persistence_failure(
        self,
        engine: IvrSessionEngine,
        db: AsyncMock,
    ) -> None:
        call = await engine.start("+1", "water")
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection reset"))

        with pytest.raises(PersistenceFailureError, match="connection reset"):
            await engine.respond(db, call.call_id, "1")

        db.rollback.assert_awaited_once()
        assert call.current_question_index == 0

    @pytest.mark.asyncio
    async def test_missing_survey_writes_nothing(
        self,
        store: InMemoryResponseStore,
        db: AsyncMock,
    ) -> None:
        engine = IvrSessionEngine(
            CallSessionTable(),
            catalog=InMemoryCatalog(),
            response_store=store,
        )
        call = await engine.start("+1", "gone")

        with pytest.raises(SurveyNotFoundError):
            await engine.respond(db, call.call_id, "1")

        assert store.responses == {}
        db.commit.assert_not_awaited()
