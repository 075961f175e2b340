"""
Repository for anonymous response / answer persistence.
"""

from datetime import datetime, timezone
from typing import Protocol, Sequence

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_ivr.responses.models import Answer, Response
from survey_ivr.shared.logging import get_logger
from survey_ivr.surveys.models import Question, Survey

logger = get_logger(__name__)


class ResponseStoreProtocol(Protocol):
    """Protocol for the response store written by the IVR engine."""

    async def find_by_token(
        self,
        session: AsyncSession,
        anonymous_token: str,
    ) -> Response | None:
        """Find the response accumulating answers for a token."""
        ...

    async def create_response(
        self,
        session: AsyncSession,
        anonymous_token: str,
        survey_id: str,
        question_id: str,
        answer_text: str,
        position: int,
    ) -> Response:
        """Create a response holding its first answer."""
        ...

    async def append_answer(
        self,
        session: AsyncSession,
        response_id: str,
        question_id: str,
        answer_text: str,
        position: int,
    ) -> Answer:
        """Append an answer to an existing response."""
        ...


class ResponseRepository:
    """Repository for response database operations."""

    async def find_by_token(
        self,
        session: AsyncSession,
        anonymous_token: str,
    ) -> Response | None:
        stmt = (
            select(Response)
            .where(Response.anonymous_token == anonymous_token)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_response(
        self,
        session: AsyncSession,
        anonymous_token: str,
        survey_id: str,
        question_id: str,
        answer_text: str,
        position: int,
    ) -> Response:
        """Create a new response with its first answer.

        Args:
            session: Async database session.
            anonymous_token: Opaque token correlating the call's answers.
            survey_id: Survey being answered.
            question_id: Question of the first answer.
            answer_text: Decoded answer text.
            position: Dialogue position of the answered question.

        Returns:
            Created Response instance.
        """
        response = Response(
            anonymous_token=anonymous_token,
            survey_id=survey_id,
            submitted_at=datetime.now(timezone.utc),
            answers=[
                Answer(
                    question_id=question_id,
                    answer_text=answer_text,
                    position=position,
                )
            ],
        )
        session.add(response)
        await session.flush()

        logger.debug(
            "Created response",
            extra={"response_id": response.response_id, "survey_id": survey_id},
        )
        return response

    async def append_answer(
        self,
        session: AsyncSession,
        response_id: str,
        question_id: str,
        answer_text: str,
        position: int,
    ) -> Answer:
        """Append an answer to an existing response.

        Args:
            session: Async database session.
            response_id: Response receiving the answer.
            question_id: Answered question.
            answer_text: Decoded answer text.
            position: Dialogue position of the answered question.

        Returns:
            Created Answer instance.
        """
        answer = Answer(
            response_id=response_id,
            question_id=question_id,
            answer_text=answer_text,
            position=position,
        )
        session.add(answer)
        await session.flush()
        return answer

    # ------------------------------------------------------------------
    # Read side (statistics)
    # ------------------------------------------------------------------

    async def count_by_token_prefix(
        self,
        session: AsyncSession,
        token_prefix: str,
        survey_id: str | None = None,
    ) -> int:
        stmt = select(func.count(Response.response_id)).where(
            Response.anonymous_token.startswith(token_prefix, autoescape=True)
        )
        if survey_id is not None:
            stmt = stmt.where(Response.survey_id == survey_id)
        result = await session.execute(stmt)
        count = result.scalar()
        return count if count is not None else 0

    async def count_by_survey_title(
        self,
        session: AsyncSession,
        token_prefix: str,
    ) -> dict[str, int]:
        """Count responses per survey title."""
        stmt = (
            select(Survey.title, func.count(Response.response_id))
            .join(Survey, Survey.survey_id == Response.survey_id)
            .where(Response.anonymous_token.startswith(token_prefix, autoescape=True))
            .group_by(Survey.title)
            .order_by(Survey.title)
        )
        result = await session.execute(stmt)
        return {title: count for title, count in result.all()}

    async def recent_by_token_prefix(
        self,
        session: AsyncSession,
        token_prefix: str,
        limit: int,
        survey_id: str | None = None,
    ) -> Sequence[Response]:
        """Most recent responses first, answers and survey preloaded."""
        stmt = (
            select(Response)
            .where(Response.anonymous_token.startswith(token_prefix, autoescape=True))
            .options(selectinload(Response.answers), selectinload(Response.survey))
            .order_by(Response.submitted_at.desc(), Response.response_id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if survey_id is not None:
            stmt = stmt.where(Response.survey_id == survey_id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def completion_counts(
        self,
        session: AsyncSession,
        token_prefix: str,
        survey_id: str | None = None,
    ) -> tuple[int, int]:
        """Return (completed, partial) response counts.

        A response is complete when it holds an answer for every question
        of its survey.
        """
        answered = (
            select(
                Answer.response_id.label("response_id"),
                func.count(distinct(Answer.question_id)).label("answered"),
            )
            .group_by(Answer.response_id)
            .subquery()
        )
        totals = (
            select(
                Question.survey_id.label("survey_id"),
                func.count(Question.question_id).label("total"),
            )
            .group_by(Question.survey_id)
            .subquery()
        )
        stmt = (
            select(answered.c.answered, totals.c.total)
            .select_from(Response)
            .outerjoin(answered, answered.c.response_id == Response.response_id)
            .outerjoin(totals, totals.c.survey_id == Response.survey_id)
            .where(Response.anonymous_token.startswith(token_prefix, autoescape=True))
        )
        if survey_id is not None:
            stmt = stmt.where(Response.survey_id == survey_id)

        result = await session.execute(stmt)
        completed = partial = 0
        for answered_count, total in result.all():
            if total and (answered_count or 0) >= total:
                completed += 1
            else:
                partial += 1
        return completed, partial
