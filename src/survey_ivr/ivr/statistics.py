"""
Aggregates over IVR-origin responses (read-only).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from survey_ivr.responses.repository import ResponseRepository


@dataclass(frozen=True)
class RecentAnswer:
    question_id: str
    answer_text: str
    position: int


@dataclass(frozen=True)
class RecentResponse:
    response_id: str
    survey_id: str
    survey_title: str | None
    submitted_at: datetime
    answers: list[RecentAnswer] = field(default_factory=list)


@dataclass(frozen=True)
class IvrStatistics:
    total_ivr_responses: int
    completed_responses: int
    partial_responses: int
    survey_breakdown: dict[str, int] | None
    recent_responses: list[RecentResponse]


class IvrStatisticsReporter:
    """Thin read layer over the response store, filtered by the IVR token prefix."""

    def __init__(
        self,
        response_repo: ResponseRepository | None = None,
        *,
        token_prefix: str = "ivr_",
        recent_limit: int = 10,
    ) -> None:
        self._response_repo = response_repo or ResponseRepository()
        self._token_prefix = token_prefix
        self._recent_limit = recent_limit

    async def statistics(
        self,
        session: AsyncSession,
        survey_id: str | None = None,
    ) -> IvrStatistics:
        """Aggregate IVR responses, optionally for one survey.

        The per-survey breakdown is only computed when no survey filter is given.
        """
        total = await self._response_repo.count_by_token_prefix(
            session, self._token_prefix, survey_id
        )
        completed, partial = await self._response_repo.completion_counts(
            session, self._token_prefix, survey_id
        )
        breakdown = None
        if survey_id is None:
            breakdown = await self._response_repo.count_by_survey_title(
                session, self._token_prefix
            )
        recent = await self._response_repo.recent_by_token_prefix(
            session, self._token_prefix, self._recent_limit, survey_id
        )

        return IvrStatistics(
            total_ivr_responses=total,
            completed_responses=completed,
            partial_responses=partial,
            survey_breakdown=breakdown,
            recent_responses=[
                RecentResponse(
                    response_id=response.response_id,
                    survey_id=response.survey_id,
                    survey_title=response.survey.title if response.survey else None,
                    submitted_at=response.submitted_at,
                    answers=[
                        RecentAnswer(
                            question_id=answer.question_id,
                            answer_text=answer.answer_text,
                            position=answer.position,
                        )
                        for answer in response.answers
                    ],
                )
                for response in recent
            ],
        )
