"""
Read-only survey catalog accessor.
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from survey_ivr.surveys.definitions import (
    OptionDefinition,
    QuestionDefinition,
    SurveyDefinition,
)
from survey_ivr.surveys.models import Question, QuestionType, Survey


class SurveyCatalogProtocol(Protocol):
    """Protocol for the survey catalog consumed by the IVR engine."""

    async def get_survey_with_ordered_questions(
        self,
        session: AsyncSession,
        survey_id: str,
    ) -> SurveyDefinition | None:
        """Load a survey and its questions in dialogue order."""
        ...


class SurveyCatalogRepository:
    """Loads survey definitions from the relational catalog."""

    async def get_survey_with_ordered_questions(
        self,
        session: AsyncSession,
        survey_id: str,
    ) -> SurveyDefinition | None:
        """Load a survey with questions ordered by order_index.

        Args:
            session: Async database session.
            survey_id: Survey identifier.

        Returns:
            Immutable survey snapshot, or None if the survey does not exist.
        """
        stmt = (
            select(Survey)
            .where(Survey.survey_id == survey_id)
            .options(selectinload(Survey.questions).selectinload(Question.options))
        )
        result = await session.execute(stmt)
        survey = result.scalar_one_or_none()
        if survey is None:
            return None

        questions = sorted(survey.questions, key=lambda q: q.order_index)
        return SurveyDefinition(
            survey_id=survey.survey_id,
            title=survey.title,
            questions=tuple(self._to_definition(question) for question in questions),
        )

    @staticmethod
    def _to_definition(question: Question) -> QuestionDefinition:
        options = sorted(question.options, key=lambda o: o.order_index)
        return QuestionDefinition(
            question_id=question.question_id,
            question_text=question.question_text,
            question_type=QuestionType(question.question_type),
            order_index=question.order_index,
            options=tuple(
                OptionDefinition(option_id=o.option_id, option_text=o.option_text)
                for o in options
            ),
        )
