"""
IVR survey session engine.

Turns a stateless phone call into an ordered question/answer dialogue:
a telephony front end starts a call, reads the current question, posts the
caller's raw keypress and ends the call. Answers are written incrementally
under one anonymous response per call, so abandoned calls still leave a
partial, analyzable response.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from survey_ivr.config import Settings, get_settings
from survey_ivr.ivr.decoding import decoder_for
from survey_ivr.ivr.models import CallSession, CallStatus, RespondResult
from survey_ivr.ivr.script import generate_script
from survey_ivr.ivr.sessions import CallSessionTable, ReapResult
from survey_ivr.ivr.statistics import IvrStatistics, IvrStatisticsReporter
from survey_ivr.responses.repository import ResponseRepository, ResponseStoreProtocol
from survey_ivr.shared.exceptions import (
    AppError,
    CallNotFoundError,
    InvalidStateError,
    PersistenceFailureError,
    QuestionsNotFoundError,
    SurveyNotFoundError,
)
from survey_ivr.shared.logging import get_logger, log_with_context
from survey_ivr.surveys.definitions import QuestionDefinition, SurveyDefinition
from survey_ivr.surveys.repository import SurveyCatalogProtocol, SurveyCatalogRepository

logger = get_logger(__name__)


class IvrSessionEngine:
    """Orchestrates call start, answer decoding/persistence and completion.

    Persistence happens before the cursor moves: if the answer cannot be
    committed the call stays on the same question and the step can be retried.
    Callers may pass a `sequence` (the zero-based step they are answering) to
    make retries idempotent.
    """

    def __init__(
        self,
        sessions: CallSessionTable,
        catalog: SurveyCatalogProtocol | None = None,
        response_store: ResponseStoreProtocol | None = None,
        reporter: IvrStatisticsReporter | None = None,
        *,
        script_welcome: str = "",
        script_closing: str = "",
    ) -> None:
        self._sessions = sessions
        self._catalog = catalog or SurveyCatalogRepository()
        self._response_store = response_store or ResponseRepository()
        self._reporter = reporter or IvrStatisticsReporter()
        self._script_welcome = script_welcome
        self._script_closing = script_closing

    @property
    def sessions(self) -> CallSessionTable:
        return self._sessions

    # ------------------------------------------------------------------
    # Call lifecycle
    # ------------------------------------------------------------------

    async def start(self, phone_number: str, survey_id: str) -> CallSession:
        """Register a new active call; no response row is written yet."""
        call = await self._sessions.create(phone_number, survey_id)
        log_with_context(
            logger,
            logging.INFO,
            "IVR call started",
            call_id=call.call_id,
            survey_id=survey_id,
        )
        return call

    async def open_call(
        self,
        session: AsyncSession,
        phone_number: str,
        survey_id: str,
    ) -> tuple[CallSession, QuestionDefinition | None]:
        """Start a call and fetch its first question.

        A call whose survey cannot be served is dropped from the table before
        the lookup error propagates.
        """
        call = await self.start(phone_number, survey_id)
        try:
            question = await self.current_question(session, call.call_id)
        except AppError:
            self._sessions.discard(call.call_id)
            logger.info(
                "IVR call discarded",
                extra={"call_id": call.call_id, "survey_id": survey_id},
            )
            raise
        return call, question

    async def current_question(
        self,
        session: AsyncSession,
        call_id: str,
    ) -> QuestionDefinition | None:
        """Return the question at the call's cursor, or None once all are answered.

        Raises:
            CallNotFoundError: Unknown call_id.
            SurveyNotFoundError: The call's survey does not exist.
            QuestionsNotFoundError: The survey has no questions at all.
        """
        call = self._sessions.require(call_id)
        survey = await self._load_survey(session, call.survey_id)
        return survey.question_at(call.current_question_index)

    async def respond(
        self,
        session: AsyncSession,
        call_id: str,
        raw_value: str,
        sequence: int | None = None,
    ) -> RespondResult:
        """Decode and record an answer for the current question, then advance.

        Args:
            session: Async database session (committed by this method).
            call_id: Call identifier returned by start().
            raw_value: Raw keypress / utterance from the gateway.
            sequence: Optional zero-based step number used to detect resubmissions.

        Returns:
            The decoded answer, the next question and the completion flag.

        Raises:
            CallNotFoundError: Unknown call_id.
            InvalidStateError: No current question, abandoned call or out-of-order step.
            PersistenceFailureError: The answer could not be stored; the cursor did not move.
        """
        async with self._sessions.locked(call_id) as call:
            if sequence is not None and sequence != call.current_question_index:
                if 0 <= sequence < len(call.recorded):
                    logger.info(
                        "IVR duplicate step replayed",
                        extra={"call_id": call_id, "sequence": sequence},
                    )
                    return replace(call.recorded[sequence], replayed=True)
                raise InvalidStateError(
                    f"Step {sequence} is out of order, expected {call.current_question_index}",
                    call_id=call_id,
                )

            if call.status is CallStatus.ABANDONED:
                raise InvalidStateError("Call has been ended", call_id=call_id)

            survey = await self._load_survey(session, call.survey_id)
            question = survey.question_at(call.current_question_index)
            if question is None:
                raise InvalidStateError("No current question", call_id=call_id)

            answer_text = decoder_for(question).decode(raw_value)
            position = call.current_question_index

            call.response_id = await self._record_answer(
                session, call, question, answer_text, position
            )

            now = self._sessions.clock()
            next_question = survey.question_at(call.advance(now))
            if next_question is None:
                call.complete(now)
                logger.info("IVR call completed", extra={"call_id": call_id})

            result = RespondResult(
                answer_text=answer_text,
                next_question=next_question,
                survey_completed=next_question is None,
                question_id=question.question_id,
                position=position,
            )
            call.recorded.append(result)
            return result

    async def end(self, call_id: str) -> None:
        """Mark a call abandoned; unknown call ids are ignored."""
        try:
            async with self._sessions.locked(call_id) as call:
                call.abandon(self._sessions.clock())
        except CallNotFoundError:
            return
        logger.info("IVR call ended", extra={"call_id": call_id})

    def get_call_status(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    async def reap(self) -> ReapResult:
        """Expire idle calls and evict finished ones."""
        result = await self._sessions.reap()
        if result.abandoned or result.evicted:
            logger.info(
                "IVR sessions reaped",
                extra={
                    "abandoned": len(result.abandoned),
                    "evicted": len(result.evicted),
                    "resident": len(self._sessions),
                },
            )
        return result

    # ------------------------------------------------------------------
    # Off the hot path
    # ------------------------------------------------------------------

    async def statistics(
        self,
        session: AsyncSession,
        survey_id: str | None = None,
    ) -> IvrStatistics:
        return await self._reporter.statistics(session, survey_id)

    async def generate_script(self, session: AsyncSession, survey_id: str) -> str:
        survey = await self._catalog.get_survey_with_ordered_questions(session, survey_id)
        if survey is None:
            raise SurveyNotFoundError(survey_id)
        return generate_script(
            survey,
            welcome=self._script_welcome,
            closing=self._script_closing,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_survey(self, session: AsyncSession, survey_id: str) -> SurveyDefinition:
        survey = await self._catalog.get_survey_with_ordered_questions(session, survey_id)
        if survey is None:
            raise SurveyNotFoundError(survey_id)
        if survey.question_count == 0:
            raise QuestionsNotFoundError(survey_id)
        return survey

    async def _record_answer(
        self,
        session: AsyncSession,
        call: CallSession,
        question: QuestionDefinition,
        answer_text: str,
        position: int,
    ) -> str:
        """Append to the call's response (creating it on first answer) and commit."""
        try:
            existing = await self._response_store.find_by_token(session, call.anonymous_token)
            if existing is not None:
                await self._response_store.append_answer(
                    session,
                    response_id=existing.response_id,
                    question_id=question.question_id,
                    answer_text=answer_text,
                    position=position,
                )
                response_id = existing.response_id
            else:
                created = await self._response_store.create_response(
                    session,
                    anonymous_token=call.anonymous_token,
                    survey_id=call.survey_id,
                    question_id=question.question_id,
                    answer_text=answer_text,
                    position=position,
                )
                response_id = created.response_id
            await session.commit()
        except AppError:
            await session.rollback()
            raise
        except Exception as e:
            await session.rollback()
            logger.error(
                f"Failed to persist IVR response: {e}",
                extra={"call_id": call.call_id, "question_id": question.question_id},
            )
            raise PersistenceFailureError(f"Failed to persist IVR response: {e}") from e

        logger.info(
            "IVR response recorded",
            extra={
                "call_id": call.call_id,
                "question_id": question.question_id,
                "position": position,
            },
        )
        return response_id


# Global engine instance
_engine: IvrSessionEngine | None = None


def build_engine(settings: Settings) -> IvrSessionEngine:
    """Wire an engine from settings."""
    sessions = CallSessionTable(
        token_prefix=settings.ivr_token_prefix,
        idle_timeout=timedelta(seconds=settings.ivr_session_idle_timeout_seconds),
        retention=timedelta(seconds=settings.ivr_session_retention_seconds),
    )
    reporter = IvrStatisticsReporter(
        token_prefix=settings.ivr_token_prefix,
        recent_limit=settings.ivr_recent_responses_limit,
    )
    return IvrSessionEngine(
        sessions,
        reporter=reporter,
        script_welcome=settings.ivr_script_welcome,
        script_closing=settings.ivr_script_closing,
    )


def get_ivr_engine() -> IvrSessionEngine:
    """Get the process-wide engine (FastAPI dependency)."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine
