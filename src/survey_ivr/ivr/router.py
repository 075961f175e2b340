"""
FastAPI router for the IVR session endpoints driven by a telephony gateway.

Domain errors (not found / invalid state / persistence failure) propagate to
the exception handlers registered in main; the gateway is expected to end
the call and apologise on any error.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from survey_ivr.config import Settings, get_settings
from survey_ivr.ivr.engine import IvrSessionEngine, get_ivr_engine
from survey_ivr.ivr.schemas import (
    CallStatusOut,
    CallStatusResponse,
    CurrentQuestionResponse,
    MessageResponse,
    QuestionOut,
    RespondRequest,
    RespondResponse,
    ScriptResponse,
    SimulatedCallResponse,
    SimulatedCallStep,
    StartCallRequest,
    StartCallResponse,
    StatisticsResponse,
)
from survey_ivr.shared.database import get_db_session
from survey_ivr.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/ivr", tags=["ivr"])

EngineDep = Annotated[IvrSessionEngine, Depends(get_ivr_engine)]
SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/start", response_model=StartCallResponse)
async def start_call(
    payload: StartCallRequest,
    engine: EngineDep,
    session: SessionDep,
) -> StartCallResponse:
    """Start an IVR call and return its first question."""
    call, question = await engine.open_call(session, payload.phone_number, payload.survey_id)
    return StartCallResponse(
        call_id=call.call_id,
        next_question=QuestionOut.from_definition(question),
    )


@router.post("/respond", response_model=RespondResponse)
async def respond(
    payload: RespondRequest,
    engine: EngineDep,
    session: SessionDep,
) -> RespondResponse:
    """Record the caller's answer to the current question."""
    result = await engine.respond(
        session,
        payload.call_id,
        payload.response_value,
        sequence=payload.sequence,
    )
    return RespondResponse.from_result(result)


@router.get("/question/{call_id}", response_model=CurrentQuestionResponse)
async def get_current_question(
    call_id: str,
    engine: EngineDep,
    session: SessionDep,
) -> CurrentQuestionResponse:
    question = await engine.current_question(session, call_id)
    return CurrentQuestionResponse(
        question=QuestionOut.from_definition(question),
        survey_completed=question is None,
    )


@router.post("/end/{call_id}", response_model=MessageResponse)
async def end_call(call_id: str, engine: EngineDep) -> MessageResponse:
    await engine.end(call_id)
    return MessageResponse(message="IVR call ended")


@router.get("/status/{call_id}", response_model=CallStatusResponse)
async def get_call_status(call_id: str, engine: EngineDep) -> CallStatusResponse:
    return CallStatusResponse(
        call_status=CallStatusOut.from_session(engine.get_call_status(call_id)),
    )


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    engine: EngineDep,
    session: SessionDep,
    survey_id: Annotated[str | None, Query(max_length=36)] = None,
) -> StatisticsResponse:
    stats = await engine.statistics(session, survey_id)
    return StatisticsResponse.from_statistics(stats)


@router.get("/script/{survey_id}", response_model=ScriptResponse)
async def generate_script(
    survey_id: str,
    engine: EngineDep,
    session: SessionDep,
) -> ScriptResponse:
    script = await engine.generate_script(session, survey_id)
    return ScriptResponse(script=script)


@router.get("/test/{survey_id}", response_model=SimulatedCallResponse)
async def simulate_call(
    survey_id: str,
    engine: EngineDep,
    session: SessionDep,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SimulatedCallResponse:
    """Drive a full call with the configured test keypresses.

    Stops early once the survey completes; the simulated answers are
    persisted like any real call.
    """
    responses = settings.ivr_test_responses_list
    call, _ = await engine.open_call(session, settings.ivr_test_phone_number, survey_id)

    steps: list[SimulatedCallStep] = []
    completed = False
    for value in responses:
        result = await engine.respond(session, call.call_id, value)
        steps.append(SimulatedCallStep(response_value=value, answer_text=result.answer_text))
        logger.info(
            "Test IVR call step",
            extra={"call_id": call.call_id, "response_value": value},
        )
        if result.survey_completed:
            completed = True
            break

    return SimulatedCallResponse(
        call_id=call.call_id,
        test_responses=responses,
        answers=steps,
        survey_completed=completed,
    )
