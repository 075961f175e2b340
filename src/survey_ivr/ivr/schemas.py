"""
Pydantic schemas for the IVR API.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from survey_ivr.ivr.models import CallSession, CallStatus, RespondResult
from survey_ivr.ivr.statistics import IvrStatistics
from survey_ivr.surveys.definitions import QuestionDefinition
from survey_ivr.surveys.models import QuestionType


class StartCallRequest(BaseModel):
    """Schema for starting an IVR call."""

    phone_number: str = Field(..., min_length=1, max_length=50, description="Caller phone number")
    survey_id: str = Field(..., min_length=1, max_length=36, description="Survey to run")


class RespondRequest(BaseModel):
    """Schema for posting a caller's keypress / utterance."""

    call_id: str = Field(..., min_length=1, description="Call identifier from /ivr/start")
    response_value: str = Field(..., max_length=2000, description="Raw value captured by the gateway")
    sequence: int | None = Field(
        default=None,
        ge=0,
        description="Zero-based step being answered; makes resubmissions idempotent",
    )


class OptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    option_id: str
    option_text: str


class QuestionOut(BaseModel):
    """Question as presented to the telephony gateway."""

    model_config = ConfigDict(from_attributes=True)

    question_id: str
    question_text: str
    question_type: QuestionType
    order_index: int
    options: list[OptionOut] = Field(default_factory=list)

    @classmethod
    def from_definition(cls, question: QuestionDefinition | None) -> QuestionOut | None:
        if question is None:
            return None
        return cls.model_validate(question)


class CallStatusOut(BaseModel):
    """Public view of a call session (the anonymous token stays internal)."""

    model_config = ConfigDict(from_attributes=True)

    call_id: str
    phone_number: str
    survey_id: str
    status: CallStatus
    current_question_index: int
    start_time: datetime
    end_time: datetime | None = None

    @classmethod
    def from_session(cls, call: CallSession | None) -> CallStatusOut | None:
        if call is None:
            return None
        return cls.model_validate(call)


class StartCallResponse(BaseModel):
    success: bool = True
    call_id: str
    message: str = "IVR call started successfully"
    next_question: QuestionOut | None = None


class RespondResponse(BaseModel):
    success: bool = True
    answer_text: str
    next_question: QuestionOut | None = None
    survey_completed: bool
    replayed: bool = False

    @classmethod
    def from_result(cls, result: RespondResult) -> RespondResponse:
        return cls(
            answer_text=result.answer_text,
            next_question=QuestionOut.from_definition(result.next_question),
            survey_completed=result.survey_completed,
            replayed=result.replayed,
        )


class CurrentQuestionResponse(BaseModel):
    success: bool = True
    question: QuestionOut | None = None
    survey_completed: bool


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class CallStatusResponse(BaseModel):
    success: bool = True
    call_status: CallStatusOut | None = None


class RecentAnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    answer_text: str
    position: int


class RecentResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    response_id: str
    survey_id: str
    survey_title: str | None = None
    submitted_at: datetime
    answers: list[RecentAnswerOut] = Field(default_factory=list)


class StatisticsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_ivr_responses: int
    completed_responses: int
    partial_responses: int
    survey_breakdown: dict[str, int] | None = None
    recent_responses: list[RecentResponseOut] = Field(default_factory=list)


class StatisticsResponse(BaseModel):
    success: bool = True
    statistics: StatisticsOut

    @classmethod
    def from_statistics(cls, stats: IvrStatistics) -> StatisticsResponse:
        return cls(statistics=StatisticsOut.model_validate(stats))


class ScriptResponse(BaseModel):
    success: bool = True
    script: str


class SimulatedCallStep(BaseModel):
    response_value: str
    answer_text: str


class SimulatedCallResponse(BaseModel):
    success: bool = True
    message: str = "Test IVR call completed"
    call_id: str
    test_responses: list[str]
    answers: list[SimulatedCallStep] = Field(default_factory=list)
    survey_completed: bool = False
