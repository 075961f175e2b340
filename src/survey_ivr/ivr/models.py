"""
Domain models for IVR call sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from survey_ivr.surveys.definitions import QuestionDefinition


class CallStatus(str, Enum):
    """Lifecycle state of an IVR call."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class RespondResult:
    """Outcome of one keypress/utterance processed by the engine."""

    answer_text: str
    next_question: QuestionDefinition | None
    survey_completed: bool
    question_id: str
    position: int
    replayed: bool = False


@dataclass
class CallSession:
    """Runtime state of one in-progress or finished IVR call.

    phone_number, survey_id and anonymous_token are fixed at start.
    current_question_index only moves forward, one step per recorded answer.
    """

    call_id: str
    phone_number: str
    survey_id: str
    anonymous_token: str
    start_time: datetime
    last_activity_at: datetime
    status: CallStatus = CallStatus.ACTIVE
    current_question_index: int = 0
    end_time: datetime | None = None
    response_id: str | None = None
    recorded: list[RespondResult] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status is CallStatus.ACTIVE

    @property
    def is_finished(self) -> bool:
        return self.status is not CallStatus.ACTIVE

    def touch(self, now: datetime) -> None:
        self.last_activity_at = now

    def advance(self, now: datetime) -> int:
        """Move the cursor to the next question and return it."""
        self.current_question_index += 1
        self.touch(now)
        return self.current_question_index

    def complete(self, now: datetime) -> None:
        self.status = CallStatus.COMPLETED
        self.end_time = now
        self.touch(now)

    def abandon(self, now: datetime) -> None:
        # Last write wins: ending a completed call is benign.
        self.status = CallStatus.ABANDONED
        self.end_time = now
        self.touch(now)
