"""
Immutable survey snapshots handed to the IVR engine.

The engine never touches ORM instances: the catalog copies what it needs into
these frozen dataclasses so nothing lazy-loads outside the DB session.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from survey_ivr.surveys.models import QuestionType


@dataclass(frozen=True)
class OptionDefinition:
    option_id: str
    option_text: str


@dataclass(frozen=True)
class QuestionDefinition:
    """A question as asked over the phone."""

    question_id: str
    question_text: str
    question_type: QuestionType
    order_index: int
    options: tuple[OptionDefinition, ...] = field(default_factory=tuple)

    @property
    def option_texts(self) -> list[str]:
        return [option.option_text for option in self.options]


@dataclass(frozen=True)
class SurveyDefinition:
    """A survey with its questions in dialogue order."""

    survey_id: str
    title: str
    questions: tuple[QuestionDefinition, ...] = field(default_factory=tuple)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def question_at(self, index: int) -> QuestionDefinition | None:
        """Return the question at a cursor position, or None past the end."""
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None
