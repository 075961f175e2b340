"""
Keypad answer decoding per question type.

The mapping below is the wire contract with deployed IVR scripts:
"1" means Yes, "2" means No, and choice options are numbered from 1.
Decoding is lenient: unexpected input is recorded, never rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from survey_ivr.surveys.definitions import QuestionDefinition
from survey_ivr.surveys.models import QuestionType

YES_KEY = "1"
NO_KEY = "2"

# Leading ASCII digit run; trailing keys such as the "#" terminator are ignored.
_CHOICE_INDEX = re.compile(r"[+-]?[0-9]+")


class AnswerDecoder(Protocol):
    """Turns a raw keypress/utterance into the stored answer text."""

    def decode(self, raw_value: str) -> str:
        ...


@dataclass(frozen=True)
class YesNoDecoder:
    def decode(self, raw_value: str) -> str:
        if raw_value == YES_KEY:
            return "Yes"
        if raw_value == NO_KEY:
            return "No"
        return raw_value


@dataclass(frozen=True)
class MultipleChoiceDecoder:
    options: tuple[str, ...]

    def decode(self, raw_value: str) -> str:
        match = _CHOICE_INDEX.match(raw_value.strip())
        if match is None:
            return ""
        index = int(match.group()) - 1
        if 0 <= index < len(self.options):
            return self.options[index]
        return ""


@dataclass(frozen=True)
class NumericDecoder:
    def decode(self, raw_value: str) -> str:
        return raw_value


@dataclass(frozen=True)
class TextDecoder:
    def decode(self, raw_value: str) -> str:
        return raw_value


def decoder_for(question: QuestionDefinition) -> AnswerDecoder:
    """Select the decoder for a question once, from its type."""
    if question.question_type is QuestionType.YESNO:
        return YesNoDecoder()
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        return MultipleChoiceDecoder(options=tuple(question.option_texts))
    if question.question_type is QuestionType.NUMERIC:
        return NumericDecoder()
    if question.question_type is QuestionType.TEXT:
        return TextDecoder()
    raise ValueError(f"Unsupported question type: {question.question_type!r}")
