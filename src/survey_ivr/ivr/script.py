"""
IVR prompt script generation.

Pure functions over a survey definition: no state, no persistence.
"""

from survey_ivr.ivr.decoding import NO_KEY, YES_KEY
from survey_ivr.surveys.definitions import QuestionDefinition, SurveyDefinition
from survey_ivr.surveys.models import QuestionType

NUMERIC_TERMINATOR = "#"
HEADER_RULE = "=" * 37


def keypad_legend(question: QuestionDefinition) -> list[str]:
    """Instruction lines read after a question's prompt."""
    if question.question_type is QuestionType.YESNO:
        return [f"Press {YES_KEY} for Yes", f"Press {NO_KEY} for No"]
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        return [
            f"Press {number} for {option}"
            for number, option in enumerate(question.option_texts, start=1)
        ]
    if question.question_type is QuestionType.NUMERIC:
        return [f"Enter the number using your keypad, then press {NUMERIC_TERMINATOR}"]
    if question.question_type is QuestionType.TEXT:
        return ["Please record your message after the tone"]
    return []


def generate_script(
    survey: SurveyDefinition,
    *,
    welcome: str = "",
    closing: str = "",
) -> str:
    """Render the full IVR script for a survey.

    Args:
        survey: Survey with questions in dialogue order.
        welcome: Greeting lines read before the first question.
        closing: Lines read after the last question.

    Returns:
        Multi-line script text.
    """
    lines = [f"IVR Script for Survey: {survey.title}", HEADER_RULE, ""]
    if welcome:
        lines.extend(welcome.splitlines())
        lines.append("")

    for number, question in enumerate(survey.questions, start=1):
        lines.append(f"Question {number}: {question.question_text}")
        lines.extend(keypad_legend(question))
        lines.append("")

    if closing:
        lines.extend(closing.splitlines())

    return "\n".join(lines) + "\n"
