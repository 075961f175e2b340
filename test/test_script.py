"""Tests for IVR script generation."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from survey_ivr.ivr.engine import IvrSessionEngine
from survey_ivr.ivr.script import NUMERIC_TERMINATOR, generate_script, keypad_legend
from survey_ivr.shared.exceptions import SurveyNotFoundError
from survey_ivr.surveys.definitions import (
    OptionDefinition,
    QuestionDefinition,
    SurveyDefinition,
)
from survey_ivr.surveys.models import QuestionType, Survey

from conftest import TEST_CLOSING, TEST_WELCOME


def _question(
    question_type: QuestionType,
    text: str = "Question?",
    options: tuple[str, ...] = (),
) -> QuestionDefinition:
    return QuestionDefinition(
        question_id=f"q-{text}",
        question_text=text,
        question_type=question_type,
        order_index=0,
        options=tuple(OptionDefinition(f"o{i}", o) for i, o in enumerate(options)),
    )


class TestKeypadLegend:
    def test_yesno(self) -> None:
        assert keypad_legend(_question(QuestionType.YESNO)) == [
            "Press 1 for Yes",
            "Press 2 for No",
        ]

    def test_multiple_choice_is_one_based(self) -> None:
        legend = keypad_legend(_question(QuestionType.MULTIPLE_CHOICE, options=("Red", "Blue")))
        assert legend == ["Press 1 for Red", "Press 2 for Blue"]

    def test_numeric_mentions_terminator(self) -> None:
        [line] = keypad_legend(_question(QuestionType.NUMERIC))
        assert line.endswith(f"press {NUMERIC_TERMINATOR}")

    def test_text_asks_for_recording(self) -> None:
        assert keypad_legend(_question(QuestionType.TEXT)) == [
            "Please record your message after the tone"
        ]


class TestGenerateScript:
    def test_single_numeric_question(self) -> None:
        survey = SurveyDefinition(
            survey_id="s",
            title="Household size",
            questions=(_question(QuestionType.NUMERIC, "How many people live here?"),),
        )

        script = generate_script(survey)
        lines = script.splitlines()

        assert "Question 1: How many people live here?" in lines
        assert "Enter the number using your keypad, then press #" in lines
        assert not any(line.startswith("Press ") for line in lines)

    def test_full_layout(self) -> None:
        survey = SurveyDefinition(
            survey_id="s",
            title="Water Access",
            questions=(
                _question(QuestionType.YESNO, "Do you have clean water?"),
                _question(
                    QuestionType.MULTIPLE_CHOICE,
                    "How far is the source?",
                    options=("<1km", "1-5km", ">5km"),
                ),
            ),
        )

        script = generate_script(survey, welcome="Hello.\nUse your keypad.", closing="Goodbye.")

        assert script == (
            "IVR Script for Survey: Water Access\n"
            "=====================================\n"
            "\n"
            "Hello.\n"
            "Use your keypad.\n"
            "\n"
            "Question 1: Do you have clean water?\n"
            "Press 1 for Yes\n"
            "Press 2 for No\n"
            "\n"
            "Question 2: How far is the source?\n"
            "Press 1 for <1km\n"
            "Press 2 for 1-5km\n"
            "Press 3 for >5km\n"
            "\n"
            "Goodbye.\n"
        )

    def test_survey_without_questions(self) -> None:
        script = generate_script(SurveyDefinition("s", "Empty"), closing="Bye.")

        assert "Question" not in script
        assert script.startswith("IVR Script for Survey: Empty\n")
        assert script.endswith("Bye.\n")


class TestEngineScript:
    @pytest.mark.asyncio
    async def test_uses_configured_greeting(
        self,
        ivr_engine: IvrSessionEngine,
        db_session: AsyncSession,
        water_survey: Survey,
    ) -> None:
        script = await ivr_engine.generate_script(db_session, water_survey.survey_id)

        assert TEST_WELCOME in script
        assert TEST_CLOSING in script
        assert "Question 2: How far is the source?" in script

    @pytest.mark.asyncio
    async def test_unknown_survey(self, ivr_engine: IvrSessionEngine, db_session: AsyncSession) -> None:
        with pytest.raises(SurveyNotFoundError):
            await ivr_engine.generate_script(db_session, "missing")
