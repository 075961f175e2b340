"""
SQLAlchemy models for the survey catalog (surveys, questions, options).
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from survey_ivr.shared.database import Base


def _new_id() -> str:
    return str(uuid4())


class QuestionType(str, Enum):
    """Question types understood by the IVR keypad contract."""

    YESNO = "yesno"
    MULTIPLE_CHOICE = "multiple_choice"
    NUMERIC = "numeric"
    TEXT = "text"


class Survey(Base):
    """Survey authored by an administrator."""

    __tablename__ = "surveys"

    survey_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    questions: Mapped[list["Question"]] = relationship(
        "Question",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="Question.order_index",
    )

    def __repr__(self) -> str:
        return f"<Survey(id={self.survey_id}, title={self.title!r})>"


class Question(Base):
    """Question belonging to a survey; order_index defines dialogue order."""

    __tablename__ = "questions"

    question_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    survey_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("surveys.survey_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[QuestionType] = mapped_column(
        SQLEnum(
            QuestionType,
            name="question_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    survey: Mapped[Survey] = relationship("Survey", back_populates="questions")
    options: Mapped[list["QuestionOption"]] = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.order_index",
    )

    def __repr__(self) -> str:
        return f"<Question(id={self.question_id}, type={self.question_type}, order={self.order_index})>"


class QuestionOption(Base):
    """Selectable option of a multiple choice question."""

    __tablename__ = "question_options"

    option_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.question_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    option_text: Mapped[str] = mapped_column(String(255), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    question: Mapped[Question] = relationship("Question", back_populates="options")
