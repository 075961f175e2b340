"""
SQLAlchemy models for anonymous survey responses and their answers.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from survey_ivr.shared.database import Base

if TYPE_CHECKING:
    from survey_ivr.surveys.models import Survey


def _new_id() -> str:
    return str(uuid4())


class Response(Base):
    """Anonymous response; answers accumulate under one anonymous token."""

    __tablename__ = "responses"

    response_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    survey_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("surveys.survey_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    anonymous_token: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    survey: Mapped["Survey"] = relationship("Survey")
    answers: Mapped[list["Answer"]] = relationship(
        "Answer",
        back_populates="response",
        cascade="all, delete-orphan",
        order_by="Answer.position",
    )

    def __repr__(self) -> str:
        return f"<Response(id={self.response_id}, survey_id={self.survey_id})>"


class Answer(Base):
    """Answer to one question; choice/numeric answers are stored decoded as text."""

    __tablename__ = "answers"

    answer_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    response_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("responses.response_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.question_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    answer_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    response: Mapped[Response] = relationship("Response", back_populates="answers")

    def __repr__(self) -> str:
        return f"<Answer(id={self.answer_id}, question_id={self.question_id}, position={self.position})>"
