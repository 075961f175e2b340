"""
Custom exceptions for the application.
"""


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, code: str = "APP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# Lookup errors
class NotFoundError(AppError):
    """Requested entity does not exist."""

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code)


class CallNotFoundError(NotFoundError):
    """Unknown IVR call identifier."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call not found: {call_id}", "CALL_NOT_FOUND")
        self.call_id = call_id


class SurveyNotFoundError(NotFoundError):
    """Unknown survey identifier."""

    def __init__(self, survey_id: str) -> None:
        super().__init__(f"Survey not found: {survey_id}", "SURVEY_NOT_FOUND")
        self.survey_id = survey_id


class QuestionsNotFoundError(NotFoundError):
    """Survey exists but has no questions to ask."""

    def __init__(self, survey_id: str) -> None:
        super().__init__(
            f"Survey {survey_id} has no questions",
            "QUESTIONS_NOT_FOUND",
        )
        self.survey_id = survey_id


# State errors
class InvalidStateError(AppError):
    """Operation is not allowed in the call's current state."""

    def __init__(self, message: str, call_id: str | None = None) -> None:
        super().__init__(message, "INVALID_STATE")
        self.call_id = call_id


# Storage errors
class PersistenceFailureError(AppError):
    """Storage was unavailable or rejected a write."""

    def __init__(self, message: str = "Failed to persist IVR response") -> None:
        super().__init__(message, "PERSISTENCE_FAILURE")
