"""Exception taxonomy for the survey flow.

Every exception carries the HTTP status the server maps it to and a
client-safe ``public_message``.  Internal details go into ``str(exc)`` and
stay in the server log.

Categories:
    input validation   — InputValidationError, AnswerValidationError,
                         StepValidationError (no retry)
    authorization      — AuthorizationError ("please restart / sign in again")
    not found          — NotFoundError (route back to registration)
    consistency        — PhaseLockedError (complete an earlier phase first)
    transient          — TransientError (generic "please try again")
    unavailable        — FeatureUnavailableError (server not configured for it)

The input validation classes also subclass ``ValueError`` so that callers
written against plain ``ValueError`` keep working.
"""

from __future__ import annotations

from typing import Any


class SurveyError(Exception):
    """Base class for all survey flow errors."""

    status_code: int = 400
    default_message: str = "Invalid request"
    # Whether the client should discard its token and go back to registration
    restart: bool = False

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.public_message = message or self.default_message
        super().__init__(detail or self.public_message)

    def to_payload(self) -> dict[str, Any]:
        """JSON body returned to the client."""
        payload: dict[str, Any] = {"detail": self.public_message}
        if self.restart:
            payload["restart"] = True
        return payload


class InputValidationError(SurveyError, ValueError):
    """Malformed phone, missing name, unknown question code, etc."""

    status_code = 400


class AnswerValidationError(InputValidationError):
    """An answer value does not fit its question's declared type."""

    def __init__(self, question_code: str, message: str) -> None:
        self.question_code = question_code
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["question_code"] = self.question_code
        return payload


class StepValidationError(InputValidationError):
    """A required visible question is blank or a selection count is out of range."""

    status_code = 422

    def __init__(self, question_code: str, step_index: int, message: str) -> None:
        self.question_code = question_code
        self.step_index = step_index
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["question_code"] = self.question_code
        payload["step"] = self.step_index
        return payload


class AuthorizationError(SurveyError):
    """Missing, unknown or closed session token."""

    status_code = 401
    default_message = "Your session has expired. Please restart and sign in again."
    restart = True


class NotFoundError(SurveyError):
    """Phase or respondent cannot be resolved."""

    status_code = 404
    default_message = "Not found. Please restart the survey."
    restart = True


class PhaseLockedError(SurveyError):
    """The requested phase is locked behind an earlier incomplete phase."""

    status_code = 409

    def __init__(self, phase_code: str, message: str | None = None) -> None:
        self.phase_code = phase_code
        super().__init__(
            message or f'Please complete "{phase_code}" first.',
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["phase_code"] = self.phase_code
        return payload


class TransientError(SurveyError):
    """A storage or network call failed; the operation is safe to retry."""

    status_code = 503
    default_message = "Something went wrong. Please try again."


class FeatureUnavailableError(SurveyError):
    """An optional integration (e.g. the AI summary) is not configured."""

    status_code = 503
    default_message = "This feature is not available on this server."
