"""Abstract interfaces for the client-side half of the survey flow.

The autosave coordinator and phase navigator never talk to storage
directly; they persist through a ``SurveyBackend``.  Two implementations
exist:

    SurveyClient — HTTP client for the REST API (``survey_flow.client``)
    test fakes   — in-memory backends used by the test-suite

Typical integration flow::

    async with SurveyClient(base_url, token=start.session_token) as backend:
        view = await backend.open_phase("panel_1")
        nav = PhaseNavigator(view, backend)
        nav.set_answer("affiliation_type", "Academia")
        await nav.next()
        ...
        result = await nav.submit()
"""

from abc import ABC, abstractmethod
from typing import Any

from survey_flow.models.session import CompletionResult, SaveResult


class SurveyBackend(ABC):
    """Persistence contract for one respondent session."""

    @abstractmethod
    async def save_answers(
        self,
        phase_code: str,
        answers: dict[str, Any],
        step: int | None = None,
    ) -> SaveResult:
        """Upsert the given answers of a phase and record the step.

        A blank value clears the stored answer; an empty map only records
        the step.  Must be idempotent: repeating the same call leaves one
        stored answer per question.  Raises on failure; callers decide
        whether to swallow.
        """

    @abstractmethod
    async def complete_phase(
        self,
        phase_code: str,
        answers: dict[str, Any] | None = None,
    ) -> CompletionResult:
        """Validate, finalize and leave a phase.

        Raises :class:`~survey_flow.errors.StepValidationError` when a
        required visible answer is missing and
        :class:`~survey_flow.errors.TransientError` on storage failures.
        """
