"""PhaseNavigator — the page-level state machine for answering one phase.

Built from a ``PhaseView`` returned by ``SurveyEngine.open_phase`` (or the
REST API), it drives step-by-step entry:

    set_answer → autosave (debounced, failures swallowed)
    next       → validate step, save (failure tolerated), advance
    back       → previous step, answers kept
    submit     → last step only: validate, save (must succeed), complete
"""

from __future__ import annotations

import logging
from typing import Any

from survey_flow.autosave import AutosaveCoordinator
from survey_flow.constants import AUTOSAVE_DEBOUNCE_SECONDS, SUBMISSION_FAILED_MESSAGE
from survey_flow.errors import InputValidationError, StepValidationError, SurveyError, TransientError
from survey_flow.interfaces import SurveyBackend
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import CompletionResult, PhaseView, Step
from survey_flow.validation import validate_step
from survey_flow.visibility import visible_questions

logger = logging.getLogger(__name__)


class PhaseNavigator:
    """Step navigation and submission for one phase."""

    def __init__(
        self,
        view: PhaseView,
        backend: SurveyBackend,
        *,
        debounce: float = AUTOSAVE_DEBOUNCE_SECONDS,
    ) -> None:
        if not view.steps:
            raise InputValidationError("This section has no questions.")
        self.phase = view.phase
        self.steps: list[Step] = view.steps
        self.step_index = view.start_step
        self._backend = backend
        self._all_questions = [q for step in view.steps for q in step.questions]
        self.autosave = AutosaveCoordinator(
            backend,
            view.phase.phase_code,
            [q.question_code for q in self._all_questions],
            answers=view.answers,
            step=view.start_step,
            debounce=debounce,
        )
        # Message shown above the form after a failed next/submit
        self.error: str | None = None
        self.result: CompletionResult | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def answers(self) -> dict[str, Any]:
        return self.autosave.answers

    @property
    def current_step(self) -> Step:
        return self.steps[self.step_index]

    @property
    def is_last_step(self) -> bool:
        return self.step_index == len(self.steps) - 1

    def visible_questions(self) -> list[QuestionDef]:
        """Questions of the current step that are shown right now."""
        return visible_questions(self.current_step.questions, self.answers, self._all_questions)

    def set_answer(self, question_code: str, value: Any) -> None:
        self.error = None
        self.autosave.set_answer(question_code, value)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _check_current_step(self) -> None:
        issue = validate_step(self.current_step.questions, self.answers, self._all_questions)
        if issue is not None:
            self.error = issue.message
            raise StepValidationError(issue.question_code, self.step_index, issue.message)

    async def next(self) -> Step:
        """Validate the current step, save, and move forward one step.

        The save may fail; answers stay in memory and are retried later.
        """
        self.error = None
        if self.is_last_step:
            raise InputValidationError("This is the last step. Please submit the section.")
        self._check_current_step()
        self.step_index += 1
        self.autosave.step = self.step_index
        await self.autosave.flush()
        return self.current_step

    def back(self) -> Step:
        """Move back one step without validating or saving."""
        self.error = None
        self.step_index = max(0, self.step_index - 1)
        self.autosave.step = self.step_index
        return self.current_step

    async def submit(self) -> CompletionResult:
        """Complete the phase from its last step.

        The final save must succeed before completion is attempted; any
        non-validation failure is reported as a retryable submission error.
        """
        self.error = None
        if not self.is_last_step:
            raise InputValidationError("Please finish the remaining steps first.")
        self._check_current_step()

        try:
            await self.autosave.flush(required=True)
            result = await self._backend.complete_phase(
                self.phase.phase_code, self.autosave.payload()
            )
        except SurveyError as exc:
            self.error = exc.public_message
            raise
        except Exception as exc:
            logger.warning("Submitting %s failed: %s", self.phase.phase_code, exc)
            self.error = SUBMISSION_FAILED_MESSAGE
            raise TransientError(SUBMISSION_FAILED_MESSAGE, detail=str(exc)) from exc

        self.result = result
        return result
