"""Respondent, session and step models — the contract between the engine and API callers.

These models define what the engine returns at each point of the
respondent flow.  They are intentionally decoupled from the ORM models in
``survey_db`` so that API consumers never see database internals.

Phase load outcomes:
  - PhaseView: render the requested phase's steps
  - PhaseRedirect: go to another phase first (hard lock / already done)
  - SurveyDone: every phase is completed

The ``PhaseStep`` union covers all three so callers can dispatch on ``type``.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from survey_flow.constants import TERMINAL_PHASE
from survey_flow.models.question import QuestionDef


class Step(BaseModel):
    """A page-worth of questions within a phase.  Derived, never persisted."""

    index: int
    code: str
    questions: list[QuestionDef]


class ResumePoint(BaseModel):
    """Where a respondent should continue.

    ``phase_code`` is None once every phase is completed.
    """

    phase_code: str | None = None
    step: int = 0

    @property
    def done(self) -> bool:
        return self.phase_code is None

    @property
    def target(self) -> str:
        """Phase code to navigate to, or the terminal ``done`` marker."""
        return self.phase_code or TERMINAL_PHASE


class PhaseSummary(BaseModel):
    """A phase together with one respondent's progress on it."""

    phase_code: str
    phase_name: str
    description: str | None = None
    sort_order: int
    status: str = "not_started"
    last_step: int = 0
    completion_percent: int = 0


class RespondentInfo(BaseModel):
    """Public view of a respondent."""

    id: str
    full_name: str
    phone_normalized: str
    current_phase: str | None = None


class SessionInfo(BaseModel):
    """Public view of a respondent session."""

    session_token: str
    status: str
    last_phase: str | None = None
    last_step: int | None = None
    last_activity_at: datetime | None = None


class StartResult(BaseModel):
    """Returned by registration/login."""

    respondent: RespondentInfo
    session_token: str
    returning: bool
    resume: ResumePoint
    # Phase code to open next, or "done"
    next: str


class ResumeState(BaseModel):
    """Everything a client needs to rebuild its state from a token."""

    respondent: RespondentInfo
    session: SessionInfo
    phases: list[PhaseSummary]
    # question_code -> answer value
    saved_answers: dict[str, Any] = Field(default_factory=dict)
    resume: ResumePoint
    next: str


class PhaseView(BaseModel):
    """Engine outcome: render this phase starting at ``start_step``."""

    type: Literal["phase"] = "phase"
    phase: PhaseSummary
    steps: list[Step]
    answers: dict[str, Any] = Field(default_factory=dict)
    start_step: int = 0


class PhaseRedirect(BaseModel):
    """Engine outcome: the requested phase cannot be shown; go elsewhere."""

    type: Literal["redirect"] = "redirect"
    phase_code: str
    step: int = 0
    reason: Literal["locked", "completed"]


class SurveyDone(BaseModel):
    """Engine outcome: every phase is completed."""

    type: Literal["done"] = "done"


# Callers can match on step.type to dispatch rendering logic.
PhaseStep = PhaseView | PhaseRedirect | SurveyDone


class SaveResult(BaseModel):
    """Outcome of one autosave attempt."""

    phase_code: str
    saved: int
    # Codes whose stored answers were removed because the value was blank
    cleared: list[str] = Field(default_factory=list)
    # Codes whose stored answers were already finalized and left untouched
    skipped: list[str] = Field(default_factory=list)
    last_step: int
    completion_percent: int
    saved_at: datetime


class CompletionResult(BaseModel):
    """Outcome of completing a phase."""

    phase_code: str
    # Phase code to open next, or "done"
    next: str
    # Value now cached on the respondent (a phase code or "completed")
    current_phase: str
    session_completed: bool = False
