"""Administrative dashboard models.

Analytics are best-effort snapshots read alongside respondent writes; none
of these payloads is transactionally consistent with in-flight autosaves.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

DatasetKind = Literal["respondents", "responses"]


class FunnelStage(BaseModel):
    """How many respondents started / completed one phase."""

    phase_code: str
    phase_name: str
    started: int = 0
    completed: int = 0


class FunnelStats(BaseModel):
    registered: int = 0
    stages: list[FunnelStage] = Field(default_factory=list)
    completed_all: int = 0


class PhaseStats(BaseModel):
    """Progress distribution for one phase across active respondents."""

    phase_code: str
    phase_name: str
    not_started: int = 0
    in_progress: int = 0
    completed: int = 0
    # completed / registered, 0..1
    completion_rate: float = 0.0
    avg_completion_percent: float = 0.0


class OptionCount(BaseModel):
    question_code: str
    prompt: str
    question_type: str
    option: str
    count: int


class LikertSummary(BaseModel):
    question_code: str
    prompt: str
    count: int
    mean: float | None = None
    min: int | None = None
    max: int | None = None


class QuestionAnalytics(BaseModel):
    phase_code: str
    option_counts: list[OptionCount] = Field(default_factory=list)
    likert: list[LikertSummary] = Field(default_factory=list)


class RespondentRow(BaseModel):
    id: str
    full_name: str
    phone_normalized: str
    current_phase: str | None = None
    status: str
    created_at: datetime
    last_seen_at: datetime | None = None


class RespondentPage(BaseModel):
    respondents: list[RespondentRow]
    total: int
    page: int
    page_size: int
    total_pages: int


class Overview(BaseModel):
    total_respondents: int
    funnel: FunnelStats
    phase_stats: list[PhaseStats]
    recent_respondents: list[RespondentRow]


class DatasetResult(BaseModel):
    """Outcome of clear / restore / permanent delete."""

    action: str
    affected: int
    message: str


class ImportIssue(BaseModel):
    line: int
    message: str


class ImportResult(BaseModel):
    kind: DatasetKind
    imported: int = 0
    skipped: int = 0
    errors: list[ImportIssue] = Field(default_factory=list)


class AiSummary(BaseModel):
    """The latest generated narrative summary of the survey answers."""

    summary: str = ""
    model: str | None = None
    created_at: datetime | None = None
