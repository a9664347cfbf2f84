"""Public model re-exports for survey_flow.

Consumers should import from ``survey_flow.models`` rather than reaching
into sub-modules directly.
"""

# --- Questionnaire ---
from survey_flow.models.question import (
    CHOICE_TYPES,
    FollowUp,
    PhaseDef,
    QuestionDef,
    QuestionType,
    ShowIfRule,
)

# --- Respondent flow ---
from survey_flow.models.session import (
    CompletionResult,
    PhaseRedirect,
    PhaseStep,
    PhaseSummary,
    PhaseView,
    RespondentInfo,
    ResumePoint,
    ResumeState,
    SaveResult,
    SessionInfo,
    StartResult,
    Step,
    SurveyDone,
)

# --- Admin dashboard ---
from survey_flow.models.admin import (
    DatasetKind,
    DatasetResult,
    FunnelStage,
    FunnelStats,
    ImportIssue,
    ImportResult,
    LikertSummary,
    OptionCount,
    Overview,
    PhaseStats,
    QuestionAnalytics,
    RespondentPage,
    RespondentRow,
)

__all__ = [
    # Questionnaire
    "CHOICE_TYPES",
    "FollowUp",
    "PhaseDef",
    "QuestionDef",
    "QuestionType",
    "ShowIfRule",
    # Respondent flow
    "CompletionResult",
    "PhaseRedirect",
    "PhaseStep",
    "PhaseSummary",
    "PhaseView",
    "RespondentInfo",
    "ResumePoint",
    "ResumeState",
    "SaveResult",
    "SessionInfo",
    "StartResult",
    "Step",
    "SurveyDone",
    # Admin
    "DatasetKind",
    "DatasetResult",
    "FunnelStage",
    "FunnelStats",
    "ImportIssue",
    "ImportResult",
    "LikertSummary",
    "OptionCount",
    "Overview",
    "PhaseStats",
    "QuestionAnalytics",
    "RespondentPage",
    "RespondentRow",
]
