"""survey_flow — multi-phase survey SDK.

Public API:
    SurveyEngine       — respondent flow: start, resume, open/save/complete phases
    AdminService       — dashboard analytics, dataset lifecycle, CSV import/export
    QuestionnaireStore — loads questionnaire YAML into typed models
    PhaseView          — phase load outcome: render these steps
    PhaseRedirect      — phase load outcome: go to another phase first
    SurveyDone         — phase load outcome: everything is completed

Client side (runs next to the respondent's UI):
    SurveyBackend       — ABC the autosave coordinator persists through
    SurveyClient        — httpx implementation of SurveyBackend
    AutosaveCoordinator — debounced, single-flight autosave
    PhaseNavigator      — step-by-step navigation with validation and submit

Pure helpers:
    normalize_phone / validate_phone — phone identity key
    visible_questions                — conditional display evaluation
    partition_steps                  — fixed-size step pagination
    resolve_resume_point             — where a respondent continues
"""

from survey_flow.admin import AdminService
from survey_flow.autosave import AutosaveCoordinator
from survey_flow.client import SurveyClient
from survey_flow.engine import SurveyEngine
from survey_flow.errors import (
    AnswerValidationError,
    AuthorizationError,
    InputValidationError,
    NotFoundError,
    PhaseLockedError,
    StepValidationError,
    SurveyError,
    TransientError,
)
from survey_flow.interfaces import SurveyBackend
from survey_flow.models.session import (
    CompletionResult,
    PhaseRedirect,
    PhaseStep,
    PhaseView,
    ResumePoint,
    SaveResult,
    SurveyDone,
)
from survey_flow.navigator import PhaseNavigator
from survey_flow.phone import normalize_phone, validate_phone
from survey_flow.resume import resolve_resume_point
from survey_flow.steps import partition_steps
from survey_flow.store import QuestionnaireStore
from survey_flow.visibility import visible_questions

__all__ = [
    # Services & store
    "AdminService",
    "QuestionnaireStore",
    "SurveyEngine",
    # Client side
    "AutosaveCoordinator",
    "PhaseNavigator",
    "SurveyBackend",
    "SurveyClient",
    # Results
    "CompletionResult",
    "PhaseRedirect",
    "PhaseStep",
    "PhaseView",
    "ResumePoint",
    "SaveResult",
    "SurveyDone",
    # Errors
    "AnswerValidationError",
    "AuthorizationError",
    "InputValidationError",
    "NotFoundError",
    "PhaseLockedError",
    "StepValidationError",
    "SurveyError",
    "TransientError",
    # Helpers
    "normalize_phone",
    "partition_steps",
    "resolve_resume_point",
    "validate_phone",
    "visible_questions",
]
