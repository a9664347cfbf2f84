"""ORM models for survey_db."""

from survey_db.models.audit import AuditLog
from survey_db.models.base import Base
from survey_db.models.enums import (
    ActorType,
    ProgressStatus,
    RespondentStatus,
    SessionStatus,
)
from survey_db.models.insight import AiInsight
from survey_db.models.progress import PhaseProgress
from survey_db.models.respondent import Respondent
from survey_db.models.response import SurveyResponse
from survey_db.models.session import ResponseSession
from survey_db.models.survey import SurveyPhase, SurveyQuestion

__all__ = [
    "ActorType",
    "AiInsight",
    "AuditLog",
    "Base",
    "PhaseProgress",
    "ProgressStatus",
    "Respondent",
    "RespondentStatus",
    "ResponseSession",
    "SessionStatus",
    "SurveyPhase",
    "SurveyQuestion",
    "SurveyResponse",
]
