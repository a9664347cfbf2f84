"""survey_db — PostgreSQL persistence layer for the survey flow.

This package provides the ORM models, async engine factory, and the two
repositories: ``SurveyRepository`` for the respondent flow and
``AdminRepository`` for the dashboard and dataset tools.  It is consumed by
the ``survey_flow`` SDK and, through it, by the FastAPI server.
"""

from survey_db.admin_repository import AdminRepository
from survey_db.engine import get_engine, get_session_factory
from survey_db.models.enums import ProgressStatus, RespondentStatus, SessionStatus
from survey_db.models.respondent import Respondent
from survey_db.repository import SurveyRepository

__all__ = [
    "AdminRepository",
    "ProgressStatus",
    "Respondent",
    "RespondentStatus",
    "SessionStatus",
    "SurveyRepository",
    "get_engine",
    "get_session_factory",
]
