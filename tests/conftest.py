from unittest.mock import AsyncMock

import pytest

from helpers.fakes import MockAdminRepository, MockRepository
from survey_flow.admin import AdminService
from survey_flow.engine import SurveyEngine
from survey_flow.store import QuestionnaireStore


@pytest.fixture(scope="session")
def store():
    s = QuestionnaireStore()
    s.load()
    return s


@pytest.fixture
def mock_repo(store):
    repo = MockRepository()
    repo.load_phases(store.phases)
    return repo


@pytest.fixture
def engine(mock_repo):
    eng = SurveyEngine()
    eng._repo = mock_repo
    return eng


@pytest.fixture
def admin_service(mock_repo):
    svc = AdminService()
    svc._repo = MockAdminRepository(mock_repo)
    svc._survey_repo = mock_repo
    return svc


@pytest.fixture
def mock_db():
    return AsyncMock()
