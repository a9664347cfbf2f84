"""REST API tests — routes, status codes and error payloads.

Mock strategy:
  - The app is built with ``create_app()`` but the lifespan is not run;
    ``app.state.engine`` / ``app.state.admin`` are set to services backed by
    the in-memory MockRepository.
  - ``get_db`` is overridden to yield an AsyncMock session.
  - The admin router's module-level repository (used for login audit
    events) is monkeypatched to the same MockRepository.
"""

import io
from unittest.mock import AsyncMock

import httpx
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from helpers.answers import PANEL_1
from helpers.fakes import MockAdminRepository
from survey_flow.admin import AdminService
from survey_flow.client import SurveyClient
from survey_flow.constants import ADMIN_CONFIRMATION_PHRASE
from survey_flow.csv_io import XLSX_MEDIA_TYPE
from survey_flow.engine import SurveyEngine
from survey_flow.navigator import PhaseNavigator
from survey_server.app import create_app
from survey_server.config import ADMIN_COOKIE_NAME, ServerSettings
from survey_server.dependencies import get_db
from survey_server.security import get_password_hash

ADMIN_PASSWORD = "secret"
PHONE = "0812-3456-7890"


def _build_app(mock_repo, monkeypatch, password_hash=None):
    settings = ServerSettings(
        admin_password_hash=password_hash,
        admin_session_secret="test-secret",
    )
    app = create_app(settings)

    engine = SurveyEngine()
    engine._repo = mock_repo
    admin = AdminService()
    admin._repo = MockAdminRepository(mock_repo)
    admin._survey_repo = mock_repo
    app.state.engine = engine
    app.state.admin = admin

    async def override_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = override_db
    monkeypatch.setattr("survey_server.routes.admin._repo", mock_repo)
    return app


@pytest.fixture(scope="module")
def password_hash():
    return get_password_hash(ADMIN_PASSWORD)


@pytest.fixture
def app(mock_repo, monkeypatch, password_hash):
    return _build_app(mock_repo, monkeypatch, password_hash)


@pytest.fixture
def client(app):
    return TestClient(app)


def _start(client, phone=PHONE, name="Siti Rahma"):
    resp = client.post("/api/v1/respondents/start", json={"full_name": name, "phone": phone})
    assert resp.status_code == 200, resp.text
    return resp.json()


def _auth(token):
    return {"X-Session-Token": token}


def _login(client):
    resp = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text


class StubSummarizer:
    model = "stub"

    async def generate(self, digests):
        return "## Themes"


# =====================================================================
# Respondents
# =====================================================================


class TestRespondentRoutes:
    def test_start(self, client):
        body = _start(client)
        assert body["session_token"]
        assert body["respondent"]["phone_normalized"] == "6281234567890"
        assert body["next"] == "panel_1"
        assert body["returning"] is False

    def test_start_invalid_phone(self, client):
        resp = client.post("/api/v1/respondents/start", json={"full_name": "Ani Lestari", "phone": "12"})
        assert resp.status_code == 400
        assert "phone" in resp.json()["detail"].lower()

    def test_resume_without_token(self, client):
        resp = client.get("/api/v1/respondents/resume")
        assert resp.status_code == 401
        assert resp.json()["restart"] is True

    def test_resume_with_token_query(self, client):
        token = _start(client)["session_token"]
        resp = client.get("/api/v1/respondents/resume", params={"token": token})
        assert resp.status_code == 200
        body = resp.json()
        assert [p["phase_code"] for p in body["phases"]] == ["panel_1", "panel_2", "panel_3"]
        assert body["next"] == "panel_1"

    def test_logout(self, client):
        token = _start(client)["session_token"]
        resp = client.post("/api/v1/respondents/logout", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# =====================================================================
# Questionnaire reference
# =====================================================================


class TestSurveyRoutes:
    def test_phases(self, client):
        resp = client.get("/api/v1/survey/phases")
        assert resp.status_code == 200
        assert [p["sort_order"] for p in resp.json()] == [1, 2, 3]

    def test_questions(self, client):
        resp = client.get("/api/v1/survey/questions", params={"phase": "panel_1"})
        assert resp.status_code == 200
        assert resp.json()[0]["question_code"] == "affiliation_type"

    def test_unknown_phase(self, client):
        resp = client.get("/api/v1/survey/questions", params={"phase": "panel_9"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Survey phase not found."


# =====================================================================
# Phases and autosave
# =====================================================================


class TestPhaseRoutes:
    def test_open_first_phase(self, client):
        token = _start(client)["session_token"]
        resp = client.get("/api/v1/phases/panel_1", headers=_auth(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "phase"
        assert body["start_step"] == 0
        assert body["steps"][0]["questions"][0]["question_code"] == "affiliation_type"

    def test_locked_phase_redirects(self, client):
        token = _start(client)["session_token"]
        resp = client.get("/api/v1/phases/panel_3", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json() == {"type": "redirect", "phase_code": "panel_1", "step": 0, "reason": "locked"}

    def test_save(self, client, mock_repo):
        token = _start(client)["session_token"]
        resp = client.post(
            "/api/v1/responses/save",
            headers=_auth(token),
            json={"phase_code": "panel_1", "answers": {"affiliation_type": "Industry"}, "step": 0},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["saved"] == 1
        assert len(mock_repo.responses) == 1

    def test_save_to_locked_phase(self, client):
        token = _start(client)["session_token"]
        resp = client.post(
            "/api/v1/responses/save",
            headers=_auth(token),
            json={"phase_code": "panel_2", "answers": {"p2_clarity": 5}},
        )
        assert resp.status_code == 409
        assert resp.json()["phase_code"] == "panel_1"

    def test_blank_save_clears_then_step_only_save(self, client, mock_repo):
        token = _start(client)["session_token"]
        url = "/api/v1/responses/save"
        client.post(
            url, headers=_auth(token),
            json={"phase_code": "panel_1", "answers": {"affiliation_type": "Industry"}, "step": 0},
        )
        resp = client.post(
            url, headers=_auth(token),
            json={"phase_code": "panel_1", "answers": {"affiliation_type": None}},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["cleared"] == ["affiliation_type"]
        assert mock_repo.responses == {}

        resp = client.post(
            url, headers=_auth(token), json={"phase_code": "panel_1", "answers": {}, "step": 1},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["last_step"] == 1

    def test_save_body_validation(self, client):
        token = _start(client)["session_token"]
        resp = client.post("/api/v1/responses/save", headers=_auth(token), json={"answers": {}})
        assert resp.status_code == 422
        assert "question_code" not in resp.json()

    def test_complete_with_missing_answer(self, client):
        token = _start(client)["session_token"]
        resp = client.post(
            "/api/v1/phases/panel_1/complete",
            headers=_auth(token),
            json={"answers": {"affiliation_type": "Industry"}},
        )
        assert resp.status_code == 422
        body = resp.json()
        assert (body["question_code"], body["step"]) == ("research_fields", 1)

    def test_complete_without_body_uses_saved_answers(self, client):
        token = _start(client)["session_token"]
        save = client.post(
            "/api/v1/responses/save",
            headers=_auth(token),
            json={"phase_code": "panel_1", "answers": PANEL_1, "step": 1},
        )
        assert save.status_code == 200, save.text
        resp = client.post("/api/v1/phases/panel_1/complete", headers=_auth(token))
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["next"] == "panel_2"
        assert body["current_phase"] == "panel_2"

        again = client.get("/api/v1/phases/panel_1", headers=_auth(token))
        assert again.json() == {"type": "redirect", "phase_code": "panel_2", "step": 0, "reason": "completed"}

    def test_storage_failure_is_503(self, client, mock_repo):
        token = _start(client)["session_token"]
        mock_repo.fail_on.add("upsert_progress")
        resp = client.post(
            "/api/v1/responses/save",
            headers=_auth(token),
            json={"phase_code": "panel_1", "answers": {"affiliation_type": "Industry"}},
        )
        assert resp.status_code == 503
        assert resp.json()["detail"] == "Something went wrong. Please try again."


# =====================================================================
# Admin
# =====================================================================


class TestAdminRoutes:
    def test_requires_cookie(self, client):
        resp = client.get("/api/v1/admin/dashboard/overview")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Admin login required"

    def test_forged_cookie(self, client):
        resp = client.get(
            "/api/v1/admin/dashboard/funnel",
            headers={"Cookie": f"{ADMIN_COOKIE_NAME}=not-a-jwt"},
        )
        assert resp.status_code == 401

    def test_wrong_password(self, client, mock_repo):
        resp = client.post("/api/v1/admin/login", json={"password": "nope"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Invalid password"}
        assert mock_repo.event_types() == ["admin_login_failed"]

    def test_login_disabled(self, mock_repo, monkeypatch):
        client = TestClient(_build_app(mock_repo, monkeypatch, password_hash=None))
        resp = client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
        assert resp.status_code == 403

    def test_login_then_overview(self, client, mock_repo):
        _start(client)
        _login(client)
        assert ADMIN_COOKIE_NAME in client.cookies
        assert "admin_login" in mock_repo.event_types()

        resp = client.get("/api/v1/admin/dashboard/overview")
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["total_respondents"] == 1
        assert body["funnel"]["registered"] == 1

    def test_logout_drops_cookie(self, client):
        _login(client)
        client.post("/api/v1/admin/logout")
        assert client.get("/api/v1/admin/dashboard/funnel").status_code == 401

    def test_question_analytics_unknown_phase(self, client):
        _login(client)
        resp = client.get("/api/v1/admin/dashboard/questions", params={"phase": "panel_9"})
        assert resp.status_code == 404

    def test_clear_data_needs_phrase(self, client):
        _start(client)
        _login(client)
        resp = client.post("/api/v1/admin/dashboard/clear-data", json={"confirmation": "yes"})
        assert resp.status_code == 400
        assert ADMIN_CONFIRMATION_PHRASE in resp.json()["detail"]

        resp = client.post(
            "/api/v1/admin/dashboard/clear-data",
            json={"confirmation": ADMIN_CONFIRMATION_PHRASE},
        )
        assert resp.status_code == 200
        assert resp.json()["affected"] == 1

    def test_export_csv(self, client):
        _start(client)
        _login(client)
        resp = client.get("/api/v1/admin/export", params={"kind": "respondents"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="respondents_' in resp.headers["content-disposition"]
        assert "6281234567890" in resp.text

    def test_import_csv(self, client, mock_repo):
        _login(client)
        data = b"phone_normalized,full_name,status\n081211112222,Budi,active\n"
        resp = client.post(
            "/api/v1/admin/import",
            params={"kind": "respondents"},
            files={"file": ("respondents.csv", data, "text/csv")},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["imported"] == 1
        assert {r.phone_normalized for r in mock_repo.respondents.values()} == {"6281211112222"}

    def test_export_xlsx(self, client):
        _start(client)
        _login(client)
        resp = client.get("/api/v1/admin/export", params={"kind": "respondents", "format": "xlsx"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
        assert resp.headers["content-disposition"].endswith('.xlsx"')
        frame = pd.read_excel(io.BytesIO(resp.content), dtype=str)
        assert list(frame["phone_normalized"]) == ["6281234567890"]

    def test_import_xlsx_by_file_name(self, client, mock_repo):
        _login(client)
        buf = io.BytesIO()
        pd.DataFrame([{"phone_normalized": "081211112222", "full_name": "Budi"}]).to_excel(buf, index=False)
        resp = client.post(
            "/api/v1/admin/import",
            params={"kind": "respondents"},
            files={"file": ("respondents.xlsx", buf.getvalue(), XLSX_MEDIA_TYPE)},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["imported"] == 1
        assert {r.phone_normalized for r in mock_repo.respondents.values()} == {"6281211112222"}

    def test_import_csv_named_as_xlsx(self, client):
        _login(client)
        resp = client.post(
            "/api/v1/admin/import",
            params={"kind": "respondents"},
            files={"file": ("respondents.xlsx", b"phone_normalized\n081211112222\n", XLSX_MEDIA_TYPE)},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "The file must be an .xlsx workbook."

    def test_ai_summary_disabled(self, client):
        _login(client)
        resp = client.post("/api/v1/admin/dashboard/ai-summary")
        assert resp.status_code == 503
        assert resp.json()["detail"] == "AI summaries are not configured on this server."

    def test_ai_summary_generate_then_read(self, app, client):
        app.state.summarizer = StubSummarizer()
        token = _start(client)["session_token"]
        client.post(
            "/api/v1/phases/panel_1/complete",
            headers=_auth(token),
            json={"answers": PANEL_1},
        )
        _login(client)
        assert client.get("/api/v1/admin/dashboard/ai-summary").json()["summary"] == ""

        resp = client.post("/api/v1/admin/dashboard/ai-summary")
        assert resp.status_code == 200, resp.text
        assert resp.json()["summary"] == "## Themes"

        latest = client.get("/api/v1/admin/dashboard/ai-summary").json()
        assert (latest["summary"], latest["model"]) == ("## Themes", "stub")

    def test_ai_summary_requires_cookie(self, client):
        assert client.get("/api/v1/admin/dashboard/ai-summary").status_code == 401


# =====================================================================
# Error handlers
# =====================================================================


class TestErrorHandlers:
    def test_plain_value_error_is_500(self, app):
        """Only SurveyError subclasses carry a client status; a bare ValueError is a bug."""

        async def broken():
            raise ValueError("phase already completed")

        app.add_api_route("/boom", broken)
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}

    def test_input_error_keeps_its_status(self, client):
        resp = client.post("/api/v1/respondents/start", json={"full_name": "Ani Lestari", "phone": "12"})
        assert resp.status_code == 400


# =====================================================================
# Navigator over HTTP
# =====================================================================


@pytest.mark.asyncio
async def test_navigator_over_http(app, mock_repo):
    """A full phase answered through SurveyClient against the ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with SurveyClient("http://testserver", transport=transport) as api:
        started = await api.start("Siti Rahma", PHONE)
        view = await api.open_phase(started.next)

        nav = PhaseNavigator(view, api, debounce=0.01)
        for code, value in PANEL_1.items():
            nav.set_answer(code, value)
        while not nav.is_last_step:
            await nav.next()
        result = await nav.submit()
        await nav.autosave.drain()

        assert result.next == "panel_2"
        state = await api.resume()

    assert state.resume.phase_code == "panel_2"
    assert state.saved_answers["research_fields"] == ["Digital & AI"]
    statuses = {p.phase_code: p.status for p in state.phases}
    assert statuses["panel_1"] == "completed"
    assert all(r.is_finalized for r in mock_repo.responses.values())
