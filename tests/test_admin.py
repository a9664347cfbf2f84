"""Tests for AdminService — dashboard reads, dataset lifecycle, CSV/XLSX, AI summary, seeding.

AdminService runs against MockAdminRepository, which shares its tables with
the MockRepository used by the engine fixture, so data created through the
respondent flow is what the admin side sees.
"""

import csv
import io
import uuid

import pandas as pd
import pytest

from helpers.answers import PANEL_1, PANEL_2
from helpers.fakes import MockAdminRepository, MockRepository
from survey_flow.admin import AdminService
from survey_flow.csv_io import RESPONSE_HEADER, decode_answer
from survey_flow.errors import FeatureUnavailableError, InputValidationError, NotFoundError
from survey_flow.models.session import PhaseView

CONFIRM = "saya setuju"


def _csv(header, *rows) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


async def _register(engine, db, phone, name="Siti Rahma"):
    return await engine.start(db, full_name=name, phone=phone)


def _respondent_id(start_result):
    return uuid.UUID(start_result.respondent.id)


# =====================================================================
# Dashboard reads
# =====================================================================


class TestDashboard:
    @pytest.mark.asyncio
    async def test_overview(self, engine, admin_service, mock_db):
        a = await _register(engine, mock_db, "081200000001", "Ani")
        b = await _register(engine, mock_db, "081200000002", "Budi")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        await engine.save_answers(
            mock_db, b.session_token, phase_code="panel_1", answers={"affiliation_type": "Industry"},
        )

        overview = await admin_service.overview(mock_db)
        assert overview.total_respondents == 2
        stage = overview.funnel.stages[0]
        assert (stage.phase_code, stage.started, stage.completed) == ("panel_1", 2, 1)
        assert overview.funnel.completed_all == 0
        p2 = overview.phase_stats[1]
        assert p2.phase_code == "panel_2"
        assert p2.not_started == 2, "a seeded not_started row is still not started"
        assert {r.full_name for r in overview.recent_respondents} == {"Ani", "Budi"}

    @pytest.mark.asyncio
    async def test_funnel_counts_full_completion(self, engine, admin_service, mock_db):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        await engine.complete_phase(mock_db, a.session_token, "panel_2", answers=PANEL_2)
        funnel = await admin_service.funnel(mock_db)
        assert [s.completed for s in funnel.stages] == [1, 1, 0]
        assert funnel.completed_all == 0

    @pytest.mark.asyncio
    async def test_question_analytics(self, engine, admin_service, mock_db):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        result = await admin_service.question_analytics(mock_db, "panel_1")
        counts = {
            (c.question_code, c.option): c.count for c in result.option_counts if c.count
        }
        assert counts == {
            ("affiliation_type", "Industry"): 1,
            ("research_fields", "Digital & AI"): 1,
        }
        (likert,) = result.likert
        assert (likert.question_code, likert.mean) == ("translation_experience", 5.0)

    @pytest.mark.asyncio
    async def test_question_analytics_unknown_phase(self, admin_service, mock_db):
        with pytest.raises(NotFoundError):
            await admin_service.question_analytics(mock_db, "panel_9")

    @pytest.mark.asyncio
    async def test_list_respondents_pagination(self, engine, admin_service, mock_db):
        for i, name in enumerate(["Ani", "Budi", "Citra"]):
            await _register(engine, mock_db, f"08120000000{i}", name)
        page1 = await admin_service.list_respondents(mock_db, page=1, page_size=2)
        page2 = await admin_service.list_respondents(mock_db, page=2, page_size=2)
        assert (page1.total, page1.total_pages) == (3, 2)
        assert len(page1.respondents) == 2
        assert len(page2.respondents) == 1
        names = {r.full_name for r in page1.respondents + page2.respondents}
        assert names == {"Ani", "Budi", "Citra"}

    @pytest.mark.asyncio
    async def test_list_respondents_search(self, engine, admin_service, mock_db):
        await _register(engine, mock_db, "081200000001", "Ani")
        await _register(engine, mock_db, "081200000002", "Budi")
        page = await admin_service.list_respondents(mock_db, search="bud")
        assert [r.full_name for r in page.respondents] == ["Budi"]
        assert page.respondents[0].status == "active"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page,size", [(0, 20), (1, 0), (1, 101)])
    async def test_list_respondents_bounds(self, admin_service, mock_db, page, size):
        with pytest.raises(InputValidationError):
            await admin_service.list_respondents(mock_db, page=page, page_size=size)


# =====================================================================
# Dataset lifecycle
# =====================================================================


class TestDatasetLifecycle:
    """clear → restore is reversible; permanent delete removes cleared rows."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confirmation", [None, "", "yes", "saya"])
    async def test_confirmation_required(self, admin_service, mock_db, mock_repo, confirmation):
        with pytest.raises(InputValidationError, match="saya setuju"):
            await admin_service.clear_data(mock_db, confirmation)
        assert mock_repo.events == []

    @pytest.mark.asyncio
    async def test_confirmation_ignores_case_and_spaces(self, admin_service, mock_db):
        result = await admin_service.clear_data(mock_db, "  Saya Setuju ")
        assert result.affected == 0

    @pytest.mark.asyncio
    async def test_clear_and_restore(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001")
        result = await admin_service.clear_data(mock_db, CONFIRM)
        assert result.action == "clear_data"
        assert result.affected == 1
        assert result.message == "1 respondent(s) cleared."
        assert all(s.status == "completed" for s in mock_repo.sessions.values())
        assert (await admin_service.overview(mock_db)).total_respondents == 0
        with pytest.raises(InputValidationError):
            await _register(engine, mock_db, "081200000001")

        restored = await admin_service.restore_data(mock_db, CONFIRM)
        assert restored.affected == 1
        again = await _register(engine, mock_db, "081200000001")
        assert again.respondent.id == a.respondent.id
        assert mock_repo.event_types().count("clear_data") == 1
        assert "restore_data" in mock_repo.event_types()

    @pytest.mark.asyncio
    async def test_permanent_delete_only_removes_cleared(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        await admin_service.clear_data(mock_db, CONFIRM)
        await _register(engine, mock_db, "081200000002")

        result = await admin_service.permanent_delete(mock_db, CONFIRM)
        assert result.affected == 1
        assert result.message == "1 respondent(s) permanently deleted."
        assert len(mock_repo.respondents) == 1
        assert mock_repo.responses == {}
        assert all(p.respondent_id != a.respondent.id for p in mock_repo.progress.values())

        # the phone key is free again
        fresh = await _register(engine, mock_db, "081200000001")
        assert not fresh.returning


# =====================================================================
# Export / import (CSV and XLSX)
# =====================================================================


class TestExport:
    @pytest.mark.asyncio
    async def test_export_responses(self, engine, admin_service, mock_db):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        rows = list(csv.DictReader(io.StringIO((await admin_service.export_dataset(mock_db, "responses")).decode())))
        assert len(rows) == 3
        by_code = {r["question_code"]: r for r in rows}
        assert decode_answer(by_code["research_fields"]["answer"]) == ["Digital & AI"]
        assert by_code["translation_experience"]["answer_text"] == "5"
        assert all(r["is_finalized"] == "True" for r in rows)
        assert all(r["phone_normalized"] == "6281200000001" for r in rows)

    @pytest.mark.asyncio
    async def test_export_skips_deleted_respondents(self, engine, admin_service, mock_db, mock_repo):
        await _register(engine, mock_db, "081200000001", "Ani")
        await _register(engine, mock_db, "081200000002", "Budi")
        next(r for r in mock_repo.respondents.values() if r.full_name == "Budi").status = "deleted"
        data = await admin_service.export_dataset(mock_db, "respondents")
        rows = list(csv.DictReader(io.StringIO(data.decode())))
        assert [r["full_name"] for r in rows] == ["Ani"]

    @pytest.mark.asyncio
    async def test_unknown_kind(self, admin_service, mock_db):
        with pytest.raises(InputValidationError):
            await admin_service.export_dataset(mock_db, "phases")

    @pytest.mark.asyncio
    async def test_export_xlsx(self, engine, admin_service, mock_db):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        data = await admin_service.export_dataset(mock_db, "responses", "xlsx")
        frame = pd.read_excel(io.BytesIO(data), dtype=str, keep_default_na=False)
        assert list(frame.columns) == RESPONSE_HEADER
        assert len(frame) == 3
        by_code = dict(zip(frame["question_code"], frame["answer"]))
        assert decode_answer(by_code["research_fields"]) == ["Digital & AI"]

    @pytest.mark.asyncio
    async def test_unknown_format(self, admin_service, mock_db):
        with pytest.raises(InputValidationError) as exc:
            await admin_service.export_dataset(mock_db, "respondents", "pdf")
        assert exc.value.public_message == "Unknown file format: pdf"


class TestImport:
    @pytest.mark.asyncio
    async def test_import_respondents(self, admin_service, mock_db, mock_repo):
        data = _csv(
            ["phone_normalized", "full_name", "status"],
            ["0812 1111 2222", "Budi", "active"],
            ["12345", "Bad", "active"],
            ["6281233334444", "Ani", "archived"],
            ["6281233334444", "", ""],
        )
        result = await admin_service.import_dataset(mock_db, "respondents", data)
        assert (result.imported, result.skipped) == (2, 2)
        assert [(e.line, e.message) for e in result.errors] == [
            (3, "Please enter a valid phone number (e.g. 0812 3456 7890)."),
            (4, "unknown status 'archived'"),
        ]
        phones = {r.phone_normalized: r for r in mock_repo.respondents.values()}
        assert set(phones) == {"6281211112222", "6281233334444"}
        assert phones["6281233334444"].full_name == "6281233334444"
        assert "dataset_imported" in mock_repo.event_types()

    @pytest.mark.asyncio
    async def test_import_responses(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "0812-3456-7890")
        data = _csv(
            ["phone_normalized", "question_code", "answer", "is_finalized"],
            ["0812-3456-7890", "affiliation_type", '"Industry"', "true"],
            ["6281234567890", "research_fields", '["Digital & AI"]', "true"],
            ["6281234567890", "translation_experience", "5", "true"],
            ["6289999999999", "p2_clarity", "4", "false"],
            ["6281234567890", "bogus", "1", "false"],
            ["6281234567890", "p2_clarity", "9", "false"],
        )
        result = await admin_service.import_dataset(mock_db, "responses", data)
        assert (result.imported, result.skipped) == (3, 3)
        messages = {e.line: e.message for e in result.errors}
        assert messages[5] == "unknown respondent phone"
        assert messages[6] == "unknown question 'bogus'"
        assert messages[7].startswith("Please pick a rating between 1 and 7")

        respondent = mock_repo.respondents[_respondent_id(a)]
        assert mock_repo.progress_of(respondent.id, "panel_1").status == "completed"
        assert respondent.current_phase == "panel_2", "cache follows the recomputed resume point"

        state = await engine.resume(mock_db, a.session_token)
        assert state.next == "panel_2"

    @pytest.mark.asyncio
    async def test_unfinalized_import_is_in_progress(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081234567890")
        data = _csv(
            ["phone_normalized", "question_code", "answer"],
            ["6281234567890", "affiliation_type", "Industry"],
        )
        result = await admin_service.import_dataset(mock_db, "responses", data)
        assert result.imported == 1
        progress = mock_repo.progress_of(_respondent_id(a), "panel_1")
        assert progress.status == "in_progress"
        assert progress.completion_percent == 25
        assert mock_repo.respondents[_respondent_id(a)].current_phase == "panel_1"

    @pytest.mark.asyncio
    async def test_import_never_reopens_a_completed_phase(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081234567890")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        data = _csv(
            ["phone_normalized", "question_code", "answer"],
            ["6281234567890", "affiliation_type", "Government"],
        )
        result = await admin_service.import_dataset(mock_db, "responses", data)
        assert result.imported == 0
        assert [(e.line, e.message) for e in result.errors] == [(2, "answer already finalized")]

        rid = _respondent_id(a)
        assert mock_repo.progress_of(rid, "panel_1").status == "completed"
        stored = {r.question_code: r for r in mock_repo.responses.values()}
        assert stored["affiliation_type"].answer_value == "Industry"
        assert all(r.is_finalized for r in stored.values()), "finalized answers stay finalized"

        step = await engine.open_phase(mock_db, a.session_token, "panel_2")
        assert isinstance(step, PhaseView), "later phases stay unlocked"

    @pytest.mark.asyncio
    async def test_finalized_rows_alone_do_not_complete_a_phase(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081234567890")
        data = _csv(
            ["phone_normalized", "question_code", "answer", "is_finalized"],
            ["6281234567890", "affiliation_type", "Industry", "true"],
        )
        result = await admin_service.import_dataset(mock_db, "responses", data)
        assert result.imported == 1

        progress = mock_repo.progress_of(_respondent_id(a), "panel_1")
        assert progress.status == "in_progress", "required answers are still missing"
        assert progress.completion_percent < 100
        assert mock_repo.respondents[_respondent_id(a)].current_phase == "panel_1"

    @pytest.mark.asyncio
    async def test_import_completes_phase_from_merged_answers(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081234567890")
        await engine.save_answers(
            mock_db, a.session_token, phase_code="panel_1",
            answers={"affiliation_type": "Industry", "research_fields": ["Digital & AI"]},
        )
        data = _csv(
            ["phone_normalized", "question_code", "answer", "is_finalized"],
            ["6281234567890", "translation_experience", "5", "true"],
        )
        await admin_service.import_dataset(mock_db, "responses", data)
        progress = mock_repo.progress_of(_respondent_id(a), "panel_1")
        assert progress.status == "in_progress", "stored answers from autosave are not finalized"

        data = _csv(
            ["phone_normalized", "question_code", "answer", "is_finalized"],
            ["6281234567890", "affiliation_type", "Industry", "true"],
            ["6281234567890", "research_fields", '["Digital & AI"]', "true"],
        )
        await admin_service.import_dataset(mock_db, "responses", data)
        progress = mock_repo.progress_of(_respondent_id(a), "panel_1")
        assert (progress.status, progress.completion_percent) == ("completed", 100)

    @pytest.mark.asyncio
    async def test_export_then_import_restores_answers(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        exported = await admin_service.export_dataset(mock_db, "responses")

        mock_repo.responses.clear()
        mock_repo.progress.clear()
        result = await admin_service.import_dataset(mock_db, "responses", exported)
        assert (result.imported, result.skipped) == (3, 0)
        values = {r.question_code: r.answer_value for r in mock_repo.responses.values()}
        assert values == PANEL_1
        assert all(r.is_finalized for r in mock_repo.responses.values())
        assert mock_repo.progress_of(_respondent_id(a), "panel_1").status == "completed"

    @pytest.mark.asyncio
    async def test_missing_header(self, admin_service, mock_db):
        result = await admin_service.import_dataset(mock_db, "responses", b"phone_normalized\n6281\n")
        assert result.imported == 0
        assert result.errors[0].line == 1

    @pytest.mark.asyncio
    async def test_not_utf8(self, admin_service, mock_db):
        with pytest.raises(InputValidationError) as exc:
            await admin_service.import_dataset(mock_db, "respondents", b"\xff\xfe\x00bad")
        assert exc.value.public_message == "The file must be UTF-8 encoded CSV."

    @pytest.mark.asyncio
    async def test_xlsx_round_trip(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        exported = await admin_service.export_dataset(mock_db, "responses", "xlsx")

        mock_repo.responses.clear()
        mock_repo.progress.clear()
        result = await admin_service.import_dataset(mock_db, "responses", exported, "xlsx")
        assert (result.imported, result.skipped) == (3, 0)
        values = {r.question_code: r.answer_value for r in mock_repo.responses.values()}
        assert values == PANEL_1
        assert mock_repo.progress_of(_respondent_id(a), "panel_1").status == "completed"

    @pytest.mark.asyncio
    async def test_xlsx_rows_report_sheet_lines(self, admin_service, mock_db, mock_repo):
        frame = pd.DataFrame(
            [
                {"phone_normalized": "081211112222", "full_name": "Budi"},
                {"phone_normalized": "", "full_name": "No Phone"},
            ]
        )
        buf = io.BytesIO()
        frame.to_excel(buf, index=False)
        result = await admin_service.import_dataset(mock_db, "respondents", buf.getvalue(), "xlsx")
        assert result.imported == 1
        assert [(e.line, e.message) for e in result.errors] == [(3, "missing phone_normalized")]
        assert {r.phone_normalized for r in mock_repo.respondents.values()} == {"6281211112222"}

    @pytest.mark.asyncio
    async def test_not_a_workbook(self, admin_service, mock_db):
        with pytest.raises(InputValidationError) as exc:
            await admin_service.import_dataset(mock_db, "respondents", b"phone_normalized\n", "xlsx")
        assert exc.value.public_message == "The file must be an .xlsx workbook."


# =====================================================================
# AI summary
# =====================================================================


class FakeSummarizer:
    """Stands in for SummaryGenerator; records what it was asked to summarise."""

    model = "fake-model"

    def __init__(self, text="## Themes\n- Industry leads"):
        self.text = text
        self.calls = []

    async def generate(self, digests):
        self.calls.append(digests)
        return self.text


class TestAiSummary:
    @pytest.mark.asyncio
    async def test_latest_is_empty_before_generation(self, admin_service, mock_db):
        summary = await admin_service.latest_summary(mock_db)
        assert (summary.summary, summary.created_at) == ("", None)

    @pytest.mark.asyncio
    async def test_requires_configuration(self, admin_service, mock_db):
        with pytest.raises(FeatureUnavailableError) as exc:
            await admin_service.generate_summary(mock_db, None)
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_no_answers_yet(self, engine, admin_service, mock_db):
        await _register(engine, mock_db, "081200000001")
        summarizer = FakeSummarizer()
        with pytest.raises(InputValidationError):
            await admin_service.generate_summary(mock_db, summarizer)
        assert summarizer.calls == []

    @pytest.mark.asyncio
    async def test_generate_stores_summary(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001", "Ani")
        b = await _register(engine, mock_db, "081200000002", "Budi")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        await engine.complete_phase(mock_db, b.session_token, "panel_1", answers=PANEL_1)
        summarizer = FakeSummarizer()

        summary = await admin_service.generate_summary(mock_db, summarizer)
        assert summary.summary == "## Themes\n- Industry leads"
        assert summary.model == "fake-model"
        assert summary.created_at is not None

        (digests,) = summarizer.calls
        by_type = {d["type"]: d["data"] for d in digests}
        assert by_type["single_choice"] == {"Industry": 2}
        assert by_type["likert"]["count"] == 2
        assert "ai_summary_generated" in mock_repo.event_types()

        latest = await admin_service.latest_summary(mock_db)
        assert latest.summary == summary.summary

    @pytest.mark.asyncio
    async def test_deleted_respondents_are_left_out(self, engine, admin_service, mock_db, mock_repo):
        a = await _register(engine, mock_db, "081200000001", "Ani")
        await engine.complete_phase(mock_db, a.session_token, "panel_1", answers=PANEL_1)
        mock_repo.respondents[_respondent_id(a)].status = "deleted"
        with pytest.raises(InputValidationError):
            await admin_service.generate_summary(mock_db, FakeSummarizer())


# =====================================================================
# Questionnaire seeding
# =====================================================================


class TestSeed:
    @pytest.fixture
    def empty(self):
        repo = MockRepository()
        svc = AdminService()
        svc._repo = MockAdminRepository(repo)
        svc._survey_repo = repo
        return svc, repo

    @pytest.mark.asyncio
    async def test_seed_inserts_everything(self, empty, store, mock_db):
        svc, repo = empty
        counts = await svc.seed_questionnaire(mock_db, store.phases)
        assert counts == {"phases": 3, "questions": 15, "retired": 0}
        assert [p.phase_code for p in await repo.list_active_phases(mock_db)] == [
            "panel_1", "panel_2", "panel_3",
        ]
        q = next(q for q in repo.questions.values() if q.question_code == "academic_role")
        assert q.show_if == {"question_code": "affiliation_type", "answer_in": ["Academia"]}
        assert repo.event_types() == ["questionnaire_seeded"]

    @pytest.mark.asyncio
    async def test_reseed_retires_and_reactivates(self, empty, store, mock_db):
        svc, repo = empty
        await svc.seed_questionnaire(mock_db, store.phases)
        counts = await svc.seed_questionnaire(mock_db, store.phases[:2])
        assert counts["retired"] == 6, "panel_3 and its five questions"
        assert len(await repo.list_active_phases(mock_db)) == 2

        counts = await svc.seed_questionnaire(mock_db, store.phases)
        assert counts["retired"] == 0
        assert len(repo.phases) == 3, "re-seeding updates rows in place"
        assert len(await repo.list_active_phases(mock_db)) == 3
