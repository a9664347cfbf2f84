"""AdminService — dashboard analytics and dataset management.

Like ``SurveyEngine`` the service is stateless and works on a caller-owned
``AsyncSession``; every destructive operation requires the typed
confirmation phrase and leaves an audit event behind.

Operations:
    overview / funnel / question_analytics / list_respondents — reads
    clear_data / restore_data / permanent_delete             — dataset lifecycle
    export_dataset / import_dataset                          — CSV / XLSX round trip
    latest_summary / generate_summary                        — AI summary of answers
    seed_questionnaire                                       — YAML → database
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime
from zipfile import BadZipFile

from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.admin_repository import AdminRepository
from survey_db.models.enums import ActorType, ProgressStatus, RespondentStatus
from survey_db.repository import SurveyRepository

from survey_flow.analytics import build_funnel, build_phase_stats, summarize_answers
from survey_flow.constants import ADMIN_CONFIRMATION_PHRASE
from survey_flow.csv_io import (
    DatasetFormat,
    build_export_csv,
    build_export_xlsx,
    decode_answer,
    encode_answer,
    parse_import_csv,
    parse_import_xlsx,
)
from survey_flow.engine import phase_summaries
from survey_flow.errors import (
    AnswerValidationError,
    FeatureUnavailableError,
    InputValidationError,
    NotFoundError,
)
from survey_flow.insights import SummaryGenerator, condense_answers
from survey_flow.models.admin import (
    AiSummary,
    DatasetKind,
    DatasetResult,
    FunnelStats,
    ImportIssue,
    ImportResult,
    Overview,
    QuestionAnalytics,
    RespondentPage,
    RespondentRow,
)
from survey_flow.models.question import PhaseDef, QuestionDef
from survey_flow.phone import validate_phone
from survey_flow.resume import current_phase_marker, resolve_resume_point
from survey_flow.steps import partition_steps
from survey_flow.validation import answer_text, coerce_answer, completion_percent, validate_phase

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
RECENT_RESPONDENTS = 10

_TRUE_VALUES = {"1", "true", "yes", "y", "t"}

_EXPORTERS = {"csv": build_export_csv, "xlsx": build_export_xlsx}


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _to_row(r) -> RespondentRow:
    return RespondentRow(
        id=str(r.id),
        full_name=r.full_name,
        phone_normalized=r.phone_normalized,
        current_phase=r.current_phase,
        status=getattr(r.status, "value", r.status),
        created_at=r.created_at,
        last_seen_at=r.last_seen_at,
    )


class AdminService:
    """Administrative operations over the survey dataset.

    Args:
        confirmation_phrase: phrase that must be typed to confirm clear,
            restore and permanent delete (compared case-insensitively)
    """

    def __init__(self, confirmation_phrase: str = ADMIN_CONFIRMATION_PHRASE) -> None:
        self._repo = AdminRepository()
        self._survey_repo = SurveyRepository()
        self._phrase = confirmation_phrase

    # ==================================================================
    # Dashboard reads
    # ==================================================================

    async def overview(
        self,
        db: AsyncSession,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Overview:
        phases = phase_summaries(await self._survey_repo.list_active_phases(db), [])
        registered = await self._repo.count_respondents(db, start=start, end=end)
        progress = await self._repo.progress_snapshot(db, start=start, end=end)
        recent = await self._repo.recent_respondents(
            db, limit=RECENT_RESPONDENTS, start=start, end=end
        )
        return Overview(
            total_respondents=registered,
            funnel=build_funnel(phases, registered, progress),
            phase_stats=build_phase_stats(phases, registered, progress),
            recent_respondents=[_to_row(r) for r in recent],
        )

    async def funnel(self, db: AsyncSession) -> FunnelStats:
        phases = phase_summaries(await self._survey_repo.list_active_phases(db), [])
        registered = await self._repo.count_respondents(db)
        progress = await self._repo.progress_snapshot(db)
        return build_funnel(phases, registered, progress)

    async def question_analytics(
        self, db: AsyncSession, phase_code: str
    ) -> QuestionAnalytics:
        phase = await self._survey_repo.get_phase_by_code(db, phase_code)
        if phase is None:
            raise NotFoundError(
                "Survey phase not found.", detail=f"Phase not found: {phase_code}"
            )
        rows = await self._survey_repo.list_questions(db, phase.id)
        questions = [QuestionDef.model_validate(r, from_attributes=True) for r in rows]
        answers = await self._repo.answers_for_phase(db, phase.id)
        return summarize_answers(phase_code, questions, answers)

    async def list_respondents(
        self,
        db: AsyncSession,
        *,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
        phase: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> RespondentPage:
        if page < 1:
            raise InputValidationError("Page must be 1 or greater.")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise InputValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}.")
        rows, total = await self._repo.list_respondents(
            db,
            offset=(page - 1) * page_size,
            limit=page_size,
            search=search or None,
            phase=phase or None,
            start=start,
            end=end,
        )
        return RespondentPage(
            respondents=[_to_row(r) for r in rows],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
        )

    # ==================================================================
    # Dataset lifecycle
    # ==================================================================

    async def clear_data(self, db: AsyncSession, confirmation: str | None) -> DatasetResult:
        """Soft-delete every active respondent (reversible with restore)."""
        self._check_confirmation(confirmation)
        affected = await self._repo.soft_delete_all(db)
        return await self._finish(db, "clear_data", affected, f"{affected} respondent(s) cleared.")

    async def restore_data(self, db: AsyncSession, confirmation: str | None) -> DatasetResult:
        self._check_confirmation(confirmation)
        affected = await self._repo.restore_deleted(db)
        return await self._finish(db, "restore_data", affected, f"{affected} respondent(s) restored.")

    async def permanent_delete(
        self, db: AsyncSession, confirmation: str | None
    ) -> DatasetResult:
        """Irreversibly remove cleared respondents and everything they own."""
        self._check_confirmation(confirmation)
        affected = await self._repo.purge_deleted(db)
        return await self._finish(
            db, "permanent_delete", affected, f"{affected} respondent(s) permanently deleted."
        )

    # ==================================================================
    # Dataset export / import
    # ==================================================================

    async def export_dataset(
        self, db: AsyncSession, kind: DatasetKind, fmt: DatasetFormat = "csv"
    ) -> bytes:
        """Serialise respondents or responses as CSV or an XLSX workbook."""
        if kind == "respondents":
            rows = await self._repo.export_respondents(db)
        elif kind == "responses":
            rows = [
                {**r, "answer": encode_answer(r["answer_value"])}
                for r in await self._repo.export_responses(db)
            ]
        else:
            raise InputValidationError(f"Unknown export type: {kind}")
        if fmt not in _EXPORTERS:
            raise InputValidationError(f"Unknown file format: {fmt}")
        logger.info("Exported %d %s row(s) as %s", len(rows), kind, fmt)
        return _EXPORTERS[fmt](kind, rows)

    async def import_dataset(
        self,
        db: AsyncSession,
        kind: DatasetKind,
        data: bytes,
        fmt: DatasetFormat = "csv",
    ) -> ImportResult:
        """Load a file produced by :meth:`export_dataset` (or hand-edited).

        Bad rows are reported by line and skipped; good rows are written.
        """
        if kind not in ("respondents", "responses"):
            raise InputValidationError(f"Unknown import type: {kind}")
        if fmt == "csv":
            try:
                rows, errors = parse_import_csv(kind, data)
            except UnicodeDecodeError as exc:
                raise InputValidationError(
                    "The file must be UTF-8 encoded CSV.", detail=str(exc)
                ) from exc
        elif fmt == "xlsx":
            try:
                rows, errors = parse_import_xlsx(kind, data)
            except (ValueError, BadZipFile) as exc:
                raise InputValidationError(
                    "The file must be an .xlsx workbook.", detail=str(exc)
                ) from exc
        else:
            raise InputValidationError(f"Unknown file format: {fmt}")

        issues = [ImportIssue(**e) for e in errors]
        if kind == "respondents":
            imported = await self._import_respondents(db, rows, issues)
        else:
            imported = await self._import_responses(db, rows, issues)

        result = ImportResult(
            kind=kind,
            imported=imported,
            skipped=len(issues),
            errors=issues,
        )
        await self._survey_repo.log_event(
            db,
            actor_type=ActorType.ADMIN.value,
            actor_id="admin",
            event_type="dataset_imported",
            entity_type=kind,
            payload={"imported": result.imported, "skipped": result.skipped, "format": fmt},
        )
        logger.info("Imported %d %s row(s), skipped %d", imported, kind, len(issues))
        return result

    async def _import_respondents(self, db, rows, issues: list[ImportIssue]) -> int:
        imported = 0
        for line, row in rows:
            check = validate_phone(row["phone_normalized"])
            if not check.valid:
                issues.append(ImportIssue(line=line, message=check.error or "invalid phone"))
                continue
            status = row.get("status") or RespondentStatus.ACTIVE.value
            if status not in {s.value for s in RespondentStatus}:
                issues.append(ImportIssue(line=line, message=f"unknown status {status!r}"))
                continue
            await self._repo.upsert_respondent(
                db,
                full_name=row.get("full_name") or check.normalized,
                phone_normalized=check.normalized,
                current_phase=row.get("current_phase") or None,
                status=status,
            )
            imported += 1
        return imported

    async def _import_responses(self, db, rows, issues: list[ImportIssue]) -> int:
        questions = await self._repo.questions_by_code(db)
        phases = await self._survey_repo.list_active_phases(db)
        phase_by_id = {p.id: p for p in phases}
        defs = {
            code: QuestionDef.model_validate(q, from_attributes=True)
            for code, q in questions.items()
        }

        phones: dict[int, str] = {}
        for line, row in rows:
            check = validate_phone(row["phone_normalized"])
            if check.valid:
                phones[line] = check.normalized
        respondent_ids = await self._repo.respondent_ids_by_phone(db, set(phones.values()))

        # (respondent_id, phase_id) pairs whose progress must be recomputed
        touched: set[tuple[uuid.UUID, uuid.UUID]] = set()
        imported = 0
        for line, row in rows:
            phone = phones.get(line)
            if phone is None or phone not in respondent_ids:
                issues.append(ImportIssue(line=line, message="unknown respondent phone"))
                continue
            question = questions.get(row["question_code"])
            if question is None or question.phase_id not in phase_by_id:
                issues.append(
                    ImportIssue(line=line, message=f"unknown question {row['question_code']!r}")
                )
                continue
            try:
                value = coerce_answer(defs[question.question_code], decode_answer(row["answer"]))
            except AnswerValidationError as exc:
                issues.append(ImportIssue(line=line, message=exc.public_message))
                continue
            if value is None:
                issues.append(ImportIssue(line=line, message="empty answer"))
                continue

            finalized = row.get("is_finalized", "").lower() in _TRUE_VALUES
            respondent_id = respondent_ids[phone]
            written = await self._repo.upsert_imported_answer(
                db,
                respondent_id=respondent_id,
                question=question,
                value=value,
                text_value=answer_text(value),
                is_finalized=finalized,
                answered_at=_parse_timestamp(row.get("answered_at")),
            )
            if not written:
                issues.append(ImportIssue(line=line, message="answer already finalized"))
                continue
            touched.add((respondent_id, question.phase_id))
            imported += 1

        by_phase: dict[uuid.UUID, list[QuestionDef]] = defaultdict(list)
        for code, q in questions.items():
            by_phase[q.phase_id].append(defs[code])
        await self._recompute_progress(db, touched, by_phase, list(phases))
        return imported

    async def _recompute_progress(self, db, touched, questions_by_phase, phases) -> None:
        """Rebuild progress rows and the current-phase cache after an import.

        Status is derived from what is stored after the import, not from the
        file alone: a phase counts as completed only when its stored answers
        pass phase validation and every one of them is finalized.  A phase
        that is already completed stays completed.
        """
        for respondent_id, phase_id in touched:
            questions = questions_by_phase[phase_id]
            stored = await self._survey_repo.get_answers(db, respondent_id, phase_id=phase_id)
            answers = {a.question_code: a.answer_value for a in stored}
            complete = (
                bool(stored)
                and all(a.is_finalized for a in stored)
                and validate_phase(partition_steps(questions), answers) is None
            )
            if complete:
                status, percent = ProgressStatus.COMPLETED, 100
            else:
                status = ProgressStatus.IN_PROGRESS
                percent = completion_percent(questions, answers)
            await self._repo.set_progress_status(
                db,
                respondent_id=respondent_id,
                phase_id=phase_id,
                status=status,
                completion_percent=percent,
            )

        for respondent_id in {rid for rid, _ in touched}:
            respondent = await self._survey_repo.get_respondent(db, respondent_id)
            if respondent is None:
                continue
            progress = await self._survey_repo.get_progress(db, respondent_id)
            point = resolve_resume_point(phase_summaries(phases, progress))
            await self._survey_repo.set_current_phase(db, respondent, current_phase_marker(point))

    # ==================================================================
    # AI summary
    # ==================================================================

    async def latest_summary(self, db: AsyncSession) -> AiSummary:
        """The newest stored summary, or an empty one if none was generated."""
        row = await self._repo.latest_insight(db)
        if row is None:
            return AiSummary()
        return AiSummary(summary=row.summary_text, model=row.model, created_at=row.created_at)

    async def generate_summary(
        self, db: AsyncSession, generator: SummaryGenerator | None
    ) -> AiSummary:
        """Condense every active respondent's answers and ask the model for a summary.

        The result is stored so :meth:`latest_summary` serves it afterwards.
        """
        if generator is None:
            raise FeatureUnavailableError(
                "AI summaries are not configured on this server.",
                detail="OPENAI_API_KEY is not set",
            )
        digests = []
        for phase in await self._survey_repo.list_active_phases(db):
            rows = await self._survey_repo.list_questions(db, phase.id)
            questions = [QuestionDef.model_validate(r, from_attributes=True) for r in rows]
            answers = await self._repo.answers_for_phase(db, phase.id)
            digests.extend(condense_answers(questions, answers))
        if not digests:
            raise InputValidationError("There are no answers to summarise yet.")

        text = await generator.generate(digests)
        row = await self._repo.add_insight(db, summary_text=text, model=generator.model)
        await self._survey_repo.log_event(
            db,
            actor_type=ActorType.ADMIN.value,
            actor_id="admin",
            event_type="ai_summary_generated",
            payload={"questions": len(digests), "model": generator.model},
        )
        logger.info("AI summary generated over %d question(s)", len(digests))
        return AiSummary(summary=row.summary_text, model=row.model, created_at=row.created_at)

    # ==================================================================
    # Questionnaire seeding
    # ==================================================================

    async def seed_questionnaire(
        self, db: AsyncSession, phases: list[PhaseDef]
    ) -> dict[str, int]:
        """Upsert phases and questions; retire rows missing from *phases*."""
        n_questions = 0
        for phase in phases:
            phase_id = await self._repo.upsert_phase(
                db,
                phase_code=phase.phase_code,
                phase_name=phase.phase_name,
                description=phase.description,
                sort_order=phase.sort_order,
            )
            for q in phase.questions:
                values = q.model_dump(mode="json")
                await self._repo.upsert_question(db, phase_id=phase_id, values=values)
                n_questions += 1
        retired = await self._repo.deactivate_missing(
            db,
            phase_codes={p.phase_code for p in phases},
            question_codes={q.question_code for p in phases for q in p.questions},
        )
        await self._survey_repo.log_event(
            db,
            actor_type=ActorType.SYSTEM.value,
            event_type="questionnaire_seeded",
            payload={"phases": len(phases), "questions": n_questions, "retired": retired},
        )
        logger.info(
            "Seeded %d phases, %d questions (%d retired)", len(phases), n_questions, retired
        )
        return {"phases": len(phases), "questions": n_questions, "retired": retired}

    # ==================================================================
    # Internal helpers
    # ==================================================================

    def _check_confirmation(self, confirmation: str | None) -> None:
        if (confirmation or "").strip().casefold() != self._phrase.casefold():
            raise InputValidationError(f'Please type "{self._phrase}" to confirm.')

    async def _finish(
        self, db: AsyncSession, action: str, affected: int, message: str
    ) -> DatasetResult:
        await self._survey_repo.log_event(
            db,
            actor_type=ActorType.ADMIN.value,
            actor_id="admin",
            event_type=action,
            entity_type="respondent",
            payload={"affected": affected},
        )
        logger.warning("Admin %s: %d respondent(s) affected", action, affected)
        return DatasetResult(action=action, affected=affected, message=message)
