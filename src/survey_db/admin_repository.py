"""Async repository for the administrative dashboard and dataset tools.

Same contract as ``SurveyRepository``: every method takes an
``AsyncSession``, flushes, and leaves commit/rollback to the caller.

Dashboard reads only ever see ``active`` respondents; the dataset
operations move respondents between ``active`` and ``deleted`` or purge
the deleted ones for good (answers, progress and sessions cascade).
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.base import utcnow
from survey_db.models.enums import ProgressStatus, RespondentStatus, SessionStatus
from survey_db.models.insight import AiInsight
from survey_db.models.progress import PhaseProgress
from survey_db.models.respondent import Respondent
from survey_db.models.response import SurveyResponse
from survey_db.models.session import ResponseSession
from survey_db.models.survey import SurveyPhase, SurveyQuestion

logger = logging.getLogger(__name__)


def _respondent_filters(
    *,
    status: RespondentStatus,
    search: str | None = None,
    phase: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    clauses = [Respondent.status == status.value]
    if search:
        pattern = f"%{search.strip()}%"
        clauses.append(
            or_(
                Respondent.full_name.ilike(pattern),
                Respondent.phone_normalized.ilike(pattern),
            )
        )
    if phase:
        clauses.append(Respondent.current_phase == phase)
    if start is not None:
        clauses.append(Respondent.created_at >= start)
    if end is not None:
        clauses.append(Respondent.created_at <= end)
    return clauses


class AdminRepository:
    """Reads and bulk writes used by ``AdminService``."""

    # ------------------------------------------------------------------
    # Respondent listings
    # ------------------------------------------------------------------

    async def count_respondents(
        self,
        db: AsyncSession,
        *,
        status: RespondentStatus = RespondentStatus.ACTIVE,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        stmt = select(func.count(Respondent.id)).where(
            *_respondent_filters(status=status, start=start, end=end)
        )
        result = await db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def list_respondents(
        self,
        db: AsyncSession,
        *,
        offset: int,
        limit: int,
        search: str | None = None,
        phase: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[list[Respondent], int]:
        """One page of active respondents (newest first) plus the filtered total."""
        clauses = _respondent_filters(
            status=RespondentStatus.ACTIVE, search=search, phase=phase, start=start, end=end
        )
        total = await db.execute(select(func.count(Respondent.id)).where(*clauses))
        stmt = (
            select(Respondent)
            .where(*clauses)
            .order_by(Respondent.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), int(total.scalar_one() or 0)

    async def recent_respondents(
        self,
        db: AsyncSession,
        *,
        limit: int = 10,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Respondent]:
        stmt = (
            select(Respondent)
            .where(*_respondent_filters(status=RespondentStatus.ACTIVE, start=start, end=end))
            .order_by(Respondent.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Analytics snapshots
    # ------------------------------------------------------------------

    async def progress_snapshot(
        self,
        db: AsyncSession,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[uuid.UUID, str, str, int]]:
        """``(respondent_id, phase_code, status, completion_percent)`` for active respondents."""
        stmt = (
            select(
                PhaseProgress.respondent_id,
                SurveyPhase.phase_code,
                PhaseProgress.status,
                PhaseProgress.completion_percent,
            )
            .join(SurveyPhase, SurveyPhase.id == PhaseProgress.phase_id)
            .join(Respondent, Respondent.id == PhaseProgress.respondent_id)
            .where(*_respondent_filters(status=RespondentStatus.ACTIVE, start=start, end=end))
        )
        result = await db.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def answers_for_phase(
        self, db: AsyncSession, phase_id: uuid.UUID
    ) -> list[tuple[str, Any]]:
        """``(question_code, answer_value)`` for one phase, active respondents only."""
        stmt = (
            select(SurveyResponse.question_code, SurveyResponse.answer_value)
            .join(Respondent, Respondent.id == SurveyResponse.respondent_id)
            .where(
                SurveyResponse.phase_id == phase_id,
                Respondent.status == RespondentStatus.ACTIVE.value,
            )
        )
        result = await db.execute(stmt)
        return [tuple(row) for row in result.all()]

    # ------------------------------------------------------------------
    # AI summaries
    # ------------------------------------------------------------------

    async def latest_insight(self, db: AsyncSession) -> AiInsight | None:
        stmt = select(AiInsight).order_by(AiInsight.created_at.desc()).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def add_insight(
        self, db: AsyncSession, *, summary_text: str, model: str | None
    ) -> AiInsight:
        row = AiInsight(summary_text=summary_text, model=model, created_at=utcnow())
        db.add(row)
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Dataset operations
    # ------------------------------------------------------------------

    async def soft_delete_all(self, db: AsyncSession) -> int:
        """Mark every active respondent deleted and close their open sessions."""
        now = utcnow()
        ids_stmt = select(Respondent.id).where(
            Respondent.status == RespondentStatus.ACTIVE.value
        )
        await db.execute(
            update(ResponseSession)
            .where(
                ResponseSession.respondent_id.in_(ids_stmt),
                ResponseSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=SessionStatus.COMPLETED.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            update(Respondent)
            .where(Respondent.status == RespondentStatus.ACTIVE.value)
            .values(status=RespondentStatus.DELETED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount or 0

    async def restore_deleted(self, db: AsyncSession) -> int:
        """Bring soft-deleted respondents back.  Their sessions stay closed."""
        result = await db.execute(
            update(Respondent)
            .where(Respondent.status == RespondentStatus.DELETED.value)
            .values(status=RespondentStatus.ACTIVE.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount or 0

    async def purge_deleted(self, db: AsyncSession) -> int:
        """Hard-delete soft-deleted respondents; child rows go with them."""
        result = await db.execute(
            delete(Respondent)
            .where(Respondent.status == RespondentStatus.DELETED.value)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_respondents(self, db: AsyncSession) -> list[dict[str, Any]]:
        stmt = (
            select(Respondent)
            .where(Respondent.status == RespondentStatus.ACTIVE.value)
            .order_by(Respondent.created_at)
        )
        result = await db.execute(stmt)
        return [
            {
                "id": str(r.id),
                "full_name": r.full_name,
                "phone_normalized": r.phone_normalized,
                "current_phase": r.current_phase,
                "status": r.status,
                "created_at": r.created_at,
                "last_seen_at": r.last_seen_at,
            }
            for r in result.scalars().all()
        ]

    async def export_responses(self, db: AsyncSession) -> list[dict[str, Any]]:
        """Answers of active respondents in questionnaire order."""
        stmt = (
            select(
                Respondent.phone_normalized,
                Respondent.full_name,
                SurveyPhase.phase_code,
                SurveyResponse.question_code,
                SurveyResponse.answer_value,
                SurveyResponse.answer_text,
                SurveyResponse.is_finalized,
                SurveyResponse.answered_at,
            )
            .join(Respondent, Respondent.id == SurveyResponse.respondent_id)
            .join(SurveyPhase, SurveyPhase.id == SurveyResponse.phase_id)
            .join(SurveyQuestion, SurveyQuestion.id == SurveyResponse.question_id)
            .where(Respondent.status == RespondentStatus.ACTIVE.value)
            .order_by(
                Respondent.created_at,
                SurveyPhase.sort_order,
                SurveyQuestion.sort_order,
            )
        )
        result = await db.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def upsert_respondent(
        self,
        db: AsyncSession,
        *,
        full_name: str,
        phone_normalized: str,
        current_phase: str | None,
        status: str,
    ) -> uuid.UUID:
        """Insert or overwrite a respondent keyed by normalized phone."""
        now = utcnow()
        stmt = pg_insert(Respondent).values(
            id=uuid.uuid4(),
            full_name=full_name,
            phone_raw=phone_normalized,
            phone_normalized=phone_normalized,
            current_phase=current_phase,
            status=status,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Respondent.phone_normalized],
            set_={
                "full_name": stmt.excluded.full_name,
                "current_phase": func.coalesce(
                    stmt.excluded.current_phase, Respondent.current_phase
                ),
                "status": stmt.excluded.status,
                "updated_at": now,
            },
        ).returning(Respondent.id)
        result = await db.execute(stmt)
        await db.flush()
        return result.scalar_one()

    async def respondent_ids_by_phone(
        self, db: AsyncSession, phones: set[str]
    ) -> dict[str, uuid.UUID]:
        if not phones:
            return {}
        stmt = select(Respondent.phone_normalized, Respondent.id).where(
            Respondent.phone_normalized.in_(phones)
        )
        result = await db.execute(stmt)
        return {phone: rid for phone, rid in result.all()}

    async def questions_by_code(self, db: AsyncSession) -> dict[str, SurveyQuestion]:
        """Every active question keyed by code."""
        stmt = select(SurveyQuestion).where(SurveyQuestion.is_active.is_(True))
        result = await db.execute(stmt)
        return {q.question_code: q for q in result.scalars().all()}

    async def upsert_imported_answer(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        question: SurveyQuestion,
        value: Any,
        text_value: str | None,
        is_finalized: bool,
        answered_at: datetime | None = None,
    ) -> bool:
        """Write one answer from an import file.

        A finalized stored answer is never overwritten; returns False when
        the row was left untouched for that reason.
        """
        now = utcnow()
        stmt = pg_insert(SurveyResponse).values(
            id=uuid.uuid4(),
            respondent_id=respondent_id,
            question_id=question.id,
            phase_id=question.phase_id,
            session_id=None,
            question_code=question.question_code,
            answer_value=value,
            answer_text=text_value,
            is_finalized=is_finalized,
            answered_at=answered_at or now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_response_respondent_question",
            set_={
                "answer_value": stmt.excluded.answer_value,
                "answer_text": stmt.excluded.answer_text,
                "is_finalized": stmt.excluded.is_finalized,
                "answered_at": stmt.excluded.answered_at,
                "updated_at": now,
            },
            where=SurveyResponse.is_finalized.is_(False),
        ).returning(SurveyResponse.id)
        result = await db.execute(stmt)
        await db.flush()
        return result.scalar_one_or_none() is not None

    async def set_progress_status(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
        status: ProgressStatus,
        completion_percent: int,
    ) -> None:
        """Set a progress row's status and percentage.  Used only by imports.

        A ``completed`` row is left untouched.
        """
        now = utcnow()
        completed = status == ProgressStatus.COMPLETED
        stmt = pg_insert(PhaseProgress).values(
            id=uuid.uuid4(),
            respondent_id=respondent_id,
            phase_id=phase_id,
            status=status.value,
            last_step=0,
            completion_percent=completion_percent,
            started_at=now,
            completed_at=now if completed else None,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_progress_respondent_phase",
            set_={
                "status": stmt.excluded.status,
                "completion_percent": stmt.excluded.completion_percent,
                "completed_at": stmt.excluded.completed_at,
                "updated_at": now,
            },
            where=PhaseProgress.status != ProgressStatus.COMPLETED.value,
        )
        await db.execute(stmt)
        await db.flush()

    # ------------------------------------------------------------------
    # Questionnaire seeding
    # ------------------------------------------------------------------

    async def upsert_phase(
        self,
        db: AsyncSession,
        *,
        phase_code: str,
        phase_name: str,
        description: str | None,
        sort_order: int,
    ) -> uuid.UUID:
        stmt = pg_insert(SurveyPhase).values(
            id=uuid.uuid4(),
            phase_code=phase_code,
            phase_name=phase_name,
            description=description,
            sort_order=sort_order,
            is_active=True,
            created_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SurveyPhase.phase_code],
            set_={
                "phase_name": stmt.excluded.phase_name,
                "description": stmt.excluded.description,
                "sort_order": stmt.excluded.sort_order,
                "is_active": True,
            },
        ).returning(SurveyPhase.id)
        result = await db.execute(stmt)
        await db.flush()
        return result.scalar_one()

    async def upsert_question(
        self, db: AsyncSession, *, phase_id: uuid.UUID, values: dict[str, Any]
    ) -> None:
        """Insert or refresh one question; ``values`` mirrors the column names."""
        row = {**values, "phase_id": phase_id, "is_active": True}
        stmt = pg_insert(SurveyQuestion).values(id=uuid.uuid4(), created_at=utcnow(), **row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SurveyQuestion.question_code],
            set_={k: getattr(stmt.excluded, k) for k in row},
        )
        await db.execute(stmt)
        await db.flush()

    async def deactivate_missing(
        self, db: AsyncSession, *, phase_codes: set[str], question_codes: set[str]
    ) -> int:
        """Retire phases / questions no longer in the questionnaire file.

        Rows are deactivated rather than deleted so stored answers keep
        their foreign keys.
        """
        q = await db.execute(
            update(SurveyQuestion)
            .where(
                SurveyQuestion.question_code.not_in(question_codes),
                SurveyQuestion.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        p = await db.execute(
            update(SurveyPhase)
            .where(
                SurveyPhase.phase_code.not_in(phase_codes),
                SurveyPhase.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return (q.rowcount or 0) + (p.rowcount or 0)
