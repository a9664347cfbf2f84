"""Async repository for the respondent-facing survey flow.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries: methods ``flush()`` but never ``commit()``.

The repository avoids business-logic validation (that belongs in the SDK)
but does enforce the storage-level invariants:
  - answers are upserted on (respondent, question) and never touched once
    finalized
  - progress is upserted on (respondent, phase) and never regresses from
    ``completed``
"""

import logging
import uuid
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.audit import AuditLog
from survey_db.models.base import utcnow
from survey_db.models.enums import ProgressStatus, RespondentStatus, SessionStatus
from survey_db.models.progress import PhaseProgress
from survey_db.models.respondent import Respondent
from survey_db.models.response import SurveyResponse
from survey_db.models.session import ResponseSession
from survey_db.models.survey import SurveyPhase, SurveyQuestion

logger = logging.getLogger(__name__)


class SurveyRepository:
    """Async read/write operations used by ``SurveyEngine``."""

    # ------------------------------------------------------------------
    # Respondents
    # ------------------------------------------------------------------

    async def find_respondent_by_phone(
        self, db: AsyncSession, phone_normalized: str
    ) -> Respondent | None:
        """Fetch a respondent (any status) by normalized phone key."""
        stmt = select(Respondent).where(Respondent.phone_normalized == phone_normalized)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_respondent(
        self, db: AsyncSession, respondent_id: uuid.UUID
    ) -> Respondent | None:
        """Fetch a respondent by primary key."""
        return await db.get(Respondent, respondent_id)

    async def create_respondent(
        self,
        db: AsyncSession,
        *,
        full_name: str,
        phone_raw: str,
        phone_normalized: str,
        current_phase: str | None,
    ) -> Respondent:
        """Insert a new respondent row and return it."""
        now = utcnow()
        respondent = Respondent(
            full_name=full_name,
            phone_raw=phone_raw,
            phone_normalized=phone_normalized,
            current_phase=current_phase,
            status=RespondentStatus.ACTIVE,
            last_seen_at=now,
        )
        db.add(respondent)
        await db.flush()
        return respondent

    async def touch_respondent(
        self, db: AsyncSession, respondent: Respondent, *, full_name: str
    ) -> Respondent:
        """Refresh the display name (last write wins) and last-seen time."""
        now = utcnow()
        respondent.full_name = full_name
        respondent.last_seen_at = now
        respondent.updated_at = now
        await db.flush()
        return respondent

    async def set_current_phase(
        self, db: AsyncSession, respondent: Respondent, phase_code: str
    ) -> Respondent:
        """Rewrite the display cache of the respondent's current phase."""
        respondent.current_phase = phase_code
        respondent.updated_at = utcnow()
        await db.flush()
        return respondent

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def get_active_session(
        self, db: AsyncSession, respondent_id: uuid.UUID
    ) -> ResponseSession | None:
        """Return the respondent's active session, if any."""
        stmt = (
            select(ResponseSession)
            .where(
                ResponseSession.respondent_id == respondent_id,
                ResponseSession.status == SessionStatus.ACTIVE,
            )
            .order_by(ResponseSession.started_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_session(
        self, db: AsyncSession, respondent_id: uuid.UUID
    ) -> ResponseSession:
        """Insert a fresh active session with a random opaque token."""
        session = ResponseSession(
            respondent_id=respondent_id,
            session_token=str(uuid.uuid4()),
            status=SessionStatus.ACTIVE,
        )
        db.add(session)
        await db.flush()
        return session

    async def get_session_by_token(
        self, db: AsyncSession, token: str
    ) -> ResponseSession | None:
        """Look up a session (any status) by its bearer token."""
        stmt = select(ResponseSession).where(ResponseSession.session_token == token)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def touch_session(
        self,
        db: AsyncSession,
        session: ResponseSession,
        *,
        phase_code: str | None = None,
        step: int | None = None,
    ) -> ResponseSession:
        """Bump activity and optionally record the last visited position."""
        session.last_activity_at = utcnow()
        if phase_code is not None:
            session.last_phase = phase_code
        if step is not None:
            session.last_step = step
        await db.flush()
        return session

    async def complete_session(
        self, db: AsyncSession, session: ResponseSession
    ) -> ResponseSession:
        """Close the session after the last phase is completed."""
        now = utcnow()
        session.status = SessionStatus.COMPLETED
        session.completed_at = now
        session.last_activity_at = now
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Questionnaire
    # ------------------------------------------------------------------

    async def list_active_phases(self, db: AsyncSession) -> list[SurveyPhase]:
        """Active phases ordered by sort order."""
        stmt = (
            select(SurveyPhase)
            .where(SurveyPhase.is_active.is_(True))
            .order_by(SurveyPhase.sort_order, SurveyPhase.phase_code)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_phase_by_code(
        self, db: AsyncSession, phase_code: str
    ) -> SurveyPhase | None:
        """Fetch an active phase by its code."""
        stmt = select(SurveyPhase).where(
            SurveyPhase.phase_code == phase_code,
            SurveyPhase.is_active.is_(True),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_questions(
        self, db: AsyncSession, phase_id: uuid.UUID
    ) -> list[SurveyQuestion]:
        """Active questions of one phase ordered by sort order."""
        stmt = (
            select(SurveyQuestion)
            .where(
                SurveyQuestion.phase_id == phase_id,
                SurveyQuestion.is_active.is_(True),
            )
            .order_by(SurveyQuestion.sort_order, SurveyQuestion.question_code)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_progress(
        self, db: AsyncSession, respondent_id: uuid.UUID
    ) -> list[PhaseProgress]:
        """All progress rows for a respondent.

        ``populate_existing`` refreshes rows already in the identity map,
        since the upserts below bypass it.
        """
        stmt = (
            select(PhaseProgress)
            .where(PhaseProgress.respondent_id == respondent_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def upsert_progress(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
        last_step: int,
        completion_percent: int,
    ) -> None:
        """Stamp a phase ``in_progress`` with the latest step and percentage.

        A ``completed`` row is left untouched.
        """
        now = utcnow()
        stmt = pg_insert(PhaseProgress).values(
            id=uuid.uuid4(),
            respondent_id=respondent_id,
            phase_id=phase_id,
            status=ProgressStatus.IN_PROGRESS.value,
            last_step=last_step,
            completion_percent=completion_percent,
            started_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_progress_respondent_phase",
            set_={
                "status": ProgressStatus.IN_PROGRESS.value,
                "last_step": stmt.excluded.last_step,
                "completion_percent": stmt.excluded.completion_percent,
                "started_at": func.coalesce(PhaseProgress.started_at, stmt.excluded.started_at),
                "updated_at": now,
            },
            where=PhaseProgress.status != ProgressStatus.COMPLETED.value,
        )
        await db.execute(stmt)
        await db.flush()

    async def complete_progress(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
    ) -> None:
        """Mark a phase ``completed`` at 100%.  Re-completing is a no-op."""
        now = utcnow()
        stmt = pg_insert(PhaseProgress).values(
            id=uuid.uuid4(),
            respondent_id=respondent_id,
            phase_id=phase_id,
            status=ProgressStatus.COMPLETED.value,
            last_step=0,
            completion_percent=100,
            started_at=now,
            completed_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_progress_respondent_phase",
            set_={
                "status": ProgressStatus.COMPLETED.value,
                "completion_percent": 100,
                "started_at": func.coalesce(PhaseProgress.started_at, stmt.excluded.started_at),
                "completed_at": now,
                "updated_at": now,
            },
            where=PhaseProgress.status != ProgressStatus.COMPLETED.value,
        )
        await db.execute(stmt)
        await db.flush()

    async def ensure_progress(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
    ) -> None:
        """Create a ``not_started`` row if none exists yet."""
        stmt = (
            pg_insert(PhaseProgress)
            .values(
                id=uuid.uuid4(),
                respondent_id=respondent_id,
                phase_id=phase_id,
                status=ProgressStatus.NOT_STARTED.value,
                last_step=0,
                completion_percent=0,
                updated_at=utcnow(),
            )
            .on_conflict_do_nothing(constraint="uq_progress_respondent_phase")
        )
        await db.execute(stmt)
        await db.flush()

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def upsert_answers(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
        session_id: uuid.UUID | None,
        answers: list[tuple[SurveyQuestion, Any, str | None]],
    ) -> set[str]:
        """Upsert ``(question, value, text)`` triples; return codes actually written.

        Rows that are already finalized are skipped by the conflict clause,
        so their codes are absent from the returned set.
        """
        if not answers:
            return set()
        now = utcnow()
        rows = [
            {
                "id": uuid.uuid4(),
                "respondent_id": respondent_id,
                "question_id": question.id,
                "phase_id": phase_id,
                "session_id": session_id,
                "question_code": question.question_code,
                "answer_value": value,
                "answer_text": text_value,
                "is_finalized": False,
                "answered_at": now,
                "updated_at": now,
            }
            for question, value, text_value in answers
        ]
        stmt = pg_insert(SurveyResponse).values(rows)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_response_respondent_question",
            set_={
                "answer_value": stmt.excluded.answer_value,
                "answer_text": stmt.excluded.answer_text,
                "session_id": stmt.excluded.session_id,
                "updated_at": now,
            },
            where=SurveyResponse.is_finalized.is_(False),
        ).returning(SurveyResponse.question_code)
        result = await db.execute(stmt)
        written = set(result.scalars().all())
        await db.flush()
        return written

    async def clear_answers(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
        question_codes: list[str],
    ) -> set[str]:
        """Delete unfinalized answers the respondent has blanked; return codes removed."""
        if not question_codes:
            return set()
        stmt = (
            delete(SurveyResponse)
            .where(
                SurveyResponse.respondent_id == respondent_id,
                SurveyResponse.phase_id == phase_id,
                SurveyResponse.question_code.in_(question_codes),
                SurveyResponse.is_finalized.is_(False),
            )
            .returning(SurveyResponse.question_code)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        cleared = set(result.scalars().all())
        await db.flush()
        return cleared

    async def finalize_answers(
        self,
        db: AsyncSession,
        *,
        respondent_id: uuid.UUID,
        phase_id: uuid.UUID,
    ) -> int:
        """Lock every answer of one phase against further autosave."""
        stmt = (
            update(SurveyResponse)
            .where(
                SurveyResponse.respondent_id == respondent_id,
                SurveyResponse.phase_id == phase_id,
                SurveyResponse.is_finalized.is_(False),
            )
            .values(is_finalized=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0

    async def get_answers(
        self,
        db: AsyncSession,
        respondent_id: uuid.UUID,
        *,
        phase_id: uuid.UUID | None = None,
    ) -> list[SurveyResponse]:
        """Stored answers of a respondent, optionally limited to one phase."""
        stmt = (
            select(SurveyResponse)
            .where(SurveyResponse.respondent_id == respondent_id)
            .execution_options(populate_existing=True)
        )
        if phase_id is not None:
            stmt = stmt.where(SurveyResponse.phase_id == phase_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def log_event(
        self,
        db: AsyncSession,
        *,
        actor_type: str,
        event_type: str,
        actor_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Append an audit event inside a savepoint.

        A failure is logged and rolled back to the savepoint so it never
        aborts the surrounding request.
        """
        try:
            async with db.begin_nested():
                db.add(
                    AuditLog(
                        actor_type=actor_type,
                        actor_id=actor_id,
                        event_type=event_type,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        payload=payload or {},
                    )
                )
        except SQLAlchemyError:
            logger.exception("Failed to write audit event %s", event_type)
