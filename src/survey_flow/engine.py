"""SurveyEngine — orchestrates the respondent flow across ordered phases.

Stateless engine pattern: each call loads state from the database,
computes the outcome, persists changes and returns a pydantic model.  No
in-memory state is kept between calls.

The engine accepts an ``AsyncSession`` from the caller so that the caller
(typically a FastAPI dependency) controls transaction boundaries; the
repository only flushes.

Respondent flow:
    start         — register or log in by name + phone, get a session token
    resume        — rebuild client state from a token
    open_phase    — entry guard + steps for one phase (redirects when locked)
    save_answers  — autosave: idempotent upsert of a phase's answers
    complete_phase — validate and finalize a phase, advance to the next one
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.enums import (
    ActorType,
    ProgressStatus,
    RespondentStatus,
    SessionStatus,
)
from survey_db.repository import SurveyRepository

from survey_flow.constants import (
    COMPLETED_MARKER,
    MIN_NAME_LENGTH,
    QUESTIONS_PER_STEP,
    SUBMISSION_FAILED_MESSAGE,
    TERMINAL_PHASE,
)
from survey_flow.errors import (
    AuthorizationError,
    InputValidationError,
    NotFoundError,
    PhaseLockedError,
    StepValidationError,
    TransientError,
)
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import (
    CompletionResult,
    PhaseRedirect,
    PhaseStep,
    PhaseSummary,
    PhaseView,
    RespondentInfo,
    ResumeState,
    SaveResult,
    SessionInfo,
    StartResult,
    SurveyDone,
)
from survey_flow.phone import validate_phone
from survey_flow.resume import (
    find_blocking_phase,
    next_phase_after,
    resolve_resume_point,
)
from survey_flow.steps import clamp_step, partition_steps
from survey_flow.validation import (
    answer_text,
    coerce_answer,
    completion_percent,
    is_blank,
    validate_phase,
)

logger = logging.getLogger(__name__)


def _enum_value(value) -> str:
    """Plain string for a status column (ORM rows may hold the enum or its value)."""
    return value.value if isinstance(value, enum.Enum) else str(value)


def phase_summaries(phases, progress_rows) -> list[PhaseSummary]:
    """Join ordered phase rows with progress rows (missing → not_started)."""
    by_phase = {p.phase_id: p for p in progress_rows}
    summaries = []
    for phase in phases:
        row = by_phase.get(phase.id)
        summaries.append(
            PhaseSummary(
                phase_code=phase.phase_code,
                phase_name=phase.phase_name,
                description=phase.description,
                sort_order=phase.sort_order,
                status=_enum_value(row.status) if row else ProgressStatus.NOT_STARTED.value,
                last_step=row.last_step if row else 0,
                completion_percent=row.completion_percent if row else 0,
            )
        )
    return summaries


class SurveyEngine:
    """Respondent-facing survey flow.

    Args:
        step_size: questions per step when partitioning a phase
    """

    def __init__(self, step_size: int = QUESTIONS_PER_STEP) -> None:
        self._repo = SurveyRepository()
        self._step_size = step_size

    # ==================================================================
    # Registration / resume
    # ==================================================================

    async def start(
        self, db: AsyncSession, *, full_name: str | None, phone: str | None
    ) -> StartResult:
        """Register a new respondent or log a returning one back in.

        Returning respondents are matched by normalized phone; their name is
        refreshed and their active session reused (or a new one created).
        """
        name = (full_name or "").strip()
        if len(name) < MIN_NAME_LENGTH:
            raise InputValidationError(
                f"Full name is required (minimum {MIN_NAME_LENGTH} characters)."
            )
        check = validate_phone(phone)
        if not check.valid:
            raise InputValidationError(check.error)

        phases = await self._repo.list_active_phases(db)
        respondent = await self._repo.find_respondent_by_phone(db, check.normalized)

        if respondent is not None and respondent.status != RespondentStatus.ACTIVE:
            # Soft-deleted by an administrator; the phone key stays reserved
            raise InputValidationError(
                "This phone number cannot be used right now. "
                "Please contact the survey team.",
                detail=f"Respondent {respondent.id} is {respondent.status}",
            )

        if respondent is not None:
            returning = True
            await self._repo.touch_respondent(db, respondent, full_name=name)
            session = await self._repo.get_active_session(db, respondent.id)
            if session is None:
                session = await self._repo.create_session(db, respondent.id)
            else:
                await self._repo.touch_session(db, session)
            event = "resumed_session"
        else:
            returning = False
            respondent = await self._repo.create_respondent(
                db,
                full_name=name,
                phone_raw=(phone or "").strip(),
                phone_normalized=check.normalized,
                current_phase=phases[0].phase_code if phases else COMPLETED_MARKER,
            )
            session = await self._repo.create_session(db, respondent.id)
            event = "created"

        await self._repo.log_event(
            db,
            actor_type=ActorType.RESPONDENT.value,
            actor_id=str(respondent.id),
            event_type=event,
            entity_type="respondent",
            entity_id=str(respondent.id),
            payload={"phone_normalized": check.normalized},
        )

        progress = await self._repo.get_progress(db, respondent.id)
        point = resolve_resume_point(self._summaries(phases, progress))
        logger.info(
            "Respondent %s %s, resume at %s step %d",
            respondent.id, event, point.target, point.step,
        )
        return StartResult(
            respondent=self._to_respondent_info(respondent),
            session_token=session.session_token,
            returning=returning,
            resume=point,
            next=point.target,
        )

    async def resume(self, db: AsyncSession, token: str | None) -> ResumeState:
        """Return respondent, session, per-phase progress and saved answers.

        Closed sessions are accepted so a finished respondent still sees the
        done state.
        """
        session, respondent = await self._authenticate(db, token, require_active=False)
        phases = await self._repo.list_active_phases(db)
        progress = await self._repo.get_progress(db, respondent.id)
        summaries = self._summaries(phases, progress)
        answers = await self._repo.get_answers(db, respondent.id)
        point = resolve_resume_point(summaries)
        return ResumeState(
            respondent=self._to_respondent_info(respondent),
            session=self._to_session_info(session),
            phases=summaries,
            saved_answers={a.question_code: a.answer_value for a in answers},
            resume=point,
            next=point.target,
        )

    async def logout(self, db: AsyncSession, token: str | None) -> None:
        """Acknowledge a logout.  Sessions stay resumable; nothing is revoked."""
        if not token:
            return
        session = await self._repo.get_session_by_token(db, token)
        if session is not None:
            await self._repo.log_event(
                db,
                actor_type=ActorType.RESPONDENT.value,
                actor_id=str(session.respondent_id),
                event_type="logged_out",
                entity_type="session",
                entity_id=str(session.id),
            )

    # ==================================================================
    # Questionnaire reads
    # ==================================================================

    async def list_phases(self, db: AsyncSession) -> list[PhaseSummary]:
        """Active phases in order, without respondent progress."""
        phases = await self._repo.list_active_phases(db)
        return self._summaries(phases, [])

    async def get_questions(self, db: AsyncSession, phase_code: str) -> list[QuestionDef]:
        """Active questions of one phase in order."""
        phase = await self._repo.get_phase_by_code(db, phase_code)
        if phase is None:
            raise NotFoundError(
                "Survey phase not found.", detail=f"Phase not found: {phase_code}"
            )
        rows = await self._repo.list_questions(db, phase.id)
        return [self._to_question_def(r) for r in rows]

    # ==================================================================
    # Phase entry guard
    # ==================================================================

    async def open_phase(
        self, db: AsyncSession, token: str | None, phase_code: str
    ) -> PhaseStep:
        """Load a phase for rendering, enforcing the hard lock.

        Returns a ``PhaseRedirect`` when an earlier phase is not completed
        or the requested phase is already completed, ``SurveyDone`` when
        nothing remains, and a ``PhaseView`` otherwise.
        """
        _, respondent = await self._authenticate(db, token, require_active=False)
        phases = await self._repo.list_active_phases(db)
        phase = next((p for p in phases if p.phase_code == phase_code), None)
        if phase is None:
            raise NotFoundError(
                "Survey phase not found.", detail=f"Phase not found: {phase_code}"
            )

        progress = await self._repo.get_progress(db, respondent.id)
        summaries = self._summaries(phases, progress)

        blocking = find_blocking_phase(summaries, phase_code)
        if blocking is not None:
            logger.info(
                "Respondent %s tried %s; redirected to %s",
                respondent.id, phase_code, blocking.phase_code,
            )
            step = blocking.last_step if blocking.status == ProgressStatus.IN_PROGRESS else 0
            return PhaseRedirect(phase_code=blocking.phase_code, step=step, reason="locked")

        summary = next(s for s in summaries if s.phase_code == phase_code)
        if summary.status == ProgressStatus.COMPLETED:
            point = resolve_resume_point(summaries)
            if point.done:
                return SurveyDone()
            return PhaseRedirect(phase_code=point.phase_code, step=point.step, reason="completed")

        rows = await self._repo.list_questions(db, phase.id)
        steps = partition_steps([self._to_question_def(r) for r in rows], self._step_size)
        stored = await self._repo.get_answers(db, respondent.id, phase_id=phase.id)
        start = summary.last_step if summary.status == ProgressStatus.IN_PROGRESS else 0
        return PhaseView(
            phase=summary,
            steps=steps,
            answers={a.question_code: a.answer_value for a in stored},
            start_step=clamp_step(start, steps),
        )

    # ==================================================================
    # Autosave
    # ==================================================================

    async def save_answers(
        self,
        db: AsyncSession,
        token: str | None,
        *,
        phase_code: str,
        answers: dict[str, Any],
        step: int | None = None,
    ) -> SaveResult:
        """Persist one autosave attempt for a phase.

        Every value is coerced to its question's declared type first.  The
        upsert is idempotent by (respondent, question) and never touches a
        finalized answer; progress becomes ``in_progress`` with the step.
        A blank value clears the stored answer.  An empty ``answers`` with a
        ``step`` only records where the respondent is.
        """
        if not answers and step is None:
            raise InputValidationError("No answers to save.")

        session, respondent = await self._authenticate(db, token)
        phases = await self._repo.list_active_phases(db)
        phase = next((p for p in phases if p.phase_code == phase_code), None)
        if phase is None:
            raise NotFoundError(
                "Survey phase not found.", detail=f"Phase not found: {phase_code}"
            )

        progress = await self._repo.get_progress(db, respondent.id)
        summaries = self._summaries(phases, progress)
        blocking = find_blocking_phase(summaries, phase_code)
        if blocking is not None:
            raise PhaseLockedError(blocking.phase_code)
        summary = next(s for s in summaries if s.phase_code == phase_code)
        if summary.status == ProgressStatus.COMPLETED:
            raise PhaseLockedError(
                phase_code, "This section has already been submitted."
            )

        rows = {r.question_code: r for r in await self._repo.list_questions(db, phase.id)}
        unknown = sorted(code for code in answers if code not in rows)
        if unknown:
            raise InputValidationError(
                "Some answers do not belong to this section.",
                detail=f"Unknown question codes for {phase_code}: {unknown}",
            )
        defs = {code: self._to_question_def(row) for code, row in rows.items()}

        triples = []
        blanks = []
        for code, raw in answers.items():
            value = coerce_answer(defs[code], raw)
            if is_blank(value):
                blanks.append(code)
                continue
            triples.append((rows[code], value, answer_text(value)))

        written = await self._repo.upsert_answers(
            db,
            respondent_id=respondent.id,
            phase_id=phase.id,
            session_id=session.id,
            answers=triples,
        )
        cleared = await self._repo.clear_answers(
            db,
            respondent_id=respondent.id,
            phase_id=phase.id,
            question_codes=blanks,
        )
        stored = await self._repo.get_answers(db, respondent.id, phase_id=phase.id)
        finalized = {a.question_code for a in stored if a.is_finalized}
        skipped = sorted(
            ({row.question_code for row, _, _ in triples} - written)
            | (set(blanks) & finalized)
        )
        if skipped:
            logger.warning(
                "Respondent %s: finalized answers left untouched: %s",
                respondent.id, skipped,
            )

        stored_map = {a.question_code: a.answer_value for a in stored}
        percent = completion_percent(list(defs.values()), stored_map)
        steps = partition_steps(list(defs.values()), self._step_size)
        last_step = clamp_step(summary.last_step if step is None else step, steps)

        await self._repo.upsert_progress(
            db,
            respondent_id=respondent.id,
            phase_id=phase.id,
            last_step=last_step,
            completion_percent=percent,
        )
        await self._repo.touch_session(db, session, phase_code=phase_code, step=last_step)
        return SaveResult(
            phase_code=phase_code,
            saved=len(written),
            cleared=sorted(cleared),
            skipped=skipped,
            last_step=last_step,
            completion_percent=percent,
            saved_at=session.last_activity_at,
        )

    # ==================================================================
    # Phase completion
    # ==================================================================

    async def complete_phase(
        self,
        db: AsyncSession,
        token: str | None,
        phase_code: str,
        *,
        answers: dict[str, Any] | None = None,
    ) -> CompletionResult:
        """Validate and finalize a phase, then advance the respondent.

        Preconditions (session, phase, lock, required answers) are checked
        before anything is written.  The effects then run inside the
        caller's transaction; a storage failure surfaces as a retryable
        ``TransientError`` and the caller rolls everything back.

        Completing an already completed phase returns the same outcome
        again without writing.
        """
        session, respondent = await self._authenticate(db, token, require_active=False)
        phases = await self._repo.list_active_phases(db)
        by_code = {p.phase_code: p for p in phases}
        phase = by_code.get(phase_code)
        if phase is None:
            raise NotFoundError(
                "Survey phase not found.", detail=f"Phase not found: {phase_code}"
            )

        progress = await self._repo.get_progress(db, respondent.id)
        summaries = self._summaries(phases, progress)
        summary = next(s for s in summaries if s.phase_code == phase_code)
        nxt = next_phase_after(summaries, phase_code)

        if summary.status == ProgressStatus.COMPLETED:
            return CompletionResult(
                phase_code=phase_code,
                next=nxt.phase_code if nxt else TERMINAL_PHASE,
                current_phase=respondent.current_phase or COMPLETED_MARKER,
                session_completed=session.status == SessionStatus.COMPLETED,
            )
        if session.status != SessionStatus.ACTIVE:
            raise AuthorizationError(detail=f"Session {session.id} is not active")

        blocking = find_blocking_phase(summaries, phase_code)
        if blocking is not None:
            raise PhaseLockedError(blocking.phase_code)

        rows = {r.question_code: r for r in await self._repo.list_questions(db, phase.id)}
        defs = {code: self._to_question_def(row) for code, row in rows.items()}
        steps = partition_steps(list(defs.values()), self._step_size)

        # --- (a) merge outstanding answers and validate before writing ---
        supplied: dict[str, Any] = {}
        blanks: list[str] = []
        for code, raw in (answers or {}).items():
            if code not in defs:
                raise InputValidationError(
                    "Some answers do not belong to this section.",
                    detail=f"Unknown question code for {phase_code}: {code}",
                )
            value = coerce_answer(defs[code], raw)
            if is_blank(value):
                blanks.append(code)
            else:
                supplied[code] = value

        stored = await self._repo.get_answers(db, respondent.id, phase_id=phase.id)
        merged = {a.question_code: a.answer_value for a in stored}
        finalized = {a.question_code for a in stored if a.is_finalized}
        # Finalized answers win over anything supplied now
        for code in blanks:
            if code not in finalized:
                merged.pop(code, None)
        merged.update({c: v for c, v in supplied.items() if c not in finalized})
        issue = validate_phase(steps, merged)
        if issue is not None:
            raise StepValidationError(issue.question_code, issue.step_index or 0, issue.message)

        marker = nxt.phase_code if nxt else COMPLETED_MARKER
        try:
            if blanks:
                await self._repo.clear_answers(
                    db,
                    respondent_id=respondent.id,
                    phase_id=phase.id,
                    question_codes=blanks,
                )
            if supplied:
                await self._repo.upsert_answers(
                    db,
                    respondent_id=respondent.id,
                    phase_id=phase.id,
                    session_id=session.id,
                    answers=[
                        (rows[code], value, answer_text(value))
                        for code, value in supplied.items()
                    ],
                )
            # --- (b) progress completed, (c) finalize answers ---
            await self._repo.complete_progress(
                db, respondent_id=respondent.id, phase_id=phase.id
            )
            await self._repo.finalize_answers(
                db, respondent_id=respondent.id, phase_id=phase.id
            )
            # --- (d)/(e) advance the display cache ---
            await self._repo.set_current_phase(db, respondent, marker)
            # --- (f) close the session or seed the next phase ---
            if nxt is None:
                await self._repo.complete_session(db, session)
            else:
                await self._repo.ensure_progress(
                    db,
                    respondent_id=respondent.id,
                    phase_id=by_code[nxt.phase_code].id,
                )
                await self._repo.touch_session(db, session, phase_code=phase_code)
        except SQLAlchemyError as exc:
            logger.error(
                "Completion of %s failed for respondent %s: %s",
                phase_code, respondent.id, exc,
            )
            raise TransientError(SUBMISSION_FAILED_MESSAGE, detail=str(exc)) from exc

        await self._repo.log_event(
            db,
            actor_type=ActorType.RESPONDENT.value,
            actor_id=str(respondent.id),
            event_type="phase_completed",
            entity_type="phase",
            entity_id=str(phase.id),
            payload={"phase_code": phase_code, "next_phase": marker},
        )
        logger.info("Respondent %s completed %s -> %s", respondent.id, phase_code, marker)
        return CompletionResult(
            phase_code=phase_code,
            next=nxt.phase_code if nxt else TERMINAL_PHASE,
            current_phase=marker,
            session_completed=nxt is None,
        )

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _authenticate(
        self, db: AsyncSession, token: str | None, *, require_active: bool = True
    ):
        """Resolve a bearer token to ``(session, respondent)`` or raise 401."""
        if not token:
            raise AuthorizationError(detail="Missing session token")
        session = await self._repo.get_session_by_token(db, token)
        if session is None:
            raise AuthorizationError(detail="Unknown session token")
        if require_active and session.status != SessionStatus.ACTIVE:
            raise AuthorizationError(detail=f"Session {session.id} is {session.status}")
        respondent = await self._repo.get_respondent(db, session.respondent_id)
        if respondent is None or respondent.status != RespondentStatus.ACTIVE:
            raise AuthorizationError(
                detail=f"Respondent for session {session.id} is missing or deleted"
            )
        return session, respondent

    _summaries = staticmethod(phase_summaries)

    @staticmethod
    def _to_question_def(row) -> QuestionDef:
        return QuestionDef.model_validate(row, from_attributes=True)

    @staticmethod
    def _to_respondent_info(row) -> RespondentInfo:
        return RespondentInfo(
            id=str(row.id),
            full_name=row.full_name,
            phone_normalized=row.phone_normalized,
            current_phase=row.current_phase,
        )

    @staticmethod
    def _to_session_info(row) -> SessionInfo:
        return SessionInfo(
            session_token=row.session_token,
            status=_enum_value(row.status),
            last_phase=row.last_phase,
            last_step=row.last_step,
            last_activity_at=row.last_activity_at,
        )
