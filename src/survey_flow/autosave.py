"""AutosaveCoordinator — debounced, single-flight persistence of answers.

One coordinator is owned by one phase page.  It holds the authoritative
in-memory answer map and turns bursts of edits into at most one backend
call per quiet period:

  - every edit updates the map immediately and (re)schedules a save task
  - a pending task that has not fired yet is cancelled and replaced
  - a fired task runs under a lock, so two saves are never in flight
  - each save sends every question the respondent has touched, blanks
    included so a cleared answer is removed server-side; retrying a full
    payload is always safe
  - an explicit flush is sent even without answers, so the current step
    is still recorded
  - background failures are logged and swallowed; ``flush(required=True)``
    is the only path that raises
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from survey_flow.constants import AUTOSAVE_DEBOUNCE_SECONDS, SUBMISSION_FAILED_MESSAGE
from survey_flow.errors import SurveyError, TransientError
from survey_flow.interfaces import SurveyBackend
from survey_flow.models.session import SaveResult

logger = logging.getLogger(__name__)


class AutosaveCoordinator:
    """Session-scoped autosave state for one phase.

    Args:
        backend: where saves are sent
        phase_code: the phase being answered
        question_codes: every question code of the phase (payload scope)
        answers: previously saved answers to start from
        step: index of the step currently shown
        debounce: quiet period in seconds before a scheduled save fires
    """

    def __init__(
        self,
        backend: SurveyBackend,
        phase_code: str,
        question_codes: Iterable[str],
        *,
        answers: dict[str, Any] | None = None,
        step: int = 0,
        debounce: float = AUTOSAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self._backend = backend
        self.phase_code = phase_code
        self._codes = list(question_codes)
        self.answers: dict[str, Any] = dict(answers or {})
        self.step = step
        self._debounce = debounce

        # Scheduled but not yet fired
        self._pending: asyncio.Task | None = None
        # Strong references to every task we created until it finishes
        self._tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

        self.saving = False
        self.last_saved_at: datetime | None = None
        self.last_error: Exception | None = None

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_answer(self, question_code: str, value: Any) -> None:
        """Record an edit and schedule a debounced save."""
        self.answers[question_code] = value
        self._schedule()

    def payload(self) -> dict[str, Any]:
        """Every touched question of the phase, in question order."""
        return {code: self.answers[code] for code in self._codes if code in self.answers}

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        self.cancel_pending()
        task = asyncio.get_running_loop().create_task(self._debounced())
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _debounced(self) -> None:
        await asyncio.sleep(self._debounce)
        # Fired: later edits schedule a new task instead of cancelling this one
        if self._pending is asyncio.current_task():
            self._pending = None
        await self._save(required=False, allow_empty=False)

    def cancel_pending(self) -> None:
        """Drop a scheduled save that has not fired yet."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def drain(self) -> None:
        """Wait for every scheduled and in-flight save to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def flush(self, *, required: bool = False) -> SaveResult | None:
        """Save now, replacing any scheduled save.

        With ``required=True`` a failure raises; otherwise it is logged and
        the in-memory answers stay authoritative.
        """
        self.cancel_pending()
        return await self._save(required=required, allow_empty=True)

    async def _save(self, *, required: bool, allow_empty: bool) -> SaveResult | None:
        async with self._lock:
            payload = self.payload()
            if not payload and not allow_empty:
                return None
            self.saving = True
            try:
                result = await self._backend.save_answers(self.phase_code, payload, self.step)
            except Exception as exc:
                self.last_error = exc
                if required:
                    if isinstance(exc, SurveyError):
                        raise
                    raise TransientError(SUBMISSION_FAILED_MESSAGE, detail=str(exc)) from exc
                logger.warning("Autosave for %s failed: %s", self.phase_code, exc)
                return None
            finally:
                self.saving = False

            self.last_error = None
            self.last_saved_at = result.saved_at or datetime.now(timezone.utc)
            return result
