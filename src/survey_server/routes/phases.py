"""Phase endpoints — entry guard and completion.

``GET /phases/{code}`` never returns a locked phase: the response is a
``PhaseView`` to render, a ``PhaseRedirect`` to follow, or ``SurveyDone``.
Dispatch on the ``type`` field.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.engine import SurveyEngine
from survey_flow.models.session import CompletionResult, PhaseStep

from survey_server.dependencies import get_db, get_engine, get_session_token

router = APIRouter(prefix="/phases", tags=["phases"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class CompleteRequest(BaseModel):
    """Body for POST /phases/{phase_code}/complete.

    ``answers`` carries edits not yet autosaved; they are merged over the
    stored answers before validation.
    """
    answers: dict[str, Any] = Field(default_factory=dict)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/{phase_code}")
async def open_phase(
    phase_code: str,
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> PhaseStep:
    """Load a phase for rendering, or where to go instead."""
    return await engine.open_phase(db, token, phase_code)


@router.post("/{phase_code}/complete")
async def complete_phase(
    phase_code: str,
    body: CompleteRequest | None = None,
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> CompletionResult:
    """Validate and finalize a phase, then advance.

    409 when an earlier phase is incomplete, 422 with ``question_code`` and
    ``step`` when a required answer is missing, 503 on a storage failure.
    """
    answers = body.answers if body is not None else {}
    return await engine.complete_phase(db, token, phase_code, answers=answers)
