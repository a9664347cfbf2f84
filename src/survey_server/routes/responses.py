"""Autosave endpoint."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.engine import SurveyEngine
from survey_flow.models.session import SaveResult

from survey_server.dependencies import get_db, get_engine, get_session_token

router = APIRouter(prefix="/responses", tags=["responses"])


class SaveRequest(BaseModel):
    """Body for POST /responses/save."""
    phase_code: str
    answers: dict[str, Any]
    # Step the respondent is on; recorded as the phase's resume step
    step: int | None = None


@router.post("/save")
async def save_answers(
    body: SaveRequest,
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> SaveResult:
    """Idempotently upsert answers for one phase.

    Safe to retry: repeating a save writes the same values again.
    Finalized answers are reported in ``skipped`` and left untouched; a
    blank value removes the stored answer and is reported in ``cleared``.
    """
    return await engine.save_answers(
        db,
        token,
        phase_code=body.phase_code,
        answers=body.answers,
        step=body.step,
    )
