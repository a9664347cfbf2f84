"""Questionnaire reference endpoints — phases and their questions."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.engine import SurveyEngine
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import PhaseSummary

from survey_server.dependencies import get_db, get_engine

router = APIRouter(prefix="/survey", tags=["survey"])


@router.get("/phases")
async def list_phases(
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> list[PhaseSummary]:
    """Active phases in order."""
    return await engine.list_phases(db)


@router.get("/questions")
async def list_questions(
    phase: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    engine: SurveyEngine = Depends(get_engine),
) -> list[QuestionDef]:
    """Active questions of one phase in display order.  404 for an unknown phase."""
    return await engine.get_questions(db, phase)
