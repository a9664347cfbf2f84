"""Resume resolution and phase locking.

The progress rows are the single source of truth for where a respondent
stands.  ``Respondent.current_phase`` is only a display cache and is never
consulted here.

Phase status transitions (one-way):
    not_started -> in_progress -> completed
"""

from collections.abc import Iterable

from survey_flow.constants import COMPLETED_MARKER
from survey_flow.models.session import PhaseSummary, ResumePoint


def _ordered(phases: Iterable[PhaseSummary]) -> list[PhaseSummary]:
    return sorted(phases, key=lambda p: p.sort_order)


def resolve_resume_point(phases: Iterable[PhaseSummary]) -> ResumePoint:
    """Return the single entry point for a respondent.

    Scans phases in ascending sort order:
      - not_started (or no progress row) → that phase, step 0
      - in_progress → that phase, at its last recorded step
      - completed → keep scanning
    When every phase is completed the result is the terminal done state.
    """
    for phase in _ordered(phases):
        if phase.status == "completed":
            continue
        if phase.status == "in_progress":
            return ResumePoint(phase_code=phase.phase_code, step=max(phase.last_step, 0))
        return ResumePoint(phase_code=phase.phase_code, step=0)
    return ResumePoint()


def find_blocking_phase(
    phases: Iterable[PhaseSummary], phase_code: str
) -> PhaseSummary | None:
    """Return the first phase before *phase_code* that is not completed.

    Returns None when every earlier phase is completed (or *phase_code* is
    not among *phases*, in which case nothing is "earlier").
    """
    ordered = _ordered(phases)
    if phase_code not in {p.phase_code for p in ordered}:
        return None
    for phase in ordered:
        if phase.phase_code == phase_code:
            return None
        if phase.status != "completed":
            return phase
    return None


def next_phase_after(
    phases: Iterable[PhaseSummary], phase_code: str
) -> PhaseSummary | None:
    """Return the phase strictly after *phase_code* in sort order, if any."""
    ordered = _ordered(phases)
    for i, phase in enumerate(ordered):
        if phase.phase_code == phase_code:
            return ordered[i + 1] if i + 1 < len(ordered) else None
    return None


def current_phase_marker(point: ResumePoint) -> str:
    """Value cached on the respondent: a phase code or the completed marker."""
    return point.phase_code or COMPLETED_MARKER
