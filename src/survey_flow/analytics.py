"""Dashboard aggregations computed in memory from repository snapshots.

The repository hands over plain tuples; everything here is pure so it can
be exercised without a database.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable
from typing import Any

from survey_flow.models.admin import (
    FunnelStage,
    FunnelStats,
    LikertSummary,
    OptionCount,
    PhaseStats,
    QuestionAnalytics,
)
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import PhaseSummary

# (respondent_id, phase_code, status, completion_percent)
ProgressRow = tuple[Any, str, str, int]


def build_funnel(
    phases: list[PhaseSummary],
    registered: int,
    progress: Iterable[ProgressRow],
) -> FunnelStats:
    """Registered → started / completed per phase → completed everything."""
    started: Counter[str] = Counter()
    completed: Counter[str] = Counter()
    done_by_respondent: dict[Any, set[str]] = defaultdict(set)
    for respondent_id, phase_code, status, _ in progress:
        if status in ("in_progress", "completed"):
            started[phase_code] += 1
        if status == "completed":
            completed[phase_code] += 1
            done_by_respondent[respondent_id].add(phase_code)

    codes = {p.phase_code for p in phases}
    completed_all = (
        sum(1 for done in done_by_respondent.values() if codes <= done) if codes else 0
    )
    return FunnelStats(
        registered=registered,
        stages=[
            FunnelStage(
                phase_code=p.phase_code,
                phase_name=p.phase_name,
                started=started[p.phase_code],
                completed=completed[p.phase_code],
            )
            for p in sorted(phases, key=lambda p: p.sort_order)
        ],
        completed_all=completed_all,
    )


def build_phase_stats(
    phases: list[PhaseSummary],
    registered: int,
    progress: Iterable[ProgressRow],
) -> list[PhaseStats]:
    """Status distribution per phase.  Missing rows count as not started."""
    counts: dict[str, Counter[str]] = defaultdict(Counter)
    percents: dict[str, list[int]] = defaultdict(list)
    for _, phase_code, status, pct in progress:
        counts[phase_code][status] += 1
        percents[phase_code].append(pct or 0)

    stats = []
    for p in sorted(phases, key=lambda p: p.sort_order):
        c = counts[p.phase_code]
        in_progress = c["in_progress"]
        completed = c["completed"]
        # Respondents without a row have not started; their percent is 0
        pct_total = sum(percents[p.phase_code])
        stats.append(
            PhaseStats(
                phase_code=p.phase_code,
                phase_name=p.phase_name,
                not_started=max(registered - in_progress - completed, 0),
                in_progress=in_progress,
                completed=completed,
                completion_rate=round(completed / registered, 4) if registered else 0.0,
                avg_completion_percent=round(pct_total / registered, 2) if registered else 0.0,
            )
        )
    return stats


def summarize_answers(
    phase_code: str,
    questions: list[QuestionDef],
    answers: Iterable[tuple[str, Any]],
) -> QuestionAnalytics:
    """Option counts for choice questions and min/max/mean for likert ones.

    Declared options are reported even when nobody picked them; values no
    longer among the options (edited questionnaire) are reported after them.
    """
    by_code = {q.question_code: q for q in questions}
    option_tally: dict[str, Counter[str]] = defaultdict(Counter)
    likert_values: dict[str, list[int]] = defaultdict(list)

    for code, value in answers:
        q = by_code.get(code)
        if q is None or value is None:
            continue
        if q.question_type in ("single_choice", "multi_select"):
            picked = value if isinstance(value, list) else [value]
            for v in picked:
                if v not in (None, ""):
                    option_tally[code][str(v)] += 1
        elif q.question_type == "likert":
            try:
                likert_values[code].append(int(value))
            except (TypeError, ValueError):
                continue

    result = QuestionAnalytics(phase_code=phase_code)
    for q in sorted(questions, key=lambda q: q.sort_order):
        if q.question_type in ("single_choice", "multi_select"):
            tally = option_tally[q.question_code]
            declared = list(q.options or [])
            extra = sorted(k for k in tally if k not in declared)
            for option in declared + extra:
                result.option_counts.append(
                    OptionCount(
                        question_code=q.question_code,
                        prompt=q.prompt,
                        question_type=q.question_type,
                        option=option,
                        count=tally[option],
                    )
                )
        elif q.question_type == "likert":
            values = likert_values[q.question_code]
            result.likert.append(
                LikertSummary(
                    question_code=q.question_code,
                    prompt=q.prompt,
                    count=len(values),
                    mean=round(sum(values) / len(values), 2) if values else None,
                    min=min(values) if values else None,
                    max=max(values) if values else None,
                )
            )
    return result
