"""Answer validation — boundary coercion and step/phase gating.

``coerce_answer`` turns an untyped value from the wire into the variant
declared by the question's type:

    single_choice            → str (one of ``options``)
    multi_select             → list[str] (subset of ``options``, de-duplicated)
    likert                   → int in [LIKERT_MIN, LIKERT_MAX]
    short_text / long_text   → str

``validate_step`` / ``validate_phase`` enforce the gate before a respondent
may advance: every required, currently visible question holds a non-blank
answer and multi-selects respect their selection bounds.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from survey_flow.constants import (
    IN_PROGRESS_PERCENT_CAP,
    LIKERT_MAX,
    LIKERT_MIN,
    LONG_TEXT_MAX_LENGTH,
    SHORT_TEXT_MAX_LENGTH,
)
from survey_flow.errors import AnswerValidationError
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import Step
from survey_flow.visibility import follow_up_index, is_visible

AnswerValue = str | int | list[str]


class StepIssue(BaseModel):
    """First validation problem found on a step."""

    question_code: str
    message: str
    step_index: int | None = None


# ------------------------------------------------------------------
# Boundary coercion
# ------------------------------------------------------------------

def _invalid(question: QuestionDef, reason: str) -> AnswerValidationError:
    return AnswerValidationError(
        question.question_code, f'{reason} for: "{question.prompt}"'
    )


def coerce_answer(question: QuestionDef, raw: Any) -> AnswerValue | None:
    """Validate *raw* against *question* and return the canonical value.

    ``None`` means "unanswered" and is passed through.  Raises
    :class:`AnswerValidationError` for values that do not fit the type.
    """
    if raw is None:
        return None

    qtype = question.question_type
    options = question.options or []

    if qtype == "single_choice":
        if not isinstance(raw, str):
            raise _invalid(question, "Please choose one option")
        if raw == "":
            return None
        if options and raw not in options:
            raise _invalid(question, f"Unknown option {raw!r}")
        return raw

    if qtype == "multi_select":
        if not isinstance(raw, (list, tuple)) or not all(isinstance(v, str) for v in raw):
            raise _invalid(question, "Please choose from the listed options")
        picked = list(dict.fromkeys(raw))
        unknown = [v for v in picked if options and v not in options]
        if unknown:
            raise _invalid(question, f"Unknown option {unknown[0]!r}")
        return picked

    if qtype == "likert":
        # bool is an int subclass; a checkbox value is never a rating
        if isinstance(raw, bool):
            raise _invalid(question, "Please pick a rating")
        if isinstance(raw, str):
            if raw.strip() == "":
                return None
            if not raw.strip().isdecimal():
                raise _invalid(question, "Please pick a rating")
            raw = int(raw.strip())
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        if not isinstance(raw, int) or not LIKERT_MIN <= raw <= LIKERT_MAX:
            raise _invalid(
                question, f"Please pick a rating between {LIKERT_MIN} and {LIKERT_MAX}"
            )
        return raw

    # short_text / long_text
    if not isinstance(raw, str):
        raise _invalid(question, "Please enter text")
    limit = SHORT_TEXT_MAX_LENGTH if qtype == "short_text" else LONG_TEXT_MAX_LENGTH
    if len(raw) > limit:
        raise _invalid(question, f"Please keep your answer under {limit} characters")
    return raw


def answer_text(value: Any) -> str | None:
    """Flatten an answer into the text column used by search and export."""
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


# ------------------------------------------------------------------
# Gating
# ------------------------------------------------------------------

def is_blank(value: Any) -> bool:
    """True for None, whitespace-only strings and empty lists."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _selection_issue(question: QuestionDef, value: Any) -> str | None:
    picked = value if isinstance(value, (list, tuple)) else []
    if question.selection_min and len(picked) < question.selection_min:
        return (
            f"Please select at least {question.selection_min} option(s) "
            f'for: "{question.prompt}"'
        )
    if question.selection_max and len(picked) > question.selection_max:
        return (
            f"Please select at most {question.selection_max} option(s) "
            f'for: "{question.prompt}"'
        )
    return None


def validate_step(
    questions: list[QuestionDef],
    answers: Mapping[str, Any],
    all_questions: Iterable[QuestionDef] | None = None,
) -> StepIssue | None:
    """Return the first problem on a step, or None if it may be left.

    Hidden questions are skipped entirely.  Blank optional multi-selects are
    not checked against their bounds; answered ones are.
    """
    index = follow_up_index(all_questions if all_questions is not None else questions)
    for q in questions:
        if not is_visible(q, answers, index):
            continue
        value = answers.get(q.question_code)
        blank = is_blank(value)
        if q.is_required and blank:
            return StepIssue(
                question_code=q.question_code,
                message=f'Please answer: "{q.prompt}"',
            )
        if q.question_type == "multi_select" and not blank:
            message = _selection_issue(q, value)
            if message is not None:
                return StepIssue(question_code=q.question_code, message=message)
    return None


def validate_phase(
    steps: list[Step],
    answers: Mapping[str, Any],
) -> StepIssue | None:
    """Run :func:`validate_step` on every step; report the first failing one."""
    all_questions = [q for step in steps for q in step.questions]
    for step in steps:
        issue = validate_step(step.questions, answers, all_questions)
        if issue is not None:
            issue.step_index = step.index
            return issue
    return None


def completion_percent(
    questions: list[QuestionDef],
    answers: Mapping[str, Any],
) -> int:
    """Share of visible questions answered, capped below 100 until completion."""
    index = follow_up_index(questions)
    shown = [q for q in questions if is_visible(q, answers, index)]
    if not shown:
        return 0
    answered = sum(1 for q in shown if not is_blank(answers.get(q.question_code)))
    return min(IN_PROGRESS_PERCENT_CAP, round(100 * answered / len(shown)))
