"""Conditional visibility of questions.

A question is hidden unless the answer to its parent overlaps the allowed
set.  Overlap (not equality) is what makes multi-select parents work: a
dependent shown for ``["Academia"]`` is visible when the parent holds
``["Industry", "Academia"]``.

Everything here is pure and cheap, so callers re-evaluate on every render
and step transition instead of caching results.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from survey_flow.models.question import QuestionDef

# follow-up question code -> (parent question code, trigger option)
FollowUpIndex = dict[str, tuple[str, str]]


def answer_tokens(value: Any) -> set[str]:
    """Coerce an answer into a set of strings.

    Lists pass through, scalars become a singleton and a missing answer
    becomes ``{""}`` so unanswered parents hide dependents by default.
    """
    if value is None:
        return {""}
    if isinstance(value, (list, tuple, set)):
        return {str(v) for v in value}
    return {str(value)}


def follow_up_index(questions: Iterable[QuestionDef]) -> FollowUpIndex:
    """Map every declared follow-up question to its parent and trigger option."""
    return {
        q.follow_up.question_code: (q.question_code, q.follow_up.option)
        for q in questions
        if q.follow_up is not None
    }


def is_visible(
    question: QuestionDef,
    answers: Mapping[str, Any],
    follow_ups: FollowUpIndex | None = None,
) -> bool:
    """Return True if *question* should be shown given the current *answers*."""
    rule = question.show_if
    if rule is not None:
        parent_value = answers.get(rule.question_code)
        if answer_tokens(parent_value).isdisjoint(rule.answer_in):
            return False

    if follow_ups:
        trigger = follow_ups.get(question.question_code)
        if trigger is not None:
            parent_code, option = trigger
            if option not in answer_tokens(answers.get(parent_code)):
                return False

    return True


def visible_questions(
    questions: list[QuestionDef],
    answers: Mapping[str, Any],
    all_questions: Iterable[QuestionDef] | None = None,
) -> list[QuestionDef]:
    """Filter *questions* down to the visible ones.

    *all_questions* is the whole phase, used to discover follow-up pairings
    declared by parents that sit on a different step.
    """
    index = follow_up_index(all_questions if all_questions is not None else questions)
    return [q for q in questions if is_visible(q, answers, index)]
