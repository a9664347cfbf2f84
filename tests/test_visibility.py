"""Conditional display — show_if overlap and explicit follow-ups."""

from survey_flow.models.question import QuestionDef
from survey_flow.visibility import (
    answer_tokens,
    follow_up_index,
    is_visible,
    visible_questions,
)


def _choice(code, options, **kw):
    return QuestionDef(
        question_code=code, prompt=code, question_type="single_choice", options=options, **kw
    )


def _text(code, **kw):
    return QuestionDef(question_code=code, prompt=code, question_type="short_text", **kw)


SECTOR = _choice(
    "sector",
    ["Academia", "Industry", "Other"],
    follow_up={"option": "Other", "question_code": "sector_other"},
    sort_order=1,
)
SECTOR_OTHER = _text("sector_other", sort_order=2)
ROLE = _text(
    "role", show_if={"question_code": "sector", "answer_in": ["Academia"]}, sort_order=3
)
PARTNERS = QuestionDef(
    question_code="partners",
    prompt="partners",
    question_type="multi_select",
    options=["Universities", "Startups", "Large companies"],
    sort_order=4,
)
BARRIER = _text(
    "barrier",
    show_if={"question_code": "partners", "answer_in": ["Large companies", "Startups"]},
    sort_order=5,
)
PHASE = [SECTOR, SECTOR_OTHER, ROLE, PARTNERS, BARRIER]


# =====================================================================
# answer_tokens
# =====================================================================


def test_tokens_of_missing_answer():
    assert answer_tokens(None) == {""}


def test_tokens_of_scalar_and_list():
    assert answer_tokens("Academia") == {"Academia"}
    assert answer_tokens(5) == {"5"}
    assert answer_tokens(["A", "B", "A"]) == {"A", "B"}


# =====================================================================
# show_if
# =====================================================================


class TestShowIf:
    """A dependent is shown only while its parent's answer overlaps answer_in."""

    def test_question_without_rule_is_visible(self):
        assert is_visible(SECTOR, {})

    def test_hidden_while_parent_unanswered(self):
        assert not is_visible(ROLE, {}), "unanswered parent must hide the dependent"

    def test_shown_when_parent_matches(self):
        assert is_visible(ROLE, {"sector": "Academia"})

    def test_hidden_when_parent_differs(self):
        assert not is_visible(ROLE, {"sector": "Industry"})

    def test_multi_select_parent_uses_overlap(self):
        assert is_visible(BARRIER, {"partners": ["Universities", "Startups"]})
        assert not is_visible(BARRIER, {"partners": ["Universities"]})
        assert not is_visible(BARRIER, {"partners": []})


# =====================================================================
# follow_up
# =====================================================================


class TestFollowUp:
    """Follow-ups are declared on the parent and keyed by trigger option."""

    def test_index(self):
        assert follow_up_index(PHASE) == {"sector_other": ("sector", "Other")}

    def test_follow_up_hidden_until_trigger(self):
        index = follow_up_index(PHASE)
        assert not is_visible(SECTOR_OTHER, {}, index)
        assert not is_visible(SECTOR_OTHER, {"sector": "Industry"}, index)
        assert is_visible(SECTOR_OTHER, {"sector": "Other"}, index)

    def test_without_index_follow_up_is_unconditional(self):
        assert is_visible(SECTOR_OTHER, {})


# =====================================================================
# visible_questions
# =====================================================================


def test_visible_questions_filters_in_order():
    shown = visible_questions(PHASE, {"sector": "Academia", "partners": ["Startups"]})
    assert [q.question_code for q in shown] == ["sector", "role", "partners", "barrier"]


def test_visible_questions_sees_parents_on_other_steps():
    # sector_other alone on a step; the parent sits on an earlier step
    shown = visible_questions([SECTOR_OTHER], {"sector": "Industry"}, all_questions=PHASE)
    assert shown == []
    shown = visible_questions([SECTOR_OTHER], {"sector": "Other"}, all_questions=PHASE)
    assert [q.question_code for q in shown] == ["sector_other"]
