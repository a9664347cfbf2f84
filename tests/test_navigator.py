"""PhaseNavigator — step transitions and submission against a FakeBackend."""

import pytest

from helpers.answers import PANEL_1
from helpers.fakes import FakeBackend
from survey_flow.constants import SUBMISSION_FAILED_MESSAGE
from survey_flow.errors import InputValidationError, PhaseLockedError, StepValidationError, TransientError
from survey_flow.models.session import PhaseSummary, PhaseView
from survey_flow.navigator import PhaseNavigator
from survey_flow.steps import partition_steps

DEBOUNCE = 0.01


def _view(store, code="panel_1", answers=None, start_step=0):
    phase = store.get_phase(code)
    return PhaseView(
        phase=PhaseSummary(
            phase_code=code, phase_name=phase.phase_name, sort_order=phase.sort_order,
        ),
        steps=partition_steps(phase.questions, 3),
        answers=answers or {},
        start_step=start_step,
    )


def _navigator(store, backend=None, **kw):
    return PhaseNavigator(_view(store, **kw), backend or FakeBackend(), debounce=DEBOUNCE)


def test_phase_without_steps_is_rejected(store):
    view = _view(store)
    view.steps = []
    with pytest.raises(InputValidationError):
        PhaseNavigator(view, FakeBackend())


def test_visible_questions_follow_answers(store):
    nav = _navigator(store, answers={"affiliation_type": "Industry"})
    assert [q.question_code for q in nav.visible_questions()] == ["affiliation_type"]

    nav = _navigator(store, answers={"affiliation_type": "Academia"})
    assert [q.question_code for q in nav.visible_questions()] == ["affiliation_type", "academic_role"]

    nav = _navigator(store, answers={"affiliation_type": "Other"})
    assert [q.question_code for q in nav.visible_questions()] == [
        "affiliation_type", "affiliation_type_other",
    ]


# =====================================================================
# next / back
# =====================================================================


class TestNextBack:
    @pytest.mark.asyncio
    async def test_next_blocks_on_missing_answer(self, store):
        backend = FakeBackend()
        nav = _navigator(store, backend)
        with pytest.raises(StepValidationError) as exc:
            await nav.next()
        assert exc.value.question_code == "affiliation_type"
        assert nav.error == exc.value.public_message
        assert nav.step_index == 0
        assert backend.saves == []

    @pytest.mark.asyncio
    async def test_next_advances_and_saves(self, store):
        backend = FakeBackend()
        nav = _navigator(store, backend, answers={"affiliation_type": "Industry"})
        step = await nav.next()
        assert step.index == 1
        assert nav.step_index == 1
        assert backend.saves == [("panel_1", {"affiliation_type": "Industry"}, 1)]

    @pytest.mark.asyncio
    async def test_next_sends_cleared_answers(self, store):
        backend = FakeBackend()
        nav = _navigator(
            store, backend, answers={"affiliation_type": "Industry", "expectations": "More data"},
        )
        nav.set_answer("expectations", "")
        await nav.next()
        assert backend.saves[-1] == (
            "panel_1", {"affiliation_type": "Industry", "expectations": ""}, 1,
        ), "a blanked answer is sent so the stored value is cleared"

    @pytest.mark.asyncio
    async def test_next_tolerates_save_failure(self, store):
        backend = FakeBackend()
        backend.fail_saves = 1
        nav = _navigator(store, backend, answers={"affiliation_type": "Industry"})
        await nav.next()
        assert nav.step_index == 1
        assert nav.autosave.last_error is not None

    @pytest.mark.asyncio
    async def test_next_on_last_step(self, store):
        nav = _navigator(store, answers=PANEL_1, start_step=1)
        with pytest.raises(InputValidationError, match="last step"):
            await nav.next()

    def test_back_keeps_answers(self, store):
        nav = _navigator(store, answers=PANEL_1, start_step=1)
        step = nav.back()
        assert step.index == 0
        assert nav.answers == PANEL_1
        assert nav.back().index == 0, "back on the first step stays put"

    @pytest.mark.asyncio
    async def test_set_answer_clears_error(self, store):
        nav = _navigator(store)
        with pytest.raises(StepValidationError):
            await nav.next()
        nav.set_answer("affiliation_type", "Government")
        assert nav.error is None
        await nav.autosave.drain()


# =====================================================================
# submit
# =====================================================================


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit_requires_last_step(self, store):
        nav = _navigator(store, answers=PANEL_1)
        with pytest.raises(InputValidationError, match="remaining steps"):
            await nav.submit()

    @pytest.mark.asyncio
    async def test_submit_validates_last_step(self, store):
        backend = FakeBackend()
        nav = _navigator(store, backend, answers={"affiliation_type": "Industry"}, start_step=1)
        with pytest.raises(StepValidationError) as exc:
            await nav.submit()
        assert exc.value.question_code == "research_fields"
        assert backend.completions == []

    @pytest.mark.asyncio
    async def test_submit_saves_then_completes(self, store):
        backend = FakeBackend()
        nav = _navigator(store, backend, answers=PANEL_1, start_step=1)
        result = await nav.submit()
        assert len(backend.saves) == 1
        assert backend.completions == [("panel_1", nav.autosave.payload())]
        assert nav.result == result
        assert nav.error is None

    @pytest.mark.asyncio
    async def test_failed_save_blocks_completion(self, store):
        backend = FakeBackend()
        backend.fail_saves = 1
        nav = _navigator(store, backend, answers=PANEL_1, start_step=1)
        with pytest.raises(TransientError):
            await nav.submit()
        assert backend.completions == []
        assert nav.error == SUBMISSION_FAILED_MESSAGE
        assert nav.result is None

    @pytest.mark.asyncio
    async def test_survey_error_from_completion_is_shown(self, store):
        backend = FakeBackend()
        backend.complete_error = PhaseLockedError("panel_1")
        nav = _navigator(store, backend, answers=PANEL_1, start_step=1)
        with pytest.raises(PhaseLockedError):
            await nav.submit()
        assert nav.error == 'Please complete "panel_1" first.'

    @pytest.mark.asyncio
    async def test_unexpected_completion_failure_is_transient(self, store):
        backend = FakeBackend()
        backend.complete_error = ConnectionError("reset by peer")
        nav = _navigator(store, backend, answers=PANEL_1, start_step=1)
        with pytest.raises(TransientError) as exc:
            await nav.submit()
        assert exc.value.public_message == SUBMISSION_FAILED_MESSAGE
        assert "reset by peer" not in nav.error
