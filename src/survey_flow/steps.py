"""Step partitioning — split a phase's questions into fixed-size pages."""

from survey_flow.constants import QUESTIONS_PER_STEP
from survey_flow.models.question import QuestionDef
from survey_flow.models.session import Step


def step_code(index: int) -> str:
    """Stable display code for a step (``step_0``, ``step_1``, ...)."""
    return f"step_{index}"


def partition_steps(
    questions: list[QuestionDef],
    step_size: int = QUESTIONS_PER_STEP,
) -> list[Step]:
    """Split *questions* into contiguous steps of at most *step_size*.

    Questions are ordered by ``sort_order`` (stable, so ties keep their
    input order) and every question lands in exactly one step.  An empty
    phase yields no steps.
    """
    if step_size < 1:
        raise ValueError(f"step_size must be at least 1, got {step_size}")

    ordered = sorted(questions, key=lambda q: q.sort_order)
    return [
        Step(index=i, code=step_code(i), questions=ordered[start:start + step_size])
        for i, start in enumerate(range(0, len(ordered), step_size))
    ]


def clamp_step(index: int | None, steps: list[Step]) -> int:
    """Clamp a stored step index into the valid range for *steps*."""
    if not steps or index is None or index < 0:
        return 0
    return min(index, len(steps) - 1)
