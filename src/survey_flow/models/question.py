"""Questionnaire models — phases and questions as the SDK sees them.

Question types map to a specific UI component and answer variant:

    - single_choice: pick one option           → str
    - multi_select:  pick N options (min/max)  → list[str]
    - likert:        1–7 agreement scale        → int
    - short_text:    single-line free text      → str
    - long_text:     multi-line free text       → str

Two kinds of conditional display exist:

    - ``show_if``: shown only while a parent's answer overlaps ``answer_in``
    - ``follow_up``: declared on the *parent*; the named follow-up question
      is shown only while the parent's answer contains the trigger option
      (the classic "Other, please specify" pairing)

Both models are built from ORM rows (``from_attributes``) or YAML dicts.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

QuestionType = Literal[
    "single_choice",
    "multi_select",
    "likert",
    "short_text",
    "long_text",
]

# Types whose answer is picked from ``options``
CHOICE_TYPES: set[str] = {"single_choice", "multi_select"}


class ShowIfRule(BaseModel):
    """Show the question only while ``question_code``'s answer is in ``answer_in``."""

    question_code: str
    answer_in: list[str]


class FollowUp(BaseModel):
    """Explicit follow-up pairing declared on a choice question."""

    option: str
    question_code: str


class QuestionDef(BaseModel):
    """One question of a phase."""

    model_config = ConfigDict(from_attributes=True)

    question_code: str
    prompt: str
    question_type: QuestionType
    section_code: str | None = None
    help_text: str | None = None
    options: list[str] | None = None
    selection_min: int | None = None
    selection_max: int | None = None
    is_required: bool = False
    show_if: ShowIfRule | None = None
    follow_up: FollowUp | None = None
    sort_order: int = 0

    @model_validator(mode="after")
    def _check_shape(self) -> "QuestionDef":
        if self.question_type in CHOICE_TYPES and not self.options:
            raise ValueError(
                f"{self.question_code}: {self.question_type} requires options"
            )
        if (
            self.selection_min is not None
            and self.selection_max is not None
            and self.selection_min > self.selection_max
        ):
            raise ValueError(
                f"{self.question_code}: selection_min > selection_max"
            )
        if self.follow_up is not None:
            if self.question_type not in CHOICE_TYPES:
                raise ValueError(
                    f"{self.question_code}: follow_up requires a choice question"
                )
            if self.follow_up.option not in (self.options or []):
                raise ValueError(
                    f"{self.question_code}: follow_up option "
                    f"{self.follow_up.option!r} is not one of the options"
                )
        return self


class PhaseDef(BaseModel):
    """An ordered stage of the questionnaire."""

    model_config = ConfigDict(from_attributes=True)

    phase_code: str
    phase_name: str
    description: str | None = None
    sort_order: int = 0
    questions: list[QuestionDef] = Field(default_factory=list)
