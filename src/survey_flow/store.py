"""QuestionnaireStore — loads the questionnaire definition from ``v1/``.

The YAML file is the source of truth for phases and questions; the
``survey-admin seed`` command copies it into the database, which the engine
reads at runtime.

Usage::

    store = QuestionnaireStore()        # defaults to v1/ relative to repo root
    store.load()                        # parse + cross-check questionnaire.yaml

    phase = store.get_phase("panel_1")
    q = store.get_question("affiliation_type")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from survey_flow.models.question import CHOICE_TYPES, PhaseDef, QuestionDef

logger = logging.getLogger(__name__)

QUESTIONNAIRE_FILE = "questionnaire.yaml"


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# QuestionnaireStore
# ---------------------------------------------------------------------------

class QuestionnaireStore:
    """Typed, validated view of ``questionnaire.yaml``.

    Attributes populated after :meth:`load`:

        phases     — list[PhaseDef] in sort order
        questions  — dict[question_code, QuestionDef]
    """

    def __init__(self, questionnaire_dir: str | Path | None = None) -> None:
        if questionnaire_dir is None:
            questionnaire_dir = find_repo_root() / "v1"
        self._base = Path(questionnaire_dir)
        self.phases: list[PhaseDef] = []
        self.questions: dict[str, QuestionDef] = {}
        # question_code -> phase_code
        self._phase_of: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse and cross-check the questionnaire file.

        Raises ``FileNotFoundError`` if it is missing and ``ValueError`` if
        it is inconsistent.
        """
        raw = load_yaml(self._base / QUESTIONNAIRE_FILE) or {}
        self.load_dict(raw)

    def load_dict(self, raw: dict[str, Any]) -> None:
        """Populate the store from an already-parsed mapping."""
        phases = [PhaseDef.model_validate(p) for p in raw.get("phases", [])]
        phases.sort(key=lambda p: p.sort_order)
        for phase in phases:
            phase.questions.sort(key=lambda q: q.sort_order)

        self._check(phases)
        self.phases = phases
        self.questions = {q.question_code: q for p in phases for q in p.questions}
        self._phase_of = {
            q.question_code: p.phase_code for p in phases for q in p.questions
        }
        logger.info(
            "QuestionnaireStore loaded: %d phases, %d questions",
            len(self.phases), len(self.questions),
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_phase(self, phase_code: str) -> PhaseDef:
        for phase in self.phases:
            if phase.phase_code == phase_code:
                return phase
        raise KeyError(f"Unknown phase: {phase_code}")

    def get_question(self, question_code: str) -> QuestionDef:
        try:
            return self.questions[question_code]
        except KeyError:
            raise KeyError(f"Unknown question: {question_code}") from None

    def phase_of(self, question_code: str) -> str:
        """Phase code a question belongs to."""
        return self._phase_of[question_code]

    # ------------------------------------------------------------------
    # Consistency checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check(phases: list[PhaseDef]) -> None:
        """Reject duplicate codes and dangling visibility references."""
        phase_codes = [p.phase_code for p in phases]
        dupes = {c for c in phase_codes if phase_codes.count(c) > 1}
        if dupes:
            raise ValueError(f"Duplicate phase codes: {sorted(dupes)}")

        seen: set[str] = set()
        for phase in phases:
            local = {q.question_code: q for q in phase.questions}
            earlier: set[str] = set()
            for q in phase.questions:
                if q.question_code in seen:
                    raise ValueError(f"Duplicate question code: {q.question_code}")
                seen.add(q.question_code)

                # show_if parents must precede the dependent in the same phase
                if q.show_if is not None:
                    parent = local.get(q.show_if.question_code)
                    if parent is None or q.show_if.question_code not in earlier:
                        raise ValueError(
                            f"{q.question_code}: show_if parent "
                            f"{q.show_if.question_code!r} must be an earlier "
                            f"question of {phase.phase_code}"
                        )
                    if parent.question_type in CHOICE_TYPES:
                        stray = set(q.show_if.answer_in) - set(parent.options or [])
                        if stray:
                            raise ValueError(
                                f"{q.question_code}: show_if values {sorted(stray)} "
                                f"are not options of {parent.question_code}"
                            )

                # follow-up targets must follow the parent in the same phase
                if q.follow_up is not None:
                    target = local.get(q.follow_up.question_code)
                    if target is None or target.sort_order <= q.sort_order:
                        raise ValueError(
                            f"{q.question_code}: follow_up target "
                            f"{q.follow_up.question_code!r} must be a later "
                            f"question of {phase.phase_code}"
                        )
                earlier.add(q.question_code)
