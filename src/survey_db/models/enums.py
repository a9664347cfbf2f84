"""Database-level enumerations for the survey tables."""

import enum


class RespondentStatus(str, enum.Enum):
    """Visibility of a respondent in the dataset.

    Transitions:
        active -> deleted   (admin "clear data", reversible)
        deleted -> active   (admin "restore data")
        deleted -> (gone)   (admin "permanent delete")
    """

    ACTIVE = "active"
    DELETED = "deleted"


class ProgressStatus(str, enum.Enum):
    """Per-respondent, per-phase progress.

    Transitions (one-way, never regress):
        not_started -> in_progress  (first autosave touching the phase)
        in_progress -> completed    (phase submitted from its last step)
        not_started -> completed    (phase submitted in a single save)
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SessionStatus(str, enum.Enum):
    """Lifecycle of a respondent session.

    Transitions:
        active -> completed  (last phase completed, or admin clear data)
    """

    ACTIVE = "active"
    COMPLETED = "completed"


class ActorType(str, enum.Enum):
    """Who triggered an audit event."""

    RESPONDENT = "respondent"
    ADMIN = "admin"
    SYSTEM = "system"
