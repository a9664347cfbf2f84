"""Survey flow constants shared across the SDK.

These values are referenced by the engine, partitioner, phone normalizer
and autosave coordinator.  Several can be overridden via environment
variables so that deployments can adjust the respondent experience without
code changes.
"""

import os

# Number of questions shown per page ("step") within a phase.
# Overridable via QUESTIONS_PER_STEP env var.
QUESTIONS_PER_STEP = int(os.getenv("QUESTIONS_PER_STEP", "3"))

# Quiet period (seconds) after the last edit before an autosave fires.
# Overridable via AUTOSAVE_DEBOUNCE_SECONDS env var.
AUTOSAVE_DEBOUNCE_SECONDS = float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "1.8"))

# --- Phone policy (Indonesian mobile numbers by default) ---
PHONE_COUNTRY_CODE = os.getenv("PHONE_COUNTRY_CODE", "62")
PHONE_MIN_DIGITS = int(os.getenv("PHONE_MIN_DIGITS", "10"))
PHONE_MAX_DIGITS = int(os.getenv("PHONE_MAX_DIGITS", "15"))
# Bare subscriber numbers at least this long get the country code prepended.
PHONE_BARE_MIN_DIGITS = 9
PHONE_EXAMPLE = os.getenv("PHONE_EXAMPLE", "0812 3456 7890")

# Minimum length of a respondent's full name at registration.
MIN_NAME_LENGTH = 2

# Maximum accepted length of free-text answers.
SHORT_TEXT_MAX_LENGTH = 500
LONG_TEXT_MAX_LENGTH = 5000

# Likert scale bounds (inclusive).
LIKERT_MIN = 1
LIKERT_MAX = 7

# Terminal resume state returned to clients once every phase is completed.
TERMINAL_PHASE = "done"

# Value written to Respondent.current_phase once no phase remains.
COMPLETED_MARKER = "completed"

# In-progress phases never report 100% until they are actually completed.
IN_PROGRESS_PERCENT_CAP = 99

# Phrase an administrator must type to confirm destructive dataset operations.
# Overridable via ADMIN_CONFIRMATION_PHRASE env var.
ADMIN_CONFIRMATION_PHRASE = os.getenv("ADMIN_CONFIRMATION_PHRASE", "saya setuju")

# Generic message returned when phase completion hits a storage failure.
SUBMISSION_FAILED_MESSAGE = "Submission failed. Please try again."
