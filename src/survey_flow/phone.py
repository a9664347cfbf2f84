"""Phone number normalization — the respondent's natural key.

Respondents identify themselves by phone number only, so the same physical
number must always normalise to the same key no matter how it was typed
(``0812-3456-7890``, ``+62 812 3456 7890``, ``(0812) 3456 7890`` ...).

``normalize_phone`` never raises and is idempotent: it is reapplied on
every login and on every admin import.  ``validate_phone`` checks the
normalised key against the configured policy and returns a structured
result instead of raising.
"""

import re

from pydantic import BaseModel

from survey_flow.constants import (
    PHONE_BARE_MIN_DIGITS,
    PHONE_COUNTRY_CODE,
    PHONE_EXAMPLE,
    PHONE_MAX_DIGITS,
    PHONE_MIN_DIGITS,
)

# Separators people type inside phone numbers
_SEPARATORS = re.compile(r"[\s\-().\/]")
_ASCII_DIGITS = re.compile(r"[0-9]+")


class PhoneValidation(BaseModel):
    """Outcome of :func:`validate_phone`."""

    valid: bool
    normalized: str
    error: str | None = None


def normalize_phone(raw: str | None, country_code: str = PHONE_COUNTRY_CODE) -> str:
    """Return the canonical digit-string key for *raw*.

    Steps:
      1. drop whitespace, dashes, dots, slashes and parentheses
      2. drop a leading ``+``
      3. rewrite a leading trunk ``0`` to the country code
      4. prepend the country code to a bare subscriber number
    """
    if not raw:
        return ""
    digits = _SEPARATORS.sub("", raw.strip()).lstrip("+")

    if digits.startswith("0"):
        return country_code + digits[1:]
    if not digits.startswith(country_code) and len(digits) >= PHONE_BARE_MIN_DIGITS:
        return country_code + digits
    return digits


def validate_phone(
    raw: str | None,
    *,
    country_code: str = PHONE_COUNTRY_CODE,
    min_digits: int = PHONE_MIN_DIGITS,
    max_digits: int = PHONE_MAX_DIGITS,
) -> PhoneValidation:
    """Normalise *raw* and check it against the accepted length window."""
    if raw is None or not raw.strip():
        return PhoneValidation(
            valid=False, normalized="", error="Phone number is required."
        )

    normalized = normalize_phone(raw, country_code)
    valid = (
        _ASCII_DIGITS.fullmatch(normalized) is not None
        and normalized.startswith(country_code)
        and min_digits <= len(normalized) <= max_digits
    )
    if not valid:
        return PhoneValidation(
            valid=False,
            normalized=normalized,
            error=f"Please enter a valid phone number (e.g. {PHONE_EXAMPLE}).",
        )
    return PhoneValidation(valid=True, normalized=normalized)
