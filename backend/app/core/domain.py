"""Domain enums and input validators shared by every service.

All functions here are pure: they never touch the database.
"""

from __future__ import annotations

import enum
import re
from datetime import datetime
from typing import Any


class SurveyType(str, enum.Enum):
    NPS = "nps"
    CUSTOM = "custom"


class SurveyStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class QuestionType(str, enum.Enum):
    NPS = "nps"
    MULTIPLE_CHOICE = "multiple_choice"
    TEXT_SHORT = "text_short"
    TEXT_LONG = "text_long"
    RATING_SCALE = "rating_scale"
    MATRIX = "matrix"


class ResponseStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    # Only ever set administratively; no request path transitions into it
    ABANDONED = "abandoned"


class DistributionChannel(str, enum.Enum):
    LINK = "link"
    QR_CODE = "qr_code"
    EMBED = "embed"
    EMAIL = "email"


VALID_SURVEY_TYPES: tuple[str, ...] = tuple(t.value for t in SurveyType)
VALID_SURVEY_STATUSES: tuple[str, ...] = tuple(s.value for s in SurveyStatus)
VALID_QUESTION_TYPES: tuple[str, ...] = tuple(t.value for t in QuestionType)

# UI-level question types persisted as one of the base types above
EXTENDED_TYPE_TO_BASE: dict[str, str] = {
    "rating": "rating_scale",
    "text": "text_short",
    "single_line": "text_short",
    "textarea": "text_long",
    "comment": "text_long",
    "single_choice": "multiple_choice",
    "dropdown": "multiple_choice",
    "checkbox": "multiple_choice",
    "radiogroup": "multiple_choice",
    "boolean": "multiple_choice",
    "ranking": "multiple_choice",
    "image_picker": "multiple_choice",
    "matrix_dropdown": "matrix",
    "matrix_dynamic": "matrix",
}

EXTENDED_QUESTION_TYPES: tuple[str, ...] = VALID_QUESTION_TYPES + tuple(EXTENDED_TYPE_TO_BASE)

NUMERIC_QUESTION_TYPES = frozenset({"nps", "rating_scale"})
CHOICE_QUESTION_TYPES = frozenset({"multiple_choice"})
TEXT_QUESTION_TYPES = frozenset({"text_short", "text_long"})

VALID_LANGUAGE_CODES: tuple[str, ...] = (
    "en", "es", "fr", "de", "it", "pt", "nl", "pl", "ru",
    "zh", "ja", "ko", "ar", "hi", "sv", "da", "no", "fi",
)
_LANGUAGE_RE = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")


def is_valid_survey_type(value: Any) -> bool:
    return isinstance(value, str) and value in VALID_SURVEY_TYPES


def is_valid_survey_status(value: Any) -> bool:
    return isinstance(value, str) and value in VALID_SURVEY_STATUSES


def is_valid_question_type(value: Any) -> bool:
    """Accept base types and their extended UI aliases."""
    return isinstance(value, str) and value in EXTENDED_QUESTION_TYPES


def map_extended_type_to_base(question_type: str) -> str:
    return EXTENDED_TYPE_TO_BASE.get(question_type, question_type)


def is_valid_language_code(code: Any) -> bool:
    if not isinstance(code, str):
        return False
    return code in VALID_LANGUAGE_CODES or bool(_LANGUAGE_RE.match(code))


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def is_valid_date_range(starts_at: datetime | str | None, ends_at: datetime | str | None) -> bool:
    """True unless both bounds are present and start is after end."""
    if not starts_at or not ends_at:
        return True
    start, end = _as_datetime(starts_at), _as_datetime(ends_at)
    # Compare naive against aware by dropping tzinfo on the aware side
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
    return start <= end


def validate_question_options(question_type: str, options: Any) -> str | None:
    """Return an error message for malformed options, or None when valid."""
    if options is None:
        return None
    if not isinstance(options, dict):
        return "options must be an object"

    base = map_extended_type_to_base(question_type)

    if base == "multiple_choice" and "choices" in options:
        choices = options["choices"]
        if not isinstance(choices, list) or len(choices) == 0:
            return "multiple_choice requires non-empty choices array"
        hashable = [repr(c) if isinstance(c, (dict, list)) else c for c in choices]
        if len(set(hashable)) != len(choices):
            return "multiple_choice choices must be unique"

    elif base == "rating_scale" and "min" in options and "max" in options:
        lo, hi = options["min"], options["max"]
        if isinstance(lo, bool) or isinstance(hi, bool) or not all(
            isinstance(v, (int, float)) for v in (lo, hi)
        ):
            return "rating_scale min and max must be numbers"
        if lo >= hi:
            return "rating_scale min must be less than max"

    elif base == "matrix":
        if "rows" in options and not isinstance(options["rows"], list):
            return "matrix rows must be an array"
        if "columns" in options and not isinstance(options["columns"], list):
            return "matrix columns must be an array"

    rules = options.get("logicRules")
    if rules is not None and not isinstance(rules, list):
        return "logicRules must be an array"

    return None
