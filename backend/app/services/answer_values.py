"""Canonical answer value handling.

Answers are always persisted as ``{"value": <x>}``. Older rows may carry a
bare scalar or a JSON-encoded string, so every read goes through
``decode_answer`` before any aggregation.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


def encode_answer(value: Any) -> dict:
    """Wrap a client value into the stored shape.

    Always wraps, so a matrix answer with a row named ``value`` keeps its shape.
    """
    return {"value": value}


def decode_answer(raw: Any) -> Any:
    """Return the bare answer value regardless of how it was stored."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return raw
    if isinstance(raw, dict) and "value" in raw:
        return raw["value"]
    return raw


def numeric_value(raw: Any) -> int | None:
    """Coerce a stored answer to an integer score, or None when it is not numeric.

    Parsing has integer-prefix semantics: 7.9, "7", "7.5" and "7abc" all give
    7. A stored 0 is a real score, not a missing one.
    """
    value = decode_answer(raw)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    if isinstance(value, str):
        m = _INT_PREFIX_RE.match(value)
        return int(m.group(1)) if m else None
    return None


def choice_values(raw: Any) -> list:
    """Flatten a single or multi choice answer into the list of selected values.

    Only None and empty strings are dropped; False and 0 are real selections.
    """
    value = decode_answer(raw)
    if isinstance(value, list):
        return [v for v in value if not _blank(v)]
    return [] if _blank(value) else [value]


def _blank(value: Any) -> bool:
    return value is None or value == ""


def text_value(raw: Any) -> str | None:
    value = decode_answer(raw)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def answer_key(value: Any) -> str:
    """Stable string key for a selection, used by distributions and matrix cells.

    Booleans follow JSON spelling so ``True`` and ``"true"`` share a bucket.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(answer_key(v) for v in value)
    return str(value)
