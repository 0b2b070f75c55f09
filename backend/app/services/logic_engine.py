"""
Skip-logic evaluation for survey taking.

Questions carry ordered rules under ``options.logicRules``::

    {"id": "...",
     "condition": {"operator": "less_than", "value": 7},
     "action": {"type": "skip_to", "targetQuestionId": "<uuid>"}}

Everything here is pure: the same questions and answers always give the
same path. Questions may be ORM rows or plain dicts (camelCase or
snake_case keys), and answers are bare values keyed by question id string.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

END = "end"

OPERATORS = frozenset({
    "equals", "not_equals", "contains", "not_contains",
    "greater_than", "less_than", "greater_than_or_equal", "less_than_or_equal",
    "is_answered", "is_not_answered", "is_any_of", "is_none_of",
})
ACTIONS = frozenset({"skip_to", "end_survey", "show", "hide"})

# Operators whose rule is meaningless without a condition value
_VALUE_OPERATORS = frozenset({"equals", "not_equals", "contains", "not_contains"})


@dataclass
class LogicResult:
    next_index: int | Literal["end"]
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def is_end(self) -> bool:
        return self.next_index == END


# ── Question accessors ────────────────────────────────────────────────


def _qid(question: Any) -> str:
    value = question.get("id") if isinstance(question, dict) else question.id
    return str(value)


def _options(question: Any) -> dict:
    opts = question.get("options") if isinstance(question, dict) else question.options
    return opts if isinstance(opts, dict) else {}


def _rules(question: Any) -> list[dict]:
    rules = _options(question).get("logicRules") or []
    return [r for r in rules if isinstance(r, dict)] if isinstance(rules, list) else []


def _index_of(questions: Sequence[Any], question_id: Any) -> int:
    target = str(question_id)
    for i, q in enumerate(questions):
        if _qid(q) == target:
            return i
    return -1


# ── Conditions ────────────────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    """Loose numeric conversion of a condition value; NaN when impossible."""
    if _is_number(value):
        return float(value)
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _strict_equals(a: Any, b: Any) -> bool:
    # Booleans never equal numbers, numbers never equal numeric strings
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) or _is_number(b):
        return _is_number(a) and _is_number(b) and a == b
    return type(a) is type(b) and a == b


def _contains_strict(items: list, value: Any) -> bool:
    return any(_strict_equals(item, value) for item in items)


def _answered(value: Any) -> bool:
    return value is not None and value != ""


def matches_condition(operator: str, condition_value: Any, answer: Any) -> bool:
    if operator == "is_answered":
        return _answered(answer)
    if operator == "is_not_answered":
        return not _answered(answer)
    if operator == "equals":
        return _strict_equals(answer, condition_value)
    if operator == "not_equals":
        return not _strict_equals(answer, condition_value)

    if operator in ("contains", "not_contains"):
        if isinstance(answer, str):
            hit = str(condition_value).lower() in answer.lower()
        elif isinstance(answer, list):
            hit = _contains_strict(answer, condition_value)
        else:
            # Non-text, non-list answers contain nothing
            return operator == "not_contains"
        return hit if operator == "contains" else not hit

    if operator in ("greater_than", "less_than", "greater_than_or_equal", "less_than_or_equal"):
        if not _is_number(answer):
            return False
        bound = _to_number(condition_value)
        if math.isnan(bound):
            return False
        if operator == "greater_than":
            return answer > bound
        if operator == "less_than":
            return answer < bound
        if operator == "greater_than_or_equal":
            return answer >= bound
        return answer <= bound

    if operator in ("is_any_of", "is_none_of"):
        if not isinstance(condition_value, list):
            return operator == "is_none_of"
        if isinstance(answer, list):
            hit = any(_contains_strict(condition_value, v) for v in answer)
        else:
            hit = _contains_strict(condition_value, answer)
        return hit if operator == "is_any_of" else not hit

    return False


# ── Navigation ────────────────────────────────────────────────────────


def has_logic_rules(question: Any) -> bool:
    return len(_rules(question)) > 0


def evaluate_next(
    current: Any,
    answer: Any,
    questions: Sequence[Any],
    answers: dict[str, Any] | None = None,
) -> LogicResult:
    """Decide where to go after ``current`` was answered with ``answer``.

    Rules are tried in declaration order and the first matching rule that
    yields a navigation wins. ``skip_to`` only jumps forward; a backwards or
    unknown target is ignored and evaluation moves on to the next rule.
    ``show``/``hide`` rules never affect navigation. ``answers`` is accepted
    for callers that track prior answers but is not consulted.
    """
    current_index = _index_of(questions, _qid(current))

    for rule in _rules(current):
        condition = rule.get("condition") or {}
        action = rule.get("action") or {}
        if not matches_condition(condition.get("operator", ""), condition.get("value"), answer):
            continue

        if action.get("type") == "end_survey":
            skipped = [_qid(q) for q in questions[current_index + 1:]]
            return LogicResult(END, skipped)

        target_id = action.get("targetQuestionId")
        if action.get("type") == "skip_to" and target_id:
            target = _index_of(questions, target_id)
            if target != -1 and target > current_index:
                skipped = [_qid(q) for q in questions[current_index + 1:target]]
                return LogicResult(target, skipped)

    next_index = current_index + 1
    if next_index >= len(questions):
        return LogicResult(END)
    return LogicResult(next_index)


def calculate_path(questions: Sequence[Any], answers: dict[str, Any]) -> list[str]:
    """Ordered ids of the questions a respondent with ``answers`` would see."""
    path: list[str] = []
    index = 0
    while 0 <= index < len(questions):
        question = questions[index]
        qid = _qid(question)
        path.append(qid)
        result = evaluate_next(question, answers.get(qid), questions, answers)
        if result.is_end:
            break
        index = result.next_index
    return path


def previous_index(
    current_index: int,
    questions: Sequence[Any],
    visited_path: Sequence[str],
) -> int:
    if current_index == 0 or len(visited_path) <= 1:
        return 0
    if 0 <= current_index < len(questions):
        current_id = _qid(questions[current_index])
        visited = [str(v) for v in visited_path]
        if current_id in visited:
            pos = visited.index(current_id)
            if pos > 0:
                prev = _index_of(questions, visited[pos - 1])
                if prev != -1:
                    return prev
    return max(0, current_index - 1)


def validate_logic_rules(question: Any, questions: Sequence[Any]) -> list[str]:
    """Return human-readable problems with a question's rules; empty means valid."""
    errors: list[str] = []
    own_index = _index_of(questions, _qid(question))

    for rule in _rules(question):
        condition = rule.get("condition") or {}
        action = rule.get("action") or {}
        operator = condition.get("operator")

        if operator not in OPERATORS:
            errors.append(f"Unknown condition operator: {operator}")
        if action.get("type") not in ACTIONS:
            errors.append(f"Unknown rule action: {action.get('type')}")

        if action.get("type") == "skip_to":
            target_id = action.get("targetQuestionId")
            if not target_id:
                errors.append("Skip-to rule must specify a target question")
            else:
                target = _index_of(questions, target_id)
                if target == -1:
                    errors.append("Skip-to target question not found")
                elif target <= own_index:
                    errors.append("Skip-to target must be after the current question")

        if operator in _VALUE_OPERATORS and condition.get("value") in (None, ""):
            errors.append("Condition value is required")

    return errors


class VisitedPath:
    """Client-side navigation history: push on forward, pop on back.

    Progress is measured against the visited path, not the static question
    count, because skip rules shorten the effective survey.
    """

    def __init__(self, questions: Sequence[Any], visited: Sequence[str] | None = None):
        self.questions = list(questions)
        self.visited: list[str] = [str(v) for v in (visited or [])]
        if not self.visited and self.questions:
            self.visited.append(_qid(self.questions[0]))

    @property
    def current_index(self) -> int:
        if not self.visited:
            return 0
        return _index_of(self.questions, self.visited[-1])

    def advance(self, answer: Any, answers: dict[str, Any] | None = None) -> LogicResult:
        current = self.questions[self.current_index]
        result = evaluate_next(current, answer, self.questions, answers)
        if not result.is_end:
            self.visited.append(_qid(self.questions[result.next_index]))
        return result

    def back(self) -> int:
        if len(self.visited) > 1:
            self.visited.pop()
        return self.current_index

    def progress(self, answers: dict[str, Any]) -> int:
        """Percentage of the projected path already visited, 0-100."""
        projected = calculate_path(self.questions, answers)
        total = max(len(projected), len(self.visited))
        if total == 0:
            return 0
        return math.floor(len(self.visited) / total * 100 + 0.5)
