"""Unit tests for export row building and CSV encoding."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

from app.services.export_service import (
    build_export_rows,
    export_filename,
    flatten_value,
    question_header,
    to_csv,
    to_json_rows,
)


class TestFlattenValue:
    def test_scalars(self):
        assert flatten_value(None) == ""
        assert flatten_value(True) == "true"
        assert flatten_value(3.0) == "3"
        assert flatten_value(3.5) == "3.5"

    def test_collections(self):
        assert flatten_value(["a", "b"]) == "a; b"
        assert flatten_value({"r": 1}) == '{"r":1}'


class TestCsv:
    def test_quotes_commas_and_quotes(self):
        body = to_csv(["A", "B"], [["x,y", 'say "hi"']])
        assert body == 'A,B\n"x,y","say ""hi"""'

    def test_no_trailing_newline(self):
        assert not to_csv(["A"], [["1"], ["2"]]).endswith("\n")


class TestRows:
    def test_build_rows_and_json(self):
        q = SimpleNamespace(id=uuid.uuid4(), order_index=0, content="x" * 60)
        r = SimpleNamespace(
            id=uuid.uuid4(),
            anonymous_token="direct_abc",
            started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
            completed_at=None,
        )
        survey = SimpleNamespace(is_anonymous=True)
        headers, rows = build_export_rows(survey, [q], [r], {})

        assert headers[-1] == "Q1: " + "x" * 50
        assert rows[0][1] == "Anonymous"
        assert rows[0][3] == ""
        assert rows[0][-1] is None

        payload = to_json_rows(headers, rows)
        assert payload["total"] == 1
        assert payload["data"][0]["responseId"] == str(r.id)
        assert payload["data"][0][headers[-1]] == ""

    def test_respondent_token_when_not_anonymous(self):
        q = SimpleNamespace(id=uuid.uuid4(), order_index=1, content="Why?")
        r = SimpleNamespace(id=uuid.uuid4(), anonymous_token="direct_abc", started_at=None, completed_at=None)
        survey = SimpleNamespace(is_anonymous=False)
        headers, rows = build_export_rows(survey, [q], [r], {r.id: {q.id: {"value": "ok"}}})
        assert headers[-1] == "Q2: Why?"
        assert rows[0][1] == "direct_abc"
        assert rows[0][-1] == "ok"


def test_export_filename_sanitizes_title():
    assert export_filename("Q3 Survey!", "csv") == "Q3_Survey__responses.csv"
