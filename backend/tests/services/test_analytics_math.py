"""Unit tests for the pure analytics arithmetic."""

from __future__ import annotations

from datetime import date

from app.services.analytics_service import (
    bucket_trend,
    completion_rate,
    compute_nps,
    js_round,
    nps_score,
    question_stats,
)


class TestRounding:
    def test_half_up(self):
        assert js_round(2.5) == 3
        assert js_round(-2.5) == -2
        assert js_round(2.4) == 2

    def test_completion_rate(self):
        assert completion_rate(0, 0) == 0
        assert completion_rate(1, 3) == 33
        assert completion_rate(2, 3) == 67
        assert completion_rate(5, 5) == 100


class TestNps:
    def test_empty_is_none(self):
        assert compute_nps([]) is None
        assert nps_score([]) is None

    def test_balanced(self):
        summary = compute_nps([10, 9, 8, 7, 6, 0])
        assert summary["score"] == 0
        assert summary["promoters"] == {"count": 2, "percentage": 33}
        assert summary["passives"]["count"] == 2
        assert summary["detractors"]["count"] == 2
        assert summary["totalResponses"] == 6

    def test_all_promoters(self):
        assert compute_nps([9, 10, 10])["score"] == 100

    def test_score_from_stored_values_keeps_zero(self):
        assert nps_score([{"value": 0}, {"value": 10}, {"value": "n/a"}]) == 0

    def test_all_detractors(self):
        assert compute_nps([0, 1, 2, 3, 4, 5, 6])["score"] == -100

    def test_mixed_rounds_to_minus_twenty(self):
        summary = compute_nps([9, 8, 7, 6, 5])
        assert summary["score"] == -20
        assert summary["promoters"] == {"count": 1, "percentage": 20}
        assert summary["passives"] == {"count": 2, "percentage": 40}
        assert summary["detractors"] == {"count": 2, "percentage": 40}

    def test_wrapped_and_bare_scores_agree(self):
        assert nps_score([{"value": 7}]) == nps_score([7]) == 0
        assert nps_score([{"value": 9}, 3]) == nps_score([9, {"value": 3}])


class TestQuestionStats:
    def test_numeric(self):
        stats = question_stats("nps", [{"value": 9}, {"value": 9}, {"value": 3}])
        assert stats["totalAnswers"] == 3
        assert stats["distribution"] == {"3": 1, "9": 2}
        assert stats["stats"] == {"average": 7.0, "min": 3, "max": 9, "count": 3}

    def test_choice(self):
        stats = question_stats("multiple_choice", [{"value": ["a", "b"]}, {"value": "a"}])
        assert stats["distribution"] == {"a": 2, "b": 1}
        assert stats["stats"] == {}

    def test_text(self):
        stats = question_stats("text_long", [{"value": "ab"}, {"value": "abcd"}])
        assert stats["stats"] == {"count": 2, "avgLength": 3}
        assert stats["distribution"] == {}

    def test_matrix(self):
        stats = question_stats("matrix", [{"value": {"r1": "good", "r2": True}}])
        assert stats["distribution"] == {"r1": {"good": 1}, "r2": {"true": 1}}

    def test_boolean_counts_both_answers(self):
        stats = question_stats(
            "multiple_choice", [{"value": True}, {"value": False}, {"value": False}]
        )
        assert stats["distribution"] == {"true": 1, "false": 2}
        assert stats["totalAnswers"] == 3

    def test_zero_choice_is_counted(self):
        stats = question_stats("multiple_choice", [{"value": 0}, {"value": [0, 1]}])
        assert stats["distribution"] == {"0": 2, "1": 1}

    def test_wrapped_and_bare_values_agree(self):
        for question_type in ("nps", "multiple_choice", "text_short"):
            wrapped = question_stats(question_type, [{"value": 7}])
            assert wrapped == question_stats(question_type, [7])


class TestBucketTrend:
    def test_fills_window_oldest_first(self):
        today = date(2026, 10, 18)
        rows = [(today, 3, 1), (date(2026, 9, 1), 5, 5)]
        trend = bucket_trend(rows, days=3, today=today)
        assert [d["date"] for d in trend] == ["2026-10-16", "2026-10-17", "2026-10-18"]
        assert trend[-1] == {"date": "2026-10-18", "count": 3, "completed": 1}
        assert sum(d["count"] for d in trend) == 3
