"""Unit tests for stored answer decoding."""

from __future__ import annotations

from app.services.answer_values import (
    choice_values,
    decode_answer,
    answer_key,
    encode_answer,
    numeric_value,
    text_value,
)


class TestEncodeDecode:
    def test_encode_wraps_bare_values(self):
        assert encode_answer(3) == {"value": 3}
        assert encode_answer({"row": "a"}) == {"value": {"row": "a"}}

    def test_matrix_row_named_value_keeps_its_shape(self):
        assert encode_answer({"value": "good"}) == {"value": {"value": "good"}}
        assert decode_answer(encode_answer({"value": "good"})) == {"value": "good"}

    def test_decode_handles_every_stored_shape(self):
        assert decode_answer({"value": "x"}) == "x"
        assert decode_answer('{"value": 4}') == 4
        assert decode_answer("plain text") == "plain text"
        assert decode_answer(7) == 7


class TestNumericValue:
    def test_zero_is_a_score(self):
        assert numeric_value({"value": 0}) == 0
        assert numeric_value(0) == 0

    def test_integer_prefix_semantics(self):
        assert numeric_value(7.9) == 7
        assert numeric_value({"value": "7.5"}) == 7
        assert numeric_value({"value": "7abc"}) == 7

    def test_non_numeric(self):
        assert numeric_value({"value": True}) is None
        assert numeric_value({"value": "abc"}) is None
        assert numeric_value({"value": None}) is None
        assert numeric_value(float("nan")) is None


class TestChoiceAndText:
    def test_choice_values_drop_blanks_only(self):
        assert choice_values({"value": ["a", "", None, "b"]}) == ["a", "b"]
        assert choice_values({"value": "x"}) == ["x"]
        assert choice_values({"value": ""}) == []
        assert choice_values({"value": None}) == []

    def test_false_and_zero_are_selections(self):
        assert choice_values({"value": False}) == [False]
        assert choice_values({"value": 0}) == [0]
        assert choice_values({"value": [0, False, 1]}) == [0, False, 1]

    def test_answer_key(self):
        assert answer_key(True) == "true"
        assert answer_key(False) == "false"
        assert answer_key(0) == "0"
        assert answer_key(None) == "null"
        assert answer_key(["a", True]) == "a,true"

    def test_text_value(self):
        assert text_value({"value": "hello"}) == "hello"
        assert text_value({"value": 5}) == "5"
        assert text_value({"value": None}) is None

