"""Tests for extracting and repairing structured model output."""

import json

import pytest

from app.schemas.coaching import DraftMessage, QualitySimulation
from app.services.llm_output import (
    iter_json_blocks,
    loads_lenient,
    parse_structured,
    repair_json,
)
from conftest import draft_json, simulation_json


@pytest.mark.parametrize("wrap", [
    "{}",
    "Here is the message you asked for:\n\n{}",
    "{}\n\nLet me know if you want a different tone.",
    "Sure! {} Hope this helps.",
    "```json\n{}\n```",
    "Reasoning first.\n```\n{}\n```\nDone.",
])
def test_wrapped_block_parses_same_as_bare_block(wrap):
    block = draft_json()
    bare = parse_structured(block, DraftMessage)
    wrapped = parse_structured(wrap.replace("{}", block), DraftMessage)

    assert bare.ok and wrapped.ok
    assert wrapped.value == bare.value
    assert wrapped.raw_block == block


def test_simulation_outer_object_wins_over_nested_scores():
    raw = "Analysis:\n" + simulation_json(score=7)
    result = parse_structured(raw, QualitySimulation)
    assert result.ok
    assert result.value.overall_effectiveness == 7
    assert result.value.scores.emotional_impact == 8


def test_raw_newlines_inside_strings_are_repaired():
    block = draft_json().replace("What made", "\nWhat made")
    result = parse_structured(block, DraftMessage)
    assert result.ok
    assert "\nWhat made" in result.value.full_message


def test_trailing_commas_are_removed():
    assert loads_lenient('{"a": [1, 2,], "b": {"c": 3,},}') == {"a": [1, 2], "b": {"c": 3}}


def test_invalid_backslash_escapes_are_doubled():
    assert loads_lenient(r'{"path": "C:\data\day1"}') == {"path": r"C:\data\day1"}


def test_stray_control_characters_are_dropped():
    assert loads_lenient('{"a": 1\x07, "b": "x\x01y"}') == {"a": 1, "b": "xy"}


def test_typographic_quotes_are_normalized():
    assert loads_lenient("{\u201ca\u201d: \u201cb\u201d}") == {"a": "b"}


def test_repair_leaves_valid_json_untouched():
    for block in (draft_json(), simulation_json()):
        assert repair_json(block) == block


def test_braces_inside_strings_do_not_end_block():
    text = 'noise {"a": "closing } brace and { opening", "b": 2} tail'
    assert next(iter_json_blocks(text)) == '{"a": "closing } brace and { opening", "b": 2}'


def test_first_valid_block_is_used_when_earlier_one_fails_schema():
    raw = 'For example {"foo": 1} would be wrong. Final answer:\n' + draft_json("challenge")
    result = parse_structured(raw, DraftMessage)
    assert result.ok
    assert result.value.recommended_message_type == "challenge"


def test_no_json_is_a_parse_error():
    result = parse_structured("I'm sorry, I can't write that message.", DraftMessage)
    assert not result.ok
    assert result.value is None
    assert result.error == "no JSON object found in response"


def test_empty_response_is_a_parse_error():
    assert parse_structured("   ", DraftMessage).error == "empty response"
    assert parse_structured(None, DraftMessage).error == "empty response"


def test_schema_violation_is_a_parse_error_not_partial_object():
    block = draft_json(pushNotificationText="short")
    result = parse_structured(block, DraftMessage)
    assert not result.ok
    assert result.error.startswith("DraftMessage validation failed")


def test_unknown_message_type_is_rejected():
    result = parse_structured(draft_json("pep_talk"), DraftMessage)
    assert not result.ok


def test_unbalanced_block_is_not_a_candidate():
    assert list(iter_json_blocks('{"a": {"b": 1}')) == ['{"b": 1}']


def test_repair_output_is_valid_json_for_noisy_input():
    noisy = '{"thinking": "line one\nline two\ttabbed", "n": 3,}'
    assert json.loads(repair_json(noisy)) == {"thinking": "line one\nline two\ttabbed", "n": 3}
