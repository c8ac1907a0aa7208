from __future__ import annotations

import json

import pytest

from json_recovery import attempt_partial_parse, extract_json, repair_truncated_json, safe_parse_json
from result import JSONParseError


def test_extract_json_prefers_fenced_block() -> None:
    text = 'Here is the study:\n```json\n{"success": true}\n```\nLet me know {if} you need more.'

    assert extract_json(text) == '{"success": true}'


def test_extract_json_ignores_fence_without_json() -> None:
    text = "```\nnot json\n```\nResult: {\"a\": 1} done"

    assert extract_json(text) == '{"a": 1}'


def test_extract_json_strips_prose_around_object() -> None:
    text = 'Sure! {"title": "Sound Doctrine", "weeks": []} Hope this helps.'

    assert json.loads(extract_json(text)) == {"title": "Sound Doctrine", "weeks": []}


def test_extract_json_uses_array_when_no_object_precedes_it() -> None:
    assert extract_json('Ids: [1, 2, 3] end') == "[1, 2, 3]"


def test_extract_json_returns_trimmed_text_when_nothing_matches() -> None:
    assert extract_json("  I cannot help with that.  ") == "I cannot help with that."


def test_safe_parse_json_raises_parse_error() -> None:
    with pytest.raises(JSONParseError):
        safe_parse_json("{not valid json}", "test")


def test_repair_leaves_complete_json_untouched() -> None:
    text = '{"weekNumber": 1, "days": []}'

    assert repair_truncated_json(text) == text


def test_repair_drops_incomplete_trailing_property() -> None:
    text = (
        '{"weekNumber":1,"title":"Lesson One","days":[{"dayNumber":1,"title":"One",'
        '"questions":[{"questionText":"Q1","questionType":"text","order":1},'
        '{"questionText":"Q2","ord'
    )

    repaired = json.loads(repair_truncated_json(text))

    questions = repaired["days"][0]["questions"]
    assert repaired["title"] == "Lesson One"
    assert questions[0] == {"questionText": "Q1", "questionType": "text", "order": 1}
    assert questions[1] == {"questionText": "Q2"}
    assert all("ord" not in q for q in questions)


def test_repair_drops_dangling_key_and_comma() -> None:
    text = '{"title":"Study","description":"Desc","author'

    assert json.loads(repair_truncated_json(text)) == {"title": "Study", "description": "Desc"}


def test_repair_does_not_keep_a_number_cut_at_the_end() -> None:
    assert json.loads(repair_truncated_json('{"orders":[1,2,3')) == {"orders": [1, 2]}


def test_repair_drops_unterminated_string_value() -> None:
    text = '{"weeks":[{"title":"A"},{"title":"Lesson Tw'

    assert json.loads(repair_truncated_json(text)) == {"weeks": [{"title": "A"}]}


def test_attempt_partial_parse_recovers_weeks_from_open_fence() -> None:
    text = (
        '```json\n{"success":true,"study":{"title":"T","weeks":['
        '{"weekNumber":1,"title":"W","days":[]},{"weekNumber":2,"ti'
    )

    data = attempt_partial_parse(text, "test")

    assert data["success"] is True
    assert data["study"]["weeks"][0] == {"weekNumber": 1, "title": "W", "days": []}
    assert data["study"]["weeks"][1] == {"weekNumber": 2}


def test_attempt_partial_parse_returns_none_without_json() -> None:
    assert attempt_partial_parse("I'm sorry, the document is too long", "test") is None
