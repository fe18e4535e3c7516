from __future__ import annotations

import json

import pytest

from content.parser import extract_json_object, parse_calendar_response, parse_menu_items
from core.errors import InvalidShapeError, MalformedResponseError


def test_fenced_calendar_parses_to_same_object() -> None:
    calendar = {
        "items": [
            {
                "day": 1,
                "date": "2026-03-01",
                "postType": "reel",
                "theme": "Opening",
                "captionShort": "Hi",
                "captionLong": "Hello there",
                "hashtags": ["#coffee"],
                "cta": "Visit",
                "canvaPrompt": "Warm tones",
                "imageIdeas": "Latte art",
            }
        ]
    }
    text = f"Here you go!\n```json\n{json.dumps(calendar)}\n```\nEnjoy."
    assert parse_calendar_response(text) == calendar


def test_bare_object_surrounded_by_prose() -> None:
    text = 'Sure: {"theme": "New", "hashtags": ["#a"]} hope that helps'
    assert extract_json_object(text) == {"theme": "New", "hashtags": ["#a"]}


def test_unlabelled_fence() -> None:
    assert extract_json_object('```\n{"a": 1}\n```') == {"a": 1}


def test_malformed_json_raises() -> None:
    with pytest.raises(MalformedResponseError):
        extract_json_object('```json\n{"items": [1, 2,}\n```')


def test_no_json_at_all_raises() -> None:
    with pytest.raises(MalformedResponseError):
        extract_json_object("I could not generate a calendar today.")


def test_items_must_be_a_list() -> None:
    with pytest.raises(InvalidShapeError):
        parse_calendar_response('{"items": {"day": 1}}')
    with pytest.raises(InvalidShapeError):
        parse_calendar_response('{"days": []}')


def test_menu_items_drop_non_objects() -> None:
    items = parse_menu_items('{"items": [{"name": "Soup"}, "junk"]}')
    assert items == [{"name": "Soup"}]
