from __future__ import annotations

import json
import re
from typing import Any

from core.errors import InvalidShapeError, MalformedResponseError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


def extract_json_text(text: str) -> str:
    """Return the JSON candidate inside free-form model output.

    A fenced code block wins; otherwise the span from the first ``{`` to the
    last ``}``; otherwise the stripped text itself.
    """
    raw = text or ""
    fenced = _FENCE_RE.search(raw)
    if fenced:
        return fenced.group(1).strip()
    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        return raw[start : end + 1]
    return raw.strip()


def extract_json_object(text: str) -> dict[str, Any]:
    candidate = extract_json_text(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError("Failed to parse AI response as JSON") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("AI response is not a JSON object")
    return data


def parse_calendar_response(text: str) -> dict[str, Any]:
    data = extract_json_object(text)
    if not isinstance(data.get("items"), list):
        raise InvalidShapeError("Invalid calendar data structure")
    return data


def parse_menu_items(text: str) -> list[dict[str, Any]]:
    try:
        data = extract_json_object(text)
    except MalformedResponseError as exc:
        raise MalformedResponseError("Failed to parse menu items from AI response") from exc
    items = data.get("items") or []
    if not isinstance(items, list):
        raise InvalidShapeError("Invalid menu data structure")
    return [item for item in items if isinstance(item, dict)]
