"""JSON extraction from model responses.

Models wrap JSON in markdown fences, add prose around it, or leave raw
newlines inside string values. Both parsers here tolerate all three.
"""

import json
import re

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Allows control characters (raw newlines, tabs) inside JSON strings
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _try_loads(text: str):
    """Try parsing JSON, first strictly then leniently."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return _LENIENT_DECODER.decode(text)
    except json.JSONDecodeError:
        pass
    raise json.JSONDecodeError("", text, 0)


def _candidates(text: str):
    """Yield substrings that may hold the JSON payload, most likely first."""
    yield text
    match = _JSON_FENCE_RE.search(text)
    if match:
        yield match.group(1).strip()
    for start_char, end_char in [("{", "}"), ("[", "]")]:
        start = text.find(start_char)
        end = text.rfind(end_char)
        if start != -1 and end != -1 and end > start:
            yield text[start:end + 1]


def _parse_any(text: str):
    text = (text or "").strip()
    for candidate in _candidates(text):
        try:
            return _try_loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError(f"Failed to parse JSON from model response: {text[:200]}...")


def _ensure_dict(result) -> dict:
    """Use the first dict of a list, or wrap scalars."""
    if isinstance(result, dict):
        return result
    if isinstance(result, list):
        for item in result:
            if isinstance(item, dict):
                return item
        return {"items": result}
    return {"value": result}


def parse_json_response(text: str) -> dict:
    """Extract and parse a JSON object from model response text.

    Always returns a dict; lists are normalized via _ensure_dict.

    Raises:
        ValueError: If no JSON can be found.
    """
    return _ensure_dict(_parse_any(text))


def parse_json_list(text: str, key: str = "references") -> list:
    """Extract a JSON array from model response text.

    Accepts a bare array or an object holding the array under ``key``
    (or under the object's only list value).

    Raises:
        ValueError: If no JSON array can be found.
    """
    result = _parse_any(text)
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        if isinstance(result.get(key), list):
            return result[key]
        lists = [v for v in result.values() if isinstance(v, list)]
        if len(lists) == 1:
            return lists[0]
    raise ValueError(f"Model response holds no JSON array: {str(text)[:200]}...")
