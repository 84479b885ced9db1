"""Pull a JSON payload out of free-form model text."""

import json
import re
from typing import Any

from coach_memory.core.errors import MalformedResponseError

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _candidates(text: str, opener: str, closer: str) -> list[str]:
    candidates = [match.strip() for match in _FENCE.findall(text)]
    candidates.append(text.strip())
    start = text.find(opener)
    end = text.rfind(closer)
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    return candidates


def _parse(text: str, expected: type, opener: str, closer: str, operation: str) -> Any:
    for candidate in _candidates(text, opener, closer):
        try:
            payload = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(payload, expected):
            return payload

    raise MalformedResponseError(
        message=f"Expected a JSON {expected.__name__} in model output",
        details={
            "source": "json_payload",
            "operation": operation,
            "preview": text[:200],
        },
    )


def parse_json_array(text: str) -> list[Any]:
    """First JSON array found in ``text``.

    Raises:
        MalformedResponseError: If no array can be parsed
    """
    return _parse(text, list, "[", "]", "parse_json_array")


def parse_json_object(text: str) -> dict[str, Any]:
    """First JSON object found in ``text``.

    Raises:
        MalformedResponseError: If no object can be parsed
    """
    return _parse(text, dict, "{", "}", "parse_json_object")
