"""Strict extraction of JSON values embedded in model responses."""

import json
from typing import Any

from .errors import MalformedModelOutput

OPENERS = "{["
CLOSERS = "}]"


def _balanced_end(text: str, start: int) -> int | None:
    """Return the index just past the bracket group opened at ``start``.

    Brackets inside JSON strings are ignored. None means the group never
    closes.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in OPENERS:
            depth += 1
        elif char in CLOSERS:
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_json(text: str | None, expected: type = dict) -> Any:
    """Return the first balanced JSON value of the expected type in ``text``.

    Models tend to wrap JSON in prose or code fences. Scanning starts at the
    first ``{`` (or ``[``) and only ever decodes a complete bracket group.
    A group that decodes to something else, such as ``{braces}`` in prose,
    is skipped as a whole, so values nested inside it are never taken for
    the payload. A group that never closes means the response was cut off.

    Args:
        text: Raw model response.
        expected: ``dict`` for a JSON object, ``list`` for a JSON array.

    Returns:
        The decoded JSON value.

    Raises:
        MalformedModelOutput: If the response is empty or truncated, or no
            value of the expected type is found.
    """
    if not text:
        msg = "Model response is empty"
        raise MalformedModelOutput(msg)

    opener = "{" if expected is dict else "["
    position = text.find(opener)
    while position != -1:
        end = _balanced_end(text, position)
        if end is None:
            msg = "Unbalanced JSON in model response"
            raise MalformedModelOutput(msg)
        try:
            value = json.loads(text[position:end])
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, expected):
                return value
        position = text.find(opener, end)

    msg = f"No JSON {expected.__name__} found in model response"
    raise MalformedModelOutput(msg)
