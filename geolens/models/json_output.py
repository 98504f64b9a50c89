"""Parse JSON objects out of model replies."""

from __future__ import annotations

import json
import re
from typing import Any


_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.IGNORECASE | re.DOTALL)
_DECODER = json.JSONDecoder()


def _first_object(text: str) -> dict[str, Any] | None:
    # Try every "{" in order so prose like "Result {x}:" before the payload is skipped.
    pos = text.find("{")
    while pos != -1:
        try:
            obj, _ = _DECODER.raw_decode(text, pos)
            return obj
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
    return None


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Return the first JSON object in a model reply.

    Fenced ```json blocks are searched before the surrounding text. Text after
    the object (explanations, a second object) is ignored.
    """
    raw = (text or "").strip()
    if not raw:
        return None

    for block in _FENCE.findall(raw):
        obj = _first_object(block)
        if obj is not None:
            return obj
    return _first_object(raw)


def as_bool(value: Any) -> bool:
    """Read a model-supplied flag. Only real booleans and the string "true" count."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False
