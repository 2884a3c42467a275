"""Extraction of structured review results from free-form agent output."""

import json
import re
from typing import Any

from multi_reviewer.errors import ExtractionError
from multi_reviewer.models.review import ReviewResult

# Larger outputs are rejected outright
MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# CSI escape sequences some agent CLIs emit for colour and cursor control
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

_PAYLOAD_KEYS = ("verdict", "findings")

_decoder = json.JSONDecoder()


def clean_output(text: str) -> str:
    """Strip a leading BOM and ANSI escape codes."""
    if text.startswith("\ufeff"):
        text = text[1:]
    return _ANSI_ESCAPE.sub("", text)


def extract_json_objects(text: str) -> list[dict[str, Any]]:
    """Return every top-level JSON object embedded in ``text``, in order.

    Objects inside markdown code fences are found the same way as objects
    in prose. Nested objects are not returned separately.
    """
    objects = []
    pos = text.find("{")
    while pos != -1:
        try:
            value, end = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(value, dict):
            objects.append(value)
        pos = text.find("{", end)
    return objects


def looks_like_review(value: dict[str, Any]) -> bool:
    return any(key in value for key in _PAYLOAD_KEYS)


def extract_review(raw_output: str) -> ReviewResult:
    """Locate and validate the review payload in an agent's output.

    Agents tend to print their final answer last, so the last object that
    carries ``verdict`` or ``findings`` wins.

    Args:
        raw_output: Full text the agent printed

    Returns:
        Validated ReviewResult

    Raises:
        ExtractionError: If the output is too large or has no payload
        ReviewValidationError: If the payload has invalid values
    """
    if len(raw_output.encode("utf-8")) > MAX_OUTPUT_BYTES:
        raise ExtractionError(f"agent output exceeds {MAX_OUTPUT_BYTES} bytes")

    candidates = [
        obj for obj in extract_json_objects(clean_output(raw_output)) if looks_like_review(obj)
    ]
    if not candidates:
        raise ExtractionError("no review JSON object found in agent output")
    return ReviewResult.from_dict(candidates[-1])
