"""Recovery parsing for model replies that are only JSON-shaped."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from convograph.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    # Extract JSON from markdown code fences
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def extract_balanced_object(text: str) -> str:
    """Return the first balanced ``{...}`` substring, or "" if none.

    Braces inside string literals (with escapes) do not count towards depth.
    A candidate that never closes is skipped and the scan resumes after its
    opening brace.
    """
    cursor = 0
    while True:
        start = text.find("{", cursor)
        if start == -1:
            return ""
        depth = 0
        in_string = False
        escaped = False
        for j in range(start, len(text)):
            ch = text[j]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : j + 1]
        cursor = start + 1


def parse_llm_object(raw_output: str | None) -> dict[str, Any] | None:
    """
    Recover a JSON object from a model reply.

    Tries, in order: direct parse of the fence-stripped reply, then each
    balanced object-like substring. Never raises.

    Args:
        raw_output: Raw model text

    Returns:
        Parsed dict, or None when nothing object-shaped parses
    """
    if not raw_output or not raw_output.strip():
        return None

    cleaned = _strip_llm_fences(raw_output)
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, ValueError):
        pass

    for source in (cleaned, raw_output):
        cursor_text = source
        while cursor_text:
            block = extract_balanced_object(cursor_text)
            if not block:
                break
            try:
                parsed = json.loads(block)
                if isinstance(parsed, dict):
                    return parsed
            except (json.JSONDecodeError, ValueError):
                pass
            # Resume scanning after the opening brace of the failed block
            cursor_text = cursor_text[cursor_text.find(block) + 1 :]

    logger.debug(f"No JSON object recoverable from reply ({len(raw_output)} chars)")
    return None


def parse_llm_model(raw_output: str | None, model: type[T], default: T) -> T:
    """Parse a reply into ``model``; any failure yields ``default``."""
    data = parse_llm_object(raw_output)
    if data is None:
        return default
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Reply did not match {model.__name__}: {e.error_count()} errors")
        return default
