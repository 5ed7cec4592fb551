"""Helpers for turning raw model output into validated structures."""

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)


class ModelOutputParseError(Exception):
    """Model output could not be parsed into the expected structure."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

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


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as a JSON object.

    Tries the fence-stripped text first, then the outermost ``{...}`` span,
    since chat models like to wrap JSON in prose.

    Raises:
        ModelOutputParseError: If no JSON object can be recovered
    """
    cleaned = _strip_llm_fences(raw_output)
    candidates = [cleaned]
    brace_match = re.search(r"\{[\s\S]*\}", cleaned)
    if brace_match and brace_match.group(0) != cleaned:
        candidates.append(brace_match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ModelOutputParseError("Model output is not a JSON object", raw=raw_output)


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Args:
        raw_output: Raw string from LLM response
        model: Pydantic model class to validate against

    Returns:
        Validated Pydantic model instance

    Raises:
        ModelOutputParseError: If JSON parsing or validation fails
    """
    parsed = parse_llm_json_dict(raw_output)
    try:
        return model.model_validate(parsed)
    except ValidationError as e:
        raise ModelOutputParseError(
            f"Model output does not match {model.__name__}: {e.error_count()} error(s)",
            raw=raw_output,
        ) from e
