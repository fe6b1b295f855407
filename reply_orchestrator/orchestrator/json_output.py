"""Parsing of JSON-only model output into pydantic models."""

import json
import re
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from reply_orchestrator.orchestrator.errors import MalformedOutputError, SchemaValidationError

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```json\s*|```\s*")


def strip_fences(content: str) -> str:
    """Remove markdown code fences the model may wrap around JSON."""
    return _FENCE_RE.sub("", content or "").strip()


def extract_json_object(content: str) -> str:
    """Outermost {...} span of the output, or the fence-stripped text when there is none."""
    raw = strip_fences(content)
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start == -1 or end <= start:
        return raw
    return raw[start:end]


def parse_json_output(content: str, model: Type[M]) -> M:
    """
    Deserialize then validate model output.

    Text the model writes around the JSON object is ignored.

    Raises:
        MalformedOutputError: Output is not JSON
        SchemaValidationError: JSON does not match the model
    """
    raw = extract_json_object(content)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(
            f"Model output is not valid JSON: {e.msg}",
            context={"preview": raw[:200]},
            cause=e
        ) from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(
            f"Model output failed {model.__name__} validation",
            context={"errors": e.errors(include_url=False, include_context=False)},
            cause=e
        ) from e
