"""
Model reply normalization.

Turns the model's reply into a validated payload. Structured tool output is
preferred; otherwise the JSON object embedded in the free text is scraped
and validated against the expected schema.
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ..errors import ResponseParseError, ResponseSchemaError

# Greedy: first "{" through the last "}" in the reply
_JSON_SPAN = re.compile(r"\{.*\}", re.DOTALL)


class StoryLines(BaseModel):
    line1: str
    line2: str
    line3: str
    line4: str
    line5: str


class StoryPath(BaseModel):
    id: int
    title: str
    description: str
    focus: str


class PathsPayload(BaseModel):
    """Reply shape for suggest_paths."""
    paths: List[StoryPath] = Field(min_length=1)


class StoryMetadata(BaseModel):
    language: str
    tone: str
    themes: List[str] = Field(default_factory=list)


class StoryPayload(BaseModel):
    """Reply shape for generate_story."""
    story: StoryLines
    metadata: StoryMetadata


class RefinePayload(BaseModel):
    """Reply shape for refine_line."""
    story: StoryLines
    changed_line: int = Field(ge=1, le=5)
    explanation: str


P = TypeVar("P", bound=BaseModel)


def extract_json(text: str) -> Any:
    """Parse the JSON object embedded in a model reply.

    Takes the largest brace-delimited span (first ``{`` to last ``}``). When
    the text has no braces at all the whole text is parsed.

    Raises:
        ResponseParseError: If the selected text is not valid JSON
    """
    if text is None:
        raise ResponseParseError("Model reply is empty", "")
    match = _JSON_SPAN.search(text)
    candidate = match.group(0) if match else text
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Model reply is not valid JSON: {e}", text) from e


def validate_payload(data: Any, payload_type: Type[P], raw_text: str = "") -> P:
    """Validate parsed JSON against ``payload_type``.

    Raises:
        ResponseSchemaError: If the object does not match the schema
    """
    try:
        return payload_type.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "<root>"
            for error in e.errors()
        )
        raise ResponseSchemaError(
            f"Model reply does not match {payload_type.__name__} ({fields})",
            raw_text
        ) from e


def normalize(
    text: str,
    payload_type: Type[P],
    structured: Optional[Mapping[str, Any]] = None
) -> P:
    """Decode a model reply into a validated payload.

    Args:
        text: Free-text reply from the model
        payload_type: Expected payload schema
        structured: Tool/function-call output, used instead of ``text`` when present

    Returns:
        Validated payload instance

    Raises:
        ResponseParseError: If no JSON can be decoded
        ResponseSchemaError: If the decoded JSON has the wrong shape
    """
    if structured is not None:
        return validate_payload(dict(structured), payload_type, text or "")
    data = extract_json(text)
    return validate_payload(data, payload_type, text)


def output_schema(payload_type: Type[BaseModel]) -> Dict[str, Any]:
    """JSON schema of a payload type, for structured-output requests."""
    return payload_type.model_json_schema()
