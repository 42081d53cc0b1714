"""
Unit tests for model reply normalization.

Tests JSON extraction from free text, schema validation and the
structured-output preference.
"""

import json

import pytest

from five_lines_story.core.normalizer import (
    PathsPayload,
    RefinePayload,
    StoryPayload,
    extract_json,
    normalize,
    output_schema,
)
from five_lines_story.errors import ResponseParseError, ResponseSchemaError

STORY = {
    "story": {
        "line1": "A founder runs a food delivery startup in Lisbon.",
        "line2": "She wants to reach profitability before the money runs out.",
        "line3": "Couriers quit faster than she can hire them.",
        "line4": "She turns the couriers into partners with a share of profits.",
        "line5": "Turnover drops and the company breaks even within a year.",
    },
    "metadata": {"language": "en", "tone": "practical", "themes": ["pivot"]},
}


class TestExtractJson:
    """Test brace-span extraction."""

    def test_json_wrapped_in_prose(self):
        text = 'Sure! Here it is: {"a": 1, "b": {"c": 2}} Hope this helps.'
        assert extract_json(text) == {"a": 1, "b": {"c": 2}}

    def test_pure_json_parses_identically(self):
        """A bare reply and the same reply wrapped in prose give the same object."""
        body = json.dumps(STORY)
        assert extract_json(body) == extract_json(f"Here you go:\n{body}\nThanks.")

    def test_greedy_span_covers_first_to_last_brace(self):
        text = 'Start {"outer": {"inner": true}} end'
        assert extract_json(text) == {"outer": {"inner": True}}

    def test_no_braces_parses_whole_text(self):
        assert extract_json("[1, 2, 3]") == [1, 2, 3]

    def test_no_braces_and_not_json(self):
        with pytest.raises(ResponseParseError):
            extract_json("I cannot help with that.")

    def test_malformed_json(self):
        with pytest.raises(ResponseParseError) as exc_info:
            extract_json('Here: {"paths": [ {"id": 1,, } ]}')
        assert "paths" in exc_info.value.raw_text

    def test_two_objects_are_not_one_json_document(self):
        """The greedy span joins both objects, which is not valid JSON."""
        with pytest.raises(ResponseParseError):
            extract_json('{"a": 1} and {"b": 2}')


class TestNormalize:
    """Test schema-validated decoding."""

    def test_paths_from_prose(self):
        text = (
            'Here are some paths: {"paths":[{"id":1,"title":"Grit",'
            '"description":"...","focus":"resilience"}]}'
        )
        payload = normalize(text, PathsPayload)
        assert payload.paths[0].title == "Grit"
        assert payload.paths[0].focus == "resilience"

    def test_story_payload(self):
        payload = normalize(json.dumps(STORY), StoryPayload)
        assert payload.story.line3 == STORY["story"]["line3"]
        assert payload.metadata.themes == ["pivot"]

    def test_missing_line_is_rejected(self):
        """Valid JSON with the wrong shape raises a schema error."""
        broken = json.loads(json.dumps(STORY))
        del broken["story"]["line3"]
        with pytest.raises(ResponseSchemaError, match="story.line3"):
            normalize(json.dumps(broken), StoryPayload)

    def test_schema_error_is_a_parse_error(self):
        with pytest.raises(ResponseParseError):
            normalize('{"paths": []}', PathsPayload)

    def test_changed_line_out_of_range(self):
        reply = {"story": STORY["story"], "changed_line": 7, "explanation": "x"}
        with pytest.raises(ResponseSchemaError):
            normalize(json.dumps(reply), RefinePayload)

    def test_structured_output_preferred(self):
        """Tool output wins even when the free text is unusable."""
        structured = {"story": STORY["story"], "changed_line": 2, "explanation": "Sharper goal"}
        payload = normalize("not json at all", RefinePayload, structured)
        assert payload.changed_line == 2
        assert payload.explanation == "Sharper goal"

    def test_structured_output_still_validated(self):
        with pytest.raises(ResponseSchemaError):
            normalize("", RefinePayload, {"story": STORY["story"]})

    def test_metadata_themes_default(self):
        reply = {"story": STORY["story"], "metadata": {"language": "pt", "tone": "warm"}}
        payload = normalize(json.dumps(reply), StoryPayload)
        assert payload.metadata.themes == []


class TestOutputSchema:
    """Test JSON schema export for structured output requests."""

    def test_schema_lists_required_fields(self):
        schema = output_schema(RefinePayload)
        assert schema["type"] == "object"
        assert set(schema["required"]) == {"story", "changed_line", "explanation"}
