"""
Request bodies accepted by the HTTP API.

Field names follow the JSON the web client sends (camelCase); Python code
reads them through snake_case attributes.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints

from ..core.prompts import sanitize_for_ai

MAX_INPUT_LENGTH = 5000


def _sanitized_text(value: str) -> str:
    value = sanitize_for_ai(value)
    if not value:
        raise ValueError("Text must not consist only of template markers")
    return value


InputText = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_INPUT_LENGTH),
    AfterValidator(_sanitized_text)
]
StoryLine = Annotated[str, StringConstraints(max_length=MAX_INPUT_LENGTH)]
UserName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
Email = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        to_lower=True,
        max_length=254,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
]


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SelectedPath(ApiModel):
    """A path previously returned by suggest-paths."""
    id: Optional[int] = None
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    focus: Optional[str] = Field(default=None, max_length=500)


class StoryInput(ApiModel):
    line1: StoryLine
    line2: StoryLine
    line3: StoryLine
    line4: StoryLine
    line5: StoryLine


class SuggestPathsRequest(ApiModel):
    user_input: InputText = Field(alias="userInput")


class GenerateStoryRequest(ApiModel):
    user_input: InputText = Field(alias="userInput")
    selected_path: Optional[SelectedPath] = Field(default=None, alias="selectedPath")
    custom_direction: Optional[str] = Field(default=None, alias="customDirection", max_length=1000)


class RefineLineRequest(ApiModel):
    story: StoryInput
    line_number: int = Field(alias="lineNumber", ge=1, le=5)
    suggestion: InputText
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class CreateUserRequest(ApiModel):
    name: UserName
    email: Email
