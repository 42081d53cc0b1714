"""
Prompt registry for the 5-Lines-Story methodology.

Holds the fixed system prompt for each exchange kind and builds the user
message sent alongside it.
"""

import re
from enum import Enum
from typing import Dict, Mapping, Optional, Union


class PromptType(Enum):
    """Kinds of AI exchange the service performs."""
    SUGGEST_PATHS = "suggest_paths"
    GENERATE_STORY = "generate_story"
    REFINE_LINE = "refine_line"


METHODOLOGY = """THE 5-LINES-STORY METHODOLOGY:
Any story can be told in 5 structured lines:
- Line 1: CONTEXT/STARTING SITUATION - Where are we? Who are the characters? What is the setting?
- Line 2: DESIRE/GOAL - What is wanted? What is the aspiration?
- Line 3: OBSTACLE/CONFLICT - What stands in the way? What is the challenge?
- Line 4: ACTION/ATTEMPT - What was done? What decision or move was made?
- Line 5: RESULT/TRANSFORMATION - What changed? What was the outcome and the lesson?"""

SUGGEST_PATHS_PROMPT = f"""You are a storytelling expert who uses the 5-Lines-Story methodology.

{METHODOLOGY}

It works for personal stories, business pitches, use cases, brand narratives,
presentations and anything else that needs to be told.

YOUR TASK:
You will receive an INPUT from the user. From it you must:
1. ANALYZE the input and identify possible narrative directions
2. GENERATE 3 DIFFERENT development paths using the 5-Lines-Story methodology
3. Give each path:
   - A short, catchy title (max 6 words)
   - A brief description of the direction (1-2 sentences)
   - A narrative focus different from the other paths

IMPORTANT:
- ALWAYS answer in the same language as the user's input
- The 3 paths must be DISTINCT from each other
- Be creative but stay coherent with the original input
- Think of different angles: emotional, practical, inspirational, etc.

RESPONSE FORMAT (JSON):
{{
  "paths": [
    {{"id": 1, "title": "Path 1 title", "description": "Brief description focused on [aspect]", "focus": "emotional|practical|inspirational|transformative|etc"}},
    {{"id": 2, "title": "Path 2 title", "description": "Brief description focused on [another aspect]", "focus": "..."}},
    {{"id": 3, "title": "Path 3 title", "description": "Brief description focused on [third aspect]", "focus": "..."}}
  ]
}}

Return ONLY the JSON, with no additional text."""

GENERATE_STORY_PROMPT = f"""You are a storytelling expert who uses the 5-Lines-Story methodology.

{METHODOLOGY}

YOUR TASK:
You will receive:
1. The user's ORIGINAL INPUT
2. The CHOSEN PATH or a CUSTOM DIRECTION

Based on them, write a 5-line story that follows the methodology STRICTLY.

RULES:
- ALWAYS answer in the same language as the original input
- Each line must have between 15 and 35 words
- Be specific and use concrete details
- Create an emotional connection
- Keep the narrative coherent across the 5 lines
- Use visual, engaging language

RESPONSE FORMAT (JSON):
{{
  "story": {{
    "line1": "Line 1 text - Context/Starting situation",
    "line2": "Line 2 text - Desire/Goal",
    "line3": "Line 3 text - Obstacle/Conflict",
    "line4": "Line 4 text - Action/Attempt",
    "line5": "Line 5 text - Result/Transformation"
  }},
  "metadata": {{
    "language": "language code (pt, en, es, etc)",
    "tone": "tone of the story (inspirational, practical, etc)",
    "themes": ["theme1", "theme2"]
  }}
}}

Return ONLY the JSON, with no additional text."""

REFINE_LINE_PROMPT = """You are a storytelling expert who uses the 5-Lines-Story methodology.

The methodology structures stories in 5 specific lines:
- Line 1: CONTEXT/STARTING SITUATION
- Line 2: DESIRE/GOAL
- Line 3: OBSTACLE/CONFLICT
- Line 4: ACTION/ATTEMPT
- Line 5: RESULT/TRANSFORMATION

YOUR TASK:
You will receive:
1. The CURRENT 5 LINES of the story
2. The NUMBER of the line the user wants to change (1-5)
3. The user's SUGGESTED CHANGE

You must:
1. Keep the other 4 lines EXACTLY as they are
2. Rewrite ONLY the specified line, incorporating the user's suggestion
3. Make sure the changed line stays coherent with the others
4. Respect that line's role in the methodology (context, desire, obstacle, action or result)
5. Keep the same language as the original lines
6. Keep the line between 15 and 35 words

RESPONSE FORMAT (JSON):
{
  "story": {
    "line1": "Line 1 text (original or changed)",
    "line2": "Line 2 text (original or changed)",
    "line3": "Line 3 text (original or changed)",
    "line4": "Line 4 text (original or changed)",
    "line5": "Line 5 text (original or changed)"
  },
  "changed_line": 3,
  "explanation": "Short explanation of what was changed (1 sentence)"
}

Return ONLY the JSON, with no additional text."""

_PROMPTS: Dict[PromptType, str] = {
    PromptType.SUGGEST_PATHS: SUGGEST_PATHS_PROMPT,
    PromptType.GENERATE_STORY: GENERATE_STORY_PROMPT,
    PromptType.REFINE_LINE: REFINE_LINE_PROMPT,
}

_TOKEN_ESTIMATES: Dict[PromptType, int] = {
    PromptType.SUGGEST_PATHS: 400,
    PromptType.GENERATE_STORY: 500,
    PromptType.REFINE_LINE: 350,
}

DEFAULT_TOKEN_ESTIMATE = 400

_LANGUAGE_PATTERNS = {
    "pt": re.compile(r"\b(que|uma|para|com|não|está|mais|como|sobre|fazer)\b", re.IGNORECASE),
    "en": re.compile(r"\b(that|with|have|this|from|they|been|which|their)\b", re.IGNORECASE),
    "es": re.compile(r"\b(que|una|para|con|está|más|como|sobre|hacer)\b", re.IGNORECASE),
    "fr": re.compile(r"\b(que|une|pour|avec|est|plus|comme|sur|faire)\b", re.IGNORECASE),
    "de": re.compile(r"\b(dass|eine|für|mit|ist|mehr|wie|über|machen)\b", re.IGNORECASE),
}

_INJECTION_PATTERNS = (
    re.compile(r"\{\{.*?\}\}"),
    re.compile(r"<<<.*?>>>"),
    re.compile(r"<\|.*?\|>"),
)


def as_prompt_type(value: Union[PromptType, str]) -> PromptType:
    """Coerce a PromptType or its string value.

    Raises:
        ValueError: If the value names no known prompt type
    """
    if isinstance(value, PromptType):
        return value
    try:
        return PromptType(value)
    except ValueError:
        valid = [kind.value for kind in PromptType]
        raise ValueError(f"Unknown prompt type: {value!r} (expected one of {valid})")


def get_prompt(prompt_type: Union[PromptType, str]) -> str:
    """Return the fixed system prompt for an exchange kind."""
    return _PROMPTS[as_prompt_type(prompt_type)]


def estimate_tokens(prompt_type: Union[PromptType, str]) -> int:
    """Rough token estimate for one exchange of the given kind."""
    try:
        return _TOKEN_ESTIMATES[as_prompt_type(prompt_type)]
    except ValueError:
        return DEFAULT_TOKEN_ESTIMATE


def detect_language(text: str) -> str:
    """Guess the input language from common function words.

    Ties go to the language declared first; text with no hits is
    reported as English.
    """
    detected = "en"
    best_score = 0
    for language, pattern in _LANGUAGE_PATTERNS.items():
        score = len(pattern.findall(text))
        if score > best_score:
            best_score = score
            detected = language
    return detected


def sanitize_for_ai(text: str) -> str:
    """Strip template markers and special tokens from user text."""
    if not isinstance(text, str):
        return text
    for pattern in _INJECTION_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def build_generate_message(
    user_input: str,
    selected_path: Optional[Mapping[str, str]] = None,
    custom_direction: Optional[str] = None
) -> str:
    """Build the user message for a generate_story call.

    A custom direction takes precedence over a selected path.
    """
    message = f"ORIGINAL INPUT:\n{sanitize_for_ai(user_input)}\n\n"

    direction = sanitize_for_ai(custom_direction) if custom_direction else ""
    if direction:
        message += f"USER-CHOSEN DIRECTION:\n{direction}"
    elif selected_path:
        title = sanitize_for_ai(selected_path.get("title") or "")
        description = sanitize_for_ai(selected_path.get("description") or "")
        focus = sanitize_for_ai(selected_path.get("focus") or "")
        message += (
            f"CHOSEN PATH:\nTitle: {title}\n"
            f"Description: {description}\nFocus: {focus}"
        )
    else:
        message += "INSTRUCTION: Write a story that follows the original input."
    return message


def build_refine_message(story: Mapping[str, str], line_number: int, suggestion: str) -> str:
    """Build the user message for a refine_line call."""
    lines = "\n".join(
        f"Line {number}: {sanitize_for_ai(story.get(f'line{number}') or '')}"
        for number in range(1, 6)
    )
    return (
        f"CURRENT 5 LINES:\n{lines}\n\n"
        f"LINE TO CHANGE: {line_number}\n"
        f"USER SUGGESTION: {sanitize_for_ai(suggestion)}\n"
    )
