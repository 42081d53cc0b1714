"""
Error types shared across the service.

Core code raises these; only the HTTP layer translates them into responses.
"""


class StoryServiceError(Exception):
    """Base class for all service errors."""


class AuthenticationError(StoryServiceError):
    """Raised when a bearer token is missing or fails verification."""


class ModelClientError(StoryServiceError):
    """Raised when the upstream model call fails or returns no usage data."""


class ResponseParseError(StoryServiceError):
    """Raised when the model reply does not contain parseable JSON."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class ResponseSchemaError(ResponseParseError):
    """Raised when the parsed JSON does not match the expected payload shape."""


class QuotaExceededError(StoryServiceError):
    """Raised when a user has used up a monthly limit and enforcement is on."""

    def __init__(self, message: str, limit_name: str):
        super().__init__(message)
        self.limit_name = limit_name


class NotFoundError(StoryServiceError):
    """Raised when a requested record does not exist."""


class ForbiddenError(StoryServiceError):
    """Raised when a record exists but belongs to another user."""
