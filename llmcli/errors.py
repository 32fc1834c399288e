# llmcli/errors.py
from typing import Optional


class LLMError(Exception):
    """Base class for every error raised by the conversation engine."""


class NetworkError(LLMError):
    """Connectivity failure or timeout while talking to a provider."""


class ResponseFormatError(LLMError):
    """The provider returned JSON we could not make sense of."""


class ApiError(LLMError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class RateLimitError(ApiError):
    pass


class ServerError(ApiError):
    pass


class StreamError(LLMError):
    """Malformed stream, backend-reported failure or interleaved tool calls."""


class ConfigError(LLMError):
    pass


class InvalidQueryError(LLMError):
    pass


class FormatError(LLMError):
    pass


# --- Tool errors ---

class ToolError(LLMError):
    pass


class ToolNotFoundError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name


class ToolExecutionError(ToolError):
    def __init__(self, reason: str):
        super().__init__(f"Tool execution failed: {reason}")


class ToolCallsDisabledError(ToolError):
    def __init__(self, calls: str):
        super().__init__(f"Tool calls not enabled but llm tried to call a tool: {calls}")


class InvalidArgumentError(ToolError):
    def __init__(self, reason: str):
        super().__init__(f"Invalid argument: {reason}")


# --- Server-Sent Events ---

class EventParseError(Exception):
    """A single SSE record could not be turned into an Event."""


class MissingDataError(EventParseError):
    def __init__(self):
        super().__init__("Invalid event format: no data field")


class RetryParseError(EventParseError):
    def __init__(self, value: str):
        super().__init__(f"Failed to parse retry value: {value!r}")
        self.value = value


def classify_http_error(status_code: int, body: str) -> ApiError:
    """
    Maps a non-success HTTP status to the matching ApiError subclass.
    401/403 -> authentication, 404 -> not found, 429 -> rate limit, 5xx -> server.
    """
    if status_code in (401, 403):
        return AuthenticationError("Invalid API key or unauthorized access", status_code)
    message = f"API request failed with status {status_code}: {body}"
    if status_code == 404:
        return NotFoundError(message, status_code)
    if status_code == 429:
        return RateLimitError(message, status_code)
    if 500 <= status_code < 600:
        return ServerError(message, status_code)
    return ApiError(message, status_code)
