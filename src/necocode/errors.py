"""Error types raised by the API client, the agent loop and the tools."""


class ApiError(Exception):
    """Base class for failures talking to the model API."""

    prefix = "API error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class NetworkError(ApiError):
    """The request could not be sent or the connection failed."""

    prefix = "Network error"


class HttpError(ApiError):
    """The API answered with a non-2xx status."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        return f"HTTP error {self.status}: {self.message}"


class ParseError(ApiError):
    """A single SSE frame was not valid UTF-8 or JSON."""

    prefix = "Parse error"


class StreamError(ApiError):
    """Reading the response body failed mid-stream."""

    prefix = "Stream error"


class ServerError(ApiError):
    """The server sent an explicit ``error`` event."""


class ToolError(Exception):
    """A tool could not be found or invoked."""


class ConfigError(Exception):
    """Provider configuration is missing or invalid."""
