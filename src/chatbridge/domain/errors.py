"""Domain exceptions.

Business refusals (archiving a protected channel, restoring an active one)
are returned as ``False``/``None`` by the services and are not represented
here.
"""


class ChatBridgeError(Exception):
    """Base exception for chatbridge errors."""


class NotFoundError(ChatBridgeError):
    """Raised when a referenced channel, mapping or event does not exist."""

    def __init__(self, kind: str, identifier: str | None) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ValidationError(ChatBridgeError):
    """Raised when a request is malformed."""


class UnauthorizedError(ChatBridgeError):
    """Raised when an operation needs a caller identity and none was given."""

    def __init__(self, message: str = "Caller identity required") -> None:
        super().__init__(message)


class UnsupportedPlatformError(ChatBridgeError):
    """Raised when no adapter exists for a platform or operation."""


class ExternalPlatformError(ChatBridgeError):
    """Raised when an external platform call fails after retries."""
