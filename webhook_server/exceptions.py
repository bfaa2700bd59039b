"""
Custom exceptions for the webhook server.
"""


class WebhookServerError(Exception):
    """Base exception for webhook server errors."""

    pass


class BindError(WebhookServerError):
    """Raised when a server cannot bind its listening address."""

    def __init__(self, message: str, address: str = ""):
        super().__init__(message)
        self.address = address


class BodyReadError(WebhookServerError):
    """Raised when an inbound request body cannot be read."""

    pass


class HandlerError(WebhookServerError):
    """Raised when a registered path handler fails."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"handler for {path!r} failed: {cause}")
        self.path = path
        self.cause = cause


class ShutdownError(WebhookServerError):
    """Raised when a server fails to release its resources on stop."""

    pass
