"""
Error types for the market digest system.
"""


class NewsletterError(Exception):
    """Base class for all newsletter errors."""

    kind = "NewsletterError"


class ConfigError(NewsletterError):
    """Raised when configuration is invalid or missing required values."""

    kind = "ConfigError"


class ValidationError(NewsletterError):
    """Raised for malformed or missing input. Never retried."""

    kind = "ValidationError"


class NotFoundError(NewsletterError):
    """Raised when an unsubscribe target does not exist."""

    kind = "NotFoundError"


class StorageError(NewsletterError):
    """Raised when the subscriber collection cannot be loaded or saved."""

    kind = "StorageError"


class DeliveryError(NewsletterError):
    """Base class for per-message delivery failures."""

    kind = "DeliveryError"


class TransportError(DeliveryError):
    """Raised when the mail transport rejects or fails a send."""

    kind = "TransportError"

    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic or message


class DeliveryTimeoutError(DeliveryError, TimeoutError):
    """Raised when a single send exceeds its allotted wait."""

    kind = "TimeoutError"
