"""Custom exception classes for threadscribe."""


class ThreadScribeError(Exception):
    """Base exception for all threadscribe errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ThreadScribeError):
    """Invalid or missing configuration."""

    pass


class SlackImageDownloadError(ThreadScribeError):
    """Failed to download image from Slack."""

    pass


class ImageCompressionError(ThreadScribeError):
    """Failed to prepare an image for the extraction model."""

    pass


class ExtractionError(ThreadScribeError):
    """The extraction model could not be reached or rejected the request."""

    pass


class SlackMessengerError(ThreadScribeError):
    """Slack rejected a post or update."""

    pass


class MessageTooLongError(SlackMessengerError):
    """Slack rejected a message because its text exceeds the length ceiling."""

    pass


class LedgerConflictError(ThreadScribeError):
    """Ledger write kept losing to concurrent writers."""

    pass
