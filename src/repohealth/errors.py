"""Domain errors raised by the scoring engine."""


class ConfigurationError(Exception):
    """Raised when an evaluation profile or metric definition is invalid.

    Configuration errors are fatal and surface before any scoring begins.
    """

    def __init__(self, message: str, subject: str | None = None) -> None:
        self.subject = subject
        super().__init__(message)


class DataUnavailable(Exception):
    """Raised when a fact cannot be turned into a trustworthy metric value."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
