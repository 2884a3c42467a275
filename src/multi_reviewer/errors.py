"""Exceptions raised by the review pipeline."""


class ReviewError(Exception):
    """Base exception for all review pipeline errors."""


class ConfigError(ReviewError):
    """Invalid configuration, unsafe path or unreadable input file.

    Raised before any agent is started.
    """


class TemplateError(ReviewError):
    """A prompt template failed to parse or render."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class AgentTransportError(ReviewError):
    """An agent invocation failed (spawn error, non-zero exit, HTTP error, timeout)."""

    def __init__(self, agent: str, message: str, output: str = "") -> None:
        self.agent = agent
        # Whatever the agent printed before failing
        self.output = output
        super().__init__(message)


class ExtractionError(ReviewError):
    """No review payload could be located in an agent's output."""


class ReviewValidationError(ReviewError):
    """A review payload was found but carries unknown or malformed values."""


class ReviewCancelledError(ReviewError):
    """An agent did not reach a terminal state before the run was cancelled."""
