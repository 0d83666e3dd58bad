"""Exception hierarchy for tokenprobe."""

from __future__ import annotations


class TokenProbeError(Exception):
    """Base class for all tokenprobe errors."""


class ConfigError(TokenProbeError):
    pass


class LLMUnavailableError(TokenProbeError):
    """
    The reasoning backend could not be reached or streamed from.

    Always fatal for the run: raised on transport failure, non-success HTTP
    status, or when the whole request (including draining the stream) exceeds
    its timeout.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ToolExecutionError(TokenProbeError):
    """A single tool call failed.  Recoverable: the run continues."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"
