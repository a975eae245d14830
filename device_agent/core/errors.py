# device_agent/core/errors.py
from typing import Optional


class AgentError(Exception):
    """Base class for every failure raised by the agent loop and its collaborators."""

    retryable = True


class CaptureError(AgentError):
    """The device or display could not be reached for a screenshot."""


class TransportError(AgentError):
    """The model service was unreachable or answered with an unusable response."""


class ParseError(AgentError):
    """Malformed model output. Raised inside the parser only, never propagated."""


class BoxParseError(ParseError):
    pass


class ExecutionError(AgentError):
    """A device action could not be injected."""

    def __init__(self, message: str, action_type: Optional[str] = None):
        super().__init__(message)
        self.action_type = action_type

    def __str__(self):
        base = super().__str__()
        if self.action_type:
            return f"[{self.action_type}] {base}"
        return base


class ConfigurationError(ExecutionError):
    # a missing device capability will not appear between attempts
    retryable = False


class CancelledError(AgentError):
    """Cooperative abort observed on the cancellation token."""

    retryable = False
