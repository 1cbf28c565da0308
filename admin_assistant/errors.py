"""Errors that cross the chat-turn boundary.

Everything else that goes wrong inside a turn is either a tool outcome
(``needs_info``, ``unavailable``, ``error``) or is wrapped into
:class:`AssistantUnavailableError`.
"""


class AssistantError(Exception):
    """Base class for errors surfaced to the assistant's callers."""


class AdminNotAuthorizedError(AssistantError):
    """The caller is not an administrator of the requested location."""


class DailyLimitExceededError(AssistantError):
    """The location used up its daily message quota."""


class SessionNotFoundError(AssistantError):
    """No session with that id belongs to the caller."""


class AssistantUnavailableError(AssistantError):
    """A transient failure (model, back-office or store); the same message can be retried."""


class InvalidToolCallError(AssistantError):
    """The model called a tool it was not offered or sent malformed arguments."""
