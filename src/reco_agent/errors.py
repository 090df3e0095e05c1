"""Exception hierarchy for the recommendation agent."""

from __future__ import annotations


class RecoAgentError(Exception):
    """Base class for every error raised by this package."""


class SearchBackendError(RecoAgentError):
    """A search backend call failed."""


class SearchTimeout(SearchBackendError):
    """A search backend call exceeded its deadline."""


class ToolExecutionFailure(RecoAgentError):
    """A tool could not be executed or raised while running."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class BackendError(RecoAgentError):
    """The text-generation backend failed."""


class BackendTimeout(BackendError):
    """The text-generation backend exceeded its deadline."""


class ResponseValidationError(RecoAgentError):
    """The terminal response stayed invalid after the retry budget was spent."""

    def __init__(self, reasons: list[str]) -> None:
        super().__init__("; ".join(reasons) or "invalid response")
        self.reasons = list(reasons)


class ConversationNotFound(RecoAgentError):
    """No persisted state exists for the conversation id."""


class StoreError(RecoAgentError):
    """Persisting conversation state failed."""


class ConversationEnded(RecoAgentError):
    """The conversation was ended and accepts no further turns."""
