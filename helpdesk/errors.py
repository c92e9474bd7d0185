"""
Error taxonomy for the conversation orchestrator.

Only input, capacity and terminal errors ever reach a channel. Dependency
failures are absorbed by the breaker registry and consistency errors are
retried by the router, so neither appears in a user-visible reply.
"""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""

    code: str = "internal_error"


class MalformedInputError(OrchestratorError):
    """Raised by the channel gateway when a raw event cannot be parsed."""

    code = "malformed_input"


class SessionOverloadedError(OrchestratorError):
    """Raised when a session's turn queue is full or conflicts persist."""

    code = "session_overloaded"

    def __init__(self, session_key: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Too many queued turns for session '{session_key}'")
        self.session_key = session_key


class VersionConflictError(OrchestratorError):
    """Raised by a session store when a compare-and-swap write loses."""

    code = "version_conflict"

    def __init__(
        self, session_key: str, expected: Optional[int], actual: Optional[int]
    ) -> None:
        super().__init__(
            f"Version conflict on session '{session_key}': "
            f"expected {expected}, found {actual}"
        )
        self.session_key = session_key
        self.expected = expected
        self.actual = actual


class SessionTerminalError(OrchestratorError):
    """Raised when a turn arrives for a Closed or Expired session."""

    code = "session_terminal"

    def __init__(self, session_key: str, state: str) -> None:
        super().__init__(f"Session '{session_key}' is {state}; start a new session")
        self.session_key = session_key
        self.state = state


class SlotResolutionTimeout(OrchestratorError):
    """Raised when entity enrichment for a slot misses its deadline."""

    code = "slot_resolution_timeout"

    def __init__(self, slot_name: str) -> None:
        super().__init__(f"Could not resolve slot '{slot_name}' in time")
        self.slot_name = slot_name


class CircuitOpenError(OrchestratorError):
    """Passed to fallbacks when a call was short-circuited by an open breaker."""

    code = "circuit_open"

    def __init__(self, dependency: str) -> None:
        super().__init__(f"Circuit for '{dependency}' is open")
        self.dependency = dependency


class InvalidTransitionError(OrchestratorError):
    """Raised when a transition is not valid from the current state."""

    code = "invalid_transition"


USER_MESSAGES: dict[str, str] = {
    MalformedInputError.code: (
        "Sorry, we could not process that message. Please try sending it again."
    ),
    SessionOverloadedError.code: (
        "We're still working through your previous messages. "
        "Please wait a moment before sending more."
    ),
    SessionTerminalError.code: (
        "This conversation has ended. Send a new message to start a fresh one."
    ),
}

GENERIC_ERROR_MESSAGE = (
    "An error occurred while processing your request. Our team has been notified."
)


def user_message_for(error: BaseException) -> str:
    """Map an error to the text a channel should show the user."""
    code = getattr(error, "code", None)
    return USER_MESSAGES.get(code, GENERIC_ERROR_MESSAGE)
