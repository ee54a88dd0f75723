"""
Error handling for the nsticky daemon.

Every failure the transition engine can surface is a StickyError subclass with
a structured code, so the request server can render it as an ``Error:`` line
and the logs keep the context that produced it.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """
    Error codes for nsticky.

    - 1000-1099: Request/protocol errors
    - 1100-1199: Window membership errors
    - 1200-1299: Compositor (niri) errors
    - 1300-1399: Configuration errors
    """

    # Request/protocol errors (1000-1099)
    PROTOCOL_ERROR = 1000
    INTERNAL_ERROR = 1001

    # Window membership errors (1100-1199)
    WINDOW_NOT_FOUND = 1100
    INVALID_STATE = 1101
    ACTIVE_WINDOW_UNAVAILABLE = 1102

    # Compositor errors (1200-1299)
    REGISTRY_QUERY_FAILED = 1200
    REMOTE_ACTION_FAILED = 1201
    EVENT_STREAM_CLOSED = 1202

    # Configuration errors (1300-1399)
    CONFIG_INVALID = 1300


class StickyError(Exception):
    """Base exception for nsticky errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize nsticky error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message (sent to clients verbatim)
            suggestion: Suggested recovery action
            context: Additional context for debugging
        """
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to a dictionary for structured logging.

        Returns:
            Error dictionary with code, message, suggestion, and context
        """
        result = {
            "code": self.code.value,
            "message": self.message
        }

        if self.suggestion:
            result["suggestion"] = self.suggestion

        if self.context:
            result["context"] = self.context

        return result


class NotFound(StickyError):
    """Referenced window is absent from the live niri window list."""

    def __init__(self, window_id: int, message: str = "Window not found in Niri"):
        super().__init__(
            code=ErrorCode.WINDOW_NOT_FOUND,
            message=message,
            suggestion="Run 'niri msg windows' to list current window ids",
            context={"window_id": window_id}
        )


class InvalidState(StickyError):
    """Membership precondition of an operation is not met."""

    def __init__(self, window_id: int, message: str):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            context={"window_id": window_id}
        )


class ActiveWindowUnavailable(StickyError):
    """No focused window or active workspace could be resolved."""

    def __init__(self, message: str = "Failed to get active window"):
        super().__init__(
            code=ErrorCode.ACTIVE_WINDOW_UNAVAILABLE,
            message=message,
            suggestion="Focus a window and retry"
        )


class RemoteActionFailure(StickyError):
    """A move command sent to niri did not succeed."""

    def __init__(self, window_id: int, destination: str, reason: str):
        super().__init__(
            code=ErrorCode.REMOTE_ACTION_FAILED,
            message=f"Failed to move window {window_id} to workspace {destination}: {reason}",
            suggestion="Ensure niri is running and NIRI_SOCKET is accessible",
            context={"window_id": window_id, "destination": destination, "reason": reason}
        )


class RegistryError(StickyError):
    """A niri query (windows, focused window, workspaces) failed."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            code=ErrorCode.REGISTRY_QUERY_FAILED,
            message=f"Niri query '{operation}' failed: {reason}",
            suggestion="Ensure niri is running and the niri binary is on PATH",
            context={"operation": operation, "reason": reason}
        )


class ProtocolError(StickyError):
    """Malformed request line at the client boundary."""

    def __init__(self, message: str, line: Optional[str] = None):
        context = {}
        if line is not None:
            context["line"] = line

        super().__init__(
            code=ErrorCode.PROTOCOL_ERROR,
            message=message,
            suggestion="Run 'nsticky --help' for the list of commands",
            context=context
        )


class EventStreamClosed(StickyError):
    """The niri event stream ended or its transport broke."""

    def __init__(self, reason: str):
        super().__init__(
            code=ErrorCode.EVENT_STREAM_CLOSED,
            message=f"Niri event stream closed: {reason}",
            suggestion="The daemon exits so the service manager can restart it",
            context={"reason": reason}
        )


class ConfigError(StickyError):
    """Daemon configuration could not be loaded or is invalid."""

    def __init__(self, message: str, source: Optional[str] = None):
        context = {}
        if source:
            context["source"] = source

        super().__init__(
            code=ErrorCode.CONFIG_INVALID,
            message=message,
            suggestion="Check the config file and NSTICKY_* environment variables",
            context=context
        )
