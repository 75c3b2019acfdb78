"""
gp-chat error types.

Every error carries a stable ``code`` so the bridge can report it to the
frontend without leaking exception classes.
"""

from typing import Any, Optional


class GpChatError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class InputValidationError(GpChatError):
    """Rejected user input: empty message, unknown button, bad activity data."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("input_validation", message, details)


class ServiceError(GpChatError):
    """A router, retrieval or generation call failed. Never retried by the service itself."""

    def __init__(self, service: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("service_error", message, details)
        self.service = service


class SessionError(GpChatError):
    def __init__(self, message: str, code: str = "session_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class BridgeError(GpChatError):
    def __init__(self, message: str):
        super().__init__("bridge_error", message)
