"""
Custom exceptions for the chatroom session client.

Every component raises these so the session controller and the
presentation-facing facade can report failures consistently.
"""


class ChatSessionError(Exception):
    """Base exception for all chatroom session errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ChatSessionError):
    """Raised when local input validation fails (never reaches the network)."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class NotConnectedError(ChatSessionError):
    """Raised when a send is attempted outside the open transport phase."""

    def __init__(self, operation: str):
        super().__init__(f"Not connected: cannot {operation}", {"operation": operation})
        self.operation = operation


class TransportError(ChatSessionError):
    """Raised when the connection to the chat server fails or drops.

    Note: Named TransportError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(
        self,
        endpoint: str,
        cause: Exception | None = None,
        reason: str | None = None,
    ):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        if reason:
            details["reason"] = reason
        message = f"Connection failed to {endpoint}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.endpoint = endpoint
        self.cause = cause
        self.reason = reason


class ServerRejectionError(ChatSessionError):
    """Raised when the server answers with an explicit error message."""

    def __init__(self, reason: str):
        super().__init__(f"Server rejected request: {reason}", {"reason": reason})
        self.reason = reason


class DirectoryRequestError(ChatSessionError):
    """Raised when a room directory request fails."""

    def __init__(
        self,
        operation: str,
        reason: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {"operation": operation}
        if reason:
            details["reason"] = reason
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        message = f"Room directory request failed during {operation}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.operation = operation
        self.reason = reason
        self.status = status
        self.cause = cause


class StorageIOError(ChatSessionError):
    """Raised when a transcript storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class NotLoadedError(ChatSessionError):
    """Raised when the message store is used before a room is loaded."""

    def __init__(self, operation: str):
        super().__init__(
            f"No room loaded: cannot {operation}",
            {"operation": operation},
        )
        self.operation = operation
