from typing import Any


class RelayError(Exception):
    """Base class for every error raised by relaykit."""

    code: str = "RELAY_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(RelayError):
    """Caller supplied a bad title, agent name, content or id.

    Always raised before any state is touched.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        super().__init__(message, details={"field": field})
        self.field = field
        self.value = value


class NotFoundError(RelayError):
    code = "NOT_FOUND"

    def __init__(self, chat_id: str):
        super().__init__(f"Chat {chat_id} not found", details={"chat_id": chat_id})
        self.chat_id = chat_id


class QuotaExceededError(RelayError):
    code = "QUOTA_EXCEEDED"

    def __init__(self, agent: str, limit: int):
        super().__init__(
            f"Chat creation quota exceeded for agent {agent!r} ({limit} active chats)",
            details={"agent": agent, "limit": limit},
        )
        self.agent = agent
        self.limit = limit


class LockTimeoutError(RelayError):
    """The critical section for a resource could not be entered in time.

    Safe to retry: the guarded operation was never started.
    """

    code = "LOCK_TIMEOUT"

    def __init__(self, resource_id: str, timeout: float | None):
        super().__init__(
            f"Timed out after {timeout}s waiting for lock on {resource_id!r}",
            details={"resource_id": resource_id, "timeout": timeout},
        )
        self.resource_id = resource_id
        self.timeout = timeout


class PersistenceError(RelayError):
    """The backing store failed. The original exception is kept as ``__cause__``."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, details={"operation": operation})
        self.operation = operation
