"""
Error taxonomy for reconciliation context assembly.

Every error names the step that failed so log lines and kopf retry messages
point at the exact phase. The ``retryable`` flag tells the operator boundary
whether to requeue (TemporaryError) or give up until the user changes the
resource (PermanentError).
"""
from typing import Optional


class ReconciliationError(Exception):
    """Base class for all failures raised while assembling a context."""

    retryable: bool = False

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")


class NotFoundError(ReconciliationError):
    """The requested object does not exist (usually: it was deleted)."""


class TransportError(ReconciliationError):
    """The store or a remote endpoint could not be reached."""

    retryable = True


class ConflictError(ReconciliationError):
    """An optimistic patch was rejected because the baseline is stale."""

    retryable = True


class ConfigurationError(ReconciliationError):
    """The declared resource configuration is invalid or inconsistent."""


class ClientConstructionError(ReconciliationError):
    """Transport material for the management client is missing or invalid."""


class ReconciliationCancelled(ReconciliationError):
    """The reconciliation was cancelled or ran past its deadline."""

    retryable = True


class ManagementApiError(ReconciliationError):
    """A per-node management API call returned a non-success response."""

    retryable = True

    def __init__(self, step: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(step, message)
