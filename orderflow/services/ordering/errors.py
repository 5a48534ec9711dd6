"""Ordering errors."""
from typing import Optional


class OrderFlowError(Exception):
    """Base class for ordering errors."""


class ValidationError(OrderFlowError):
    """Malformed or inconsistent input, rejected before any write."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PreconditionFailed(OrderFlowError):
    """Entity is not in the status a command requires (includes unknown ids)."""

    NOT_FOUND = "not_found"
    ALREADY_PROCESSED = "already_processed"
    NOT_READY = "not_ready"

    def __init__(self, entity: str, entity_id: int, reason: str, detail: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        self.detail = detail or f"{entity} {entity_id}: {reason}"
        super().__init__(self.detail)


class StoreError(OrderFlowError):
    """Persistence fault. Retryable; nothing was partially applied."""

    retryable = True


class BroadcastFailure(OrderFlowError):
    """Push to an observer failed. Logged, never affects committed state."""

    def __init__(self, connection_id: str, reason: str):
        super().__init__(f"connection {connection_id}: {reason}")
        self.connection_id = connection_id
        self.reason = reason


class IllegalTransition(ValueError):
    """A status change that the state machine does not allow."""
