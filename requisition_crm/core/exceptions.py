"""Domain exceptions for the procurement lifecycle.

Services raise these before any write happens; the API layer maps each one
to an HTTP status code (see ``status_code``).
"""
from typing import Any, Dict, Optional


class ProcurementError(Exception):
    """Base exception for procurement lifecycle errors."""
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidQuantity(ProcurementError):
    """Quantity is not positive or a split exceeds the available total."""
    status_code = 422


class InvalidTransition(ProcurementError):
    """Requested status change is not legal from the current status."""
    status_code = 409


class StaleStateError(InvalidTransition):
    """Entity changed under the caller; refresh and retry."""
    status_code = 409


class EmptyQuoteSet(ProcurementError):
    """Cost comparison submitted without quotes and not direct delivery."""
    status_code = 422


class AlreadyTerminal(ProcurementError):
    """Entity is already in a terminal state."""
    status_code = 409


class NotFound(ProcurementError):
    """Referenced id does not resolve."""
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} not found",
            {"entity": entity, "id": str(entity_id)},
        )


class ValidationFailed(ProcurementError):
    """Business validation failed (e.g. expiry in the past, missing reason)."""
    status_code = 422


class PermissionDenied(ProcurementError):
    """Principal's role may not perform the action."""
    status_code = 403
