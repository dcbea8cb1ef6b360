"""Domain exceptions raised by the service layer.

Services raise these instead of ``HTTPException`` so they stay usable outside a
request (scheduler jobs, websocket handlers, tests). ``app.main`` registers a
handler that turns any ``DomainError`` into a JSON response with its status code.
"""

from decimal import Decimal
from typing import Any, Optional


class DomainError(Exception):
    """Base class for all business-rule failures."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        body.update(self.extra)
        return body


class ValidationError(DomainError):
    """Input rejected before any state was touched."""

    status_code = 422


class StateError(DomainError):
    """Operation not allowed in the current lifecycle state."""

    status_code = 409


class NotFoundError(DomainError):
    status_code = 404


class PermissionDeniedError(DomainError):
    status_code = 403


class ConcurrencyConflictError(DomainError):
    """Optimistic version check kept failing after all retries."""

    status_code = 409


class InsufficientResourceError(DomainError):
    """A balance or quota is too small for the request."""

    status_code = 400

    def __init__(
        self,
        message: str,
        requested: Any,
        available: Any,
        **extra: Any,
    ):
        shortfall = requested - available
        if isinstance(shortfall, Decimal):
            shortfall = str(shortfall)
        super().__init__(
            message,
            requested=str(requested) if isinstance(requested, Decimal) else requested,
            available=str(available) if isinstance(available, Decimal) else available,
            shortfall=shortfall,
            **extra,
        )
        self.requested = requested
        self.available = available


class InsufficientPointsError(InsufficientResourceError):
    def __init__(self, requested: int, available: int, user_id: Optional[int] = None):
        super().__init__(
            f"Insufficient points: requested {requested}, available {available}",
            requested=requested,
            available=available,
        )
        self.user_id = user_id
