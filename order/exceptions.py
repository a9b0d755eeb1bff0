from typing import Any, Dict, Optional


class OrderFlowError(Exception):
    """Base exception for order lifecycle errors.

    Each subclass maps to one entry of the error taxonomy and carries the
    HTTP status the API layer renders it with.
    """

    code = "error"
    http_status = 400
    default_detail = "Order operation failed"

    def __init__(self, detail: Optional[str] = None, **extra: Any) -> None:
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        payload.update(self.extra)
        return payload


class NotFound(OrderFlowError):
    """Raised when an order or a related record cannot be found."""

    code = "not_found"
    http_status = 404
    default_detail = "Order not found"


class Unauthorized(OrderFlowError):
    """Raised when the actor's role or ownership does not permit the operation."""

    code = "unauthorized"
    http_status = 403
    default_detail = "You are not allowed to perform this action"


class InvalidTransition(OrderFlowError):
    """Raised when a state machine precondition is violated."""

    code = "invalid_transition"
    http_status = 400
    default_detail = "This action is not allowed in the order's current state"


class Conflict(OrderFlowError):
    """Raised when a compare-and-swap write or a uniqueness check loses a race."""

    code = "conflict"
    http_status = 409
    default_detail = "The order was changed by someone else. Refresh and try again."


class PartialSuccess(OrderFlowError):
    """Raised when a multi-step operation committed only some of its effects.

    ``extra`` always carries enough identifiers to resume the operation by
    re-invoking it.
    """

    code = "partial_success"
    http_status = 202
    default_detail = "The operation was recorded but a follow-up step is pending"

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["success"] = True
        payload["partial"] = True
        return payload


class Upstream(OrderFlowError):
    """Raised when the record store or a dependency is unavailable."""

    code = "upstream"
    http_status = 503
    default_detail = "The order service is temporarily unavailable"
