from decimal import Decimal
from typing import Any, Optional


class BaseAPIException(Exception):
    """
    Base exception for all API errors.

    Provides consistent structure with status_code, error_code, and details.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}


class ValidationException(BaseAPIException):
    """Malformed or out-of-policy input (HTTP 422)."""

    status_code = 422
    error_code = "VALIDATION_ERROR"


class InvalidStateException(BaseAPIException):
    """Transition not legal from the current status (HTTP 409)."""

    status_code = 409
    error_code = "INVALID_STATE"


class AuthenticationException(BaseAPIException):
    """Missing or invalid credentials (HTTP 401)."""

    status_code = 401
    error_code = "AUTHENTICATION_ERROR"


class AuthorizationException(BaseAPIException):
    """Caller lacks the role or ownership required (HTTP 403)."""

    status_code = 403
    error_code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Not allowed to perform this action"):
        super().__init__(message=message)


class NotFoundException(BaseAPIException):
    """Resource not found (HTTP 404)."""

    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"


class IntegrationException(BaseAPIException):
    """External dependency failed; retryable (HTTP 502)."""

    status_code = 502
    error_code = "INTEGRATION_ERROR"


class SystemException(BaseAPIException):
    """Internal system error (HTTP 500)."""

    status_code = 500
    error_code = "SYSTEM_ERROR"


# Domain-specific exceptions
class InsufficientBalanceException(ValidationException):
    """Payout amount exceeds available balance."""

    error_code = "PAYOUT_INSUFFICIENT_BALANCE"

    def __init__(
        self, provider_id: str, currency: str, available: Decimal, requested: Decimal
    ):
        super().__init__(
            message=(
                f"Insufficient balance. Available: {available} {currency}, "
                f"requested: {requested} {currency}"
            ),
            details={
                "provider_id": provider_id,
                "currency": currency,
                "available": str(available),
                "requested": str(requested),
            },
        )


class IncompleteMethodDetailsException(ValidationException):
    """Payout method details missing or not matching the method."""

    error_code = "PAYOUT_METHOD_DETAILS_INCOMPLETE"

    def __init__(self, method: str, missing: list[str]):
        super().__init__(
            message=f"Incomplete details for payout method {method}",
            details={"method": method, "missing_fields": missing},
        )


class PayoutNotFoundException(NotFoundException):
    """Payout ID not found or not visible to the caller."""

    error_code = "PAYOUT_NOT_FOUND"

    def __init__(self, payout_id: int):
        super().__init__(
            message=f"Payout not found: {payout_id}",
            details={"payout_id": payout_id},
        )


class PayoutStateException(InvalidStateException):
    """Payout is not in a status the requested action accepts."""

    error_code = "PAYOUT_INVALID_STATE"

    _VERBS = {
        "cancel": "cancelled",
        "approve": "approved",
        "reject": "rejected",
        "process": "processed",
        "mark_paid": "marked as paid",
        "mark_failed": "marked as failed",
    }

    def __init__(self, payout_id: int, action: str, current_status: str):
        verb = self._VERBS.get(action, action)
        super().__init__(
            message=f"This payout can no longer be {verb}",
            details={
                "payout_id": payout_id,
                "action": action,
                "current_status": current_status,
            },
        )


class SettlementGatewayException(IntegrationException):
    """Settlement processor call failed."""

    error_code = "SETTLEMENT_GATEWAY_ERROR"

    def __init__(self, operation: str, payout_id: int, reason: str):
        super().__init__(
            message=f"Settlement {operation} failed for payout {payout_id}; retry later",
            details={"operation": operation, "payout_id": payout_id, "reason": reason},
        )


class ExportGenerationException(IntegrationException):
    """Export artifact could not be produced."""

    error_code = "EXPORT_FAILED"

    def __init__(self, reason: str):
        super().__init__(
            message="Payout report generation failed",
            details={"reason": reason},
        )


class DuplicateEventException(InvalidStateException):
    """Event id reused with a different payload."""

    error_code = "EVENT_DUPLICATE"

    def __init__(self, event_id: str):
        super().__init__(
            message=f"Event already processed with different content: {event_id}",
            details={"event_id": event_id, "idempotent": False},
        )


class LedgerInvariantException(SystemException):
    """Ledger aggregate would violate a balance invariant."""

    error_code = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, provider_id: str, currency: str, operation: str):
        super().__init__(
            message=f"Ledger invariant violated during {operation}",
            details={
                "provider_id": provider_id,
                "currency": currency,
                "operation": operation,
            },
        )
