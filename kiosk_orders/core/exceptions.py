"""
Exception classes for the kiosk order backend.

Three families map onto HTTP status classes:
- ValidationError (400): bad input, unknown reference, unconfigured dependency
- NotFoundError (404): unknown order or user context
- InfrastructureError (500): unexpected provider or store failure

Payment callback rejections (VerificationFailed, MalformedCallback) are
400-class as well, and never reach the lifecycle engine as a state change.
"""

from typing import Any, Dict, Optional


class OrderSystemError(Exception):
    """
    Base exception for all order system errors.

    Carries:
    - Error code (for client handling)
    - Message (safe to show to users)
    - HTTP status code (for API responses)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "order_system_error",
        http_status: int = 500,
        **kwargs: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.http_status = http_status
        self.metadata = kwargs

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }


# ============================================================================
# VALIDATION ERRORS (400)
# ============================================================================

class ValidationError(OrderSystemError):
    """Client-caused error."""

    def __init__(self, message: str, error_code: str = "validation_error", **kwargs: Any):
        super().__init__(message, error_code=error_code, http_status=400, **kwargs)


class EmptyCart(ValidationError):
    def __init__(self) -> None:
        super().__init__("Order must contain at least one item", error_code="empty_cart")


class MissingField(ValidationError):
    def __init__(self, field_name: str) -> None:
        super().__init__(f"{field_name} is required", error_code="missing_field", field=field_name)


class InvalidPaymentMethod(ValidationError):
    def __init__(self, method: Any) -> None:
        super().__init__(
            'Invalid payment method. Must be "card" or "swish"',
            error_code="invalid_payment_method",
            method=method,
        )


class UnknownItem(ValidationError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"Invalid menuItemId: {item_id}", error_code="unknown_item", item_id=item_id)


class InvalidQuantity(ValidationError):
    def __init__(self, quantity: Any) -> None:
        super().__init__(
            "Invalid quantity. Must be an integer >= 1",
            error_code="invalid_quantity",
            quantity=quantity,
        )


class InvalidStore(ValidationError):
    def __init__(self, store_id: str) -> None:
        super().__init__(f"Invalid storeId: {store_id}", error_code="invalid_store", store_id=store_id)


class ProviderUnconfigured(ValidationError):
    """
    Payment provider credentials or certificate are missing.

    A deployment issue rather than a runtime fault, so it is reported to the
    client as a 400 instead of a 500.
    """

    def __init__(self, provider: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"{provider} is not configured",
            error_code="provider_unconfigured",
            provider=provider,
        )


# ============================================================================
# CALLBACK REJECTIONS (400)
# ============================================================================

class CallbackRejected(ValidationError):
    """Inbound provider notification that must not change any state."""


class VerificationFailed(CallbackRejected):
    def __init__(self, message: str = "Webhook signature verification failed") -> None:
        super().__init__(message, error_code="verification_failed")


class MalformedCallback(CallbackRejected):
    def __init__(self, message: str = "Missing reference or status") -> None:
        super().__init__(message, error_code="malformed_callback")


# ============================================================================
# NOT FOUND (404)
# ============================================================================

class NotFoundError(OrderSystemError):
    def __init__(self, message: str, error_code: str = "not_found", **kwargs: Any):
        super().__init__(message, error_code=error_code, http_status=404, **kwargs)


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: str) -> None:
        super().__init__("Order not found", error_code="order_not_found", order_id=order_id)


class UserContextNotFound(NotFoundError):
    def __init__(self, user_id: str) -> None:
        super().__init__(
            "User context not found", error_code="user_context_not_found", user_id=user_id
        )


# ============================================================================
# INFRASTRUCTURE ERRORS (500)
# ============================================================================

class InfrastructureError(OrderSystemError):
    def __init__(self, message: str, error_code: str = "infrastructure_error", **kwargs: Any):
        super().__init__(message, error_code=error_code, http_status=500, **kwargs)


class ProviderRequestFailed(InfrastructureError):
    """Upstream payment provider errored or answered with an unexpected status."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message, error_code="provider_request_failed", provider=provider)
