"""
Stripe Checkout client for card payments.

Implements:
- Hosted Checkout session creation (one line item for the order total)
- Error classification for logging and metrics
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import stripe
import structlog

from kiosk_orders.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    RATE_LIMIT = "rate_limit"


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


@dataclass(frozen=True)
class CheckoutSession:
    """The parts of a Checkout Session the order flow needs."""

    id: str
    url: str


class StripeClient:
    """
    Wrapper for the Stripe API scoped to one secret key.

    Uses an explicit stripe.StripeClient instead of the module-level api_key
    so several configurations can coexist in one process (tests, workers).
    """

    def __init__(
        self,
        secret_key: str,
        api_version: Optional[str] = None,
        client: Optional[stripe.StripeClient] = None,
    ) -> None:
        """
        Initialize Stripe client.

        Args:
            secret_key: Stripe secret API key
            api_version: Optional Stripe API version pin
            client: Optional pre-built stripe.StripeClient
        """
        self.test_mode = secret_key.startswith("sk_test_")
        self._client = client or stripe.StripeClient(secret_key, stripe_version=api_version)

        logger.info(
            "stripe_client_initialized",
            api_version=api_version,
            test_mode=self.test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (stripe.CardError, stripe.InvalidRequestError, stripe.AuthenticationError),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _handle_stripe_error(self, error: stripe.StripeError) -> StripeError:
        error_type = self._classify_error(error)

        logger.error(
            "stripe_api_error",
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        metrics.record_provider_error("stripe", error_type.value)

        return StripeError(
            message=str(error),
            error_type=error_type,
            original_error=error,
        )

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        order_id: str,
        session_id: str,
        success_url: str,
        cancel_url: str,
        product_name: str = "IKEA Bistro order",
    ) -> CheckoutSession:
        """
        Create a hosted Checkout Session for an order total.

        Args:
            amount: Order total in whole currency units
            currency: Currency code (e.g., 'SEK')
            order_id: Local order id (stored in metadata)
            session_id: Local payment session id (stored in metadata, used as idempotency key)
            success_url: Redirect after payment
            cancel_url: Redirect after cancellation
            product_name: Line item label shown on the checkout page

        Returns:
            CheckoutSession: Session id and hosted checkout URL

        Raises:
            StripeError: If session creation fails
        """
        logger.info(
            "creating_checkout_session",
            order_id=order_id,
            session_id=session_id,
            amount=amount,
            currency=currency,
        )

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        # Stripe amounts are in minor units (öre for SEK).
                        "unit_amount": amount * 100,
                        "product_data": {"name": product_name},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": {"orderId": order_id, "sessionId": session_id},
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        start_time = time.time()
        try:
            checkout_session = await asyncio.to_thread(
                self._client.checkout.sessions.create,
                params=params,
                options={"idempotency_key": f"checkout:{session_id}"},
            )
        except stripe.StripeError as e:
            metrics.record_provider_call("stripe", "error", time.time() - start_time)
            raise self._handle_stripe_error(e) from e

        metrics.record_provider_call("stripe", "success", time.time() - start_time)
        logger.info(
            "checkout_session_created",
            order_id=order_id,
            checkout_session_id=checkout_session.id,
        )

        return CheckoutSession(id=checkout_session.id, url=checkout_session.url or "")

