"""
Payment gateway: one seam over the card (Stripe Checkout) and Swish providers.

Creates payment sessions and turns raw provider callbacks into a
CallbackEvent (external reference plus outcome). Nothing here touches the
order store; correlating the reference with an order is the lifecycle's job.
"""
import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

import stripe
import structlog

from kiosk_orders.config import Settings, get_settings
from kiosk_orders.core.exceptions import (
    InvalidPaymentMethod,
    MalformedCallback,
    ProviderRequestFailed,
    ProviderUnconfigured,
    VerificationFailed,
)
from kiosk_orders.integrations.stripe_client import StripeClient, StripeError
from kiosk_orders.integrations.swish_client import (
    SwishCertificateError,
    SwishClient,
    SwishError,
)

logger = structlog.get_logger(__name__)

PAYMENT_METHODS = ("card", "swish")


class CallbackOutcome(str, Enum):
    """What a verified callback says about the payment."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PROCESSING = "processing"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SessionCreated:
    """A provider session that has been requested but not yet persisted."""

    session_id: str
    external_reference: str
    checkout_url: Optional[str] = None
    swish_url: Optional[str] = None
    client_secret: Optional[str] = None

    def redirect(self) -> Dict[str, str]:
        """The single redirect artifact for the client, keyed by its wire name."""
        if self.checkout_url is not None:
            return {"checkoutUrl": self.checkout_url}
        if self.swish_url is not None:
            return {"swishUrl": self.swish_url}
        if self.client_secret is not None:
            return {"clientSecret": self.client_secret}
        return {}


@dataclass(frozen=True)
class CallbackEvent:
    provider: str
    external_reference: Optional[str]
    outcome: CallbackOutcome
    event_type: str = ""


# Stripe Checkout events that carry a payment outcome.
_STRIPE_EVENT_OUTCOMES = {
    "checkout.session.completed": CallbackOutcome.SUCCEEDED,
    "checkout.session.async_payment_succeeded": CallbackOutcome.SUCCEEDED,
    "checkout.session.async_payment_failed": CallbackOutcome.FAILED,
}

_SWISH_STATUS_OUTCOMES = {
    "PAID": CallbackOutcome.SUCCEEDED,
    "DECLINED": CallbackOutcome.FAILED,
    "ERROR": CallbackOutcome.FAILED,
}


class PaymentGateway:
    """
    Provider adapter used by the order lifecycle.

    Clients are built lazily from settings the first time a method needs
    them, so a missing credential only fails requests for that method.

    Args:
        settings: Application settings (uses get_settings() if not provided)
        stripe_client: Optional pre-built card client
        swish_client: Optional pre-built Swish client
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        stripe_client: Optional[StripeClient] = None,
        swish_client: Optional[SwishClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._stripe_client = stripe_client
        self._swish_client = swish_client

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _card_client(self) -> StripeClient:
        if self._stripe_client is None:
            if not self.settings.stripe_secret_key:
                raise ProviderUnconfigured(
                    "card", "Card payments are not configured. Set STRIPE_SECRET_KEY."
                )
            self._stripe_client = StripeClient(
                secret_key=self.settings.stripe_secret_key,
                api_version=self.settings.stripe_api_version,
            )
        return self._stripe_client

    def _swish(self) -> SwishClient:
        if self._swish_client is None:
            if not self.settings.swish_configured:
                raise ProviderUnconfigured(
                    "swish",
                    "Swish is not configured. Set SWISH_CERT_PATH and SWISH_MERCHANT_NUMBER. "
                    "Swish requires a merchant TLS certificate from your bank.",
                )
            self._swish_client = SwishClient(
                merchant_number=self.settings.swish_merchant_number,
                cert_path=self.settings.swish_cert_path,
                key_path=self.settings.swish_key_path,
                cert_passphrase=self.settings.swish_cert_passphrase,
                api_url=self.settings.swish_api_url,
                callback_url=self.settings.swish_callback_url,
            )
        return self._swish_client

    def ensure_configured(self, method: str) -> None:
        """
        Check that a session can be requested for method.

        Raises:
            InvalidPaymentMethod: If method is not card or swish
            ProviderUnconfigured: If the provider has no credentials
        """
        if method == "card":
            self._card_client()
        elif method == "swish":
            self._swish()
        else:
            raise InvalidPaymentMethod(method)

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------

    async def create_session(self, order_id: str, amount: int, method: str) -> SessionCreated:
        """
        Request a payment session from the provider for method.

        Args:
            order_id: Order the session pays for
            amount: Order total in whole currency units
            method: 'card' or 'swish'

        Returns:
            SessionCreated: Local session id, provider reference and redirect

        Raises:
            InvalidPaymentMethod: Unknown method
            ProviderUnconfigured: Provider credentials are missing
            ProviderRequestFailed: The provider call failed
        """
        self.ensure_configured(method)
        session_id = str(uuid.uuid4())

        if method == "card":
            return await self._create_card_session(session_id, order_id, amount)
        return await self._create_swish_session(session_id, order_id, amount)

    async def _create_card_session(
        self, session_id: str, order_id: str, amount: int
    ) -> SessionCreated:
        frontend_url = self.settings.frontend_url.rstrip("/")
        try:
            checkout = await self._card_client().create_checkout_session(
                amount=amount,
                currency=self.settings.currency,
                order_id=order_id,
                session_id=session_id,
                success_url=f"{frontend_url}/?payment=success&orderId={order_id}",
                cancel_url=f"{frontend_url}/?payment=cancel&orderId={order_id}",
            )
        except StripeError as e:
            logger.error(
                "card_session_creation_failed",
                order_id=order_id,
                error_type=e.error_type.value,
                error=str(e),
            )
            raise ProviderRequestFailed("card", "Card checkout session creation failed") from e

        return SessionCreated(
            session_id=session_id,
            external_reference=checkout.id,
            checkout_url=checkout.url,
        )

    async def _create_swish_session(
        self, session_id: str, order_id: str, amount: int
    ) -> SessionCreated:
        reference = uuid.uuid4().hex.upper()
        try:
            token = await self._swish().create_payment_request(
                amount=amount,
                currency=self.settings.currency,
                reference=reference,
                message=f"IKEA Bistro Order {order_id[:8]}",
            )
        except SwishCertificateError as e:
            logger.error("swish_certificate_unusable", order_id=order_id, error=str(e))
            raise ProviderUnconfigured("swish", str(e)) from e
        except SwishError as e:
            logger.error(
                "swish_session_creation_failed",
                order_id=order_id,
                status_code=e.status_code,
                error=str(e),
            )
            raise ProviderRequestFailed("swish", str(e)) from e

        return SessionCreated(
            session_id=session_id,
            external_reference=reference,
            swish_url=f"swish://paymentrequest?token={token}",
        )

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def verify_stripe_callback(self, payload: bytes, signature: Optional[str]) -> CallbackEvent:
        """
        Verify a Stripe webhook and interpret the event.

        Raises:
            VerificationFailed: Missing secret, missing header or bad signature
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            logger.error("stripe_webhook_secret_missing")
            raise VerificationFailed("Webhook secret is not configured")
        if not signature:
            raise VerificationFailed("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe_signature_verification_failed", error=str(e))
            raise VerificationFailed("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("stripe_webhook_payload_invalid", error=str(e))
            raise VerificationFailed("Invalid webhook payload") from e

        event_type = event.type
        outcome = _STRIPE_EVENT_OUTCOMES.get(event_type, CallbackOutcome.IGNORED)
        reference: Optional[str] = None

        if outcome is not CallbackOutcome.IGNORED:
            checkout_session = event.data.object
            reference = getattr(checkout_session, "id", None)
            # Delayed methods complete the session before the money arrives.
            if (
                event_type == "checkout.session.completed"
                and getattr(checkout_session, "payment_status", None) == "unpaid"
            ):
                outcome = CallbackOutcome.PROCESSING

        logger.info(
            "stripe_webhook_verified",
            event_id=event.id,
            event_type=event_type,
            external_reference=reference,
            outcome=outcome.value,
        )
        return CallbackEvent(
            provider="card",
            external_reference=reference,
            outcome=outcome,
            event_type=event_type,
        )

    def interpret_swish_callback(self, data: Mapping[str, Any]) -> CallbackEvent:
        """
        Interpret a Swish callback body.

        Swish authenticates itself at the TLS layer; the body carries the
        payeePaymentReference we generated (sent as 'reference' or
        'payeePaymentReference') and a status.

        Raises:
            MalformedCallback: Reference or status missing
        """
        reference = data.get("reference") or data.get("payeePaymentReference")
        status = data.get("status")
        if not reference or not status:
            raise MalformedCallback()

        outcome = _SWISH_STATUS_OUTCOMES.get(str(status).upper(), CallbackOutcome.IGNORED)
        logger.info(
            "swish_callback_received",
            external_reference=reference,
            status=status,
            outcome=outcome.value,
        )
        return CallbackEvent(
            provider="swish",
            external_reference=str(reference),
            outcome=outcome,
            event_type=str(status),
        )

    def verify_and_interpret_callback(
        self,
        method: str,
        raw_payload: Union[bytes, str],
        signature_or_headers: Union[str, Mapping[str, str], None] = None,
    ) -> CallbackEvent:
        """
        Verify and interpret a raw callback for either provider.

        Args:
            method: 'card' or 'swish'
            raw_payload: Raw request body
            signature_or_headers: Stripe-Signature value, or the request headers

        Raises:
            VerificationFailed: The callback is not authentic
            MalformedCallback: The callback body is unusable
        """
        payload = raw_payload.encode("utf-8") if isinstance(raw_payload, str) else raw_payload

        if method == "card":
            signature = signature_or_headers
            if isinstance(signature_or_headers, Mapping):
                signature = signature_or_headers.get("stripe-signature")
            return self.verify_stripe_callback(payload, signature)

        if method == "swish":
            try:
                data = json.loads(payload or b"{}")
            except ValueError as e:
                raise MalformedCallback("Callback body is not valid JSON") from e
            if not isinstance(data, dict):
                raise MalformedCallback("Callback body must be a JSON object")
            return self.interpret_swish_callback(data)

        raise InvalidPaymentMethod(method)
