"""
Swish Commerce API client.

Payment requests are created with a merchant TLS client certificate. Swish
answers 201 Created with a Location header whose last path segment is the
payment request token used in the app deep link. The outcome arrives later
as a POST to the registered callback URL.
"""
import ssl
import time
from typing import Any, Dict, Optional

import httpx
import structlog

from kiosk_orders.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class SwishError(Exception):
    """Raised when a Swish payment request cannot be created."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SwishCertificateError(SwishError):
    """The merchant certificate could not be loaded."""


class SwishClient:
    """
    Creates Swish payment requests.

    Args:
        merchant_number: Payee alias registered with Swish
        cert_path: PEM client certificate
        key_path: PEM private key (None if bundled in cert_path)
        cert_passphrase: Private key passphrase
        api_url: Payment requests endpoint
        callback_url: URL Swish posts the result to
        http_client: Optional preconfigured client (transport injection in tests)
    """

    def __init__(
        self,
        merchant_number: str,
        cert_path: str,
        api_url: str,
        callback_url: str,
        key_path: Optional[str] = None,
        cert_passphrase: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.merchant_number = merchant_number
        self.cert_path = cert_path
        self.key_path = key_path
        self.cert_passphrase = cert_passphrase
        self.api_url = api_url
        self.callback_url = callback_url
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

        logger.info("swish_client_initialized", api_url=api_url, merchant=merchant_number)

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        try:
            context.load_cert_chain(
                certfile=self.cert_path,
                keyfile=self.key_path,
                password=self.cert_passphrase,
            )
        except (OSError, ssl.SSLError) as e:
            raise SwishCertificateError(f"Could not load Swish certificate: {e}") from e
        return context

    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self.api_url, json=body)

        async with httpx.AsyncClient(
            verify=self._ssl_context(), timeout=self.timeout_seconds
        ) as client:
            return await client.post(self.api_url, json=body)

    async def create_payment_request(
        self,
        amount: int,
        currency: str,
        reference: str,
        message: str,
    ) -> str:
        """
        Create a payment request.

        Args:
            amount: Amount in whole currency units
            currency: Currency code (SEK)
            reference: payeePaymentReference echoed back in the callback
            message: Text shown to the payer

        Returns:
            str: Payment request token (from the Location header)

        Raises:
            SwishCertificateError: If the certificate cannot be loaded
            SwishError: If the request fails or Swish answers unexpectedly
        """
        body = {
            "payeeAlias": self.merchant_number,
            "amount": f"{amount:.2f}",
            "currency": currency,
            "callbackUrl": self.callback_url,
            "payeePaymentReference": reference,
            "message": message,
        }

        logger.info("creating_swish_payment_request", reference=reference, amount=amount)

        start_time = time.time()
        try:
            response = await self._post(body)
        except httpx.HTTPError as e:
            metrics.record_provider_call("swish", "error", time.time() - start_time)
            logger.error("swish_request_error", reference=reference, error=str(e))
            raise SwishError(f"Swish request failed: {e}") from e

        location = response.headers.get("location", "")
        if response.status_code != 201 or not location:
            metrics.record_provider_call("swish", "error", time.time() - start_time)
            logger.error(
                "swish_unexpected_response",
                reference=reference,
                status_code=response.status_code,
            )
            raise SwishError(
                f"Swish API returned status {response.status_code}. "
                "Check certificate and merchant number configuration.",
                status_code=response.status_code,
            )

        metrics.record_provider_call("swish", "success", time.time() - start_time)
        token = location.rstrip("/").rsplit("/", 1)[-1]
        logger.info("swish_payment_request_created", reference=reference, token=token)
        return token
