"""Stripe payment gateway over the REST API.

Only payment-intent creation is needed: card capture happens in the browser
with the returned client secret, and the client reports success back through
the confirmation endpoint.
"""

import logging
from typing import Any, Dict

import httpx

from microloan.services.errors import GatewayError
from microloan.services.payment_gateway.adapter import PaymentGateway, PaymentIntent

logger = logging.getLogger(__name__)

PAYMENT_INTENTS_PATH = "/v1/payment_intents"


def _form_fields(amount: int, currency: str, metadata: Dict[str, str]) -> Dict[str, Any]:
    """Stripe expects nested params flattened as ``metadata[key]``."""
    data: Dict[str, Any] = {"amount": str(amount), "currency": currency}
    for key, value in metadata.items():
        data[f"metadata[{key}]"] = str(value)
    return data


class StripeGateway(PaymentGateway):
    """Creates payment intents with Stripe."""

    def __init__(self, secret_key: str, api_url: str = "https://api.stripe.com", timeout: float = 10.0):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "stripe"

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
    ) -> PaymentIntent:
        url = f"{self.api_url}{PAYMENT_INTENTS_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    data=_form_fields(amount, currency, metadata),
                    auth=(self.secret_key, ""),
                )
        except httpx.TimeoutException as exc:
            logger.error("Stripe request timed out after %ss", self.timeout)
            raise GatewayError("Payment gateway timed out. Please try again.", cause=str(exc)) from exc
        except httpx.HTTPError as exc:
            logger.error("Stripe request failed: %s", exc)
            raise GatewayError("Payment gateway could not be reached.", cause=str(exc)) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            error = body.get("error", {}) if isinstance(body, dict) else {}
            message = error.get("message") or f"Payment gateway returned HTTP {response.status_code}"
            logger.error(
                "Stripe API error %s (%s): %s",
                response.status_code, error.get("type", "unknown"), message,
            )
            raise GatewayError(message, cause=error.get("type"))

        logger.info("Stripe payment intent %s created for %s %s", body.get("id"), amount, currency)
        return PaymentIntent(
            intent_id=body["id"],
            client_secret=body["client_secret"],
            amount=int(body.get("amount", amount)),
            currency=body.get("currency", currency),
            metadata=dict(body.get("metadata") or metadata),
        )

    async def check_health(self) -> bool:
        return bool(self.secret_key)
