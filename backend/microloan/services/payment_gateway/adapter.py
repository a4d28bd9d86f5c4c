"""Abstract payment gateway adapter and factory."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from microloan.config import Settings, settings as default_settings


@dataclass(frozen=True)
class PaymentIntent:
    """A gateway-issued promise to capture funds."""

    intent_id: str
    client_secret: str
    amount: int
    currency: str
    metadata: Dict[str, str] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract interface for card-processor integrations."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name of the payment provider."""
        ...

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
    ) -> PaymentIntent:
        """Create a payment intent for *amount* minor currency units.

        Raises GatewayError when the processor rejects the request or does
        not answer within the configured timeout.
        """
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Check if the gateway is configured and reachable."""
        ...


def get_payment_gateway(config: Optional[Settings] = None) -> Optional[PaymentGateway]:
    """Return the configured payment gateway, or None when online payments are off."""
    config = config or default_settings
    provider = config.payment_gateway_provider.lower().strip()

    if provider == "stripe":
        if not config.stripe_secret_key:
            return None
        from microloan.services.payment_gateway.stripe import StripeGateway
        return StripeGateway(
            secret_key=config.stripe_secret_key,
            api_url=config.stripe_api_url,
            timeout=config.payment_gateway_timeout_seconds,
        )
    if provider == "mock":
        from microloan.services.payment_gateway.mock import MockGateway
        return MockGateway()
    return None
