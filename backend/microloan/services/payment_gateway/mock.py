"""In-process payment gateway for development and tests."""

import uuid
from typing import Dict, List

from microloan.services.payment_gateway.adapter import PaymentGateway, PaymentIntent


class MockGateway(PaymentGateway):
    """Issues fake intents and remembers them for inspection."""

    def __init__(self):
        self.intents: List[PaymentIntent] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
    ) -> PaymentIntent:
        intent_id = f"pi_mock_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:8]}",
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
        )
        self.intents.append(intent)
        return intent

    async def check_health(self) -> bool:
        return True
