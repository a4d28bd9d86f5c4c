from microloan.services.payment_gateway.adapter import (
    PaymentGateway,
    PaymentIntent,
    get_payment_gateway,
)

__all__ = ["PaymentGateway", "PaymentIntent", "get_payment_gateway"]
