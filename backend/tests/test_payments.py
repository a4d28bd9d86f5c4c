"""Tests for online payments: intent creation, confirmation and the Stripe
gateway (Stripe's API is mocked)."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import make_application
from microloan.config import settings
from microloan.models import ApplicationStatus, FeeStatus, RepaymentStatus
from microloan.services.errors import (
    GatewayError,
    GatewayUnavailableError,
    InvalidAmountError,
    InvalidStateError,
)
from microloan.services.payment_gateway import get_payment_gateway
from microloan.services.payment_gateway.mock import MockGateway
from microloan.services.payment_gateway.stripe import StripeGateway
from microloan.services.payments import (
    MAX_MINOR_UNITS,
    PaymentGatewayAdapter,
    PaymentKind,
    minor_to_major,
)


def _mock_db():
    db = MagicMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    return db


def _fake_stripe_response(status_code: int = 200, body: dict | None = None):
    """Return a mock httpx.Response that looks like a Stripe reply."""
    if body is None:
        body = {
            "id": "pi_3Abc",
            "client_secret": "pi_3Abc_secret_xyz",
            "amount": 1000,
            "currency": "usd",
            "metadata": {"application_id": "1"},
        }
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = body
    return resp


def _mock_client(post):
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = post
    return client


# ── Unit conversion ───────────────────────────────

class TestMinorToMajor:
    def test_converts_cents(self):
        assert minor_to_major(50000) == Decimal("500.00")
        assert minor_to_major(1) == Decimal("0.01")

    @pytest.mark.parametrize("value", [0, -100, None, 10.5, True, 10**40, MAX_MINOR_UNITS + 1])
    def test_rejects_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            minor_to_major(value)

    def test_largest_storable_amount(self):
        assert minor_to_major(MAX_MINOR_UNITS) == Decimal("9999999999.99")


# ── Intent creation ───────────────────────────────

class TestCreateIntent:
    @pytest.mark.asyncio
    async def test_fee_intent_uses_configured_amount(self):
        gateway = MockGateway()
        adapter = PaymentGatewayAdapter(gateway, settings)
        app = make_application(status=ApplicationStatus.PENDING)
        intent = await adapter.create_intent(app, PaymentKind.APPLICATION_FEE)
        assert intent.amount == settings.application_fee_minor_units
        assert intent.client_secret.startswith("pi_mock_")
        assert gateway.intents[0].metadata == {
            "application_id": "1",
            "user_id": "7",
            "type": "application_fee",
        }

    @pytest.mark.asyncio
    async def test_fee_already_paid(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(application_fee_status=FeeStatus.PAID)
        with pytest.raises(InvalidStateError):
            await adapter.create_intent(app, PaymentKind.APPLICATION_FEE)

    @pytest.mark.asyncio
    async def test_repayment_intent_validates_against_remaining(self):
        gateway = MockGateway()
        adapter = PaymentGatewayAdapter(gateway, settings)
        app = make_application()
        with pytest.raises(InvalidAmountError, match="Maximum: \\$1,100.00"):
            await adapter.create_intent(app, PaymentKind.REPAYMENT, 120000)
        assert gateway.intents == []

    @pytest.mark.asyncio
    async def test_repayment_intent_requires_approval(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(status=ApplicationStatus.PENDING)
        with pytest.raises(InvalidStateError):
            await adapter.create_intent(app, PaymentKind.REPAYMENT, 5000)

    @pytest.mark.asyncio
    async def test_oversized_repayment_intent_rejected(self):
        gateway = MockGateway()
        adapter = PaymentGatewayAdapter(gateway, settings)
        with pytest.raises(InvalidAmountError):
            await adapter.create_intent(make_application(), PaymentKind.REPAYMENT, 10**40)
        assert gateway.intents == []

    @pytest.mark.asyncio
    async def test_intent_never_touches_ledger(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application()
        await adapter.create_intent(app, PaymentKind.REPAYMENT, 50000)
        assert app.repayments == []
        assert app.remaining_amount == Decimal("1100.00")

    @pytest.mark.asyncio
    async def test_no_gateway(self):
        adapter = PaymentGatewayAdapter(None, settings)
        with pytest.raises(GatewayUnavailableError):
            await adapter.create_intent(make_application(), PaymentKind.REPAYMENT, 5000)


# ── Confirmation ──────────────────────────────────

class TestConfirm:
    @pytest.mark.asyncio
    async def test_repayment_confirm_is_idempotent(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application()
        db = _mock_db()

        _, applied = await adapter.confirm(db, app, "pi_1", 50000, PaymentKind.REPAYMENT)
        assert applied is True
        _, applied = await adapter.confirm(db, app, "pi_1", 50000, PaymentKind.REPAYMENT)
        assert applied is False

        assert len(app.repayments) == 1
        assert app.repayments[0].payment_method == "stripe"
        assert app.paid_amount == Decimal("500.00")
        assert app.remaining_amount == Decimal("600.00")
        assert app.repayment_status == RepaymentStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_fee_confirm(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(status=ApplicationStatus.PENDING)
        _, applied = await adapter.confirm(_mock_db(), app, "pi_fee", 1000, PaymentKind.APPLICATION_FEE)
        assert applied is True
        assert app.application_fee_status == FeeStatus.PAID
        assert app.payment_details["transaction_id"] == "pi_fee"
        assert app.payment_details["amount"] == 10.0
        assert app.repayments == []

    @pytest.mark.asyncio
    async def test_fee_replay_and_second_fee(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(status=ApplicationStatus.PENDING)
        db = _mock_db()
        await adapter.confirm(db, app, "pi_fee", 1000, PaymentKind.APPLICATION_FEE)

        _, applied = await adapter.confirm(db, app, "pi_fee", 1000, PaymentKind.APPLICATION_FEE)
        assert applied is False
        with pytest.raises(InvalidStateError):
            await adapter.confirm(db, app, "pi_other", 1000, PaymentKind.APPLICATION_FEE)

    @pytest.mark.asyncio
    async def test_fee_confirm_with_wrong_amount_rejected(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(status=ApplicationStatus.PENDING)
        db = _mock_db()
        with pytest.raises(InvalidAmountError, match="does not match the application fee"):
            await adapter.confirm(db, app, "pi_fee", 1, PaymentKind.APPLICATION_FEE)
        assert app.application_fee_status == FeeStatus.UNPAID
        assert app.payment_details is None
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_fee_confirm_follows_configured_amount(self):
        config = settings.model_copy(update={"application_fee_minor_units": 2500})
        adapter = PaymentGatewayAdapter(MockGateway(), config)
        app = make_application(status=ApplicationStatus.PENDING)
        with pytest.raises(InvalidAmountError):
            await adapter.confirm(_mock_db(), app, "pi_fee", 1000, PaymentKind.APPLICATION_FEE)
        _, applied = await adapter.confirm(_mock_db(), app, "pi_fee", 2500, PaymentKind.APPLICATION_FEE)
        assert applied is True
        assert app.payment_details["amount"] == 25.0

    @pytest.mark.asyncio
    async def test_confirm_overpayment_rejected(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        app = make_application(repayments=["1000"])
        with pytest.raises(InvalidAmountError):
            await adapter.confirm(_mock_db(), app, "pi_2", 20000, PaymentKind.REPAYMENT)
        assert len(app.repayments) == 1

    @pytest.mark.asyncio
    async def test_confirm_requires_transaction_id(self):
        adapter = PaymentGatewayAdapter(MockGateway(), settings)
        with pytest.raises(InvalidAmountError):
            await adapter.confirm(_mock_db(), make_application(), "", 1000, PaymentKind.REPAYMENT)


# ── Gateway factory ───────────────────────────────

class TestGetPaymentGateway:
    def test_stripe_without_key_is_unconfigured(self):
        config = settings.model_copy(update={"payment_gateway_provider": "stripe", "stripe_secret_key": ""})
        assert get_payment_gateway(config) is None

    def test_stripe_with_key(self):
        config = settings.model_copy(update={"payment_gateway_provider": "stripe", "stripe_secret_key": "sk_test_1"})
        gateway = get_payment_gateway(config)
        assert isinstance(gateway, StripeGateway)
        assert gateway.timeout == settings.payment_gateway_timeout_seconds

    def test_mock(self):
        config = settings.model_copy(update={"payment_gateway_provider": "mock"})
        assert isinstance(get_payment_gateway(config), MockGateway)

    def test_disabled(self):
        config = settings.model_copy(update={"payment_gateway_provider": ""})
        assert get_payment_gateway(config) is None


# ── Stripe gateway ────────────────────────────────

class TestStripeGateway:
    @pytest.mark.asyncio
    async def test_creates_intent(self):
        mock_post = AsyncMock(return_value=_fake_stripe_response())
        with patch(
            "microloan.services.payment_gateway.stripe.httpx.AsyncClient",
            return_value=_mock_client(mock_post),
        ) as client_cls:
            gateway = StripeGateway("sk_test_1", timeout=4.0)
            intent = await gateway.create_payment_intent(1000, "usd", {"application_id": "1"})

        assert intent.intent_id == "pi_3Abc"
        assert intent.client_secret == "pi_3Abc_secret_xyz"
        assert client_cls.call_args.kwargs["timeout"] == 4.0
        call = mock_post.call_args
        assert call.args[0] == "https://api.stripe.com/v1/payment_intents"
        assert call.kwargs["data"]["amount"] == "1000"
        assert call.kwargs["data"]["metadata[application_id]"] == "1"
        assert call.kwargs["auth"] == ("sk_test_1", "")

    @pytest.mark.asyncio
    async def test_stripe_error_message_is_surfaced(self):
        body = {"error": {"type": "card_error", "message": "Your card was declined."}}
        mock_post = AsyncMock(return_value=_fake_stripe_response(402, body))
        with patch(
            "microloan.services.payment_gateway.stripe.httpx.AsyncClient",
            return_value=_mock_client(mock_post),
        ):
            with pytest.raises(GatewayError, match="Your card was declined."):
                await StripeGateway("sk_test_1").create_payment_intent(1000, "usd", {})

    @pytest.mark.asyncio
    async def test_timeout(self):
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))
        with patch(
            "microloan.services.payment_gateway.stripe.httpx.AsyncClient",
            return_value=_mock_client(mock_post),
        ):
            with pytest.raises(GatewayError, match="timed out"):
                await StripeGateway("sk_test_1").create_payment_intent(1000, "usd", {})

    @pytest.mark.asyncio
    async def test_connection_error(self):
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch(
            "microloan.services.payment_gateway.stripe.httpx.AsyncClient",
            return_value=_mock_client(mock_post),
        ):
            with pytest.raises(GatewayError) as exc_info:
                await StripeGateway("sk_test_1").create_payment_intent(1000, "usd", {})
        assert exc_info.value.status_code == 502
