"""Shared fixtures: in-memory application factory, a temporary SQLite
database and an HTTP client bound to the FastAPI app."""

from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from microloan.auth_utils import create_access_token
from microloan.database import Database
from microloan.models import (
    ApplicationStatus,
    FeeStatus,
    LoanApplication,
    Repayment,
    RepaymentSchedule,
)
from microloan.services.authorization import Actor, UserRole
from microloan.services.payment_gateway.mock import MockGateway

OWNER_ID = 7
OTHER_ID = 8
ADMIN_ID = 1


def make_application(**overrides) -> LoanApplication:
    """Transient LoanApplication; nothing is persisted."""
    repayments = overrides.pop("repayments", [])
    fields = dict(
        id=1,
        loan_id=3,
        user_id=OWNER_ID,
        user_email="borrower@example.com",
        loan_title="Small business loan",
        first_name="Ana",
        last_name="Mendes",
        contact_number="+1 555 0100",
        national_id="ID-1234",
        income_source="Market stall",
        monthly_income=Decimal("800.00"),
        reason_for_loan="Stock",
        address="12 Harbour Road",
        extra_notes="",
        loan_amount=Decimal("1000.00"),
        interest_rate=Decimal("10.00"),
        repayment_schedule=RepaymentSchedule.MONTHLY,
        status=ApplicationStatus.APPROVED,
        application_fee_status=FeeStatus.UNPAID,
        payment_details=None,
        total_amount=Decimal("1100.00"),
        paid_amount=Decimal("0.00"),
        remaining_amount=Decimal("1100.00"),
        repayment_status=None,
    )
    fields.update(overrides)
    application = LoanApplication(**fields, repayments=[])
    for amount in repayments:
        application.repayments.append(Repayment(
            amount=Decimal(str(amount)),
            payment_date=datetime.now(timezone.utc),
            payment_method="manual",
        ))
    return application


@pytest.fixture
def owner():
    return Actor(user_id=OWNER_ID, role=UserRole.BORROWER, email="borrower@example.com")


@pytest.fixture
def stranger():
    return Actor(user_id=OTHER_ID, role=UserRole.BORROWER, email="other@example.com")


@pytest.fixture
def admin():
    return Actor(user_id=ADMIN_ID, role=UserRole.ADMIN, email="admin@example.com")


@pytest.fixture
def manager():
    return Actor(user_id=2, role=UserRole.MANAGER, email="manager@example.com")


# ── Database / HTTP ──────────────────────────────────────────


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await db.connect(create_tables=True)
    yield db
    await db.dispose()


@pytest.fixture
def gateway():
    return MockGateway()


@pytest_asyncio.fixture
async def client(database, gateway):
    from microloan.api import payments as payments_api
    from microloan.main import app

    payments_api.limiter.reset()
    app.state.database = database
    app.state.payment_gateway = gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.database = None
    app.state.payment_gateway = None


def auth_headers(user_id: int, role: str, email: str | None = None) -> dict[str, str]:
    token = create_access_token({"sub": str(user_id), "role": role, "email": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers():
    return auth_headers(OWNER_ID, "borrower", "borrower@example.com")


@pytest.fixture
def stranger_headers():
    return auth_headers(OTHER_ID, "borrower", "other@example.com")


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID, "admin", "admin@example.com")


APPLICATION_PAYLOAD = {
    "loan_id": 3,
    "loan_title": "Small business loan",
    "interest_rate": 10,
    "loan_amount": 1000,
    "first_name": "Ana",
    "last_name": "Mendes",
    "contact_number": "+1 555 0100",
    "national_id": "ID-1234",
    "income_source": "Market stall",
    "monthly_income": 800,
    "reason_for_loan": "Stock",
    "address": "12 Harbour Road",
}
