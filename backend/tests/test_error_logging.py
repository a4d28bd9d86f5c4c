"""Tests for error capture: the logger helper and the request middleware."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from conftest import APPLICATION_PAYLOAD
from microloan.models import ErrorLog, ErrorSeverity
from microloan.services.error_logger import log_error, log_error_standalone
from microloan.services.errors import GatewayError, InvalidAmountError, NotFoundError


class TestLogError:
    @pytest.mark.asyncio
    async def test_without_db_only_logs(self, caplog):
        with caplog.at_level("ERROR", logger="microloan.errors"):
            result = await log_error(ValueError("boom"), module="tests")
        assert result is None
        assert "ValueError: boom" in caplog.text

    @pytest.mark.asyncio
    async def test_standalone_persists(self, database):
        try:
            raise RuntimeError("ledger exploded")
        except RuntimeError as exc:
            await log_error_standalone(
                exc, database, request_method="POST", request_path="/api/repayments/1", status_code=500,
            )

        async with database.session() as db:
            row = (await db.execute(select(ErrorLog))).scalar_one()
        assert row.error_type == "RuntimeError"
        assert row.message == "ledger exploded"
        assert row.severity == ErrorSeverity.ERROR
        assert row.function_name == "test_standalone_persists"
        assert "Traceback" in row.traceback

    @pytest.mark.asyncio
    async def test_control_characters_are_stripped(self, database):
        await log_error_standalone(ValueError("bad\x00value"), database, module="tests")
        async with database.session() as db:
            row = (await db.execute(select(ErrorLog))).scalar_one()
        assert row.message == "bad value"


    @pytest.mark.asyncio
    async def test_ledger_error_carries_status_and_cause(self, database):
        exc = GatewayError("Payment gateway error", cause="Your card was declined.")
        await log_error_standalone(exc, database, module="tests")
        async with database.session() as db:
            row = (await db.execute(select(ErrorLog))).scalar_one()
        assert row.error_type == "GatewayError"
        assert row.status_code == 502
        assert row.cause == "Your card was declined."
        assert row.severity == ErrorSeverity.ERROR

    @pytest.mark.asyncio
    async def test_client_ledger_error_defaults_to_warning(self, caplog):
        with caplog.at_level("WARNING", logger="microloan.errors"):
            await log_error(InvalidAmountError("Invalid payment amount", cause="Decimal overflow"), module="tests")
        assert "[WARNING] InvalidAmountError: Invalid payment amount (cause: Decimal overflow)" in caplog.text

    @pytest.mark.asyncio
    async def test_explicit_status_wins(self, database):
        await log_error_standalone(NotFoundError("Application not found"), database, status_code=410)
        async with database.session() as db:
            row = (await db.execute(select(ErrorLog))).scalar_one()
        assert row.status_code == 410
        assert row.cause is None


class TestErrorCaptureMiddleware:
    @pytest.mark.asyncio
    async def test_unhandled_exception_returns_500_and_is_recorded(self, client, database, owner_headers):
        with patch(
            "microloan.api.applications.list_user_applications",
            AsyncMock(side_effect=RuntimeError("db driver crashed")),
        ):
            resp = await client.get("/api/applications/my-loans", headers=owner_headers)

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal Server Error"}
        async with database.session() as db:
            rows = (await db.execute(select(ErrorLog))).scalars().all()
        assert any(r.status_code == 500 and r.user_id == 7 for r in rows)

    @pytest.mark.asyncio
    async def test_client_errors_recorded_as_warnings(self, client, database, owner_headers):
        resp = await client.get("/api/applications/999", headers=owner_headers)
        assert resp.status_code == 404
        async with database.session() as db:
            row = (await db.execute(select(ErrorLog))).scalar_one()
        assert row.severity == ErrorSeverity.WARNING
        assert row.request_path == "/api/applications/999"
        assert row.error_type == "NotFoundError"
        assert row.status_code == 404

    @pytest.mark.asyncio
    async def test_gateway_failure_recorded_once_with_cause(self, client, database, gateway, owner_headers):
        app_id = (await client.post(
            "/api/applications", json=APPLICATION_PAYLOAD, headers=owner_headers,
        )).json()["id"]
        gateway.create_payment_intent = AsyncMock(
            side_effect=GatewayError("Payment gateway error", cause="card_declined"),
        )
        resp = await client.post(
            "/api/payments/create-intent", json={"application_id": app_id}, headers=owner_headers,
        )
        assert resp.status_code == 502
        async with database.session() as db:
            rows = (await db.execute(select(ErrorLog))).scalars().all()
        assert len(rows) == 1
        assert rows[0].error_type == "GatewayError"
        assert rows[0].cause == "card_declined"
        assert rows[0].request_path == "/api/payments/create-intent"

    @pytest.mark.asyncio
    async def test_auth_failures_not_recorded(self, client, database):
        resp = await client.get("/api/applications/my-loans")
        assert resp.status_code == 401
        async with database.session() as db:
            rows = (await db.execute(select(ErrorLog))).scalars().all()
        assert rows == []
