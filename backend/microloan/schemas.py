"""Pydantic schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Literal
from pydantic import BaseModel, Field

from microloan.models.loan import (
    ApplicationStatus,
    FeeStatus,
    RepaymentSchedule,
    RepaymentStatus,
)


# ── Applications ──────────────────────────────────────

class LoanApplicationCreate(BaseModel):
    loan_id: int
    loan_title: str = Field(min_length=1, max_length=200)
    interest_rate: Decimal = Field(ge=0, max_digits=5, decimal_places=2)
    loan_amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    contact_number: str = Field(min_length=1, max_length=30)
    national_id: str = Field(min_length=1, max_length=50)
    income_source: str = Field(min_length=1, max_length=200)
    monthly_income: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    reason_for_loan: str = Field(min_length=1)
    address: str = Field(min_length=1)
    extra_notes: str = ""
    repayment_schedule: Literal["monthly", "weekly"] = "monthly"


class StatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]


class RepaymentEntry(BaseModel):
    id: int
    amount: float
    payment_date: datetime
    transaction_id: Optional[str] = None
    payment_method: str

    model_config = {"from_attributes": True}


class LoanApplicationResponse(BaseModel):
    id: int
    loan_id: int
    user_id: int
    user_email: Optional[str] = None
    loan_title: str
    first_name: str
    last_name: str
    loan_amount: float
    interest_rate: Optional[float] = None
    repayment_schedule: RepaymentSchedule
    status: ApplicationStatus
    approved_at: Optional[datetime] = None
    application_fee_status: FeeStatus
    payment_details: Optional[dict[str, Any]] = None
    total_amount: Optional[float] = None
    paid_amount: Optional[float] = None
    remaining_amount: Optional[float] = None
    repayment_status: Optional[RepaymentStatus] = None
    repayments: list[RepaymentEntry] = []
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Repayments ────────────────────────────────────────

class RepaymentCreate(BaseModel):
    amount: Decimal
    transaction_id: Optional[str] = Field(None, max_length=255)
    payment_method: Optional[str] = Field(None, max_length=50)


class BalanceSummary(BaseModel):
    total_amount: float
    paid_amount: float
    remaining_amount: float
    repayment_status: RepaymentStatus


class RepaymentDetailsResponse(BalanceSummary):
    repayments: list[RepaymentEntry]
    repayment_schedule: RepaymentSchedule


class RepaymentRecordedResponse(BaseModel):
    message: str
    application: BalanceSummary


# ── Payments ──────────────────────────────────────────

class FeeIntentRequest(BaseModel):
    application_id: int


class RepaymentIntentRequest(BaseModel):
    application_id: int
    amount: int = Field(description="Amount in minor currency units (cents)")


class IntentResponse(BaseModel):
    client_secret: str


class PaymentConfirmRequest(BaseModel):
    application_id: int
    transaction_id: str = Field(min_length=1, max_length=255)
    amount: int = Field(description="Amount in minor currency units (cents)")
    type: Literal["repayment", "application_fee"] = "application_fee"


class PaymentConfirmResponse(BaseModel):
    message: str
    applied: bool
    application: LoanApplicationResponse
