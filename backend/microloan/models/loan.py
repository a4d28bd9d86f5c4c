"""Loan application (the repayment account) and repayment ledger models."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, ForeignKey, Text, JSON,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from microloan.database import Base


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RepaymentStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class FeeStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class RepaymentSchedule(str, enum.Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class LoanApplication(Base):
    __tablename__ = "loan_applications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loan_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    loan_title: Mapped[str] = mapped_column(String(200), nullable=False)

    # Applicant details
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(30), nullable=False)
    national_id: Mapped[str] = mapped_column(String(50), nullable=False)
    income_source: Mapped[str] = mapped_column(String(200), nullable=False)
    monthly_income: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason_for_loan: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    extra_notes: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Terms
    loan_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    interest_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    repayment_schedule: Mapped[RepaymentSchedule] = mapped_column(
        Enum(RepaymentSchedule, values_callable=lambda e: [i.value for i in e]),
        default=RepaymentSchedule.MONTHLY, nullable=False
    )

    # Status
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, values_callable=lambda e: [i.value for i in e]),
        default=ApplicationStatus.PENDING, nullable=False, index=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Intake fee, independent of the repayment balance
    application_fee_status: Mapped[FeeStatus] = mapped_column(
        Enum(FeeStatus, values_callable=lambda e: [i.value for i in e]),
        default=FeeStatus.UNPAID, nullable=False
    )
    payment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Derived money fields, written only by the reconciler and the ledger.
    # Nullable because rows created before these columns existed carry NULLs.
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=0, nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=0, nullable=True)
    remaining_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=0, nullable=True)
    repayment_status: Mapped[RepaymentStatus | None] = mapped_column(
        Enum(RepaymentStatus, values_callable=lambda e: [i.value for i in e]),
        default=RepaymentStatus.PENDING, nullable=True
    )

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    repayments: Mapped[list["Repayment"]] = relationship(
        back_populates="loan_application",
        order_by="Repayment.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class Repayment(Base):
    """A single ledger entry.  Rows are only ever inserted."""

    __tablename__ = "repayments"
    __table_args__ = (
        UniqueConstraint(
            "loan_application_id", "transaction_id", name="uq_repayments_application_transaction"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loan_application_id: Mapped[int] = mapped_column(
        ForeignKey("loan_applications.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False, default="manual")
    recorded_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    loan_application: Mapped[LoanApplication] = relationship(back_populates="repayments")
