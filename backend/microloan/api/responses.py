"""Response builders shared by the routers.

Money fields on a response always come from the reconciler, so a legacy row
that has not been backfilled yet still shows canonical balances.
"""

from microloan.models.loan import LoanApplication
from microloan.schemas import (
    BalanceSummary,
    LoanApplicationResponse,
    RepaymentDetailsResponse,
    RepaymentEntry,
)
from microloan.services.applications import display_balances


def _summary_fields(application: LoanApplication) -> dict:
    balances = display_balances(application)
    return {
        "total_amount": float(balances["total_amount"]),
        "paid_amount": float(balances["paid_amount"]),
        "remaining_amount": float(balances["remaining_amount"]),
        "repayment_status": balances["repayment_status"],
    }


def application_response(application: LoanApplication) -> LoanApplicationResponse:
    response = LoanApplicationResponse.model_validate(application)
    return response.model_copy(update=_summary_fields(application))


def balance_summary(application: LoanApplication) -> BalanceSummary:
    return BalanceSummary(**_summary_fields(application))


def repayment_details(application: LoanApplication) -> RepaymentDetailsResponse:
    return RepaymentDetailsResponse(
        **_summary_fields(application),
        repayments=[RepaymentEntry.model_validate(r) for r in application.repayments],
        repayment_schedule=application.repayment_schedule,
    )
