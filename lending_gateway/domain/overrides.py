"""Manual override of an automatic lending decision"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from lending_gateway.domain.decision_router import monthly_payment
from lending_gateway.domain.exceptions import ValidationError
from lending_gateway.domain.models import DecisionState, LendingDecision, LoanDetails, RiskTier

TIER_LABELS = {
    RiskTier.LOW: ("Prime", "<3%"),
    RiskTier.MODERATE: ("Near Prime", "4-10%"),
    RiskTier.HIGH: ("Subprime", "11-25%"),
}

MANUAL_REJECTION_CODE = "MANUAL"


@dataclass(frozen=True)
class ManualDecision:
    """A lender's decision, always justified and attributed"""

    decision: DecisionState
    decided_by: str
    override_justification: str
    notes: Optional[str] = None
    loan_details: Optional[LoanDetails] = None
    risk_tier_override: Optional[RiskTier] = None
    flag_for_review: bool = False
    review_note: Optional[str] = None


def _checked_loan(loan: LoanDetails, max_rate: Optional[float]) -> LoanDetails:
    if loan.amount <= 0:
        raise ValidationError("loan_details.amount", "must be greater than zero")
    if loan.term <= 0:
        raise ValidationError("loan_details.term", "must be a positive number of months")
    if loan.interest_rate < 0 or (max_rate is not None and loan.interest_rate > max_rate):
        raise ValidationError("loan_details.interest_rate", f"{loan.interest_rate} is outside [0, {max_rate}]")
    if loan.monthly_payment is None:
        loan = replace(loan, monthly_payment=monthly_payment(loan.amount, loan.interest_rate, loan.term))
    return loan


def apply_manual_decision(
    current: LendingDecision,
    manual: ManualDecision,
    *,
    timestamp: datetime,
    max_rate: Optional[float] = None,
) -> LendingDecision:
    """
    Build the record that supersedes `current`.

    The current record is left untouched; scores and flags are carried over so
    the audit trail shows what the lender overrode.
    """
    if not manual.decided_by or not manual.decided_by.strip():
        raise ValidationError("decision_by", "manual decisions must identify the deciding actor")
    if not manual.override_justification or not manual.override_justification.strip():
        raise ValidationError("override_justification", "manual decisions must be justified")

    decision = DecisionState(manual.decision)
    loan = None
    if decision == DecisionState.APPROVE:
        loan = manual.loan_details or current.loan_details
        if loan is None:
            raise ValidationError("loan_details", "an approval needs loan amount, term and interest rate")
        loan = _checked_loan(loan, max_rate)
    elif manual.loan_details is not None:
        raise ValidationError("loan_details", "only an Approve decision carries loan details")

    risk_tier = current.risk_tier
    label, estimate = current.risk_tier_label, current.default_risk_estimate
    tier_override = None
    if manual.risk_tier_override is not None and RiskTier(manual.risk_tier_override) != current.risk_tier:
        tier_override = RiskTier(manual.risk_tier_override)
        risk_tier = tier_override
        label, estimate = TIER_LABELS[tier_override]

    return replace(
        current,
        decision=decision,
        loan_details=loan,
        risk_tier=risk_tier,
        risk_tier_label=label,
        default_risk_estimate=estimate,
        reasons=(f"Manual {decision.value} by {manual.decided_by}: {manual.override_justification}",),
        recommendations=(),
        is_manual=True,
        decision_by=manual.decided_by,
        manual_notes=manual.notes,
        risk_tier_override=tier_override,
        override_justification=manual.override_justification,
        flag_for_review=manual.flag_for_review,
        review_note=manual.review_note,
        rejection_code=MANUAL_REJECTION_CODE if decision == DecisionState.REJECT else None,
        timestamp=timestamp,
    )
