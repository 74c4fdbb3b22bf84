"""Decision router - turns scores and policy evaluation into a lending decision"""

from datetime import datetime
from typing import List, Optional

from lending_gateway.domain.exceptions import ValidationError
from lending_gateway.domain.models import (
    BehavioralResult,
    BorrowerProfile,
    Classification,
    DecisionState,
    LendingDecision,
    LoanDetails,
    LoanType,
    PolicyEvaluation,
    ScoreResult,
    unique_flags,
)
from lending_gateway.domain.policy import PartnerBankPolicy

HIGH_UTILIZATION_THRESHOLD = 0.4
RECENT_DELINQUENCY_MONTHS = 12


def monthly_payment(amount: float, annual_rate: float, term_months: int) -> float:
    """Standard amortized installment"""
    if term_months <= 0:
        raise ValidationError("term", "must be a positive number of months")
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        return round(amount / term_months, 2)
    return round(amount * monthly_rate / (1 - (1 + monthly_rate) ** -term_months), 2)


def raise_flags(
    profile: BorrowerProfile,
    score_result: ScoreResult,
    behavioral: BehavioralResult,
    amount: float,
    policy: PartnerBankPolicy,
) -> List[str]:
    flags = []
    if profile.dti > policy.dti_rules.max_dti:
        flags.append("HIGH_DTI")
    if score_result.classification in (Classification.FAIR, Classification.POOR):
        flags.append("LOW_SCORE")
    if amount > policy.auto_approval.max_amount:
        flags.append("HIGH_AMOUNT")
    if not profile.is_existing_customer:
        flags.append("NEW_CUSTOMER")
    if (
        profile.last_delinquency_months_ago is not None
        and profile.last_delinquency_months_ago <= RECENT_DELINQUENCY_MONTHS
    ):
        flags.append("RECENT_DELINQUENCY")
    if profile.recent_defaults > 0:
        flags.append("RECENT_DEFAULT")
    if profile.credit_utilization > HIGH_UTILIZATION_THRESHOLD:
        flags.append("HIGH_UTILIZATION")
    flags.extend(behavioral.flags)
    return list(unique_flags(flags))


def route_decision(
    score_result: ScoreResult,
    behavioral: BehavioralResult,
    evaluation: PolicyEvaluation,
    profile: BorrowerProfile,
    policy: PartnerBankPolicy,
    loan_type: LoanType,
    *,
    requested_amount: Optional[float] = None,
    timestamp: datetime,
    engine_version: str,
) -> LendingDecision:
    """
    Route a scored borrower to Approve, Review or Reject.

    Rules are applied in order: hard reject, approval conditions, conditional
    review, score reject; a candidate approval must then clear the bank's
    auto-approval gate or it is held for manual sign-off.
    """
    if requested_amount is not None and requested_amount <= 0:
        raise ValidationError("requested_amount", "must be greater than zero")

    product = policy.product(loan_type)
    thresholds = product.score_thresholds
    dti_rules = policy.dti_rules
    score = score_result.score
    reasons: List[str] = []
    recommendations: List[str] = list(behavioral.overrides)

    if requested_amount is not None:
        amount = min(requested_amount, evaluation.max_loan_amount)
        if amount < requested_amount:
            recommendations.append(
                f"Requested amount {requested_amount:,.2f} exceeds the maximum of "
                f"{evaluation.max_loan_amount:,.2f}; amount reduced"
            )
    else:
        amount = evaluation.recommended_amount

    flags = raise_flags(profile, score_result, behavioral, amount, policy)
    if evaluation.recession_mode:
        recommendations.append(
            f"Recession mode active: terms limited to {policy.recession_mode.max_term} months or less"
        )

    common = dict(
        score=score,
        classification=score_result.classification,
        risk_tier=behavioral.risk_tier,
        risk_tier_label=behavioral.risk_tier_label,
        default_risk_estimate=behavioral.default_risk_estimate,
        dti=evaluation.dti,
        dti_rating=evaluation.dti_rating,
        timestamp=timestamp,
        engine_version=engine_version,
        bank_code=policy.bank_code,
        policy_version=policy.version,
        loan_type=loan_type,
        requested_amount=requested_amount,
        risk_flags=tuple(flags),
        recession_mode=evaluation.recession_mode,
    )

    if score_result.hard_reject is not None:
        return LendingDecision(
            decision=DecisionState.REJECT,
            reasons=score_result.hard_reject.reasons,
            recommendations=tuple(recommendations),
            rejection_code=score_result.hard_reject.code,
            **common,
        )

    if score < thresholds.approve:
        reasons.append(f"Score {score} is below the approval threshold of {thresholds.approve}")

    collateral_present = bool(profile.collateral_value) and evaluation.collateral_sufficient
    dti_limit = dti_rules.max_dti_with_collateral if collateral_present else dti_rules.max_dti
    if profile.dti > dti_limit:
        reasons.append(f"Debt-to-income ratio {evaluation.dti:.2f} exceeds the limit of {dti_limit:.2f}")
        recommendations.append(f"Reduce debt-to-income ratio to {dti_limit:.2f} or below")
        if not collateral_present and dti_rules.max_dti_with_collateral > dti_rules.max_dti:
            recommendations.append(
                f"Provide collateral to raise the DTI limit to {dti_rules.max_dti_with_collateral:.2f}"
            )

    if evaluation.collateral_required and not evaluation.collateral_sufficient:
        rules = policy.collateral_rules
        reasons.append(f"Collateral is required for {score_result.classification.value} borrowers")
        recommendations.append(
            f"Provide collateral worth at least {rules.min_value:,.2f} with quality of "
            f"{rules.quality_threshold:.2f} or higher"
        )

    if profile.monthly_income < dti_rules.minimum_income:
        reasons.append(
            f"Monthly income {profile.monthly_income:,.2f} is below the minimum of {dti_rules.minimum_income:,.2f}"
        )
        recommendations.append("Document additional income")

    if not evaluation.term_options:
        reasons.append(f"No {loan_type.value} loan term is available under the current policy")

    if amount <= 0:
        reasons.append("No loan amount is available for this borrower")

    if reasons:
        if score >= thresholds.conditional:
            return LendingDecision(
                decision=DecisionState.REVIEW,
                reasons=tuple(reasons),
                recommendations=tuple(unique_flags(recommendations)),
                **common,
            )
        code = "SCR-01" if score >= thresholds.review else "SCR-02"
        return LendingDecision(
            decision=DecisionState.REJECT,
            reasons=tuple(reasons),
            recommendations=tuple(unique_flags(recommendations)),
            rejection_code=code,
            **common,
        )

    term = max(evaluation.term_options)
    loan = LoanDetails(
        amount=round(amount, 2),
        term=term,
        interest_rate=evaluation.interest_rate,
        monthly_payment=monthly_payment(amount, evaluation.interest_rate, term),
    )
    reasons.append(f"Score {score} meets the approval threshold of {thresholds.approve}")

    gate = policy.auto_approval
    blocking = [flag.value for flag in gate.require_manual_review_flags if flag.value in flags]
    held = []
    if not gate.enabled:
        held.append("auto-approval is disabled")
    if loan.amount > gate.max_amount:
        held.append(f"amount exceeds the auto-approval limit of {gate.max_amount:,.2f}")
    if blocking:
        held.append(f"flags require manual review: {', '.join(blocking)}")

    if held:
        recommendations.append(
            f"Manual sign-off required for {loan.amount:,.2f} over {loan.term} months "
            f"at {loan.interest_rate:.2f}%"
        )
        return LendingDecision(
            decision=DecisionState.REVIEW,
            reasons=tuple(reasons),
            recommendations=tuple(unique_flags(recommendations)),
            flag_for_review=True,
            review_note="Approval held: " + "; ".join(held),
            **common,
        )

    return LendingDecision(
        decision=DecisionState.APPROVE,
        loan_details=loan,
        reasons=tuple(reasons),
        recommendations=tuple(unique_flags(recommendations)),
        **common,
    )
