"""Behavioral engine - 5 C's of credit on a 0-100 scale"""

from typing import Dict, Iterable, Tuple

from lending_gateway.domain.models import BehavioralResult, BorrowerProfile, EmploymentStatus, RiskTier
from lending_gateway.domain.policy import PartnerBankPolicy

EMPLOYMENT_STABILITY = {
    EmploymentStatus.EMPLOYED: 1.0,
    EmploymentStatus.SELF_EMPLOYED: 0.8,
    EmploymentStatus.RETIRED: 0.7,
    EmploymentStatus.STUDENT: 0.4,
    EmploymentStatus.UNEMPLOYED: 0.1,
}

STABLE_EMPLOYMENT = (EmploymentStatus.EMPLOYED, EmploymentStatus.SELF_EMPLOYED)

NEUTRAL_SAVINGS_SCORE = 50.0
RECESSION_CONDITIONS_SCORE = 60.0
ACTIVE_LOANS_ALLOWANCE = 3


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _weighted(pairs: Iterable[Tuple[float, float]]) -> float:
    pairs = list(pairs)
    total = sum(weight for _, weight in pairs)
    if total <= 0:
        return 0.0
    return sum(score * weight for score, weight in pairs) / total


def sub_factor_scores(profile: BorrowerProfile, policy: PartnerBankPolicy) -> Dict[str, float]:
    min_savings_rate = policy.behavioral_thresholds.min_savings_rate
    if profile.savings_rate is None:
        savings = NEUTRAL_SAVINGS_SCORE
    elif min_savings_rate <= 0:
        savings = 100.0
    else:
        savings = 100 * min(profile.savings_rate / min_savings_rate, 1.0)

    return {
        "cash_flow": _clamp(100 * (1 - profile.dti)),
        "income_stability": 100 * EMPLOYMENT_STABILITY[profile.employment_status],
        "discretionary_spending": _clamp(100 * (1 - min(profile.credit_utilization, 1.0))),
        "budgeting_consistency": _clamp(100 * profile.payment_history - 10 * profile.recent_missed_payments),
        "savings_consistency": _clamp(savings),
    }


def five_cs(profile: BorrowerProfile, policy: PartnerBankPolicy) -> Dict[str, float]:
    sub = sub_factor_scores(profile, policy)
    weights = policy.sub_factors

    capacity = _weighted(
        [
            (sub["cash_flow"], weights.cash_flow_weight),
            (sub["income_stability"], weights.income_stability_weight),
            (sub["discretionary_spending"], weights.discretionary_spending_weight),
        ]
    )
    capital = _weighted(
        [
            (sub["savings_consistency"], weights.savings_consistency_weight),
            (sub["budgeting_consistency"], weights.budgeting_consistency_weight),
        ]
    )

    if profile.collateral_value:
        annual_income = profile.monthly_income * 12
        collateral = 50 + 50 * min(profile.collateral_value / annual_income, 1.0)
    else:
        collateral = 50.0

    conditions = RECESSION_CONDITIONS_SCORE if policy.recession_mode.enabled else 100.0
    conditions -= 5 * max(0, profile.active_loans - ACTIVE_LOANS_ALLOWANCE)

    character = 100 * profile.payment_history
    character -= 15 * profile.recent_defaults + 5 * profile.recent_missed_payments
    if profile.last_delinquency_months_ago is not None and profile.last_delinquency_months_ago <= 12:
        character -= 10

    return {
        "capacity": round(_clamp(capacity), 2),
        "capital": round(_clamp(capital), 2),
        "collateral": round(_clamp(collateral), 2),
        "conditions": round(_clamp(conditions), 2),
        "character": round(_clamp(character), 2),
    }


def risk_tier_for(score: float, policy: PartnerBankPolicy) -> Tuple[RiskTier, str, str]:
    """Returns (tier, tier label, default risk estimate)"""
    thresholds = policy.risk_label_thresholds
    if score >= thresholds.low:
        return RiskTier.LOW, "Prime", "<3%"
    elif score >= thresholds.moderate:
        return RiskTier.MODERATE, "Near Prime", "4-10%"
    elif score >= thresholds.high:
        return RiskTier.HIGH, "Subprime", "11-25%"
    else:
        return RiskTier.HIGH, "Deep Subprime", ">25%"


def compute_behavioral(profile: BorrowerProfile, policy: PartnerBankPolicy) -> BehavioralResult:
    """
    Rate a borrower's behavior independently of the credit score.

    The risk tier can only be worsened by the employment check, never improved.
    """
    components = five_cs(profile, policy)
    weights = policy.behavioral_weights.model_dump()
    score = round(_weighted((components[name], weights[name]) for name in weights), 2)

    tier, label, estimate = risk_tier_for(score, policy)
    thresholds = policy.behavioral_thresholds
    flags = []
    overrides = []

    if thresholds.stable_employment_required and profile.employment_status not in STABLE_EMPLOYMENT:
        flags.append("EMPLOYMENT_RISK")
        if tier == RiskTier.LOW:
            tier, label, estimate = RiskTier.MODERATE, "Near Prime", "4-10%"
            overrides.append(
                f"Risk tier raised from Low to Moderate: employment status "
                f"'{profile.employment_status.value}' is not stable"
            )

    if profile.dti > policy.dti_rules.max_dti:
        flags.append("HIGH_DTI")
    if profile.savings_rate is not None and profile.savings_rate < thresholds.min_savings_rate:
        flags.append("LOW_SAVINGS")
    if score < policy.risk_label_thresholds.high:
        flags.append("HIGH_BEHAVIORAL_RISK")

    return BehavioralResult(
        score=score,
        risk_tier=tier,
        risk_tier_label=label,
        default_risk_estimate=estimate,
        components=components,
        flags=tuple(flags),
        overrides=tuple(overrides),
    )
