"""Lending policy evaluator - loan sizing, pricing and terms for a scored borrower"""

from lending_gateway.domain.models import (
    BorrowerProfile,
    Classification,
    DtiBand,
    LoanType,
    PolicyEvaluation,
    RiskTier,
)
from lending_gateway.domain.policy import DtiBands, PartnerBankPolicy


def dti_band(dti: float, bands: DtiBands) -> DtiBand:
    if dti <= bands.low_max:
        return DtiBand.LOW
    elif dti <= bands.medium_max:
        return DtiBand.MEDIUM
    else:
        return DtiBand.HIGH


def dti_rating(dti: float) -> str:
    """Human-readable DTI rating shown next to the ratio"""
    if dti < 0.2:
        return "Excellent"
    elif dti < 0.35:
        return "Good"
    elif dti < 0.5:
        return "Fair"
    else:
        return "Poor"


def collateral_addition(profile: BorrowerProfile, policy: PartnerBankPolicy) -> float:
    """
    Extra lending capacity granted by pledged collateral.

    Only collateral worth at least min_value whose quality meets the threshold
    counts; recession mode raises the quality bar and discounts the value.
    The result is never negative, so collateral cannot lower a loan cap.
    """
    rules = policy.collateral_rules
    recession = policy.recession_mode.enabled
    value = profile.collateral_value or 0.0
    quality = profile.collateral_quality

    if value < rules.min_value or quality is None:
        return 0.0
    threshold = rules.recession_quality_threshold if recession else rules.quality_threshold
    if quality < threshold:
        return 0.0

    addition = value * rules.loan_to_value_ratio
    if recession:
        addition *= rules.recession_discount
    if rules.max_cap_increase is not None:
        addition = min(addition, rules.max_cap_increase)
    return round(max(0.0, addition), 2)


def evaluate_policy(
    classification: Classification,
    risk_tier: RiskTier,
    loan_type: LoanType,
    profile: BorrowerProfile,
    policy: PartnerBankPolicy,
) -> PolicyEvaluation:
    product = policy.product(loan_type)
    recession = policy.recession_mode
    rate_policy = policy.interest_rate_policy

    base_cap = product.loan_amount_caps[classification]
    if recession.enabled:
        base_cap *= recession.max_amount_reduction
    addition = collateral_addition(profile, policy)
    max_loan_amount = base_cap + addition

    income_limit = profile.monthly_income * product.income_multipliers[classification]
    recommended = min(max_loan_amount, income_limit + addition)

    dti = profile.dti
    band = dti_band(dti, rate_policy.dti_bands)
    rate_breakdown = {
        "base_rate": rate_policy.base_rate,
        "risk_adjustment": rate_policy.risk_adjustments[classification],
        "dti_adjustment": rate_policy.dti_adjustments[band],
        "risk_tier_adjustment": rate_policy.risk_tier_adjustments[risk_tier],
        "recession_adjustment": 0.0,
    }
    if recession.enabled:
        if rate_policy.recession_adjustment is not None:
            rate_breakdown["recession_adjustment"] = rate_policy.recession_adjustment
        else:
            rate_breakdown["recession_adjustment"] = recession.rate_increase
    interest_rate = max(0.0, min(rate_policy.max_rate, sum(rate_breakdown.values())))

    terms = product.term_options
    if recession.enabled:
        terms = [term for term in terms if term <= recession.max_term]

    return PolicyEvaluation(
        max_loan_amount=round(max_loan_amount, 2),
        base_loan_cap=round(base_cap, 2),
        collateral_addition=addition,
        income_limit=round(income_limit, 2),
        recommended_amount=round(recommended, 2),
        interest_rate=round(interest_rate, 2),
        rate_breakdown=rate_breakdown,
        term_options=tuple(terms),
        collateral_required=classification in policy.collateral_rules.required_for_buckets,
        collateral_sufficient=addition > 0,
        dti=round(dti, 4),
        dti_band=band,
        dti_rating=dti_rating(dti),
        recession_mode=recession.enabled,
    )
