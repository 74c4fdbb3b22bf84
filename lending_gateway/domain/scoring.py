"""Score engine - weighted credit factors mapped onto the bank's score range"""

import math
from numbers import Real
from typing import Dict, List, Optional, Tuple

from lending_gateway.domain.exceptions import ValidationError
from lending_gateway.domain.models import BorrowerProfile, Classification, HardReject, ScoreResult
from lending_gateway.domain.policy import ClassificationBands, PartnerBankPolicy

# Credit age stops adding to the score after ten years
CREDIT_AGE_SATURATION_MONTHS = 120

_RATIO_FIELDS = ("credit_mix", "payment_history")
_NON_NEGATIVE_FIELDS = (
    "total_debt",
    "total_credit",
    "credit_age_months",
    "inquiries",
    "recent_missed_payments",
    "recent_defaults",
    "active_loans",
    "consecutive_missed_payments",
    "transactions_last_90_days",
)


def _number(profile: BorrowerProfile, name: str) -> float:
    value = getattr(profile, name)
    if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value):
        raise ValidationError(name, f"expected a number, got {value!r}")
    return value


def _in_range(profile: BorrowerProfile, name: str, low: float, high: Optional[float]) -> None:
    value = _number(profile, name)
    if value < low or (high is not None and value > high):
        bound = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ValidationError(name, f"{value} is outside {bound}")


def validate_profile(profile: BorrowerProfile) -> None:
    """Reject a profile with any out-of-range field before scoring"""
    if _number(profile, "monthly_income") <= 0:
        raise ValidationError("monthly_income", "must be greater than zero")
    _in_range(profile, "credit_utilization", 0, 5)
    for name in _RATIO_FIELDS:
        _in_range(profile, name, 0, 1)
    for name in _NON_NEGATIVE_FIELDS:
        _in_range(profile, name, 0, None)
    for name in ("savings_rate", "collateral_quality"):
        if getattr(profile, name) is not None:
            _in_range(profile, name, 0, 1)
    for name in ("collateral_value", "last_delinquency_months_ago"):
        if getattr(profile, name) is not None:
            _in_range(profile, name, 0, None)


def normalize_factors(profile: BorrowerProfile) -> Dict[str, float]:
    """Map each credit factor onto 0-1, higher is better"""
    return {
        "payment_history": profile.payment_history,
        "credit_utilization": max(0.0, 1 - math.log10(1 + 9 * profile.credit_utilization)),
        "credit_age": min(profile.credit_age_months / CREDIT_AGE_SATURATION_MONTHS, 1.0),
        "credit_mix": profile.credit_mix,
        "inquiries": max(0.0, 1 - math.log10(1 + 2 * profile.inquiries)),
    }


def _adjustments(profile: BorrowerProfile, policy: PartnerBankPolicy) -> Tuple[Dict[str, float], Dict[str, float]]:
    penalties = policy.penalties
    applied_penalties = {}
    if profile.recent_defaults > 0:
        applied_penalties["recent_defaults"] = penalties.recent_defaults
    if profile.recent_missed_payments >= penalties.missed_payments_last_12.threshold:
        applied_penalties["missed_payments_last_12"] = penalties.missed_payments_last_12.penalty
    if profile.payment_history < penalties.low_on_time_rate.threshold:
        applied_penalties["low_on_time_rate"] = penalties.low_on_time_rate.penalty
    if profile.inquiries >= penalties.high_inquiries.threshold:
        applied_penalties["high_inquiries"] = penalties.high_inquiries.penalty

    bonuses = policy.bonuses
    applied_bonuses = {}
    if profile.payment_history >= 1.0:
        applied_bonuses["perfect_payment_rate"] = bonuses.perfect_payment_rate
    if profile.credit_mix >= 0.5:
        applied_bonuses["good_credit_mix"] = bonuses.good_credit_mix
    if profile.transactions_last_90_days > 10:
        applied_bonuses["high_transaction_volume"] = bonuses.high_transaction_volume

    return applied_penalties, applied_bonuses


def classify_score(score: int, bands: ClassificationBands) -> Classification:
    if score >= bands.excellent:
        return Classification.EXCELLENT
    elif score >= bands.very_good:
        return Classification.VERY_GOOD
    elif score >= bands.good:
        return Classification.GOOD
    elif score >= bands.fair:
        return Classification.FAIR
    else:
        return Classification.POOR


def check_rejection_rules(profile: BorrowerProfile, policy: PartnerBankPolicy) -> Optional[HardReject]:
    """
    Evaluate the bank's hard-reject rules.

    Every breached rule contributes a reason; the first breach sets the code.
    """
    rules = policy.rejection_rules
    breaches: List[Tuple[str, str]] = []

    if not rules.allow_consecutive_missed_payments and profile.consecutive_missed_payments >= 2:
        breaches.append(
            ("REG-01", f"{profile.consecutive_missed_payments} consecutive missed payments are not allowed")
        )
    if profile.recent_missed_payments > rules.max_missed_payments_12_mo:
        breaches.append(
            (
                "REG-02",
                f"{profile.recent_missed_payments} missed payments in 12 months exceeds "
                f"the maximum of {rules.max_missed_payments_12_mo}",
            )
        )
    if (
        profile.last_delinquency_months_ago is not None
        and profile.last_delinquency_months_ago < rules.min_months_since_last_delinquency
    ):
        breaches.append(
            (
                "REG-03",
                f"Last delinquency {profile.last_delinquency_months_ago:g} months ago is within "
                f"the {rules.min_months_since_last_delinquency} month minimum",
            )
        )

    if not breaches:
        return None
    return HardReject(code=breaches[0][0], reasons=tuple(reason for _, reason in breaches))


def compute_score(profile: BorrowerProfile, policy: PartnerBankPolicy) -> ScoreResult:
    """
    Score a borrower on the bank's [min_score, max_score] scale.

    Raw points (0-100) are the weighted mean of the normalized factors plus
    penalties and bonuses; the result is scaled linearly onto the score range
    and clamped. Hard-reject rules are evaluated alongside and reported on the
    result without altering the score.
    """
    validate_profile(profile)

    factors = normalize_factors(profile)
    weights = policy.scoring_weights.model_dump()
    total_weight = sum(weights.values())
    weighted = 100 * sum(weights[name] * factors[name] for name in weights) / total_weight

    penalties, bonuses = _adjustments(profile, policy)
    raw = weighted + sum(penalties.values()) + sum(bonuses.values())

    span = policy.max_score - policy.min_score
    score = round(policy.min_score + raw / 100 * span)
    score = max(policy.min_score, min(policy.max_score, score))

    return ScoreResult(
        score=score,
        classification=classify_score(score, policy.classification_bands),
        hard_reject=check_rejection_rules(profile, policy),
        breakdown={
            "factors": {name: round(value, 4) for name, value in factors.items()},
            "weighted_points": round(weighted, 2),
            "penalties": penalties,
            "bonuses": bonuses,
            "raw_points": round(raw, 2),
        },
    )
