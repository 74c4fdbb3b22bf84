"""
Partner bank policy schema.

A policy is authored by bank administrators as a JSON document (camelCase keys)
and validated here before any decision is computed. Threshold sets are
required and must be monotonically ordered; a malformed policy raises
ConfigurationError instead of falling back to defaults.
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from lending_gateway.domain.exceptions import ConfigurationError
from lending_gateway.domain.models import Classification, DtiBand, LoanType, RiskTier


class ReviewFlag(str, Enum):
    """Risk flags a bank may require manual sign-off for"""

    HIGH_DTI = "HIGH_DTI"
    LOW_SCORE = "LOW_SCORE"
    HIGH_AMOUNT = "HIGH_AMOUNT"
    NEW_CUSTOMER = "NEW_CUSTOMER"
    RECENT_DELINQUENCY = "RECENT_DELINQUENCY"


class PolicyModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid")


def _require_all(mapping: Dict[Any, float], members, name: str) -> Dict[Any, float]:
    missing = [m.value for m in members if m not in mapping]
    if missing:
        raise ValueError(f"{name} missing entries for {', '.join(missing)}")
    return mapping


class ScoringWeights(PolicyModel):
    payment_history: float = Field(35, ge=0)
    credit_utilization: float = Field(30, ge=0)
    credit_age: float = Field(15, ge=0)
    credit_mix: float = Field(10, ge=0)
    inquiries: float = Field(10, ge=0)

    @model_validator(mode="after")
    def _has_weight(self):
        if sum(self.model_dump().values()) <= 0:
            raise ValueError("scoring weights must not all be zero")
        return self


class ThresholdPenalty(PolicyModel):
    threshold: float = Field(ge=0)
    penalty: float = Field(le=0)


class Penalties(PolicyModel):
    recent_defaults: float = Field(-15, le=0)
    missed_payments_last_12: ThresholdPenalty = ThresholdPenalty(threshold=2, penalty=-5)
    low_on_time_rate: ThresholdPenalty = ThresholdPenalty(threshold=0.85, penalty=-4)
    high_inquiries: ThresholdPenalty = ThresholdPenalty(threshold=3, penalty=-2)


class Bonuses(PolicyModel):
    perfect_payment_rate: float = Field(5, ge=0)
    good_credit_mix: float = Field(2, ge=0)
    high_transaction_volume: float = Field(3, ge=0)


class RejectionRules(PolicyModel):
    allow_consecutive_missed_payments: bool = False
    max_missed_payments_12_mo: int = Field(3, ge=0)
    min_months_since_last_delinquency: int = Field(3, ge=0)


class ClassificationBands(PolicyModel):
    """Lowest score of each bucket; anything below fair is POOR"""

    excellent: int = 800
    very_good: int = 740
    good: int = 670
    fair: int = 580

    @model_validator(mode="after")
    def _monotonic(self):
        if not self.excellent >= self.very_good >= self.good >= self.fair:
            raise ValueError("classification bands must satisfy excellent >= very_good >= good >= fair")
        return self


class BehavioralWeights(PolicyModel):
    capacity: float = Field(35, ge=0)
    capital: float = Field(20, ge=0)
    collateral: float = Field(20, ge=0)
    conditions: float = Field(15, ge=0)
    character: float = Field(10, ge=0)

    @model_validator(mode="after")
    def _has_weight(self):
        if sum(self.model_dump().values()) <= 0:
            raise ValueError("behavioral weights must not all be zero")
        return self


class SubFactors(PolicyModel):
    cash_flow_weight: float = Field(50, ge=0)
    income_stability_weight: float = Field(30, ge=0)
    discretionary_spending_weight: float = Field(20, ge=0)
    budgeting_consistency_weight: float = Field(10, ge=0)
    savings_consistency_weight: float = Field(10, ge=0)

    @model_validator(mode="after")
    def _groups_weighted(self):
        if self.cash_flow_weight + self.income_stability_weight + self.discretionary_spending_weight <= 0:
            raise ValueError("capacity sub-factor weights must not all be zero")
        if self.budgeting_consistency_weight + self.savings_consistency_weight <= 0:
            raise ValueError("capital sub-factor weights must not all be zero")
        return self


class BehavioralThresholds(PolicyModel):
    # Unset means dtiRules.maxDTI; a different value is rejected
    max_dti: Optional[float] = Field(None, gt=0, alias="maxDTI")
    min_savings_rate: float = Field(0.1, ge=0, le=1)
    stable_employment_required: bool = True


class RiskLabelThresholds(PolicyModel):
    """Cut points on the 0-100 behavioral scale"""

    low: float = Field(80, ge=0, le=100)
    moderate: float = Field(60, ge=0, le=100)
    high: float = Field(40, ge=0, le=100)

    @model_validator(mode="after")
    def _monotonic(self):
        if not self.low >= self.moderate >= self.high:
            raise ValueError("risk label thresholds must satisfy low >= moderate >= high")
        return self


class ScoreThresholds(PolicyModel):
    approve: int
    conditional: int
    review: int

    @model_validator(mode="after")
    def _monotonic(self):
        if not self.approve >= self.conditional >= self.review:
            raise ValueError("score thresholds must satisfy approve >= conditional >= review")
        return self


class LoanTypePolicy(PolicyModel):
    score_thresholds: ScoreThresholds
    loan_amount_caps: Dict[Classification, float]
    income_multipliers: Dict[Classification, float]
    term_options: List[int] = Field(min_length=1)

    @field_validator("loan_amount_caps", "income_multipliers")
    @classmethod
    def _every_bucket(cls, value, info):
        _require_all(value, Classification, info.field_name)
        if any(v < 0 for v in value.values()):
            raise ValueError(f"{info.field_name} must not be negative")
        return value

    @field_validator("term_options")
    @classmethod
    def _positive_terms(cls, value):
        if any(term <= 0 for term in value):
            raise ValueError("term options must be positive month counts")
        return sorted(set(value))


class DtiRules(PolicyModel):
    max_dti: float = Field(0.45, gt=0, alias="maxDTI")
    max_dti_with_collateral: float = Field(0.55, gt=0, alias="maxDTIWithCollateral")
    minimum_income: float = Field(5000, ge=0)

    @model_validator(mode="after")
    def _collateral_limit(self):
        if self.max_dti_with_collateral < self.max_dti:
            raise ValueError("maxDTIWithCollateral must be >= maxDTI")
        return self


class DtiBands(PolicyModel):
    low_max: float = Field(0.35, ge=0)
    medium_max: float = Field(0.50, ge=0)

    @model_validator(mode="after")
    def _monotonic(self):
        if self.low_max > self.medium_max:
            raise ValueError("DTI bands must satisfy low_max <= medium_max")
        return self


class InterestRatePolicy(PolicyModel):
    base_rate: float = Field(12.0, ge=0)
    max_rate: float = Field(35.99, ge=0)
    risk_adjustments: Dict[Classification, float] = Field(
        default_factory=lambda: {
            Classification.EXCELLENT: -2.0,
            Classification.VERY_GOOD: -1.0,
            Classification.GOOD: 0.0,
            Classification.FAIR: 2.0,
            Classification.POOR: 5.0,
        }
    )
    dti_adjustments: Dict[DtiBand, float] = Field(
        default_factory=lambda: {DtiBand.LOW: -1.0, DtiBand.MEDIUM: 0.0, DtiBand.HIGH: 2.0}
    )
    dti_bands: DtiBands = Field(default_factory=DtiBands)
    risk_tier_adjustments: Dict[RiskTier, float] = Field(
        default_factory=lambda: {RiskTier.LOW: 0.0, RiskTier.MODERATE: 0.0, RiskTier.HIGH: 0.0}
    )
    # Overrides recessionMode.rateIncrease when set
    recession_adjustment: Optional[float] = Field(None, ge=0)

    @field_validator("risk_adjustments")
    @classmethod
    def _every_bucket(cls, value):
        return _require_all(value, Classification, "risk_adjustments")

    @field_validator("dti_adjustments")
    @classmethod
    def _every_band(cls, value):
        return _require_all(value, DtiBand, "dti_adjustments")

    @field_validator("risk_tier_adjustments")
    @classmethod
    def _every_tier(cls, value):
        return _require_all(value, RiskTier, "risk_tier_adjustments")

    @model_validator(mode="after")
    def _rate_bounds(self):
        if self.base_rate > self.max_rate:
            raise ValueError("baseRate cannot be higher than maxRate")
        return self


class CollateralRules(PolicyModel):
    required_for_buckets: List[Classification] = Field(
        default_factory=lambda: [Classification.FAIR, Classification.POOR]
    )
    min_value: float = Field(5000, ge=0)
    loan_to_value_ratio: float = Field(0.7, gt=0, le=1)
    quality_threshold: float = Field(0.6, ge=0, le=1)
    recession_quality_threshold: float = Field(0.7, ge=0, le=1)
    recession_discount: float = Field(0.8, gt=0, le=1)
    max_cap_increase: Optional[float] = Field(None, ge=0)


class RecessionMode(PolicyModel):
    enabled: bool = False
    rate_increase: float = Field(2.0, ge=0)
    # Scale factor applied to loan caps: 0.85 keeps 85% of the cap
    max_amount_reduction: float = Field(0.85, gt=0, le=1)
    max_term: int = Field(36, gt=0)


class AutoApproval(PolicyModel):
    enabled: bool = True
    max_amount: float = Field(100_000, ge=0)
    require_manual_review_flags: List[ReviewFlag] = Field(
        default_factory=lambda: [ReviewFlag.HIGH_AMOUNT, ReviewFlag.NEW_CUSTOMER]
    )


class PartnerBankPolicy(PolicyModel):
    """Complete, immutable policy version for one partner bank"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    bank_code: str = Field(min_length=1)
    version: int = Field(1, ge=1)

    # Score engine
    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    penalties: Penalties = Field(default_factory=Penalties)
    bonuses: Bonuses = Field(default_factory=Bonuses)
    rejection_rules: RejectionRules = Field(default_factory=RejectionRules)
    min_score: int = 300
    max_score: int = 850
    classification_bands: ClassificationBands = Field(default_factory=ClassificationBands)
    allow_manual_override: bool = True

    # Behavioral engine
    behavioral_weights: BehavioralWeights = Field(default_factory=BehavioralWeights)
    sub_factors: SubFactors = Field(default_factory=SubFactors)
    behavioral_thresholds: BehavioralThresholds = Field(default_factory=BehavioralThresholds)
    risk_label_thresholds: RiskLabelThresholds = Field(default_factory=RiskLabelThresholds)

    # Lending policy
    lending_policy: Dict[LoanType, LoanTypePolicy]
    dti_rules: DtiRules = Field(default_factory=DtiRules)
    interest_rate_policy: InterestRatePolicy = Field(default_factory=InterestRatePolicy)
    collateral_rules: CollateralRules = Field(default_factory=CollateralRules)
    recession_mode: RecessionMode = Field(default_factory=RecessionMode)
    auto_approval: AutoApproval = Field(default_factory=AutoApproval)

    @field_validator("bank_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("lending_policy")
    @classmethod
    def _every_loan_type(cls, value):
        return _require_all(value, LoanType, "lending_policy")

    @model_validator(mode="after")
    def _score_bounds(self):
        if self.min_score >= self.max_score:
            raise ValueError("minScore must be lower than maxScore")
        for loan_type, product in self.lending_policy.items():
            thresholds = product.score_thresholds
            if thresholds.review < self.min_score or thresholds.approve > self.max_score:
                raise ValueError(
                    f"{loan_type.value} score thresholds must lie within [{self.min_score}, {self.max_score}]"
                )
        return self

    @model_validator(mode="after")
    def _single_dti_limit(self):
        behavioral_max = self.behavioral_thresholds.max_dti
        if behavioral_max is not None and behavioral_max != self.dti_rules.max_dti:
            raise ValueError("behavioralThresholds.maxDTI must match dtiRules.maxDTI")
        return self

    def product(self, loan_type: LoanType) -> LoanTypePolicy:
        return self.lending_policy[loan_type]


def parse_policy(payload: Dict[str, Any]) -> PartnerBankPolicy:
    """Validate a stored policy document, raising ConfigurationError on any defect"""
    try:
        return PartnerBankPolicy.model_validate(payload)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'policy'}: {err['msg']}" for err in e.errors()
        )
        bank_code = payload.get("bankCode") or payload.get("bank_code") or "unknown"
        raise ConfigurationError(f"Invalid policy for bank {bank_code}: {problems}") from e


_DEFAULT_INCOME_MULTIPLIERS = {"EXCELLENT": 12, "VERY_GOOD": 10, "GOOD": 8, "FAIR": 6, "POOR": 4}

DEFAULT_LENDING_POLICY: Dict[str, Dict[str, Any]] = {
    "personal": {
        "scoreThresholds": {"approve": 700, "conditional": 650, "review": 600},
        "loanAmountCaps": {
            "EXCELLENT": 1_000_000, "VERY_GOOD": 500_000, "GOOD": 300_000, "FAIR": 150_000, "POOR": 50_000,
        },
        "incomeMultipliers": _DEFAULT_INCOME_MULTIPLIERS,
        "termOptions": [12, 24, 36, 48, 60],
    },
    "business": {
        "scoreThresholds": {"approve": 720, "conditional": 670, "review": 620},
        "loanAmountCaps": {
            "EXCELLENT": 5_000_000, "VERY_GOOD": 2_500_000, "GOOD": 1_000_000, "FAIR": 500_000, "POOR": 100_000,
        },
        "incomeMultipliers": _DEFAULT_INCOME_MULTIPLIERS,
        "termOptions": [12, 24, 36, 48, 60, 84],
    },
    "mortgage": {
        "scoreThresholds": {"approve": 750, "conditional": 700, "review": 650},
        "loanAmountCaps": {
            "EXCELLENT": 10_000_000, "VERY_GOOD": 8_000_000, "GOOD": 6_000_000, "FAIR": 4_000_000, "POOR": 2_000_000,
        },
        "incomeMultipliers": _DEFAULT_INCOME_MULTIPLIERS,
        "termOptions": [120, 180, 240, 300, 360],
    },
    "auto": {
        "scoreThresholds": {"approve": 680, "conditional": 630, "review": 580},
        "loanAmountCaps": {
            "EXCELLENT": 2_000_000, "VERY_GOOD": 1_500_000, "GOOD": 1_000_000, "FAIR": 500_000, "POOR": 200_000,
        },
        "incomeMultipliers": _DEFAULT_INCOME_MULTIPLIERS,
        "termOptions": [12, 24, 36, 48, 60, 72],
    },
}


def default_policy_payload(bank_code: str = "CBE", version: int = 1) -> Dict[str, Any]:
    """Default configuration template for onboarding a new partner bank"""
    return {"bankCode": bank_code, "version": version, "lendingPolicy": copy.deepcopy(DEFAULT_LENDING_POLICY)}


def default_policy(bank_code: str = "CBE", version: int = 1) -> PartnerBankPolicy:
    return parse_policy(default_policy_payload(bank_code, version))
