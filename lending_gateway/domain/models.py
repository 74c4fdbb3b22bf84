"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import MISSING, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from lending_gateway.domain.exceptions import ValidationError


class LoanType(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    MORTGAGE = "mortgage"
    AUTO = "auto"


class Classification(str, Enum):
    """Score bucket, ordered best first"""

    EXCELLENT = "EXCELLENT"
    VERY_GOOD = "VERY_GOOD"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class EmploymentStatus(str, Enum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self-employed"
    UNEMPLOYED = "unemployed"
    STUDENT = "student"
    RETIRED = "retired"


class DecisionState(str, Enum):
    APPROVE = "Approve"
    REJECT = "Reject"
    REVIEW = "Review"
    HOLD = "Hold"


class RiskTier(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class DtiBand(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class BorrowerProfile:
    """Credit fields for one borrower, as supplied by the profile adapter"""

    monthly_income: float
    total_debt: float  # monthly debt payments
    total_credit: float
    credit_utilization: float
    credit_age_months: float
    credit_mix: float
    inquiries: int
    payment_history: float  # on-time payment ratio
    recent_missed_payments: int  # last 12 months
    recent_defaults: int
    active_loans: int
    employment_status: EmploymentStatus
    last_delinquency_months_ago: Optional[float] = None  # None: never delinquent
    collateral_value: Optional[float] = None
    collateral_quality: Optional[float] = None
    consecutive_missed_payments: int = 0
    transactions_last_90_days: int = 0
    savings_rate: Optional[float] = None
    is_existing_customer: bool = True

    def __post_init__(self):
        try:
            object.__setattr__(self, "employment_status", EmploymentStatus(self.employment_status))
        except ValueError:
            raise ValidationError("employment_status", f"unknown status {self.employment_status!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BorrowerProfile":
        """Build a profile from an adapter payload, naming the first missing field"""
        values = {}
        for f in fields(cls):
            if f.name in data and data[f.name] is not None:
                values[f.name] = data[f.name]
            elif f.default is MISSING and f.default_factory is MISSING:
                raise ValidationError(f.name, "required field is missing")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["employment_status"] = self.employment_status.value
        return data

    @property
    def dti(self) -> float:
        return self.total_debt / self.monthly_income


@dataclass(frozen=True)
class ProfilePatch:
    """Inputs a lender may change before a recalculation"""

    monthly_income: Optional[float] = None
    collateral_value: Optional[float] = None
    collateral_quality: Optional[float] = None

    def apply(self, profile: BorrowerProfile) -> BorrowerProfile:
        changes = {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}
        return replace(profile, **changes)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class HardReject:
    """Rejection-rule breach that overrides any score"""

    code: str
    reasons: Tuple[str, ...]


@dataclass(frozen=True)
class ScoreResult:
    """Output of the score engine"""

    score: int
    classification: Classification
    hard_reject: Optional[HardReject] = None
    breakdown: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BehavioralResult:
    """Output of the 5 C's behavioral engine"""

    score: float
    risk_tier: RiskTier
    risk_tier_label: str
    default_risk_estimate: str
    components: Dict[str, float] = field(default_factory=dict)
    flags: Tuple[str, ...] = ()
    overrides: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PolicyEvaluation:
    """Pricing and sizing derived from the bank's lending policy"""

    max_loan_amount: float
    base_loan_cap: float
    collateral_addition: float
    income_limit: float
    recommended_amount: float
    interest_rate: float
    rate_breakdown: Dict[str, float]
    term_options: Tuple[int, ...]
    collateral_required: bool
    collateral_sufficient: bool
    dti: float
    dti_band: DtiBand
    dti_rating: str
    recession_mode: bool


@dataclass(frozen=True)
class LoanDetails:
    amount: float
    term: int  # months
    interest_rate: float  # annual percentage
    monthly_payment: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "term": self.term,
            "interest_rate": self.interest_rate,
            "monthly_payment": self.monthly_payment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoanDetails":
        return cls(
            amount=data["amount"],
            term=data["term"],
            interest_rate=data["interest_rate"],
            monthly_payment=data.get("monthly_payment"),
        )


@dataclass(frozen=True)
class LendingDecision:
    """
    One entry of a borrower's decision history.

    Never mutated after creation; a later decision supersedes it by being
    appended to the ledger. loan_details is set only when decision is Approve.
    """

    decision: DecisionState
    score: int
    classification: Classification
    risk_tier: RiskTier
    risk_tier_label: str
    default_risk_estimate: str
    dti: float
    dti_rating: str
    timestamp: datetime
    engine_version: str
    bank_code: str
    policy_version: int
    loan_type: LoanType
    requested_amount: Optional[float] = None
    loan_details: Optional[LoanDetails] = None
    reasons: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    risk_flags: Tuple[str, ...] = ()
    is_manual: bool = False
    decision_by: str = "system"
    manual_notes: Optional[str] = None
    risk_tier_override: Optional[RiskTier] = None
    override_justification: Optional[str] = None
    flag_for_review: bool = False
    review_note: Optional[str] = None
    rejection_code: Optional[str] = None
    recession_mode: bool = False
    ai_enabled: bool = False

    def __post_init__(self):
        if self.loan_details is not None and self.decision != DecisionState.APPROVE:
            raise ValidationError("loan_details", "only an Approve decision carries loan details")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form stored in the ledger"""
        return {
            "decision": self.decision.value,
            "score": self.score,
            "classification": self.classification.value,
            "risk_tier": self.risk_tier.value,
            "risk_tier_label": self.risk_tier_label,
            "default_risk_estimate": self.default_risk_estimate,
            "dti": self.dti,
            "dti_rating": self.dti_rating,
            "loan_details": self.loan_details.to_dict() if self.loan_details else None,
            "reasons": list(self.reasons),
            "recommendations": list(self.recommendations),
            "risk_flags": list(self.risk_flags),
            "is_manual": self.is_manual,
            "decision_by": self.decision_by,
            "manual_notes": self.manual_notes,
            "risk_tier_override": self.risk_tier_override.value if self.risk_tier_override else None,
            "override_justification": self.override_justification,
            "flag_for_review": self.flag_for_review,
            "review_note": self.review_note,
            "rejection_code": self.rejection_code,
            "scoring_details": {
                "recession_mode": self.recession_mode,
                "ai_enabled": self.ai_enabled,
            },
            "engine_version": self.engine_version,
            "bank_code": self.bank_code,
            "policy_version": self.policy_version,
            "loan_type": self.loan_type.value,
            "requested_amount": self.requested_amount,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LendingDecision":
        scoring_details = data.get("scoring_details") or {}
        override = data.get("risk_tier_override")
        return cls(
            decision=DecisionState(data["decision"]),
            score=data["score"],
            classification=Classification(data["classification"]),
            risk_tier=RiskTier(data["risk_tier"]),
            risk_tier_label=data["risk_tier_label"],
            default_risk_estimate=data["default_risk_estimate"],
            dti=data["dti"],
            dti_rating=data["dti_rating"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            engine_version=data["engine_version"],
            bank_code=data["bank_code"],
            policy_version=data["policy_version"],
            loan_type=LoanType(data["loan_type"]),
            requested_amount=data.get("requested_amount"),
            loan_details=LoanDetails.from_dict(data["loan_details"]) if data.get("loan_details") else None,
            reasons=tuple(data.get("reasons", ())),
            recommendations=tuple(data.get("recommendations", ())),
            risk_flags=tuple(data.get("risk_flags", ())),
            is_manual=data.get("is_manual", False),
            decision_by=data.get("decision_by", "system"),
            manual_notes=data.get("manual_notes"),
            risk_tier_override=RiskTier(override) if override else None,
            override_justification=data.get("override_justification"),
            flag_for_review=data.get("flag_for_review", False),
            review_note=data.get("review_note"),
            rejection_code=data.get("rejection_code"),
            recession_mode=scoring_details.get("recession_mode", False),
            ai_enabled=scoring_details.get("ai_enabled", False),
        )

    def comparable(self) -> Dict[str, Any]:
        """Every field except the timestamp"""
        data = self.to_dict()
        data.pop("timestamp")
        return data


def unique_flags(flags: List[str]) -> Tuple[str, ...]:
    """De-duplicate risk flags keeping first-seen order"""
    return tuple(dict.fromkeys(flags))
