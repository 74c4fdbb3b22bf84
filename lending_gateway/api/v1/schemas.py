"""Pydantic schemas for API request/response validation"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from lending_gateway.domain.models import (
    BorrowerProfile,
    DecisionState,
    LendingDecision,
    LoanDetails,
    LoanType,
    ProfilePatch,
    RiskTier,
)


class BorrowerProfileSchema(BaseModel):
    """Credit profile as delivered by the ingestion adapter; ranges are checked by the score engine"""

    monthly_income: float
    total_debt: float
    total_credit: float
    credit_utilization: float
    credit_age_months: float
    credit_mix: float
    inquiries: int
    payment_history: float
    recent_missed_payments: int
    recent_defaults: int
    active_loans: int
    employment_status: str
    last_delinquency_months_ago: Optional[float] = None
    collateral_value: Optional[float] = None
    collateral_quality: Optional[float] = None
    consecutive_missed_payments: int = 0
    transactions_last_90_days: int = 0
    savings_rate: Optional[float] = None
    is_existing_customer: bool = True

    def to_domain(self) -> BorrowerProfile:
        return BorrowerProfile.from_dict(self.model_dump())


class ProfilePatchSchema(BaseModel):
    monthly_income: Optional[float] = Field(None, gt=0)
    collateral_value: Optional[float] = Field(None, ge=0)
    collateral_quality: Optional[float] = Field(None, ge=0, le=1)

    def to_domain(self) -> ProfilePatch:
        return ProfilePatch(
            monthly_income=self.monthly_income,
            collateral_value=self.collateral_value,
            collateral_quality=self.collateral_quality,
        )


class DecisionRequest(BaseModel):
    """Request body for POST /v1/decisions"""

    borrower_id: str = Field(..., min_length=1, description="Borrower identifier")
    bank_code: Optional[str] = Field(None, description="Partner bank; service default when omitted")
    loan_type: LoanType = LoanType.PERSONAL
    requested_amount: Optional[float] = Field(None, gt=0)
    profile: Optional[BorrowerProfileSchema] = Field(None, description="Fresh profile to store before deciding")


class SimulationRequest(BaseModel):
    """Request body for POST /v1/decisions/simulate"""

    bank_code: Optional[str] = None
    loan_type: LoanType = LoanType.PERSONAL
    requested_amount: Optional[float] = Field(None, gt=0)
    profile: Optional[BorrowerProfileSchema] = None
    borrower_id: Optional[str] = None
    patch: Optional[ProfilePatchSchema] = None


class RecalculationRequest(ProfilePatchSchema):
    """Request body for POST /v1/decisions/{borrower_id}/recalculate"""

    bank_code: Optional[str] = None
    loan_type: Optional[LoanType] = None
    requested_amount: Optional[float] = Field(None, gt=0)


class LoanDetailsSchema(BaseModel):
    amount: float
    term: int
    interest_rate: float
    monthly_payment: Optional[float] = None

    def to_domain(self) -> LoanDetails:
        return LoanDetails(
            amount=self.amount,
            term=self.term,
            interest_rate=self.interest_rate,
            monthly_payment=self.monthly_payment,
        )


class ManualDecisionRequest(BaseModel):
    """Request body for POST /v1/decisions/{borrower_id}/manual"""

    decision: DecisionState
    override_justification: str = Field(..., min_length=1)
    notes: Optional[str] = None
    loan_details: Optional[LoanDetailsSchema] = None
    risk_tier_override: Optional[RiskTier] = None
    flag_for_review: bool = False
    review_note: Optional[str] = None


class ScoringDetailsSchema(BaseModel):
    recession_mode: bool
    ai_enabled: bool


class DecisionResponse(BaseModel):
    """One ledger entry"""

    decision: str
    score: int
    classification: str
    risk_tier: str
    risk_tier_label: str
    default_risk_estimate: str
    dti: float
    dti_rating: str
    loan_details: Optional[LoanDetailsSchema] = None
    reasons: List[str]
    recommendations: List[str]
    risk_flags: List[str]
    is_manual: bool
    decision_by: str
    manual_notes: Optional[str] = None
    risk_tier_override: Optional[str] = None
    override_justification: Optional[str] = None
    flag_for_review: bool
    review_note: Optional[str] = None
    rejection_code: Optional[str] = None
    scoring_details: ScoringDetailsSchema
    engine_version: str
    bank_code: str
    policy_version: int
    loan_type: str
    requested_amount: Optional[float] = None
    timestamp: str

    @classmethod
    def from_domain(cls, decision: LendingDecision) -> "DecisionResponse":
        return cls(**decision.to_dict())


class HistoryResponse(BaseModel):
    """Response for GET /v1/decisions/{borrower_id}/history"""

    borrower_id: str
    decisions: List[DecisionResponse]


class PolicyResponse(BaseModel):
    """Response for GET /v1/banks/{bank_code}/policy"""

    bank_code: str
    version: int
    policy: Dict[str, Any]
