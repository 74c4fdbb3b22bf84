"""Decision pipeline: score, behavioral, policy evaluation, routing"""

from datetime import datetime
from typing import Optional

from lending_gateway.domain.behavioral import compute_behavioral
from lending_gateway.domain.decision_router import route_decision
from lending_gateway.domain.models import BorrowerProfile, LendingDecision, LoanType
from lending_gateway.domain.policy import PartnerBankPolicy
from lending_gateway.domain.policy_evaluator import evaluate_policy
from lending_gateway.domain.scoring import compute_score


def evaluate_lending_decision(
    profile: BorrowerProfile,
    policy: PartnerBankPolicy,
    loan_type: LoanType,
    *,
    requested_amount: Optional[float] = None,
    timestamp: datetime,
    engine_version: str,
) -> LendingDecision:
    """
    Compute a lending decision from explicit inputs.

    Pure function: no I/O and no clock reads. The same profile, policy and
    loan parameters always produce the same decision apart from timestamp.
    """
    loan_type = LoanType(loan_type)
    score_result = compute_score(profile, policy)
    behavioral = compute_behavioral(profile, policy)
    evaluation = evaluate_policy(score_result.classification, behavioral.risk_tier, loan_type, profile, policy)
    return route_decision(
        score_result,
        behavioral,
        evaluation,
        profile,
        policy,
        loan_type,
        requested_amount=requested_amount,
        timestamp=timestamp,
        engine_version=engine_version,
    )
