"""POST /v1/decisions - automatic, simulated, recalculated and manual lending decisions"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from lending_gateway.api.dependencies import get_actor, get_decision_service, get_request_id
from lending_gateway.api.errors import to_http_exception
from lending_gateway.api.v1.schemas import (
    DecisionRequest,
    DecisionResponse,
    ManualDecisionRequest,
    RecalculationRequest,
    SimulationRequest,
)
from lending_gateway.domain.access import Actor
from lending_gateway.domain.exceptions import DomainException
from lending_gateway.domain.overrides import ManualDecision
from lending_gateway.services.decision_service import DecisionService

router = APIRouter()


@router.post("/decisions", response_model=DecisionResponse)
def create_decision(
    request_body: DecisionRequest,
    request: Request,
    service: DecisionService = Depends(get_decision_service),
):
    """
    Make the automatic lending decision for a borrower.

    Flow:
    1. Store the supplied profile, or read the committed one
    2. Load the partner bank's active policy
    3. Score, evaluate policy and route the decision
    4. Append the decision to the borrower's ledger
    """
    request_id = get_request_id(request)
    try:
        decision = service.evaluate(
            request_body.borrower_id,
            bank_code=request_body.bank_code,
            loan_type=request_body.loan_type,
            requested_amount=request_body.requested_amount,
            profile=request_body.profile.to_domain() if request_body.profile else None,
        )
        return DecisionResponse.from_domain(decision)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/decisions/simulate", response_model=DecisionResponse)
def simulate_decision(
    request_body: SimulationRequest,
    request: Request,
    service: DecisionService = Depends(get_decision_service),
):
    """What-if decision; nothing is written to the ledger"""
    request_id = get_request_id(request)
    try:
        decision = service.simulate(
            bank_code=request_body.bank_code,
            loan_type=request_body.loan_type,
            requested_amount=request_body.requested_amount,
            profile=request_body.profile.to_domain() if request_body.profile else None,
            borrower_id=request_body.borrower_id,
            patch=request_body.patch.to_domain() if request_body.patch else None,
        )
        return DecisionResponse.from_domain(decision)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/decisions/{borrower_id}/recalculate", response_model=DecisionResponse)
def recalculate_decision(
    borrower_id: str,
    request_body: RecalculationRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: DecisionService = Depends(get_decision_service),
):
    """Re-run the decision with updated income or collateral and append the result"""
    request_id = get_request_id(request)
    try:
        decision = service.recalculate(
            borrower_id,
            request_body.to_domain(),
            actor=actor,
            bank_code=request_body.bank_code,
            loan_type=request_body.loan_type,
            requested_amount=request_body.requested_amount,
        )
        return DecisionResponse.from_domain(decision)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/decisions/{borrower_id}/manual", response_model=DecisionResponse)
def record_manual_decision(
    borrower_id: str,
    request_body: ManualDecisionRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: DecisionService = Depends(get_decision_service),
):
    """Lender override; appended on top of the current decision"""
    request_id = get_request_id(request)
    try:
        manual = ManualDecision(
            decision=request_body.decision,
            decided_by=actor.actor_id,
            override_justification=request_body.override_justification,
            notes=request_body.notes,
            loan_details=request_body.loan_details.to_domain() if request_body.loan_details else None,
            risk_tier_override=request_body.risk_tier_override,
            flag_for_review=request_body.flag_for_review,
            review_note=request_body.review_note,
        )
        decision = service.record_manual_decision(borrower_id, manual, actor)
        return DecisionResponse.from_domain(decision)

    except DomainException as e:
        raise to_http_exception(e, request_id)

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
