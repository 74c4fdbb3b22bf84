"""GET /v1/decisions/{borrower_id} - current decision and decision history"""

from fastapi import APIRouter, Depends, HTTPException, Request

from lending_gateway.api.dependencies import get_actor, get_decision_service, get_request_id
from lending_gateway.api.errors import to_http_exception
from lending_gateway.api.v1.schemas import DecisionResponse, HistoryResponse
from lending_gateway.domain.access import Actor
from lending_gateway.domain.exceptions import DomainException
from lending_gateway.services.decision_service import DecisionService

router = APIRouter()


@router.get("/decisions/{borrower_id}", response_model=DecisionResponse)
def get_current_decision(
    borrower_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: DecisionService = Depends(get_decision_service),
):
    """Latest ledger entry for the borrower"""
    try:
        decision = service.get_current_decision(borrower_id, actor)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))

    if decision is None:
        raise HTTPException(status_code=404, detail=f"No decision for borrower {borrower_id}")
    return DecisionResponse.from_domain(decision)


@router.get("/decisions/{borrower_id}/history", response_model=HistoryResponse)
def get_decision_history(
    borrower_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Retrieve every decision for a borrower.

    Returns:
        Decisions in append order, oldest first; empty when none exist
    """
    try:
        decisions = service.get_decision_history(borrower_id, actor)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))

    return HistoryResponse(
        borrower_id=borrower_id,
        decisions=[DecisionResponse.from_domain(d) for d in decisions],
    )
