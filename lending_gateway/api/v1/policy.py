"""GET /v1/banks/{bank_code}/policy - active partner bank policy"""

from fastapi import APIRouter, Depends, Request

from lending_gateway.api.dependencies import get_actor, get_decision_service, get_request_id
from lending_gateway.api.errors import to_http_exception
from lending_gateway.api.v1.schemas import PolicyResponse
from lending_gateway.domain.access import Actor
from lending_gateway.domain.exceptions import DomainException
from lending_gateway.services.decision_service import DecisionService

router = APIRouter()


@router.get("/banks/{bank_code}/policy", response_model=PolicyResponse)
def get_bank_policy(
    bank_code: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    service: DecisionService = Depends(get_decision_service),
):
    try:
        policy = service.get_policy(bank_code, actor)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request))

    return PolicyResponse(
        bank_code=policy.bank_code,
        version=policy.version,
        policy=policy.model_dump(mode="json", by_alias=True),
    )
