"""Translation of domain exceptions to HTTP errors"""

import logging

from fastapi import HTTPException

from lending_gateway.domain.exceptions import (
    AuthorizationError,
    BorrowerNotFoundError,
    ConcurrencyConflict,
    ConfigurationError,
    DecisionNotFoundError,
    DomainException,
    PolicyNotFoundError,
    ValidationError,
)

STATUS_BY_EXCEPTION = {
    ValidationError: 422,
    PolicyNotFoundError: 404,
    BorrowerNotFoundError: 404,
    DecisionNotFoundError: 404,
    ConcurrencyConflict: 409,
    AuthorizationError: 403,
    ConfigurationError: 500,
}


def to_http_exception(error: DomainException, request_id: str) -> HTTPException:
    status_code = STATUS_BY_EXCEPTION.get(type(error), 500)
    if status_code >= 500:
        logging.error(f"{type(error).__name__}: {error}", extra={"request_id": request_id})
    else:
        logging.warning(f"{type(error).__name__}: {error}", extra={"request_id": request_id})

    if isinstance(error, ValidationError):
        return HTTPException(status_code=status_code, detail={"field": error.field, "message": str(error)})
    return HTTPException(status_code=status_code, detail=str(error))
