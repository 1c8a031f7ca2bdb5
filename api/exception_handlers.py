"""Map domain exceptions to HTTP responses"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain.exceptions import (
    ActionNotPermitted, DomainError, ListingUnavailable, SlotUnavailable, StateViolation,
)

logger = logging.getLogger(__name__)

# Anything not listed is a 400
STATUS_BY_ERROR = {
    StateViolation: 409,
    ListingUnavailable: 409,
    SlotUnavailable: 409,
    ActionNotPermitted: 403,
}


def status_for(exc: DomainError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        status_code = status_for(exc)
        logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, exc.code)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": {"code": "bad_request", "message": str(exc), "details": {}}},
        )
