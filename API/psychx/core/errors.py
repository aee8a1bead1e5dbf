import logging
import uuid

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PsychXError(Exception):
    """Base class for domain errors surfaced through the API error envelope."""

    status_code = 400
    code = "domain_error"
    retryable = False

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotAuthenticatedError(PsychXError):
    status_code = 401
    code = "not_authenticated"


class PermissionDeniedError(PsychXError):
    status_code = 403
    code = "permission_denied"


class EntitlementDeniedError(PsychXError):
    status_code = 403
    code = "entitlement_denied"


class NotFoundError(PsychXError):
    status_code = 404
    code = "not_found"


class InvalidStateError(PsychXError):
    status_code = 409
    code = "invalid_state"


class SlotConflictError(PsychXError):
    status_code = 409
    code = "slot_conflict"


class EmailTakenError(PsychXError):
    status_code = 409
    code = "email_taken"


class GenerationInProgressError(PsychXError):
    status_code = 409
    code = "generation_in_progress"


class InvalidInputError(PsychXError):
    status_code = 422
    code = "invalid_input"


class GenerationFailedError(PsychXError):
    """The content service failed, timed out, or returned nothing usable. Safe to retry."""

    status_code = 503
    code = "generation_unavailable"
    retryable = True


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
    retryable: bool = False,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
            "details": details,
            "retryable": retryable,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


async def domain_exception_handler(request: Request, exc: PsychXError):
    if exc.status_code >= 500:
        logger.warning("Recoverable upstream failure | request_id=%s | %s", get_request_id(request), exc.message)
    return error_response(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        retryable=exc.retryable,
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=jsonable_encoder(exc.errors()),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    request.state.request_id = incoming or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["x-request-id"] = request.state.request_id
    return response
