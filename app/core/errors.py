"""
Central error handling for the Time-Off service

Domain errors are HTTPException subclasses so services can raise them the same
way they raise plain HTTPException; each carries a stable ``code`` that is
returned alongside the human readable message.
"""
import logging
import traceback
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(HTTPException):
    """Base class for workflow errors with a machine readable code"""

    code: str = "DomainError"
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
        )


class NotFound(DomainError):
    code = "NotFound"
    status_code_default = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class InvalidSupervisor(DomainError):
    code = "InvalidSupervisor"
    default_detail = "Selected supervisor is not allowed to approve leave requests"


class InvalidDateRange(DomainError):
    code = "InvalidDateRange"
    default_detail = "Start date must be before or equal to end date"


class LeavePolicyViolation(DomainError):
    code = "LeavePolicyViolation"
    default_detail = "Leave request violates the leave type policy"


class OverlappingRequest(DomainError):
    code = "OverlappingRequest"
    default_detail = "Overlapping leave request exists"


class NoBalanceFound(DomainError):
    code = "NoBalanceFound"
    default_detail = "No leave balance found for this leave type"


class InsufficientBalance(DomainError):
    code = "InsufficientBalance"
    default_detail = "Insufficient leave balance"


class ReportingWindowExceeded(DomainError):
    code = "ReportingWindowExceeded"
    default_detail = "Reporting window exceeded for this leave type"


class OpenEndedNotAllowed(DomainError):
    code = "OpenEndedNotAllowed"
    default_detail = "This leave type does not allow open-ended requests"


class InvalidStatusTransition(DomainError):
    code = "InvalidStatusTransition"
    default_detail = "Request cannot be changed in its current status"


class NotAuthorizedApprover(DomainError):
    code = "NotAuthorizedApprover"
    status_code_default = status.HTTP_403_FORBIDDEN
    default_detail = "You can only approve requests you supervise or from your direct reports"


class FinalApprovalAdminOnly(DomainError):
    code = "FinalApprovalAdminOnly"
    status_code_default = status.HTTP_403_FORBIDDEN
    default_detail = "Only admins can give final approval"


class RequestNotActionable(DomainError):
    code = "RequestNotActionable"
    default_detail = "Request is not in a state that can be processed"


class Forbidden(DomainError):
    code = "Forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class Conflict(DomainError):
    code = "Conflict"
    status_code_default = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"


def _error_body(request: Request, status_code: int, message, code: Optional[str] = None) -> dict:
    body = {
        "error": message if isinstance(message, str) else str(message),
        "status_code": status_code,
        "path": str(request.url.path),
    }
    if code:
        body["code"] = code
    return body


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException (and DomainError) with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    code = getattr(exc, "code", None)
    if isinstance(exc, DomainError) and exc.status_code < 500:
        logger.info("%s on %s: %s", code, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, exc.detail, code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError as a 400 with a readable message

    Does not leak internal validation details in production.
    """
    from app.core.config import settings

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(request, 400, "Validation error: Invalid request data", "ValidationError"),
        )

    # Sanitize for JSON: e.g. ctx.error ValueError -> str
    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}" for err in errors
    ) or "Validation error"
    body = _error_body(request, 400, message, "ValidationError")
    body["errors"] = errors
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with consistent JSON response format

    Does not leak internal error details in production.
    """
    from app.core.config import settings

    logger.error("Unhandled exception: %s", exc, exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, 500, "Internal server error"),
        )

    body = _error_body(request, 500, str(exc))
    if settings.APP_ENV == "local":
        body["traceback"] = traceback.format_exc()
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
