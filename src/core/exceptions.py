"""
Application exceptions and their HTTP handlers
"""
import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException


logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal error"
    headers: Optional[Dict[str, str]] = None

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class ConflictException(AppException):
    status_code = status.HTTP_409_CONFLICT
    message = "Conflict"


class InvalidStateException(AppException):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class MerchantNotFound(NotFoundException):
    message = "Merchant not found"


class PlanNotFound(NotFoundException):
    message = "Plan not found"


class AssignmentNotFound(NotFoundException):
    message = "Plan assignment not found"


class TransactionNotFound(NotFoundException):
    message = "Transaction not found"


class DuplicatePlanName(ConflictException):
    message = "Plan with this name already exists"


class AlreadyApplied(ConflictException):
    message = "Plan assignment already applied"


class AlreadySubscribed(ConflictException):
    message = "Merchant already has an active subscription to this plan"


class PlanHasActiveSubscribers(ConflictException):
    message = "Cannot delete plan with active subscriptions"


class PlanInUse(ConflictException):
    message = "Cannot delete plan with subscription, assignment or billing history"


class SubscriptionNotFound(NotFoundException):
    message = "Subscription not found"


class SubscriptionMerchantMismatch(InvalidStateException):
    message = "Subscription does not belong to this merchant"


class DuplicatePendingAssignment(ConflictException):
    message = (
        "There is already a pending assignment for this merchant and plan. "
        "Please wait a few minutes or contact support to cancel the existing assignment."
    )


class DuplicateRequest(ConflictException):
    message = "Duplicate request (idempotency)"


class RateLimitExceeded(AppException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Rate limit exceeded"

    def __init__(self, retry_after: int) -> None:
        super().__init__()
        self.headers = {"Retry-After": str(retry_after)}


class TerminalTransaction(ConflictException):
    message = "Transaction is already in a terminal status"


class PlanInactive(InvalidStateException):
    message = "Cannot assign inactive plan"


class MissingScheduledDate(InvalidStateException):
    message = "Scheduled date is required for scheduled assignments"


class MissingEndDate(InvalidStateException):
    message = "End date is required for temporary assignments"


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code, content={"message": exc.message}, headers=exc.headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"message": "Validation error", "errors": jsonable_encoder(exc.errors())},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
