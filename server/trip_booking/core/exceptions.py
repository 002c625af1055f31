"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..schemas.common import Problem, Violation

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details: Dict[str, Any] = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def message(self) -> str:
        """Human-readable description, used in logs."""
        return self.problem_details.get("detail", self.title)


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            instance=instance,
            extensions={
                "error_id": error_id or str(uuid.uuid4()),
                "timestamp": _timestamp(),
                "retryable": True,
            },
        )


# Checkout and finalization exceptions

class GatewayError(ProblemDetailsException):
    """Payment intent creation failed at the payment gateway."""

    def __init__(self, detail: str, gateway: str = "stripe"):
        super().__init__(
            status_code=502,
            title="Payment Gateway Error",
            detail=detail,
            type_uri="https://example.com/problems/payment-gateway-error",
            extensions={
                "code": "GATEWAY_ERROR",
                "retryable": True,
                "gateway": gateway,
            },
        )


class WebhookSignatureError(ProblemDetailsException):
    """Webhook signature is missing or does not verify."""

    def __init__(self, detail: str = "Webhook signature verification failed"):
        super().__init__(
            status_code=400,
            title="Invalid Webhook Signature",
            detail=detail,
            type_uri="https://example.com/problems/invalid-webhook-signature",
            extensions={"code": "INVALID_SIGNATURE", "retryable": False},
        )


class MalformedEventError(ProblemDetailsException):
    """Verified webhook event lacks data required to process it."""

    def __init__(self, detail: str, event_id: Optional[str] = None):
        extensions: Dict[str, Any] = {"code": "MALFORMED_EVENT", "retryable": False}
        if event_id:
            extensions["event_id"] = event_id

        super().__init__(
            status_code=400,
            title="Malformed Webhook Event",
            detail=detail,
            type_uri="https://example.com/problems/malformed-webhook-event",
            extensions=extensions,
        )


class SeatConflictError(ProblemDetailsException):
    """Requested seats are already booked on the trip."""

    def __init__(self, trip_id: str, seats: List[str], hold_id: Optional[str] = None):
        self.trip_id = trip_id
        self.seats = list(seats)
        extensions: Dict[str, Any] = {
            "code": "SEAT_CONFLICT",
            "retryable": False,
            "trip_id": trip_id,
            "seats": self.seats,
        }
        if hold_id:
            extensions["hold_id"] = hold_id

        super().__init__(
            status_code=409,
            title="Seat Conflict",
            detail=f"Seats {', '.join(self.seats)} are already booked on trip {trip_id}",
            type_uri="https://example.com/problems/seat-conflict",
            extensions=extensions,
        )


class ReconciliationError(ProblemDetailsException):
    """A paid hold vanished without producing a reservation."""

    def __init__(self, hold_id: str, payment_intent_id: str):
        self.hold_id = hold_id
        self.payment_intent_id = payment_intent_id
        super().__init__(
            status_code=500,
            title="Reconciliation Required",
            detail=(
                f"Hold {hold_id} no longer exists and no reservation references it; "
                f"payment {payment_intent_id} needs manual reconciliation"
            ),
            type_uri="https://example.com/problems/reconciliation-required",
            extensions={
                "code": "RECONCILIATION_REQUIRED",
                "retryable": True,
                "hold_id": hold_id,
                "payment_intent_id": payment_intent_id,
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert FastAPI request validation failures to Problem Details with violations."""
    problem = Problem(
        type="https://example.com/problems/validation-error",
        title="Validation Error",
        status=422,
        detail="The request data failed validation",
        instance=str(request.url.path),
        code="VALIDATION_FAILED",
        retryable=False,
        violations=[
            Violation(
                path=".".join(str(part) for part in error.get("loc", ())),
                message=error.get("msg", "Invalid value"),
            )
            for error in exc.errors()
        ],
    )

    return JSONResponse(
        status_code=422,
        content=problem.model_dump(),
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "type": "https://example.com/problems/internal-server-error",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred while processing the request",
            "instance": str(request.url),
            "error_id": error_id,
            "timestamp": _timestamp(),
        },
        media_type="application/problem+json",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the Problem Details handlers on an application."""
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
