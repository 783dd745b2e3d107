"""
Custom exceptions and error handlers for consistent error responses.

Lifecycle operations return these errors inside an ``ActionResult`` instead of
raising them; the HTTP layer unwraps the result, and the global handlers below
render any raised ``AppException`` with a standard payload.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger("haulcore.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when a resource is missing or belongs to another company."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class DomainValidationError(AppException):
    """Malformed or missing input (negative amount, missing odometer...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field} if field else {}
        )


class InvalidTransitionError(AppException):
    """The entity's current status does not allow the requested action."""

    def __init__(self, entity: str, entity_id: Any, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} {entity} {entity_id} while it is {current_status}",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity": entity,
                "id": entity_id,
                "current_status": current_status,
                "action": action,
            }
        )


class OrderViolationError(AppException):
    """Delivery-order guard denial. User-facing and actionable."""

    def __init__(self, reason: str, blocking_load_id: Optional[int] = None,
                 blocking_delivery_order: Optional[int] = None):
        self.reason = reason
        self.blocking_load_id = blocking_load_id
        super().__init__(
            message=reason,
            error_code="ERR_DELIVERY_ORDER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "blocking_load_id": blocking_load_id,
                "blocking_delivery_order": blocking_delivery_order,
            }
        )


class IncompleteDeliveriesError(AppException):
    """Trip completion attempted while loads are still undelivered."""

    def __init__(self, trip_id: Any, undelivered_count: int):
        self.undelivered_count = undelivered_count
        plural = "s" if undelivered_count != 1 else ""
        super().__init__(
            message=f"Cannot complete trip. {undelivered_count} load{plural} not yet delivered",
            error_code="ERR_TRIP_INCOMPLETE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id, "undelivered_count": undelivered_count}
        )


class IdentityError(AppException):
    """The caller's driver/company context could not be resolved."""

    def __init__(self, message: str = "Could not resolve caller identity"):
        super().__init__(
            message=message,
            error_code="ERR_IDENTITY_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions (storage outages and the like)."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
