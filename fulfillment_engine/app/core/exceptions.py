"""
Custom exceptions and error handlers for consistent error responses.

Every failure the engine surfaces is an AppException subclass with a stable
error code and a details dict. Partial-failure errors carry enough detail
(which rows were written) for the caller to reconcile.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Malformed input rejected before any write."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Shipping

class ZoneNotFound(AppException):
    def __init__(self, state: str):
        super().__init__(
            message=f"Zone not found for state: {state}",
            error_code="ERR_ZONE_NOT_FOUND",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"state": state}
        )


class RateNotFound(AppException):
    def __init__(self, zone_name: str, hub_id: Any = None):
        super().__init__(
            message=f"No shipping rate found for zone: {zone_name}",
            error_code="ERR_RATE_NOT_FOUND",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"zone": zone_name, "hub_id": hub_id}
        )


class ZoneOverlapError(AppException):
    """Two zones may not claim the same state."""

    def __init__(self, states: List[str], conflicting_zone: str):
        super().__init__(
            message=f"States already assigned to zone '{conflicting_zone}': {', '.join(states)}",
            error_code="ERR_ZONE_OVERLAP",
            status_code=status.HTTP_409_CONFLICT,
            details={"states": states, "conflicting_zone": conflicting_zone}
        )


class DuplicateConfigurationError(AppException):
    def __init__(self, entity: str, field: str, value: Any):
        super().__init__(
            message=f"{entity} with {field} '{value}' already exists",
            error_code="ERR_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"entity": entity, "field": field, "value": value}
        )


# Orders and assignment

class SubOrderNotFound(ResourceNotFoundError):
    def __init__(self, sub_order_id: Any):
        super().__init__("Sub-order", sub_order_id)
        self.error_code = "ERR_SUB_ORDER_NOT_FOUND"


class MissingHub(AppException):
    def __init__(self, sub_order_id: int):
        super().__init__(
            message=f"Sub-order {sub_order_id} has no hub assigned",
            error_code="ERR_MISSING_HUB",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"sub_order_id": sub_order_id}
        )


class NoCourierAvailable(AppException):
    def __init__(self, hub_id: int):
        super().__init__(
            message=f"No courier available for hub {hub_id}",
            error_code="ERR_NO_COURIER",
            status_code=status.HTTP_409_CONFLICT,
            details={"hub_id": hub_id}
        )


class DuplicatePrimaryCourierError(AppException):
    def __init__(self, hub_id: int, courier_id: int):
        super().__init__(
            message=f"Hub {hub_id} already has a primary courier ({courier_id})",
            error_code="ERR_DUPLICATE_PRIMARY",
            status_code=status.HTTP_409_CONFLICT,
            details={"hub_id": hub_id, "primary_courier_id": courier_id}
        )


class OrderPersistFailed(AppException):
    """The main order row could not be written, or a transactional ingest rolled back."""

    def __init__(self, message: str, rolled_back: bool = False):
        super().__init__(
            message=message,
            error_code="ERR_ORDER_PERSIST",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"rolled_back": rolled_back}
        )


class SubOrderPersistFailed(AppException):
    """Main order exists but some or all sub-orders / tracking events are missing."""

    def __init__(
        self,
        order_id: int,
        persisted_sub_order_ids: List[int],
        failed_groups: List[Dict[str, Any]],
        stage: str,
        cause: Optional[str] = None
    ):
        super().__init__(
            message=f"Order {order_id} persisted with incomplete sub-orders (failed at {stage})",
            error_code="ERR_SUB_ORDER_PERSIST",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={
                "order_id": order_id,
                "persisted_sub_order_ids": persisted_sub_order_ids,
                "failed_groups": failed_groups,
                "stage": stage,
                "cause": cause,
            }
        )


class DuplicateOrder(AppException):
    def __init__(self, external_order_id: str, order_id: int):
        super().__init__(
            message=f"Order {external_order_id} was already ingested",
            error_code="ERR_DUPLICATE_ORDER",
            status_code=status.HTTP_409_CONFLICT,
            details={"external_order_id": external_order_id, "order_id": order_id}
        )


class OrderPurgeBlocked(AppException):
    def __init__(self, order_id: int, settled_sub_order_ids: List[int]):
        super().__init__(
            message=f"Order {order_id} has sub-orders in an open settlement",
            error_code="ERR_ORDER_SETTLED",
            status_code=status.HTTP_409_CONFLICT,
            details={"order_id": order_id, "sub_order_ids": settled_sub_order_ids}
        )


class OrderNotCancellable(AppException):
    def __init__(self, order_id: int, blocking_sub_order_ids: List[int]):
        super().__init__(
            message=f"Order {order_id} has sub-orders already in flight",
            error_code="ERR_ORDER_NOT_CANCELLABLE",
            status_code=status.HTTP_409_CONFLICT,
            details={"order_id": order_id, "sub_order_ids": blocking_sub_order_ids}
        )


# Tracking

class TrackingTransitionRejected(AppException):
    """Only raised when strict monotonic tracking is enabled."""

    def __init__(self, sub_order_id: int, current: str, requested: str, reason: str):
        super().__init__(
            message=f"Cannot move sub-order {sub_order_id} from {current} to {requested}: {reason}",
            error_code="ERR_TRACKING_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"sub_order_id": sub_order_id, "current": current, "requested": requested}
        )


# Settlements

class NoEligibleShipments(AppException):
    def __init__(self, courier_id: int, start_date: Any, end_date: Any):
        super().__init__(
            message=f"No eligible shipments for courier {courier_id} in period",
            error_code="ERR_NO_ELIGIBLE_SHIPMENTS",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"courier_id": courier_id, "start_date": str(start_date), "end_date": str(end_date)}
        )


class SettlementStateConflict(AppException):
    def __init__(self, settlement_id: int, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} settlement {settlement_id} in status {current_status}",
            error_code="ERR_SETTLEMENT_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"settlement_id": settlement_id, "status": current_status}
        )


class SettlementPaidPartially(AppException):
    """Settlement row is paid but some linked sub-orders were not updated."""

    def __init__(self, settlement_id: int, updated_sub_order_ids: List[int], failed_sub_order_ids: List[int]):
        super().__init__(
            message=f"Settlement {settlement_id} marked paid but {len(failed_sub_order_ids)} sub-orders were not updated",
            error_code="ERR_SETTLEMENT_PARTIAL",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={
                "settlement_id": settlement_id,
                "updated_sub_order_ids": updated_sub_order_ids,
                "failed_sub_order_ids": failed_sub_order_ids,
            }
        )


class OperationTimeoutError(AppException):
    """A data access call exceeded its caller-supplied timeout."""

    def __init__(self, operation: str, timeout: Optional[float]):
        super().__init__(
            message=f"Operation '{operation}' timed out after {timeout}s",
            error_code="ERR_TIMEOUT",
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            details={"operation": operation, "timeout_seconds": timeout}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.error_code, exc.message, extra={"details": exc.details})
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
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
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
        status_code=422,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that JSONResponse cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
