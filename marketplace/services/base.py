"""
Service layer plumbing.

Every domain service returns a ServiceResult instead of raising for failures a
caller can act on. Error codes are grouped into kinds, and the HTTP layer only
ever looks at the kind to pick a status.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKinds:
    """
    Broad failure categories.

    Every error code belongs to exactly one kind. The transport layer picks a
    response status from the kind; only INTERNAL is not caller-correctable.
    """

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DUPLICATE_REFERENCE = "duplicate_reference"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class ErrorCodes:
    """Standard error codes used across marketplace and loyalty services."""

    # Store / catalog errors
    STORE_NOT_FOUND = "store_not_found"
    PRODUCT_NOT_FOUND = "product_not_found"
    PRODUCT_WRONG_STORE = "product_wrong_store"
    SHIPPING_METHOD_UNAVAILABLE = "shipping_method_unavailable"

    # Checkout errors
    EMPTY_CART = "empty_cart"
    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_STOCK = "insufficient_stock"
    PROMOTION_NOT_FOUND = "promotion_not_found"
    PROMOTION_INVALID = "promotion_invalid"
    PROMOTION_ALREADY_USED = "promotion_already_used"
    NON_POSITIVE_TOTAL = "non_positive_total"

    # User errors
    USER_NOT_FOUND = "user_not_found"

    # Order errors
    ORDER_NOT_FOUND = "order_not_found"

    # Loyalty errors
    LOYALTY_ACTION_NOT_FOUND = "loyalty_action_not_found"
    INVALID_POINTS = "invalid_points"
    INVALID_REFERENCE = "invalid_reference"
    DUPLICATE_REFERENCE = "duplicate_reference"
    INSUFFICIENT_BALANCE = "insufficient_balance"

    # Notification errors
    NOTIFICATION_FAILED = "notification_failed"

    # Access errors
    FORBIDDEN = "forbidden"

    # Validation errors
    VALIDATION_ERROR = "validation_error"
    INVALID_INPUT = "invalid_input"

    # Internal errors
    INTERNAL_ERROR = "internal_error"


ERROR_KINDS: Dict[str, str] = {
    ErrorCodes.STORE_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.PRODUCT_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.SHIPPING_METHOD_UNAVAILABLE: ErrorKinds.NOT_FOUND,
    ErrorCodes.ORDER_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.USER_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.LOYALTY_ACTION_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.PROMOTION_NOT_FOUND: ErrorKinds.NOT_FOUND,
    ErrorCodes.PRODUCT_WRONG_STORE: ErrorKinds.INVALID_INPUT,
    ErrorCodes.EMPTY_CART: ErrorKinds.INVALID_INPUT,
    ErrorCodes.INVALID_QUANTITY: ErrorKinds.INVALID_INPUT,
    ErrorCodes.INVALID_POINTS: ErrorKinds.INVALID_INPUT,
    ErrorCodes.INVALID_REFERENCE: ErrorKinds.INVALID_INPUT,
    ErrorCodes.VALIDATION_ERROR: ErrorKinds.INVALID_INPUT,
    ErrorCodes.INVALID_INPUT: ErrorKinds.INVALID_INPUT,
    ErrorCodes.INSUFFICIENT_STOCK: ErrorKinds.CONFLICT,
    ErrorCodes.PROMOTION_INVALID: ErrorKinds.CONFLICT,
    ErrorCodes.PROMOTION_ALREADY_USED: ErrorKinds.CONFLICT,
    ErrorCodes.NON_POSITIVE_TOTAL: ErrorKinds.CONFLICT,
    ErrorCodes.DUPLICATE_REFERENCE: ErrorKinds.DUPLICATE_REFERENCE,
    ErrorCodes.INSUFFICIENT_BALANCE: ErrorKinds.INSUFFICIENT_BALANCE,
    ErrorCodes.FORBIDDEN: ErrorKinds.FORBIDDEN,
    ErrorCodes.NOTIFICATION_FAILED: ErrorKinds.INTERNAL,
    ErrorCodes.INTERNAL_ERROR: ErrorKinds.INTERNAL,
}


def error_kind(code: Optional[str]) -> str:
    """Return the kind of an error code; unknown codes are internal."""
    return ERROR_KINDS.get(code, ErrorKinds.INTERNAL)


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call: either a value or an error code with detail.

    >>> result = service_err("insufficient_stock", "Insufficient stock for Lamp: available 1")
    >>> result.kind
    'conflict'
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None

    @property
    def kind(self) -> Optional[str]:
        if self.ok:
            return None
        return error_kind(self.error)

    @property
    def is_client_error(self) -> bool:
        return not self.ok and self.kind != ErrorKinds.INTERNAL


def service_ok(value: T) -> ServiceResult[T]:
    return ServiceResult(ok=True, value=value)


def service_err(error: str, error_detail: str = "") -> ServiceResult:
    """Failed result; the detail defaults to the code itself."""
    return ServiceResult(ok=False, error=error, error_detail=error_detail or error)


class DomainError(Exception):
    """
    Expected business-rule failure raised inside a database transaction.

    Raising (instead of returning a ServiceResult) lets ``transaction.atomic``
    roll back every write made so far. Services convert it back into a
    ServiceResult at their public boundary with ``to_result``.
    """

    def __init__(self, code: str, detail: str = ""):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code

    @property
    def kind(self) -> str:
        return error_kind(self.code)

    def to_result(self) -> ServiceResult:
        return service_err(self.code, self.detail)


class BaseService:
    """Gives each service a logger named after its module and class."""

    def __init__(self):
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @staticmethod
    def log_performance(func: Callable) -> Callable:
        """Time a service method and log how it ended (ok, error code, or exception)."""

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            label = f"{self.__class__.__name__}.{func.__name__}"
            started = time.perf_counter()
            try:
                result = func(self, *args, **kwargs)
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - started) * 1000
                self.logger.error(f"{label} raised after {elapsed_ms:.1f}ms: {exc}", exc_info=True)
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            if isinstance(result, ServiceResult) and not result.ok:
                self.logger.warning(f"{label} returned {result.error} in {elapsed_ms:.1f}ms")
            else:
                self.logger.info(f"{label} finished in {elapsed_ms:.1f}ms")
            return result

        return wrapper

    def internal_error(self, context: str, exc: Exception) -> ServiceResult[Any]:
        """
        Log an unexpected failure with full context and return an opaque error.

        The exception text stays in the logs; callers only see the context.
        """
        self.logger.error(f"{context}: {exc}", exc_info=True)
        return service_err(ErrorCodes.INTERNAL_ERROR, f"{context}. Please try again later.")
