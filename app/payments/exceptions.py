"""
Payment-specific exceptions for payment operations.

This module provides the exception hierarchy for the payment engine:
payment domain errors, gateway errors (translated from HTTP responses),
configuration errors and lock contention.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Input and business rule failures
    ├── PaymentConfigError - Invalid fee/payout configuration
    ├── UnknownGatewayError - Gateway name not registered
    └── PaymentProcessingError - Payment processing failures
        └── GatewayError - Base for all gateway errors
            ├── GatewayDeclinedError - Payment declined (permanent)
            ├── GatewayInsufficientFundsError - Insufficient funds (permanent)
            ├── GatewayInvalidRequestError - Invalid request params (permanent)
            ├── GatewayAuthenticationError - Bad credentials (permanent)
            ├── GatewayRateLimitError - Rate limited (transient, retry)
            ├── GatewayUnavailableError - Gateway unavailable (transient, retry)
            └── GatewayTimeoutError - Request timeout (transient, retry)

    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)

Usage:
    from payments.exceptions import GatewayError, UnknownGatewayError

    try:
        result = adapter.disburse(payout)
    except GatewayError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
        scheduler.fail(payout, e.message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Non-positive or over-limit amounts
    - Unsupported currency
    - Refund larger than the refundable amount
    - Missing return/cancel URLs
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentConfigError(PaymentError):
    """
    Raised when payment configuration cannot be loaded.

    Unknown keys, unmapped subscription tiers and out-of-range
    percentages are rejected when the configuration is built, never
    silently defaulted at fee calculation time.
    """

    default_error_code: str = "PAYMENT_CONFIG_ERROR"


class UnknownGatewayError(PaymentError):
    """
    Raised when a gateway name has no registered strategy.

    Example:
        GatewayResolver.resolve_by_name("paypal")
        # UnknownGatewayError: [UNKNOWN_GATEWAY] Unknown payment gateway: paypal
    """

    default_error_code: str = "UNKNOWN_GATEWAY"


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Use for:
    - Gateway API errors
    - Disbursement failures
    - Processing timeouts
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PaymentProcessingError):
    """
    Base exception for all payment gateway errors.

    Provides common attributes for gateway error handling:
    - gateway_code: The gateway's own error code or message key
    - status_code: HTTP status returned by the gateway (if any)
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.status_code = status_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayDeclinedError(GatewayError):
    """
    Payment or disbursement was declined by the gateway.

    Permanent for the same card or destination account.
    """

    default_error_code: str = "GATEWAY_DECLINED"
    is_retryable: bool = False


class GatewayInsufficientFundsError(GatewayError):
    """
    Insufficient funds on the paying side.

    For disbursements this means the platform account at WiPay cannot
    cover the transfer. An operator has to top up before a retry can
    succeed.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class GatewayInvalidRequestError(GatewayError):
    """
    Invalid request parameters sent to the gateway (HTTP 400/404/422).

    The request itself is malformed and will never succeed with the
    same parameters. Usually indicates a bug or bad provider bank data.
    """

    default_error_code: str = "INVALID_GATEWAY_REQUEST"
    is_retryable: bool = False


class GatewayAuthenticationError(GatewayError):
    """
    Gateway rejected our credentials (HTTP 401/403).

    Requires an operator to fix WIPAY_API_KEY or the provider's
    merchant credentials.
    """

    default_error_code: str = "GATEWAY_AUTHENTICATION_FAILED"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """Rate limited by the gateway (HTTP 429)."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """
    Gateway is temporarily unavailable.

    This covers:
    - Network connectivity issues
    - Gateway server errors (5xx)
    - DNS resolution failures
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """
    Gateway call timed out.

    The request was sent but no response arrived within
    GATEWAY_HTTP_TIMEOUT_SECONDS. The operation may have succeeded on the
    gateway side; disbursements carry an Idempotency-Key header so a
    retry with the same key is safe.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process holds the lock and it couldn't be acquired within
    the timeout period.

    Example:
        with DistributedLock(f"payout:process:{payout.id}", timeout=5.0):
            ...
        # LockAcquisitionError if a second worker picks up the same payout
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# Convenience tuple for Celery autoretry_for
TRANSIENT_GATEWAY_ERRORS = (
    GatewayRateLimitError,
    GatewayUnavailableError,
    GatewayTimeoutError,
)


__all__ = [
    "GatewayAuthenticationError",
    "GatewayDeclinedError",
    "GatewayError",
    "GatewayInsufficientFundsError",
    "GatewayInvalidRequestError",
    "GatewayRateLimitError",
    "GatewayTimeoutError",
    "GatewayUnavailableError",
    "LockAcquisitionError",
    "PaymentConfigError",
    "PaymentError",
    "PaymentProcessingError",
    "PaymentValidationError",
    "TRANSIENT_GATEWAY_ERRORS",
    "UnknownGatewayError",
]
