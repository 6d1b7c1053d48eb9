"""
HTTP transport for payment gateway APIs.

All calls to WiPay (checkout, refunds, split lookups, disbursements) go
through GatewayHttpClient so they share the same timeouts, retries,
logging and error translation.

Features:
- Bounded timeout on every request (GATEWAY_HTTP_TIMEOUT_SECONDS)
- Bounded retries with exponential backoff and jitter on 429/500/502/503/504
  and on connection-level errors (GATEWAY_MAX_RETRIES)
- Other 4xx responses surface immediately as permanent GatewayErrors
- Request/response logging with a per-request correlation id and duration,
  with sensitive keys redacted

Usage:
    from payments.adapters.http_client import GatewayHttpClient

    client = GatewayHttpClient(
        "wipay",
        base_url=settings.WIPAY_DISBURSEMENT_URL,
        headers={"Authorization": f"Bearer {settings.WIPAY_API_KEY}"},
    )
    response = client.post(
        "/disbursements/bank",
        json={"amount": "300.00"},
        headers={"Idempotency-Key": key},
    )
    response.data["disbursement_id"]
"""

from __future__ import annotations

import hashlib
import logging
import random
import secrets
import string
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
from django.conf import settings

from payments.exceptions import (
    GatewayAuthenticationError,
    GatewayDeclinedError,
    GatewayError,
    GatewayInsufficientFundsError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "card_number",
    "cvv",
    "cvc",
    "expiry",
    "account_number",
    "credentials",
)

REDACTED = "[REDACTED]"
MAX_REDACTION_DEPTH = 5

_CORRELATION_ALPHABET = string.ascii_letters + string.digits


# =============================================================================
# Helpers
# =============================================================================


def redact(data: Any, depth: int = 0) -> Any:
    """
    Replace values of sensitive keys with [REDACTED] for logging.

    Keys match case-insensitively by substring, so "bank_account_number"
    and "X-Api-Key" are both caught. Nesting deeper than
    MAX_REDACTION_DEPTH is returned as-is.
    """
    if depth > MAX_REDACTION_DEPTH:
        return data
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            lowered = str(key).lower().replace("-", "_")
            if any(pattern in lowered for pattern in SENSITIVE_KEYS):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact(value, depth + 1)
        return redacted
    if isinstance(data, list):
        return [redact(item, depth + 1) for item in data]
    return data


def generate_correlation_id() -> str:
    """Correlation id for one logical gateway request: pay_ + 16 random chars."""
    return "pay_" + "".join(secrets.choice(_CORRELATION_ALPHABET) for _ in range(16))


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for gateway calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The hash component is derived from SECRET_KEY so keys are stable across
    restarts while the structured format aids debugging.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="disburse",
            entity_id=payout.id,
            attempt=1,
        )
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


def is_retryable_gateway_error(error: Exception) -> bool:
    """True for transient GatewayErrors (rate limit, unavailable, timeout)."""
    if isinstance(error, GatewayError):
        return error.is_retryable
    return False


# =============================================================================
# Client
# =============================================================================


@dataclass
class GatewayResponse:
    """
    A successful (2xx) gateway response.

    Attributes:
        status_code: HTTP status
        data: Parsed JSON body ({} if the body was not JSON)
        text: Raw body
        correlation_id: Correlation id used in the logs for this request
    """

    status_code: int
    data: dict[str, Any] = field(default_factory=dict)
    text: str = ""
    correlation_id: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class GatewayHttpClient:
    """
    Synchronous HTTP client for one gateway.

    A new httpx.Client is opened per request; clients are cheap and this
    keeps the wrapper safe to share between Celery worker threads.

    Args:
        gateway_name: Name used in log records
        base_url: Prefix for relative paths
        headers: Headers sent on every request
        timeout: Seconds; defaults to GATEWAY_HTTP_TIMEOUT_SECONDS
        max_retries: Retries after the first attempt; defaults to GATEWAY_MAX_RETRIES
        sleep: Sleep function, replaced in tests
    """

    def __init__(
        self,
        gateway_name: str,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway_name = gateway_name
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout = (
            timeout
            if timeout is not None
            else getattr(settings, "GATEWAY_HTTP_TIMEOUT_SECONDS", 30)
        )
        self.max_retries = (
            max_retries
            if max_retries is not None
            else getattr(settings, "GATEWAY_MAX_RETRIES", 3)
        )
        self._sleep = sleep
        self.logger = logging.getLogger(f"{__name__}.{gateway_name}")

    def get(self, path: str, params: dict[str, Any] | None = None, **kwargs) -> GatewayResponse:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, **kwargs) -> GatewayResponse:
        return self.request("POST", path, **kwargs)

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> GatewayResponse:
        """
        Send a request, retrying transient failures.

        Returns:
            GatewayResponse for a 2xx response

        Raises:
            GatewayTimeoutError: Timed out on every attempt
            GatewayUnavailableError: Connection errors or 5xx on every attempt
            GatewayRateLimitError: 429 on every attempt
            GatewayAuthenticationError: 401/403
            GatewayDeclinedError / GatewayInsufficientFundsError: 402
            GatewayInvalidRequestError: Other 4xx
        """
        url = self._url(path)
        merged_headers = {**self.headers, **(headers or {})}
        correlation_id = generate_correlation_id()
        log_context = {
            "gateway": self.gateway_name,
            "correlation_id": correlation_id,
            "method": method,
            "url": url,
        }

        last_error: GatewayError | None = None
        for attempt in range(self.max_retries + 1):
            self.logger.info(
                "Gateway HTTP request",
                extra={
                    **log_context,
                    "attempt": attempt + 1,
                    "headers": redact(merged_headers),
                    "body": redact(json if json is not None else data or {}),
                },
            )
            start_time = time.time()

            try:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.request(
                        method,
                        url,
                        json=json,
                        data=data,
                        params=params,
                        headers=merged_headers,
                    )
            except httpx.TimeoutException as e:
                last_error = GatewayTimeoutError(
                    f"{self.gateway_name} request timed out",
                    gateway_code="timeout",
                    details={"error": str(e)},
                )
                self._log_transport_error(log_context, e, start_time)
            except httpx.TransportError as e:
                last_error = GatewayUnavailableError(
                    f"Could not connect to {self.gateway_name}",
                    gateway_code="connection_error",
                    details={"error": str(e)},
                )
                self._log_transport_error(log_context, e, start_time)
            else:
                duration_ms = (time.time() - start_time) * 1000
                body = self._parse_body(response)
                level = logging.INFO if response.is_success else logging.WARNING
                self.logger.log(
                    level,
                    "Gateway HTTP response",
                    extra={
                        **log_context,
                        "status": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                        "body": redact(body),
                    },
                )

                if response.is_success:
                    return GatewayResponse(
                        status_code=response.status_code,
                        data=body,
                        text=response.text,
                        correlation_id=correlation_id,
                    )

                last_error = self._translate_status(response.status_code, body)
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise last_error

            if attempt < self.max_retries:
                delay = backoff_delay(attempt)
                self.logger.warning(
                    "Retrying gateway request",
                    extra={**log_context, "attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                self._sleep(delay)

        raise last_error

    def _log_transport_error(
        self,
        log_context: dict[str, Any],
        error: Exception,
        start_time: float,
    ) -> None:
        self.logger.error(
            "Gateway HTTP error",
            extra={
                **log_context,
                "error": str(error),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}

    def _translate_status(self, status_code: int, body: dict[str, Any]) -> GatewayError:
        """Map an error status to the GatewayError taxonomy."""
        message = str(body.get("message") or body.get("error") or f"HTTP {status_code}")
        gateway_code = str(body.get("code") or body.get("status") or status_code)
        kwargs = {
            "gateway_code": gateway_code,
            "status_code": status_code,
            "details": {"gateway": self.gateway_name},
        }

        if status_code == 429:
            return GatewayRateLimitError(f"{self.gateway_name} rate limit exceeded", **kwargs)
        if status_code >= 500:
            return GatewayUnavailableError(f"{self.gateway_name} service error: {message}", **kwargs)
        if status_code in (401, 403):
            return GatewayAuthenticationError(
                f"{self.gateway_name} authentication failed", **kwargs
            )
        if status_code == 402:
            if "insufficient" in message.lower():
                return GatewayInsufficientFundsError(message, **kwargs)
            return GatewayDeclinedError(message, **kwargs)
        return GatewayInvalidRequestError(message, **kwargs)
