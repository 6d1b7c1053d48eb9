"""
Payment adapters for external services.

All outbound calls to WiPay go through GatewayHttpClient so they get the
same timeouts, retries, redacted logging and error translation. The
disbursement adapter is what PayoutScheduler uses to pay providers out.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, WiPayDisbursementAdapter

    result = WiPayDisbursementAdapter().disburse(
        payout,
        idempotency_key=IdempotencyKeyGenerator.generate("disburse", payout.id),
    )
"""

from payments.adapters.http_client import (
    GatewayHttpClient,
    GatewayResponse,
    IdempotencyKeyGenerator,
    backoff_delay,
    generate_correlation_id,
    is_retryable_gateway_error,
    redact,
)
from payments.adapters.wipay_disbursement import (
    DisbursementAdapter,
    DisbursementResult,
    WiPayDisbursementAdapter,
)

__all__ = [
    "DisbursementAdapter",
    "DisbursementResult",
    "GatewayHttpClient",
    "GatewayResponse",
    "IdempotencyKeyGenerator",
    "WiPayDisbursementAdapter",
    "backoff_delay",
    "generate_correlation_id",
    "is_retryable_gateway_error",
    "redact",
]
