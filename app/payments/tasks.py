"""
Celery tasks for payments and payouts.

Periodic (registered with celery-beat by migration 0002):
- schedule_payouts: Create pending payouts for eligible providers
- process_scheduled_payouts: Disburse payouts whose window has opened
- release_expired_holds: Release ledger holds past the hold period

On demand:
- process_payout_batch: Disburse an admin-created payout batch
- complete_payment_callback: Apply a gateway callback to its payment

Usage:
    from payments.tasks import complete_payment_callback, process_payout_batch

    complete_payment_callback.delay("wipay", payload)
    process_payout_batch.delay(batch_id)
"""

from __future__ import annotations

import logging
from typing import Any

from celery import shared_task

from payments.config import get_payment_config
from payments.exceptions import (
    TRANSIENT_GATEWAY_ERRORS,
    LockAcquisitionError,
    UnknownGatewayError,
)
from payments.ledger import LedgerService
from payments.locks import schedule_lock
from payments.services import PaymentManager, PayoutScheduler

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_CALLBACK_RETRIES = 5


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
)
def schedule_payouts(self) -> dict:
    """
    Create pending payouts for every eligible provider.

    Idempotent: providers with an open payout are skipped.

    Returns:
        Dict with the number of payouts created
    """
    with schedule_lock():
        created = PayoutScheduler().schedule_payouts()

    return {"status": "scheduled", "created": created}


@shared_task(bind=True, acks_late=True)
def process_scheduled_payouts(self) -> dict:
    """
    Process every due payout.

    Individual payout failures are recorded on the payout and counted,
    never raised.

    Returns:
        Dict with total / processed / failed / skipped counts
    """
    report = PayoutScheduler().process_scheduled_payouts()
    return {"status": "processed", **report.to_dict()}


@shared_task(bind=True, acks_late=True)
def process_payout_batch(self, batch_id: str) -> dict:
    """
    Process the pending payouts of one batch.

    Args:
        batch_id: Batch id from PayoutScheduler.create_batch

    Returns:
        Dict with the batch id and counts
    """
    logger.info("Processing payout batch", extra={"batch_id": batch_id})
    report = PayoutScheduler().process_batch(batch_id)
    return {"status": "processed", "batch_id": batch_id, **report.to_dict()}


# =============================================================================
# Ledger Tasks
# =============================================================================


@shared_task
def release_expired_holds() -> dict:
    """
    Release ledger holds older than the configured hold period.

    Does nothing when auto-release is switched off in the payout policy.
    """
    if not get_payment_config().payouts.auto_release_holds:
        logger.info("Hold auto-release disabled, skipping sweep")
        return {"status": "disabled", "released": 0}

    released = LedgerService.release_expired_holds()
    return {"status": "released", "released": released}


# =============================================================================
# Payment Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(*TRANSIENT_GATEWAY_ERRORS, LockAcquisitionError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_CALLBACK_RETRIES},
    acks_late=True,
)
def complete_payment_callback(self, gateway_name: str, payload: dict[str, Any]) -> dict:
    """
    Complete the payment a gateway callback refers to.

    Duplicate deliveries are harmless; the payment status is checked under
    a row lock before anything changes.

    Args:
        gateway_name: Gateway slug from the callback URL
        payload: Callback body as received

    Returns:
        Dict with processing status
    """
    try:
        result = PaymentManager.handle_callback(gateway_name, payload)
    except UnknownGatewayError as e:
        logger.error(
            "Callback for unknown gateway",
            extra={"gateway": gateway_name, "error": e.message},
        )
        return {"status": "unknown_gateway", "gateway": gateway_name}

    if not result.success:
        logger.warning(
            "Payment callback not applied",
            extra={
                "gateway": gateway_name,
                "error": result.error,
                "error_code": result.error_code,
                "retry_count": self.request.retries,
            },
        )
        return {"status": "failed", "error": result.error, "error_code": result.error_code}

    payment = result.data
    return {
        "status": "processed",
        "payment_id": str(payment.id),
        "payment_status": str(payment.status),
    }
