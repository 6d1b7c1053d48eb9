"""
Tests for payment Celery tasks.

Tasks are called directly (synchronously); the WiPay disbursement adapter
and HTTP client are replaced by the fakes from conftest.py.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from payments.exceptions import LockAcquisitionError
from payments.ledger import LedgerEntry, LedgerService
from payments.locks import DistributedLock
from payments.models import PaymentSettings, ScheduledPayout
from payments.services import PayoutScheduler
from payments.state_machines import PaymentStatus, ScheduledPayoutStatus
from payments.tasks import (
    complete_payment_callback,
    process_payout_batch,
    process_scheduled_payouts,
    release_expired_holds,
    schedule_payouts,
)
from payments.tests.factories import ScheduledPayoutFactory


@pytest.fixture
def wipay_disbursements(mocker, disbursement_adapter):
    """Every PayoutScheduler built by a task gets the fake adapter."""
    mocker.patch(
        "payments.services.payout_scheduler.WiPayDisbursementAdapter",
        return_value=disbursement_adapter,
    )
    return disbursement_adapter


class TestTaskRegistration:
    @pytest.mark.parametrize(
        "task",
        [
            schedule_payouts,
            process_scheduled_payouts,
            process_payout_batch,
            release_expired_holds,
            complete_payment_callback,
        ],
    )
    def test_is_celery_task(self, task):
        assert hasattr(task, "delay")
        assert task.name.startswith("payments.tasks.")


# =============================================================================
# Payout Tasks
# =============================================================================


class TestSchedulePayoutsTask:
    def test_schedules(self, funded_provider, wipay_disbursements):
        result = schedule_payouts()

        assert result == {"status": "scheduled", "created": 1}
        assert ScheduledPayout.objects.filter(provider=funded_provider).exists()

    def test_concurrent_run_is_rejected(self, funded_provider, wipay_disbursements):
        with DistributedLock("payout:schedule", blocking=False):
            with pytest.raises(LockAcquisitionError):
                schedule_payouts()

        assert not ScheduledPayout.objects.exists()


class TestProcessPayoutsTasks:
    def test_process_scheduled_payouts(self, funded_provider, wipay_disbursements):
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = process_scheduled_payouts()

        assert result == {"status": "processed", "total": 1, "processed": 1, "failed": 0, "skipped": 0}
        assert ScheduledPayout.objects.get(pk=payout.pk).status == ScheduledPayoutStatus.COMPLETED

    def test_process_payout_batch(self, funded_provider, wipay_disbursements):
        payout = ScheduledPayoutFactory(
            provider=funded_provider,
            scheduled_for=timezone.now() + timedelta(days=5),
        )
        batch_id = PayoutScheduler(adapter=wipay_disbursements).create_batch([payout.id])

        result = process_payout_batch(batch_id)

        assert result["batch_id"] == batch_id
        assert result["processed"] == 1
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("0.00")


# =============================================================================
# Ledger Tasks
# =============================================================================


class TestReleaseExpiredHolds:
    def test_releases_old_holds(self, funded_provider):
        hold = LedgerService.hold_funds(funded_provider, Decimal("100.00"), reason="Dispute")
        LedgerEntry.objects.filter(pk=hold.pk).update(
            created_at=timezone.now() - timedelta(days=30)
        )

        result = release_expired_holds()

        assert result == {"status": "released", "released": 1}
        assert LedgerService.get_held_amount(funded_provider) == Decimal("0.00")

    def test_disabled_by_config(self, funded_provider):
        row = PaymentSettings.load()
        row.overrides = {"payouts": {"auto_release_holds": False}}
        row.save()
        LedgerService.hold_funds(funded_provider, Decimal("100.00"), reason="Dispute")

        result = release_expired_holds()

        assert result == {"status": "disabled", "released": 0}


# =============================================================================
# Payment Tasks
# =============================================================================


class TestCompletePaymentCallback:
    def test_completes_payment(self, processing_payment, wipay_http):
        result = complete_payment_callback(
            "wipay",
            {
                "order_id": processing_payment.gateway_order_id,
                "status": "success",
                "transaction_id": "TXN-TASK-1",
            },
        )

        assert result["status"] == "processed"
        assert result["payment_id"] == str(processing_payment.id)
        assert result["payment_status"] == PaymentStatus.COMPLETED

    def test_unknown_gateway(self, db):
        result = complete_payment_callback("paypal", {"order_id": "WP-1"})

        assert result == {"status": "unknown_gateway", "gateway": "paypal"}

    def test_unknown_order(self, db, wipay_http):
        result = complete_payment_callback(
            "wipay",
            {"order_id": "WP-NOSUCHORDER0", "status": "success", "transaction_id": "T"},
        )

        assert result["status"] == "failed"
        assert result["error_code"] == "PAYMENT_NOT_FOUND"
