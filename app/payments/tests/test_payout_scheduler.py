"""
Tests for PayoutScheduler.

Covers eligibility and scheduling, the three-phase processing run with
its balance re-check, reversal on disbursement failure, the timeout case
that leaves a payout processing, batches and the admin operations.
"""

import logging
import re
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from marketplace.models import PayoutMethod
from marketplace.tests.factories import ProviderFactory, UserFactory
from payments.adapters import DisbursementResult
from payments.ledger import LedgerEntry, LedgerEntryType, LedgerService
from payments.models import ScheduledPayout
from payments.services import PayoutScheduler
from payments.state_machines import PayoutFrequency, ScheduledPayoutStatus
from payments.tests.factories import (
    ProviderGatewayConfigFactory,
    ScheduledPayoutFactory,
    fund_provider,
)


def reload(payout):
    return ScheduledPayout.objects.get(pk=payout.pk)


@pytest.fixture
def scheduler(disbursement_adapter, payment_config):
    return PayoutScheduler(adapter=disbursement_adapter, config=payment_config)


# =============================================================================
# Scheduling
# =============================================================================


class TestSchedulePayouts:
    """One pending payout per eligible escrow provider."""

    def test_schedules_available_balance(self, scheduler, funded_provider):
        created = scheduler.schedule_payouts()

        assert created == 1
        payout = ScheduledPayout.objects.get(provider=funded_provider)
        assert payout.status == ScheduledPayoutStatus.PENDING
        assert payout.amount == Decimal("1500.00")
        assert payout.currency == "JMD"
        assert payout.payout_method == PayoutMethod.BANK_TRANSFER
        assert payout.scheduled_for == scheduler.get_next_payout_date()

    def test_second_run_creates_nothing(self, scheduler, funded_provider):
        scheduler.schedule_payouts()

        assert scheduler.schedule_payouts() == 0
        assert ScheduledPayout.objects.filter(provider=funded_provider).count() == 1

    def test_logs_created_count(self, scheduler, funded_provider, caplog):
        # The payments logger does not propagate to the root handler
        payments_logger = logging.getLogger("payments")
        payments_logger.addHandler(caplog.handler)
        try:
            with caplog.at_level(logging.INFO, logger="payments"):
                scheduler.schedule_payouts()
        finally:
            payments_logger.removeHandler(caplog.handler)

        record = next(r for r in caplog.records if r.getMessage() == "Payout scheduling finished")
        assert record.created_count == 1

    def test_below_minimum_not_scheduled(self, scheduler, provider):
        fund_provider(provider, "999.99")

        assert scheduler.schedule_payouts() == 0

    def test_holds_reduce_scheduled_amount(self, scheduler, funded_provider):
        LedgerService.hold_funds(funded_provider, Decimal("400.00"), reason="Dispute")

        scheduler.schedule_payouts()

        assert ScheduledPayout.objects.get(provider=funded_provider).amount == Decimal("1100.00")

    def test_holds_can_drop_provider_below_minimum(self, scheduler, funded_provider):
        LedgerService.hold_funds(funded_provider, Decimal("600.00"), reason="Dispute")

        assert scheduler.schedule_payouts() == 0

    def test_split_provider_excluded(self, scheduler, split_provider):
        fund_provider(split_provider, "1500.00")

        assert scheduler.schedule_payouts() == 0

    def test_inactive_provider_excluded(self, scheduler, db):
        provider = ProviderFactory(is_active=False)
        fund_provider(provider, "1500.00")

        assert scheduler.schedule_payouts() == 0

    def test_failed_payout_does_not_block(self, scheduler, funded_provider):
        ScheduledPayoutFactory(provider=funded_provider, status=ScheduledPayoutStatus.FAILED)

        assert scheduler.schedule_payouts() == 1

    def test_eligible_providers(self, scheduler, funded_provider):
        other = ProviderFactory()
        fund_provider(other, "2000.00")

        eligible = dict(scheduler.get_eligible_providers())

        assert eligible == {funded_provider: Decimal("1500.00"), other: Decimal("2000.00")}


class TestNextPayoutDate:
    """Start of the next payout window."""

    # Wednesday afternoon
    NOW = datetime(2026, 10, 14, 15, 30)

    @pytest.mark.parametrize(
        "frequency,day_of_week,expected",
        [
            (PayoutFrequency.DAILY, "friday", date(2026, 10, 15)),
            (PayoutFrequency.WEEKLY, "friday", date(2026, 10, 16)),
            (PayoutFrequency.WEEKLY, "wednesday", date(2026, 10, 21)),
            (PayoutFrequency.WEEKLY, "monday", date(2026, 10, 19)),
            (PayoutFrequency.BIWEEKLY, "friday", date(2026, 10, 23)),
            (PayoutFrequency.MONTHLY, "friday", date(2026, 11, 1)),
        ],
    )
    def test_next_window(self, payment_config, frequency, day_of_week, expected):
        config = replace(
            payment_config,
            payouts=replace(payment_config.payouts, frequency=frequency, day_of_week=day_of_week),
        )
        scheduler = PayoutScheduler(adapter=object(), config=config)

        result = timezone.localtime(scheduler.get_next_payout_date(timezone.make_aware(self.NOW)))

        assert result.date() == expected
        assert (result.hour, result.minute) == (0, 0)

    def test_monthly_at_month_end(self, payment_config):
        config = replace(
            payment_config,
            payouts=replace(payment_config.payouts, frequency=PayoutFrequency.MONTHLY),
        )
        scheduler = PayoutScheduler(adapter=object(), config=config)

        result = scheduler.get_next_payout_date(timezone.make_aware(datetime(2027, 1, 31, 23, 0)))

        assert timezone.localtime(result).date() == date(2027, 2, 1)


# =============================================================================
# Processing
# =============================================================================


class TestProcessPayout:
    """Three-phase processing of one payout."""

    def test_success(self, scheduler, funded_provider, disbursement_adapter):
        payout = ScheduledPayoutFactory(provider=funded_provider)
        user = UserFactory()

        result = scheduler.process_payout(payout, processed_by=user)

        assert result.success
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.COMPLETED
        assert payout.disbursement_id == "DSB-0001"
        assert payout.processed_by == user
        assert payout.processed_at is not None
        assert re.fullmatch(r"PAYOUT-\d{8}-[A-Z0-9]{8}", payout.reference_number)
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("0.00")

        key = disbursement_adapter.disburse.call_args.kwargs["idempotency_key"]
        assert key.startswith(f"disburse:{payout.id}:1:")

    def test_amount_shrinks_to_available(self, disbursement_adapter, low_minimum_config, provider):
        fund_provider(provider, "300.00")
        payout = ScheduledPayoutFactory(provider=provider, amount=Decimal("500.00"))
        scheduler = PayoutScheduler(adapter=disbursement_adapter, config=low_minimum_config)

        result = scheduler.process_payout(payout)

        assert result.success
        payout = reload(payout)
        assert payout.amount == Decimal("300.00")
        assert "Amount reduced from 500.00 to 300.00" in payout.notes
        assert LedgerService.get_provider_balance(provider) == Decimal("0.00")

    def test_insufficient_balance(self, scheduler, provider, disbursement_adapter):
        fund_provider(provider, "500.00")
        payout = ScheduledPayoutFactory(provider=provider)

        result = scheduler.process_payout(payout)

        assert result.error_code == "INSUFFICIENT_BALANCE"
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.FAILED
        assert payout.failure_reason == "Insufficient balance"
        assert not LedgerEntry.objects.filter(payout_id=payout.id).exists()
        disbursement_adapter.disburse.assert_not_called()

    def test_disbursement_failure_reverses_debit(
        self, scheduler, funded_provider, disbursement_adapter
    ):
        disbursement_adapter.disburse.return_value = DisbursementResult(
            success=False,
            error="Account closed",
            response={"status": "failed"},
        )
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = scheduler.process_payout(payout)

        assert result.error_code == "DISBURSEMENT_FAILED"
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.FAILED
        assert payout.failure_reason == "Account closed"
        assert payout.disbursement_response == {"status": "failed"}
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("1500.00")

        entry_types = list(
            LedgerEntry.objects.filter(payout_id=payout.id)
            .order_by("sequence")
            .values_list("entry_type", flat=True)
        )
        assert entry_types == [LedgerEntryType.DEBIT, LedgerEntryType.CREDIT]

    def test_timeout_leaves_payout_processing(
        self, scheduler, funded_provider, disbursement_adapter
    ):
        disbursement_adapter.disburse.return_value = DisbursementResult(
            success=False,
            error="WiPay request timed out",
            retryable=True,
            outcome_unknown=True,
        )
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = scheduler.process_payout(payout)

        assert result.error_code == "DISBURSEMENT_OUTCOME_UNKNOWN"
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.PROCESSING
        assert "timed out" in payout.notes
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("0.00")

    def test_adapter_unavailable(self, scheduler, funded_provider, disbursement_adapter):
        disbursement_adapter.is_available.return_value = False
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = scheduler.process_payout(payout)

        assert result.error_code == "DISBURSEMENT_UNAVAILABLE"
        assert reload(payout).status == ScheduledPayoutStatus.FAILED
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("1500.00")
        disbursement_adapter.disburse.assert_not_called()

    def test_manual_disbursement(self, scheduler, funded_provider, disbursement_adapter, settings):
        settings.PAYOUT_MANUAL_DISBURSEMENT = True
        disbursement_adapter.is_available.return_value = False
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = scheduler.process_payout(payout)

        assert result.success
        assert reload(payout).status == ScheduledPayoutStatus.COMPLETED
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("0.00")
        disbursement_adapter.disburse.assert_not_called()

    def test_not_pending(self, scheduler, funded_provider):
        payout = ScheduledPayoutFactory(
            provider=funded_provider,
            status=ScheduledPayoutStatus.CANCELLED,
        )

        result = scheduler.process_payout(payout)

        assert result.error_code == "PAYOUT_NOT_PENDING"
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("1500.00")

    def test_locked_by_another_worker(
        self, scheduler, funded_provider, disbursement_adapter, fake_redis, mocker
    ):
        mocker.patch("payments.locks.PAYOUT_LOCK_TIMEOUT", 0)
        payout = ScheduledPayoutFactory(provider=funded_provider)
        fake_redis.store[f"lock:payout:process:{payout.id}"] = "other-worker"

        result = scheduler.process_payout(payout)

        assert result.error_code == "PAYOUT_LOCKED"
        assert reload(payout).status == ScheduledPayoutStatus.PENDING
        disbursement_adapter.disburse.assert_not_called()

    def test_releases_lock(self, scheduler, funded_provider, fake_redis):
        payout = ScheduledPayoutFactory(provider=funded_provider)

        scheduler.process_payout(payout)

        assert fake_redis.store == {}


class TestProcessScheduledPayouts:
    """Runs over every due payout."""

    def test_only_due_payouts(self, scheduler, funded_provider):
        other = ProviderFactory()
        fund_provider(other, "1500.00")
        due = ScheduledPayoutFactory(provider=funded_provider)
        future = ScheduledPayoutFactory(
            provider=other,
            scheduled_for=timezone.now() + timedelta(days=2),
        )

        report = scheduler.process_scheduled_payouts()

        assert report.to_dict() == {"total": 1, "processed": 1, "failed": 0, "skipped": 0}
        assert reload(due).status == ScheduledPayoutStatus.COMPLETED
        assert reload(future).status == ScheduledPayoutStatus.PENDING

    def test_one_failure_does_not_stop_the_run(
        self, scheduler, funded_provider, disbursement_adapter
    ):
        other = ProviderFactory()
        fund_provider(other, "1500.00")
        ScheduledPayoutFactory(provider=funded_provider)
        ScheduledPayoutFactory(provider=other)
        disbursement_adapter.disburse.side_effect = [
            DisbursementResult(success=False, error="Account closed"),
            DisbursementResult(success=True, disbursement_id="DSB-0002"),
        ]

        report = scheduler.process_scheduled_payouts()

        assert report.total == 2
        assert report.processed == 1
        assert report.failed == 1

    def test_unexpected_error_fails_and_reverses(
        self, scheduler, funded_provider, disbursement_adapter
    ):
        disbursement_adapter.disburse.side_effect = RuntimeError("adapter bug")
        payout = ScheduledPayoutFactory(provider=funded_provider)

        report = scheduler.process_scheduled_payouts()

        assert report.failed == 1
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.FAILED
        assert payout.failure_reason == "adapter bug"
        assert LedgerService.get_provider_balance(funded_provider) == Decimal("1500.00")


class TestBatches:
    def test_create_and_process_batch(self, scheduler, funded_provider):
        other = ProviderFactory()
        fund_provider(other, "1500.00")
        first = ScheduledPayoutFactory(
            provider=funded_provider,
            scheduled_for=timezone.now() + timedelta(days=3),
        )
        second = ScheduledPayoutFactory(provider=other)
        cancelled = ScheduledPayoutFactory(
            provider=other,
            status=ScheduledPayoutStatus.CANCELLED,
        )

        batch_id = scheduler.create_batch([first.id, second.id, cancelled.id])

        assert re.fullmatch(r"BATCH-\d{8}-[A-Z0-9]{6}", batch_id)
        assert set(ScheduledPayout.objects.filter(batch_id=batch_id)) == {first, second}

        report = scheduler.process_batch(batch_id)

        assert report.processed == 2
        assert reload(first).status == ScheduledPayoutStatus.COMPLETED


# =============================================================================
# Admin operations
# =============================================================================


class TestCancelAndRetry:
    def test_cancel_pending(self, scheduler, funded_provider):
        payout = ScheduledPayoutFactory(provider=funded_provider)

        result = scheduler.cancel_payout(payout, reason="Provider on hold")

        assert result.success
        payout = reload(payout)
        assert payout.status == ScheduledPayoutStatus.CANCELLED
        assert payout.cancelled_at is not None
        assert "Cancelled: Provider on hold" in payout.notes

    def test_cannot_cancel_processing(self, scheduler, funded_provider):
        payout = ScheduledPayoutFactory(
            provider=funded_provider,
            status=ScheduledPayoutStatus.PROCESSING,
        )

        result = scheduler.cancel_payout(payout)

        assert result.error_code == "PAYOUT_NOT_CANCELLABLE"

    def test_retry_failed_payout(self, scheduler, funded_provider):
        failed = ScheduledPayoutFactory(
            provider=funded_provider,
            status=ScheduledPayoutStatus.FAILED,
            amount=Decimal("1200.00"),
        )

        result = scheduler.retry_payout(failed)

        assert result.success
        retry = result.data
        assert retry.retry_of == failed
        assert retry.amount == Decimal("1500.00")
        assert retry.status == ScheduledPayoutStatus.PENDING
        assert str(failed.id) in retry.notes

    def test_retry_only_once(self, scheduler, funded_provider):
        failed = ScheduledPayoutFactory(provider=funded_provider, status=ScheduledPayoutStatus.FAILED)
        retry = scheduler.retry_payout(failed).data
        scheduler.cancel_payout(retry)

        result = scheduler.retry_payout(failed)

        assert result.error_code == "PAYOUT_NOT_RETRYABLE"

    def test_retry_requires_failed_status(self, scheduler, funded_provider):
        payout = ScheduledPayoutFactory(provider=funded_provider)

        assert scheduler.retry_payout(payout).error_code == "PAYOUT_NOT_RETRYABLE"

    def test_retry_blocked_by_open_payout(self, scheduler, funded_provider):
        failed = ScheduledPayoutFactory(provider=funded_provider, status=ScheduledPayoutStatus.FAILED)
        ScheduledPayoutFactory(provider=funded_provider)

        assert scheduler.retry_payout(failed).error_code == "PAYOUT_ALREADY_OPEN"

    def test_retry_without_balance(self, scheduler, provider):
        failed = ScheduledPayoutFactory(provider=provider, status=ScheduledPayoutStatus.FAILED)

        assert scheduler.retry_payout(failed).error_code == "INSUFFICIENT_BALANCE"


class TestPayoutMethod:
    def test_wipay_account_when_linked(self, scheduler, provider):
        ProviderGatewayConfigFactory(provider=provider)

        assert scheduler._payout_method(provider) == PayoutMethod.WIPAY_ACCOUNT

    def test_provider_default(self, scheduler, provider):
        assert scheduler._payout_method(provider) == PayoutMethod.BANK_TRANSFER
