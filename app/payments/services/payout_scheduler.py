"""
Payout scheduler: moves escrowed provider balances out to providers.

Two stages, both normally driven by Celery beat:

    schedule_payouts()           one PENDING payout per eligible provider
    process_scheduled_payouts()  disburse every due payout

Processing one payout runs in three phases so the external call never
happens inside a database transaction:

    Phase 1 (atomic):   lock ledger, re-check balance, PROCESSING, debit
    Phase 2 (no txn):   WiPay disbursement
    Phase 3 (atomic):   COMPLETED, or FAILED plus a reversing credit

Each payout is guarded by a Redis lock so concurrent runs (beat, the
management command, an admin batch) cannot process it twice.

Usage:
    from payments.services import PayoutScheduler

    scheduler = PayoutScheduler()
    scheduler.schedule_payouts()
    report = scheduler.process_scheduled_payouts()

    batch_id = scheduler.create_batch([p.id for p in payouts])
    scheduler.process_batch(batch_id)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from core.services import BaseService, ServiceResult

from marketplace.models import PayoutMethod
from payments.adapters import IdempotencyKeyGenerator, WiPayDisbursementAdapter
from payments.config import WEEKDAYS, get_payment_config
from payments.exceptions import LockAcquisitionError
from payments.fees.money import money
from payments.gateways import GatewayResolver
from payments.ledger import LedgerService, ProviderLedger
from payments.locks import payout_lock
from payments.models import ScheduledPayout
from payments.state_machines import (
    GatewayProvider,
    GatewayType,
    PayoutFrequency,
    ScheduledPayoutStatus,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime
    from typing import Any

    from marketplace.models import Provider
    from payments.adapters import DisbursementAdapter
    from payments.config import PaymentConfig


REFERENCE_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


@dataclass
class PayoutRunReport:
    """Counts from one processing run."""

    total: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class PayoutScheduler(BaseService):
    """
    Schedules and processes provider payouts.

    Args:
        adapter: Disbursement adapter (default: WiPayDisbursementAdapter)
        config: Payment configuration (default: get_payment_config())
    """

    def __init__(
        self,
        adapter: DisbursementAdapter | None = None,
        config: PaymentConfig | None = None,
    ) -> None:
        self.adapter = adapter or WiPayDisbursementAdapter()
        self.config = config or get_payment_config()

    @property
    def minimum_amount(self) -> Decimal:
        return self.config.payouts.minimum_amount

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_payouts(self, now: datetime | None = None) -> int:
        """
        Create one PENDING payout for every eligible provider.

        Eligible means escrow-mode, an available balance at or above the
        payout minimum, and no payout already pending or processing.
        Running twice in the same window creates nothing the second time.

        Returns:
            Number of payouts created
        """
        logger = self.get_logger()
        scheduled_for = self.get_next_payout_date(now)
        created = 0

        for provider, available in self.get_eligible_providers():
            payout = ScheduledPayout.objects.create(
                provider=provider,
                amount=available,
                currency=self.config.default_currency,
                scheduled_for=scheduled_for,
                status=ScheduledPayoutStatus.PENDING,
                payout_method=self._payout_method(provider),
            )
            created += 1
            logger.info(
                "Payout scheduled",
                extra={
                    "payout_id": str(payout.id),
                    "provider_id": str(provider.id),
                    "amount": str(available),
                    "scheduled_for": scheduled_for.isoformat(),
                },
            )

        logger.info("Payout scheduling finished", extra={"created_count": created})
        return created

    def get_eligible_providers(self) -> list[tuple[Provider, Decimal]]:
        """
        Providers due a payout, with their available balance.

        The cached ledger balance narrows the candidates; the available
        balance (balance minus holds) decides.
        """
        minimum = self.minimum_amount
        has_open_payout = ScheduledPayout.objects.open().values("provider_id")

        candidates = (
            ProviderLedger.objects.filter(balance__gt=0, balance__gte=minimum)
            .exclude(provider_id__in=has_open_payout)
            .select_related("provider")
            .order_by("provider_id")
        )

        eligible = []
        for ledger_row in candidates:
            provider = ledger_row.provider
            if not provider.is_active:
                continue
            if GatewayResolver.determine_gateway_type(provider) == GatewayType.SPLIT:
                continue
            available = LedgerService.get_available_balance(provider)
            if available > 0 and available >= minimum:
                eligible.append((provider, available))
        return eligible

    def get_next_payout_date(self, now: datetime | None = None) -> datetime:
        """
        Start of the next payout window.

        daily: tomorrow. weekly: the next configured weekday, never today.
        biweekly: one week after that. monthly: the 1st of next month.
        """
        policy = self.config.payouts
        today = timezone.localtime(now or timezone.now()).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        if policy.frequency == PayoutFrequency.DAILY:
            return today + timedelta(days=1)

        if policy.frequency == PayoutFrequency.MONTHLY:
            return (today.replace(day=1) + timedelta(days=32)).replace(day=1)

        target = WEEKDAYS.index(policy.day_of_week)
        next_weekday = today + timedelta(days=(target - today.weekday() - 1) % 7 + 1)
        if policy.frequency == PayoutFrequency.BIWEEKLY:
            return next_weekday + timedelta(weeks=1)
        return next_weekday

    @staticmethod
    def _payout_method(provider: Provider) -> str:
        config = GatewayResolver.get_provider_config(provider)
        if config is not None and config.gateway.slug == GatewayProvider.WIPAY:
            return PayoutMethod.WIPAY_ACCOUNT
        return provider.payout_method

    # =========================================================================
    # Processing
    # =========================================================================

    def process_scheduled_payouts(self, now: datetime | None = None) -> PayoutRunReport:
        """Process every PENDING payout whose scheduled time has passed."""
        payouts = list(ScheduledPayout.objects.due(now).select_related("provider"))
        report = self._process_many(payouts)
        self.get_logger().info("Scheduled payout run finished", extra=report.to_dict())
        return report

    def process_payout(
        self,
        payout: ScheduledPayout,
        processed_by: Any = None,
    ) -> ServiceResult[ScheduledPayout]:
        """
        Process one payout end to end.

        Returns:
            ServiceResult with the payout. Failure error codes:
            PAYOUT_LOCKED (another worker has it, payout untouched),
            PAYOUT_NOT_PENDING, INSUFFICIENT_BALANCE, DISBURSEMENT_FAILED,
            DISBURSEMENT_UNAVAILABLE, DISBURSEMENT_OUTCOME_UNKNOWN.
        """
        try:
            with payout_lock(payout.id):
                return self._process_locked(payout.id, processed_by)
        except LockAcquisitionError:
            self.get_logger().info(
                "Payout locked by another worker",
                extra={"payout_id": str(payout.id)},
            )
            return ServiceResult.failure(
                "Payout is being processed by another worker",
                error_code="PAYOUT_LOCKED",
            )

    def _process_locked(self, payout_id: uuid.UUID, processed_by: Any) -> ServiceResult:
        logger = self.get_logger()
        manual = getattr(settings, "PAYOUT_MANUAL_DISBURSEMENT", False)

        if not manual and not self.adapter.is_available():
            return self._fail_payout(
                payout_id,
                "Disbursement service is not configured",
                error_code="DISBURSEMENT_UNAVAILABLE",
                reverse=False,
            )

        # Phase 1: re-check the balance and debit under the ledger lock
        try:
            with transaction.atomic():
                payout = (
                    ScheduledPayout.objects.select_for_update()
                    .select_related("provider")
                    .get(pk=payout_id)
                )
                if payout.status != ScheduledPayoutStatus.PENDING:
                    return ServiceResult.failure(
                        f"Payout is {payout.status}, not pending",
                        error_code="PAYOUT_NOT_PENDING",
                    )

                payout.start_processing()
                LedgerService.lock_ledger(payout.provider)
                available = LedgerService.get_available_balance(payout.provider)

                if available <= 0 or available < self.minimum_amount:
                    payout.fail(reason="Insufficient balance")
                    payout.save()
                    logger.info(
                        "Payout failed: insufficient balance",
                        extra={"payout_id": str(payout.id), "available": str(available)},
                    )
                    return ServiceResult.failure(
                        "Insufficient balance",
                        error_code="INSUFFICIENT_BALANCE",
                    )

                if available < payout.amount:
                    payout.notes = (
                        f"{payout.notes}\nAmount reduced from {payout.amount} "
                        f"to {available} (available balance)"
                    ).strip()
                    payout.amount = money(available)

                payout.reference_number = self.generate_reference_number()
                payout.save()
                LedgerService.debit_for_payout(payout.provider, payout)
        except Exception as e:
            logger.exception("Payout preparation failed", extra={"payout_id": str(payout_id)})
            return self._fail_payout(payout_id, str(e), error_code="PAYOUT_ERROR", reverse=False)

        # Phase 2: send the money, outside any transaction
        if manual:
            logger.info(
                "Manual disbursement, marking payout completed",
                extra={"payout_id": str(payout.id), "reference": payout.reference_number},
            )
            return self._complete_payout(payout.id, processed_by, disbursement_id="", response={})

        result = self.adapter.disburse(
            payout,
            idempotency_key=IdempotencyKeyGenerator.generate("disburse", payout.id),
        )

        # Phase 3: record the outcome
        if result.success:
            return self._complete_payout(
                payout.id,
                processed_by,
                disbursement_id=result.disbursement_id or "",
                response=result.response,
            )

        if result.outcome_unknown:
            # TODO: reconcile PROCESSING payouts against WiPay's disbursement status endpoint
            with transaction.atomic():
                payout = ScheduledPayout.objects.select_for_update().get(pk=payout.id)
                payout.disbursement_response = result.response
                payout.notes = f"{payout.notes}\nDisbursement timed out: {result.error}".strip()
                payout.save()
            logger.error(
                "Disbursement outcome unknown, payout left processing",
                extra={"payout_id": str(payout.id), "reference": payout.reference_number},
            )
            return ServiceResult.failure(
                result.error or "Disbursement timed out",
                error_code="DISBURSEMENT_OUTCOME_UNKNOWN",
            )

        return self._fail_payout(
            payout.id,
            result.error or "Disbursement failed",
            error_code="DISBURSEMENT_FAILED",
            response=result.response,
        )

    def _complete_payout(
        self,
        payout_id: uuid.UUID,
        processed_by: Any,
        disbursement_id: str,
        response: dict[str, Any],
    ) -> ServiceResult[ScheduledPayout]:
        with transaction.atomic():
            payout = ScheduledPayout.objects.select_for_update().get(pk=payout_id)
            payout.complete(processed_by=processed_by)
            payout.disbursement_id = disbursement_id
            payout.disbursement_response = response
            payout.save()

        self.get_logger().info(
            "Payout completed",
            extra={
                "payout_id": str(payout.id),
                "provider_id": str(payout.provider_id),
                "amount": str(payout.amount),
                "reference": payout.reference_number,
                "disbursement_id": disbursement_id,
            },
        )
        return ServiceResult.success(payout)

    def _fail_payout(
        self,
        payout_id: uuid.UUID,
        reason: str,
        error_code: str,
        response: dict[str, Any] | None = None,
        reverse: bool = True,
    ) -> ServiceResult:
        """
        Mark a payout FAILED, crediting back its debit when reverse is set.

        Re-reads the row, so it is safe to call after a rolled-back phase.
        """
        with transaction.atomic():
            payout = ScheduledPayout.objects.select_for_update().get(pk=payout_id)
            if payout.status in (ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.PROCESSING):
                if reverse:
                    LedgerService.reverse_payout_debit(payout)
                payout.fail(reason=reason)
                if response is not None:
                    payout.disbursement_response = response
                payout.save()

        self.get_logger().warning(
            "Payout failed",
            extra={"payout_id": str(payout_id), "reason": reason, "error_code": error_code},
        )
        return ServiceResult.failure(reason, error_code=error_code)

    def _process_many(self, payouts: Iterable[ScheduledPayout]) -> PayoutRunReport:
        report = PayoutRunReport()
        for payout in payouts:
            report.total += 1
            try:
                result = self.process_payout(payout)
            except Exception as e:
                self.get_logger().exception(
                    "Unexpected payout error",
                    extra={"payout_id": str(payout.id)},
                )
                self._fail_payout(payout.id, str(e), error_code="PAYOUT_ERROR")
                report.failed += 1
                continue

            if result.success:
                report.processed += 1
            elif result.error_code in ("PAYOUT_LOCKED", "PAYOUT_NOT_PENDING"):
                report.skipped += 1
            else:
                report.failed += 1
        return report

    @staticmethod
    def generate_reference_number(now: datetime | None = None) -> str:
        """PAYOUT-YYYYMMDD-XXXXXXXX"""
        day = timezone.localtime(now or timezone.now()).strftime("%Y%m%d")
        return f"PAYOUT-{day}-{get_random_string(8, REFERENCE_CHARS)}"

    # =========================================================================
    # Batches
    # =========================================================================

    def create_batch(self, payout_ids: Iterable[Any]) -> str:
        """
        Tag pending payouts with a new batch id.

        Payouts that are not PENDING are left out of the batch.
        """
        day = timezone.localtime().strftime("%Y%m%d")
        batch_id = f"BATCH-{day}-{get_random_string(6, REFERENCE_CHARS)}"
        tagged = ScheduledPayout.objects.filter(
            id__in=list(payout_ids),
            status=ScheduledPayoutStatus.PENDING,
        ).update(batch_id=batch_id)

        self.get_logger().info("Payout batch created", extra={"batch_id": batch_id, "size": tagged})
        return batch_id

    def process_batch(self, batch_id: str) -> PayoutRunReport:
        """Process every pending payout in a batch, whatever its scheduled time."""
        payouts = list(
            ScheduledPayout.objects.filter(
                batch_id=batch_id,
                status=ScheduledPayoutStatus.PENDING,
            ).order_by("scheduled_for", "id")
        )
        report = self._process_many(payouts)
        self.get_logger().info(
            "Payout batch processed",
            extra={"batch_id": batch_id, **report.to_dict()},
        )
        return report

    # =========================================================================
    # Admin operations
    # =========================================================================

    def cancel_payout(self, payout: ScheduledPayout, reason: str = "") -> ServiceResult[ScheduledPayout]:
        """Cancel a pending or failed payout. Nothing was debited for either."""
        with transaction.atomic():
            payout = ScheduledPayout.objects.select_for_update().get(pk=payout.pk)
            if not payout.can_be_cancelled:
                return ServiceResult.failure(
                    f"Payout is {payout.status} and cannot be cancelled",
                    error_code="PAYOUT_NOT_CANCELLABLE",
                )
            payout.cancel(reason=reason)
            payout.save()

        self.get_logger().info(
            "Payout cancelled",
            extra={"payout_id": str(payout.id), "reason": reason},
        )
        return ServiceResult.success(payout)

    def retry_payout(self, payout: ScheduledPayout) -> ServiceResult[ScheduledPayout]:
        """
        Schedule a new payout in place of a failed one.

        The failed row is kept for audit; the new payout references it via
        retry_of and takes the provider's current available balance.
        """
        if not payout.can_be_retried:
            return ServiceResult.failure(
                f"Payout is {payout.status} or already retried",
                error_code="PAYOUT_NOT_RETRYABLE",
            )

        if ScheduledPayout.objects.open().filter(provider_id=payout.provider_id).exists():
            return ServiceResult.failure(
                "Provider already has an open payout",
                error_code="PAYOUT_ALREADY_OPEN",
            )

        available = LedgerService.get_available_balance(payout.provider_id)
        if available <= 0:
            return ServiceResult.failure(
                "No available balance to pay out",
                error_code="INSUFFICIENT_BALANCE",
            )

        retry = ScheduledPayout.objects.create(
            provider_id=payout.provider_id,
            amount=available,
            currency=payout.currency,
            scheduled_for=self.get_next_payout_date(),
            status=ScheduledPayoutStatus.PENDING,
            payout_method=payout.payout_method,
            retry_of=payout,
            notes=f"Retry of payout {payout.id}",
        )

        self.get_logger().info(
            "Payout retry scheduled",
            extra={"payout_id": str(retry.id), "retry_of": str(payout.id), "amount": str(available)},
        )
        return ServiceResult.success(retry)
