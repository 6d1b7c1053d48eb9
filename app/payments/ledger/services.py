"""
Ledger service layer for provider balances.

All ledger writes go through LedgerService. Each write runs in one
transaction that:
    1. Locks the provider's ProviderLedger row (select_for_update)
    2. Returns the existing entry if the idempotency key was already used
    3. Reads the latest entry's balance_after
    4. Inserts exactly one new entry with the next sequence number

Step 1 is the per-provider serialization point. Two concurrent credits for
the same provider queue behind the row lock instead of both reading the
same "latest" balance.

Usage:
    from payments.ledger import ledger

    entry = ledger.credit_provider(payment)
    hold = ledger.hold_funds(provider, Decimal("50.00"), reason="Dispute opened")
    ledger.release_funds(hold)

    summary = ledger.get_balance_summary(provider)
    summary.available
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from payments.fees.money import money

from .exceptions import LedgerIntegrityError, ProviderNotFound
from .models import LedgerEntry, LedgerEntryType, ProviderLedger
from .types import BalanceSummary, RecordEntryParams

if TYPE_CHECKING:
    from datetime import datetime

    from marketplace.models import Provider
    from payments.models import Payment, ScheduledPayout

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _provider_id(provider: Provider | uuid.UUID) -> uuid.UUID:
    return getattr(provider, "pk", provider)


class LedgerService:
    """
    Service class for provider ledger operations.

    Key features:
    - Append-only entries; balance is the latest entry's balance_after
    - Per-provider row lock around every write
    - Idempotency via unique keys (safe to retry)
    - Release entries reference exactly one prior hold

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def get_or_create_ledger(
        provider: Provider | uuid.UUID,
        currency: str | None = None,
    ) -> ProviderLedger:
        """
        Get the provider's ledger head, creating it on first use.

        Raises:
            ProviderNotFound: If the provider does not exist
        """
        from marketplace.models import Provider

        provider_id = _provider_id(provider)
        if not Provider.objects.filter(pk=provider_id).exists():
            raise ProviderNotFound(
                f"Provider {provider_id} not found",
                details={"provider_id": str(provider_id)},
            )

        defaults = {"currency": currency} if currency else {}
        ledger_head, _ = ProviderLedger.objects.get_or_create(
            provider_id=provider_id,
            defaults=defaults,
        )
        return ledger_head

    @staticmethod
    def lock_ledger(provider: Provider | uuid.UUID) -> ProviderLedger:
        """
        Lock the provider's ledger for the rest of the caller's transaction.

        Used when a balance read and the write that depends on it must not
        interleave with other writers (payout processing). Must be called
        inside transaction.atomic().
        """
        LedgerService.get_or_create_ledger(provider)
        return ProviderLedger.objects.select_for_update().get(provider_id=_provider_id(provider))

    @staticmethod
    def record_entry(params: RecordEntryParams) -> LedgerEntry:
        """
        Record a single ledger entry.

        Idempotent - calling again with the same idempotency_key returns
        the entry created the first time without moving the balance.
        Releases are the exception: a hold that already has a release is
        rejected whatever the key.

        Args:
            params: Entry parameters

        Returns:
            The created or existing LedgerEntry

        Raises:
            ProviderNotFound: If the provider doesn't exist
            LedgerIntegrityError: On an invalid release
        """
        LedgerService.get_or_create_ledger(params.provider_id, params.currency)

        with transaction.atomic():
            # Serialization point for this provider
            ledger_head = ProviderLedger.objects.select_for_update().get(
                provider_id=params.provider_id
            )

            # Releases are validated before the key lookup: a hold is
            # released at most once, even under a repeated key.
            entry_type = LedgerEntryType(params.entry_type)
            if entry_type == LedgerEntryType.RELEASE:
                LedgerService._validate_release(params)
            elif params.hold_entry_id is not None:
                raise LedgerIntegrityError(
                    "Only release entries may reference a hold",
                    details={"entry_type": entry_type.value},
                )

            existing = LedgerEntry.objects.filter(
                idempotency_key=params.idempotency_key
            ).first()
            if existing is not None:
                logger.debug(
                    "Ledger entry already recorded",
                    extra={
                        "idempotency_key": params.idempotency_key,
                        "entry_id": str(existing.id),
                    },
                )
                return existing

            previous = (
                LedgerEntry.objects.filter(provider_id=params.provider_id)
                .order_by("-sequence")
                .only("sequence", "balance_after")
                .first()
            )
            previous_balance = previous.balance_after if previous else ZERO
            sequence = previous.sequence + 1 if previous else 1
            amount = money(params.amount)
            balance_after = money(previous_balance + amount * entry_type.sign)

            try:
                with transaction.atomic():
                    entry = LedgerEntry.objects.create(
                        provider_id=params.provider_id,
                        sequence=sequence,
                        entry_type=entry_type,
                        amount=amount,
                        balance_after=balance_after,
                        currency=params.currency or ledger_head.currency,
                        booking_id=params.booking_id,
                        payment_id=params.payment_id,
                        payout_id=params.payout_id,
                        hold_entry_id=params.hold_entry_id,
                        description=params.description,
                        metadata=params.metadata,
                        idempotency_key=params.idempotency_key,
                    )
            except IntegrityError as e:
                raced = LedgerEntry.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if raced is None:
                    raise LedgerIntegrityError(
                        f"Could not record ledger entry: {e}",
                        details={"idempotency_key": params.idempotency_key},
                    ) from e
                return raced

            ledger_head.balance = balance_after
            ledger_head.last_sequence = sequence
            ledger_head.save(update_fields=["balance", "last_sequence", "updated_at"])

        logger.info(
            f"Recorded ledger {entry_type.value}",
            extra={
                "provider_id": str(params.provider_id),
                "entry_id": str(entry.id),
                "entry_type": entry_type.value,
                "amount": str(amount),
                "balance_after": str(balance_after),
                "sequence": sequence,
            },
        )
        return entry

    @staticmethod
    def _validate_release(params: RecordEntryParams) -> None:
        """Check that a release references an unreleased hold of the same provider."""
        if params.hold_entry_id is None:
            raise LedgerIntegrityError("Release entries must reference a hold entry")

        hold = LedgerEntry.objects.filter(pk=params.hold_entry_id).first()
        if hold is None or hold.entry_type != LedgerEntryType.HOLD:
            raise LedgerIntegrityError(
                "Only hold entries can be released",
                details={"entry_id": str(params.hold_entry_id)},
            )
        if hold.provider_id != params.provider_id:
            raise LedgerIntegrityError(
                "Hold belongs to a different provider",
                details={"entry_id": str(hold.id)},
            )
        if LedgerEntry.objects.filter(hold_entry_id=hold.id).exists():
            raise LedgerIntegrityError(
                "Hold has already been released",
                details={"entry_id": str(hold.id)},
            )
        if money(params.amount) != hold.amount:
            raise LedgerIntegrityError(
                "Release amount must equal the hold amount",
                details={"hold_amount": str(hold.amount), "amount": str(params.amount)},
            )

    @staticmethod
    def credit_provider(payment: Payment) -> LedgerEntry:
        """
        Credit the provider's share of a completed escrow payment.

        Links the entry back onto the payment. A payment already linked to
        an entry returns that entry unchanged.

        Args:
            payment: Completed escrow Payment

        Returns:
            The credit LedgerEntry
        """
        from payments.models import Payment

        with transaction.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            if locked.ledger_entry_id is not None:
                logger.info(
                    "Payment already credited",
                    extra={
                        "payment_id": str(payment.id),
                        "entry_id": str(locked.ledger_entry_id),
                    },
                )
                payment.ledger_entry_id = locked.ledger_entry_id
                return locked.ledger_entry

            entry = LedgerService.record_entry(
                RecordEntryParams(
                    provider_id=locked.provider_id,
                    entry_type=LedgerEntryType.CREDIT,
                    amount=locked.provider_amount,
                    idempotency_key=f"credit:payment:{locked.id}",
                    currency=locked.currency,
                    booking_id=locked.booking_id,
                    payment_id=locked.id,
                    description=f"{locked.get_payment_type_display()} payment received",
                    metadata={
                        "gateway": locked.gateway,
                        "gateway_transaction_id": locked.gateway_transaction_id,
                    },
                )
            )

            # Queryset update: the status field is FSM-protected
            Payment.objects.filter(pk=locked.pk, ledger_entry__isnull=True).update(
                ledger_entry=entry
            )
            payment.ledger_entry = entry

        return entry

    @staticmethod
    def debit_for_payout(
        provider: Provider | uuid.UUID,
        payout: ScheduledPayout,
    ) -> LedgerEntry:
        """Debit the payout amount from the provider's balance."""
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=_provider_id(provider),
                entry_type=LedgerEntryType.DEBIT,
                amount=payout.amount,
                idempotency_key=f"payout:{payout.id}",
                currency=payout.currency,
                payout_id=payout.id,
                description=f"Payout {payout.reference_number or payout.id}",
            )
        )

    @staticmethod
    def reverse_payout_debit(payout: ScheduledPayout) -> LedgerEntry | None:
        """
        Credit back a payout debit after the disbursement failed.

        Returns:
            The reversal entry, or None if the payout was never debited
        """
        debit = LedgerEntry.objects.filter(
            payout_id=payout.id,
            entry_type=LedgerEntryType.DEBIT,
        ).first()
        if debit is None:
            return None

        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=debit.provider_id,
                entry_type=LedgerEntryType.CREDIT,
                amount=debit.amount,
                idempotency_key=f"payout_reversal:{payout.id}",
                currency=debit.currency,
                payout_id=payout.id,
                description=f"Reversal of payout {payout.reference_number or payout.id}",
                metadata={"reversed_entry_id": str(debit.id)},
            )
        )

    @staticmethod
    def debit_for_refund(
        payment: Payment,
        amount: Decimal,
        reference: str,
    ) -> LedgerEntry:
        """
        Debit the provider's share of a confirmed refund.

        Args:
            payment: The refunded escrow payment
            amount: Provider share of the refund
            reference: Gateway refund id, makes the debit idempotent
        """
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=payment.provider_id,
                entry_type=LedgerEntryType.DEBIT,
                amount=amount,
                idempotency_key=f"refund:{payment.id}:{reference}",
                currency=payment.currency,
                booking_id=payment.booking_id,
                payment_id=payment.id,
                description="Refund issued to client",
                metadata={"refund_reference": reference},
            )
        )

    @staticmethod
    def hold_funds(
        provider: Provider | uuid.UUID,
        amount: Decimal,
        reason: str,
        booking_id: uuid.UUID | None = None,
        payment_id: uuid.UUID | None = None,
        metadata: dict | None = None,
        idempotency_key: str | None = None,
    ) -> LedgerEntry:
        """
        Reserve funds on the provider's balance.

        A hold lowers the balance like a debit and is counted as held until
        a release referencing it is recorded.
        """
        provider_id = _provider_id(provider)
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=provider_id,
                entry_type=LedgerEntryType.HOLD,
                amount=amount,
                idempotency_key=idempotency_key or f"hold:{provider_id}:{uuid.uuid4()}",
                booking_id=booking_id,
                payment_id=payment_id,
                description=reason,
                metadata=metadata or {},
            )
        )

    @staticmethod
    def release_funds(hold_entry: LedgerEntry, reason: str = "") -> LedgerEntry:
        """
        Release a hold, restoring its amount to the balance.

        Raises:
            LedgerIntegrityError: If the entry is not a hold or was already released
        """
        if hold_entry.entry_type != LedgerEntryType.HOLD:
            raise LedgerIntegrityError(
                "Only hold entries can be released",
                details={"entry_id": str(hold_entry.id), "entry_type": hold_entry.entry_type},
            )

        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=hold_entry.provider_id,
                entry_type=LedgerEntryType.RELEASE,
                amount=hold_entry.amount,
                idempotency_key=f"release:{hold_entry.id}",
                currency=hold_entry.currency,
                booking_id=hold_entry.booking_id,
                payment_id=hold_entry.payment_id,
                hold_entry_id=hold_entry.id,
                description=reason or f"Release of hold: {hold_entry.description}",
                metadata={"hold_entry_id": str(hold_entry.id)},
            )
        )

    @staticmethod
    def release_expired_holds(older_than: datetime | None = None) -> int:
        """
        Release outstanding holds created before a cutoff.

        Args:
            older_than: Cutoff; defaults to now minus the configured hold period

        Returns:
            Number of holds released
        """
        from payments.config import get_payment_config

        if older_than is None:
            days = get_payment_config().payouts.hold_period_days
            older_than = timezone.now() - timedelta(days=days)

        expired = LedgerEntry.objects.filter(
            entry_type=LedgerEntryType.HOLD,
            release_entry__isnull=True,
            created_at__lt=older_than,
        ).order_by("created_at")

        released = 0
        for hold in expired:
            try:
                LedgerService.release_funds(hold, reason="Hold period expired")
                released += 1
            except LedgerIntegrityError as e:
                # Released concurrently since the query ran
                logger.warning(
                    f"Skipped expired hold: {e.message}",
                    extra={"entry_id": str(hold.id), "provider_id": str(hold.provider_id)},
                )

        logger.info(
            f"Released {released} expired holds",
            extra={"released_count": released, "cutoff": older_than.isoformat()},
        )
        return released

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    def get_provider_balance(provider: Provider | uuid.UUID) -> Decimal:
        """balance_after of the provider's latest entry, or 0.00."""
        latest = (
            LedgerEntry.objects.filter(provider_id=_provider_id(provider))
            .order_by("-sequence")
            .values_list("balance_after", flat=True)
            .first()
        )
        return latest if latest is not None else ZERO

    @staticmethod
    def get_held_amount(provider: Provider | uuid.UUID) -> Decimal:
        """Outstanding holds: max(0, sum(holds) - sum(releases))."""
        entries = LedgerEntry.objects.filter(provider_id=_provider_id(provider))
        holds = entries.filter(entry_type=LedgerEntryType.HOLD).aggregate(
            total=Sum("amount")
        )["total"] or ZERO
        releases = entries.filter(entry_type=LedgerEntryType.RELEASE).aggregate(
            total=Sum("amount")
        )["total"] or ZERO
        return max(ZERO, money(holds - releases))

    @staticmethod
    def get_available_balance(provider: Provider | uuid.UUID) -> Decimal:
        """Balance minus outstanding holds."""
        return money(
            LedgerService.get_provider_balance(provider)
            - LedgerService.get_held_amount(provider)
        )

    @staticmethod
    def get_pending_payout_amount(provider: Provider | uuid.UUID) -> Decimal:
        """Sum of scheduled payouts that are pending or processing."""
        from payments.models import ScheduledPayout
        from payments.state_machines import ScheduledPayoutStatus

        total = ScheduledPayout.objects.filter(
            provider_id=_provider_id(provider),
            status__in=[ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.PROCESSING],
        ).aggregate(total=Sum("amount"))["total"]
        return money(total or ZERO)

    @staticmethod
    def get_balance_summary(provider: Provider | uuid.UUID) -> BalanceSummary:
        total = LedgerService.get_provider_balance(provider)
        held = LedgerService.get_held_amount(provider)
        currency = (
            ProviderLedger.objects.filter(provider_id=_provider_id(provider))
            .values_list("currency", flat=True)
            .first()
        )
        return BalanceSummary(
            total=total,
            available=money(total - held),
            held=held,
            pending_payout=LedgerService.get_pending_payout_amount(provider),
            currency=currency or "JMD",
        )

    @staticmethod
    def get_statement(
        provider: Provider | uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        """Provider entries, newest first."""
        return list(
            LedgerEntry.objects.filter(provider_id=_provider_id(provider))
            .select_related("payment", "payout", "booking")
            .order_by("-sequence")[offset : offset + limit]
        )

    @staticmethod
    def get_earnings_in_range(
        provider: Provider | uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> Decimal:
        """
        Sum of payment credits recorded in [start, end].

        Payout reversal credits are excluded; they return money that was
        already earned.
        """
        total = LedgerEntry.objects.filter(
            provider_id=_provider_id(provider),
            entry_type=LedgerEntryType.CREDIT,
            payout__isnull=True,
            created_at__gte=start,
            created_at__lte=end,
        ).aggregate(total=Sum("amount"))["total"]
        return money(total or ZERO)

    @staticmethod
    def verify_balance(provider: Provider | uuid.UUID) -> Decimal:
        """
        Replay all entries and compare with the stored balances.

        Returns:
            The replayed balance

        Raises:
            LedgerIntegrityError: If any entry's balance_after disagrees with
                the replay, or the cached ProviderLedger balance does
        """
        provider_id = _provider_id(provider)
        running = ZERO
        for entry in LedgerEntry.objects.filter(provider_id=provider_id).order_by("sequence"):
            running = money(running + entry.signed_amount)
            if running != entry.balance_after:
                raise LedgerIntegrityError(
                    "Ledger replay does not match stored balance",
                    details={
                        "provider_id": str(provider_id),
                        "entry_id": str(entry.id),
                        "sequence": entry.sequence,
                        "expected": str(running),
                        "stored": str(entry.balance_after),
                    },
                )

        cached = (
            ProviderLedger.objects.filter(provider_id=provider_id)
            .values_list("balance", flat=True)
            .first()
        )
        if cached is not None and cached != running:
            raise LedgerIntegrityError(
                "Cached ledger balance does not match entries",
                details={
                    "provider_id": str(provider_id),
                    "cached": str(cached),
                    "replayed": str(running),
                },
            )
        return running


# Singleton instance for convenience
# Usage: from payments.ledger.services import ledger
ledger = LedgerService()
