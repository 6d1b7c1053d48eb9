"""
Ledger models for the append-only provider balance book.

This module defines the models behind provider balances:
- ProviderLedger: One row per provider; the per-provider serialization point
- LedgerEntry: Immutable credit/debit/hold/release movements

A provider's balance is the balance_after of its latest entry by sequence.
Entries are never updated or deleted; corrections are new entries. Every
write locks the provider's ProviderLedger row with select_for_update()
first, so the read-latest/write-next sequence cannot lose updates.

Usage:
    from payments.ledger.models import LedgerEntry, LedgerEntryType

    entries = LedgerEntry.objects.filter(provider=provider).order_by("sequence")
    holds = entries.filter(entry_type=LedgerEntryType.HOLD)
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin

from .exceptions import LedgerIntegrityError


class LedgerEntryType(models.TextChoices):
    """
    Types of ledger entries and their sign on the balance.

    Values:
        CREDIT: Money owed to the provider (escrow payment, payout reversal)
        DEBIT: Money leaving the provider balance (payout, refund share)
        HOLD: Reserved funds (dispute, pending refund); reduces the balance
        RELEASE: Return of a specific hold; restores the balance
    """

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"
    HOLD = "hold", "Hold"
    RELEASE = "release", "Release"

    @property
    def sign(self) -> int:
        """+1 when the entry increases the balance, -1 otherwise."""
        return 1 if self in (LedgerEntryType.CREDIT, LedgerEntryType.RELEASE) else -1


class ProviderLedger(UUIDPrimaryKeyMixin, models.Model):
    """
    Per-provider ledger head.

    Locked with select_for_update() by every ledger write. It also caches
    the last sequence number and balance for cheap reads; LedgerEntry rows
    remain the source of truth (see LedgerService.verify_balance).

    Fields:
        provider: The provider this ledger belongs to
        balance: balance_after of the latest entry
        last_sequence: Sequence number of the latest entry
        currency: Ledger currency
        updated_at: Last write
    """

    provider = models.OneToOneField(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="ledger",
        help_text="Provider owning this ledger",
    )
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Cached balance (balance_after of the latest entry)",
    )
    last_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Sequence number of the latest entry",
    )
    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Provider ledger"
        verbose_name_plural = "Provider ledgers"

    def __str__(self) -> str:
        return f"Ledger({self.provider_id}, {self.balance} {self.currency})"


class LedgerEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    A single movement on a provider's balance.

    Entries are immutable once created; save() refuses updates and
    delete() always raises. balance_after is computed at insert time from
    the previous entry's balance_after plus or minus amount.

    Fields:
        provider: Provider whose balance moved
        sequence: Per-provider insertion order (1, 2, 3, ...)
        entry_type: credit / debit / hold / release
        amount: Positive magnitude of the movement
        balance_after: Provider balance after this entry
        currency: ISO 4217 currency code
        booking / payment / payout: Optional business references
        hold_entry: For releases, the hold being released (one release per hold)
        description: Human-readable description
        metadata: Arbitrary JSON data
        idempotency_key: Unique key so retried writes return the same entry
        created_at: Insert time

    Constraints:
        - amount must be positive
        - (provider, sequence) is unique
        - only release entries reference a hold, and each hold once
    """

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        help_text="Provider whose balance moved",
    )
    sequence = models.PositiveBigIntegerField(
        help_text="Per-provider insertion order",
    )
    entry_type = models.CharField(
        max_length=20,
        choices=LedgerEntryType.choices,
        db_index=True,
        help_text="Category of this entry",
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount moved (always positive)",
    )
    balance_after = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Provider balance after this entry",
    )
    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )

    booking = models.ForeignKey(
        "marketplace.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
    )
    payout = models.ForeignKey(
        "payments.ScheduledPayout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
    )
    hold_entry = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="release_entry",
        help_text="Hold released by this entry",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description of this entry",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON data for extensibility",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    class Meta:
        ordering = ["provider", "sequence"]
        verbose_name_plural = "Ledger entries"
        indexes = [
            models.Index(fields=["provider", "entry_type"], name="payments_le_provide_2d8a6e_idx"),
            models.Index(fields=["provider", "created_at"], name="payments_le_provide_7f31c4_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "sequence"],
                name="ledger_entry_provider_sequence_unique",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="ledger_entry_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(hold_entry__isnull=True) | Q(entry_type="release"),
                name="ledger_entry_hold_reference_on_release_only",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_entry_type_display()}: {self.amount} {self.currency} (#{self.sequence})"

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign this entry applies to the balance."""
        return self.amount * LedgerEntryType(self.entry_type).sign

    def save(self, *args, **kwargs):
        """Insert only; existing entries cannot be modified."""
        if not self._state.adding:
            raise LedgerIntegrityError(
                "Ledger entries are immutable",
                details={"entry_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerIntegrityError(
            "Ledger entries cannot be deleted",
            details={"entry_id": str(self.pk)},
        )
