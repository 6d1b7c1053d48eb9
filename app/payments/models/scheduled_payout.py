"""
ScheduledPayout model for batched provider payouts.

A ScheduledPayout moves a provider's available escrow balance out to their
bank or WiPay account. Rows are created by PayoutScheduler, processed by
the scheduler or an admin batch, and never hard-deleted: cancellation is a
state, and a failed payout is retried by creating a new row that points
back at it through retry_of.

Usage:
    from payments.models import ScheduledPayout

    due = ScheduledPayout.objects.due()
    for payout in due:
        PayoutScheduler().process_payout(payout)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from marketplace.models import PayoutMethod
from payments.state_machines import ScheduledPayoutStatus


class ScheduledPayoutQuerySet(models.QuerySet):
    def due(self, now=None):
        """Pending payouts whose scheduled time has passed."""
        return self.filter(
            status=ScheduledPayoutStatus.PENDING,
            scheduled_for__lte=now or timezone.now(),
        ).order_by("scheduled_for", "id")

    def open(self):
        """Payouts not yet finished (pending or processing)."""
        return self.filter(
            status__in=[ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.PROCESSING]
        )


class ScheduledPayout(UUIDPrimaryKeyMixin, BaseModel):
    """
    A payout of provider balance scheduled for a payout window.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED
        PENDING/FAILED -> CANCELLED

    Fields:
        provider: Provider being paid
        amount: Payout amount (may shrink to the available balance when processed)
        scheduled_for: Start of the payout window
        status: Current FSM state
        batch_id: Groups payouts for bulk processing
        processed_at / processed_by: When and by whom processing finished
        payout_method: bank_transfer or wipay_account
        reference_number: PAYOUT-YYYYMMDD-XXXXXXXX, set when debited
        disbursement_id / disbursement_response: Disbursement gateway result
        retry_of: Failed payout this row retries
        version: Optimistic locking version
    """

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="scheduled_payouts",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="JMD")
    scheduled_for = models.DateTimeField(db_index=True)

    status = FSMField(
        default=ScheduledPayoutStatus.PENDING,
        choices=ScheduledPayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    batch_id = models.CharField(max_length=32, null=True, blank=True, db_index=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    payout_method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        default=PayoutMethod.BANK_TRANSFER,
    )
    reference_number = models.CharField(
        max_length=32,
        null=True,
        blank=True,
        unique=True,
    )
    disbursement_id = models.CharField(max_length=255, blank=True, default="")
    disbursement_response = models.JSONField(default=dict, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    retry_of = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="retries",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    objects = ScheduledPayoutQuerySet.as_manager()

    class Meta:
        ordering = ["-scheduled_for", "-created_at"]
        indexes = [
            models.Index(fields=["status", "scheduled_for"], name="payments_sc_status_6a1f0d_idx"),
            models.Index(fields=["provider", "status"], name="payments_sc_provide_0c9e2b_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="scheduled_payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"ScheduledPayout({self.id}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def can_be_cancelled(self) -> bool:
        return self.status in (ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.FAILED)

    @property
    def can_be_retried(self) -> bool:
        """Failed and not already retried."""
        return self.status == ScheduledPayoutStatus.FAILED and not self.retries.exists()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ScheduledPayoutStatus.PENDING,
        target=ScheduledPayoutStatus.PROCESSING,
    )
    def start_processing(self):
        """Transition: PENDING -> PROCESSING"""

    @transition(
        field=status,
        source=ScheduledPayoutStatus.PROCESSING,
        target=ScheduledPayoutStatus.COMPLETED,
    )
    def complete(self, processed_by=None):
        """
        Mark the payout as paid out.

        Transition: PROCESSING -> COMPLETED
        """
        self.processed_at = timezone.now()
        self.processed_by = processed_by

    @transition(
        field=status,
        source=[ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.PROCESSING],
        target=ScheduledPayoutStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Mark the payout as failed.

        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failure_reason = reason
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=[ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.FAILED],
        target=ScheduledPayoutStatus.CANCELLED,
    )
    def cancel(self, reason: str = ""):
        """
        Cancel a payout that has not started processing.

        Transition: PENDING/FAILED -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        if reason:
            self.notes = f"{self.notes}\nCancelled: {reason}".strip()
