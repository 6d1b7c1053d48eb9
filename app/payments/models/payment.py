"""
Payment model for client charges against a booking.

A Payment is created by PaymentManager when checkout starts and is only
ever mutated by PaymentManager (and the gateway callback it handles).
Payments are never deleted.

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentStatus

    payment = Payment.objects.create(
        booking=booking,
        client=booking.client,
        provider=booking.provider,
        amount=Decimal("107.12"),
        platform_fee=Decimal("7.12"),
        provider_amount=Decimal("100.00"),
        gateway=GatewayProvider.WIPAY,
        gateway_type=GatewayType.ESCROW,
    )

    payment.start_processing()
    payment.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from marketplace.models import FeePayer
from payments.state_machines import (
    GatewayProvider,
    GatewayType,
    PaymentStatus,
    PaymentType,
)


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client payment for a booking.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PROCESSING -> FAILED
        COMPLETED -> PARTIALLY_REFUNDED -> REFUNDED
        COMPLETED -> REFUNDED

    Fields:
        booking / client / provider: Who pays whom for what
        amount: Total charged to the client
        platform_fee: Platform's share of this payment
        provider_amount: Provider's share, credited to the ledger for escrow
        processing_fee: Gateway fee for this payment
        processing_fee_payer: Who bears the fees
        payment_type: full, deposit or balance
        gateway / gateway_type: Processor and settlement model used
        gateway_order_id: Our order reference sent to the gateway
        gateway_transaction_id: Gateway's transaction id after completion
        split_details: Split breakdown (split gateway only)
        ledger_entry: Credit entry, set exactly once for escrow payments
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    booking = models.ForeignKey(
        "marketplace.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Booking this payment is for",
    )
    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="User paying",
    )
    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Provider being paid",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total charged to the client",
    )
    platform_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Platform share of this payment",
    )
    provider_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Provider share of this payment",
    )
    processing_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Gateway processing fee",
    )
    processing_fee_payer = models.CharField(
        max_length=20,
        choices=FeePayer.choices,
        default=FeePayer.PROVIDER,
    )
    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )
    payment_type = models.CharField(
        max_length=20,
        choices=PaymentType.choices,
        default=PaymentType.FULL,
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    # ==========================================================================
    # Gateway
    # ==========================================================================

    gateway = models.CharField(
        max_length=20,
        choices=GatewayProvider.choices,
        default=GatewayProvider.WIPAY,
    )
    gateway_type = models.CharField(
        max_length=20,
        choices=GatewayType.choices,
        default=GatewayType.ESCROW,
    )
    gateway_order_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        unique=True,
        help_text="Order reference sent to the gateway",
    )
    gateway_transaction_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
    )
    gateway_response_code = models.CharField(max_length=50, blank=True, default="")
    gateway_response = models.JSONField(default=dict, blank=True)
    split_transaction_id = models.CharField(max_length=255, blank=True, default="")
    split_details = models.JSONField(
        null=True,
        blank=True,
        help_text="Split breakdown, set only for split gateways",
    )
    card_brand = models.CharField(max_length=20, blank=True, default="")
    card_last_four = models.CharField(max_length=4, blank=True, default="")

    ledger_entry = models.OneToOneField(
        "payments.LedgerEntry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="credited_payment",
        help_text="Ledger credit for this payment (escrow only)",
    )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    failure_reason = models.TextField(blank=True, default="")
    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["provider", "status"], name="payments_pa_provide_4b7d51_idx"),
            models.Index(fields=["booking", "payment_type"], name="payments_pa_booking_9e3c27_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount} {self.currency})"

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
    def is_escrow(self) -> bool:
        return self.gateway_type == GatewayType.ESCROW

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - self.refunded_amount

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.PROCESSING,
    )
    def start_processing(self):
        """Client was handed off to the gateway."""

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING,
        target=PaymentStatus.COMPLETED,
    )
    def complete(self, transaction_id: str = ""):
        """
        Mark the payment as captured.

        Transition: PROCESSING -> COMPLETED
        """
        if transaction_id:
            self.gateway_transaction_id = transaction_id
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str = "", response_code: str = ""):
        """
        Mark the payment as failed.

        Transition: PROCESSING -> FAILED

        Args:
            reason: Human-readable failure reason
            response_code: Gateway response code, if any
        """
        self.failure_reason = reason
        if response_code:
            self.gateway_response_code = response_code

    @transition(
        field=status,
        source=[PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def partially_refund(self, amount: Decimal):
        """Record a refund that leaves part of the payment captured."""
        self.refunded_amount += amount
        self.refunded_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED],
        target=PaymentStatus.REFUNDED,
    )
    def refund(self, amount: Decimal):
        """Record the refund that returns the remaining amount."""
        self.refunded_amount += amount
        self.refunded_at = timezone.now()
