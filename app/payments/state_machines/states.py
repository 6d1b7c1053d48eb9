"""
State enums for payment models.

This module defines the enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    pending → processing → completed (callback success)
    pending/processing → failed
    completed → partially_refunded → refunded
    completed → refunded

ScheduledPayout States:
    pending → processing → completed
    pending/processing → failed
    pending/failed → cancelled
    failed payouts are retried as a new row (retry_of), never reset
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: COMPLETED (until refunded), FAILED, REFUNDED.
    Transitions are one-way; failed and refunded payments are never
    resurrected.

    State Flow:
        PENDING → PROCESSING → COMPLETED

    Failure Flow:
        PROCESSING → FAILED

    Refund Flow:
        COMPLETED → PARTIALLY_REFUNDED → REFUNDED
        COMPLETED → REFUNDED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"


class PaymentType(models.TextChoices):
    """
    What portion of a booking a payment covers.

    - FULL: The whole service price
    - DEPOSIT: Upfront deposit; platform fee is charged here
    - BALANCE: Remainder after a deposit; gateway fee only
    """

    FULL = "full", "Full Payment"
    DEPOSIT = "deposit", "Deposit"
    BALANCE = "balance", "Balance"


class GatewayType(models.TextChoices):
    """
    Settlement model of a gateway strategy.

    - ESCROW: Funds land in the platform account and are credited to the
      provider's ledger, then paid out by the scheduler
    - SPLIT: The processor splits funds at capture; the ledger is untouched
    """

    ESCROW = "escrow", "Escrow"
    SPLIT = "split", "Direct Split"


class GatewayProvider(models.TextChoices):
    """Payment processors with a registered strategy."""

    WIPAY = "wipay", "WiPay"

    @property
    def supports_split(self) -> bool:
        """Whether this processor can split funds at capture."""
        return self in SPLIT_CAPABLE_PROVIDERS


SPLIT_CAPABLE_PROVIDERS = frozenset({GatewayProvider.WIPAY})


class ScheduledPayoutStatus(models.TextChoices):
    """
    States for the ScheduledPayout model lifecycle.

    Terminal states: COMPLETED, CANCELLED. FAILED is terminal for the row
    itself; a retry creates a new payout referencing it.

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING/PROCESSING → FAILED
        PENDING/FAILED → CANCELLED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class PayoutFrequency(models.TextChoices):
    """Cadence of the payout window."""

    DAILY = "daily", "Daily"
    WEEKLY = "weekly", "Weekly"
    BIWEEKLY = "biweekly", "Every two weeks"
    MONTHLY = "monthly", "Monthly"


class VerificationStatus(models.TextChoices):
    """
    Verification status of a provider's linked merchant account.

    Only VERIFIED and active configs are eligible for split payments.
    """

    PENDING = "pending", "Pending"
    VERIFIED = "verified", "Verified"
    FAILED = "failed", "Failed"


__all__ = [
    "GatewayProvider",
    "GatewayType",
    "PaymentStatus",
    "PaymentType",
    "PayoutFrequency",
    "SPLIT_CAPABLE_PROVIDERS",
    "ScheduledPayoutStatus",
    "VerificationStatus",
]
