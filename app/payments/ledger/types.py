"""
Data types for ledger operations.

Types:
    RecordEntryParams: Parameters for recording one ledger entry
    BalanceSummary: A provider's financial posture at a point in time

Usage:
    from payments.ledger.types import RecordEntryParams

    params = RecordEntryParams(
        provider_id=provider.id,
        entry_type=LedgerEntryType.CREDIT,
        amount=Decimal("92.88"),
        idempotency_key=f"credit:payment:{payment.id}",
        payment_id=payment.id,
        description="Payment for booking",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .exceptions import LedgerIntegrityError


@dataclass
class RecordEntryParams:
    """
    Parameters for recording a ledger entry.

    Required Attributes:
        provider_id: Provider whose balance moves
        entry_type: credit / debit / hold / release
        amount: Positive amount, already rounded to 2 decimals
        idempotency_key: Unique key; retries return the existing entry

    Optional Attributes:
        currency: Defaults to the provider ledger's currency
        booking_id / payment_id / payout_id: Business references
        hold_entry_id: Hold being released (release entries only)
        description: Human-readable description
        metadata: Arbitrary JSON-serializable data
    """

    provider_id: uuid.UUID
    entry_type: str
    amount: Decimal
    idempotency_key: str

    currency: str | None = None
    booking_id: uuid.UUID | None = None
    payment_id: uuid.UUID | None = None
    payout_id: uuid.UUID | None = None
    hold_entry_id: uuid.UUID | None = None
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if self.amount is None or self.amount <= 0:
            raise LedgerIntegrityError(
                "Ledger amount must be positive",
                details={"amount": str(self.amount)},
            )
        if not self.idempotency_key:
            raise LedgerIntegrityError("idempotency_key is required")


@dataclass(frozen=True)
class BalanceSummary:
    """
    A provider's balance posture.

    Attributes:
        total: balance_after of the latest entry
        available: total minus held
        held: Outstanding (unreleased) holds
        pending_payout: Sum of scheduled payouts not yet finished
        currency: Ledger currency
    """

    total: Decimal
    available: Decimal
    held: Decimal
    pending_payout: Decimal
    currency: str = "JMD"

    def to_dict(self) -> dict[str, str]:
        return {
            "total": str(self.total),
            "available": str(self.available),
            "held": str(self.held),
            "pending_payout": str(self.pending_payout),
            "currency": self.currency,
        }
