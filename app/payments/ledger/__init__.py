"""
Ledger - append-only record of provider escrow balances.

Every movement of provider money held by the platform is one LedgerEntry
(credit, debit, hold or release). Each entry stores the provider's balance
after it was applied, so the current balance is the balance_after of the
provider's latest entry. Entries are never updated or deleted.

Writes for one provider are serialized by locking that provider's
ProviderLedger row with select_for_update().

Public API:
    Models:
        ProviderLedger - Per-provider serialization point and cached head
        LedgerEntry - One immutable money movement
        LedgerEntryType - credit / debit / hold / release

    Service:
        ledger - Singleton instance of LedgerService
        LedgerService - All ledger operations

    Types:
        RecordEntryParams - Parameters for recording an entry
        BalanceSummary - total / available / held / pending_payout

    Exceptions:
        LedgerError - Base exception for ledger operations
        LedgerIntegrityError - Invariant violations (fatal, not user-facing)
        ProviderNotFound - Ledger requested for a missing provider

Usage:
    from payments.ledger import ledger

    entry = ledger.credit_provider(payment)
    hold = ledger.hold_funds(provider, Decimal("50.00"), reason="Dispute")
    ledger.release_funds(hold)

    summary = ledger.get_balance_summary(provider)
    summary.available
"""

from .exceptions import LedgerError, LedgerIntegrityError, ProviderNotFound
from .models import LedgerEntry, LedgerEntryType, ProviderLedger
from .services import LedgerService, ledger
from .types import BalanceSummary, RecordEntryParams

__all__ = [
    # Models
    "LedgerEntry",
    "LedgerEntryType",
    "ProviderLedger",
    # Service
    "ledger",
    "LedgerService",
    # Types
    "BalanceSummary",
    "RecordEntryParams",
    # Exceptions
    "LedgerError",
    "LedgerIntegrityError",
    "ProviderNotFound",
]
