"""
Ledger-specific exceptions for provider balance operations.

Exception Hierarchy:
    LedgerError (base)
    ├── LedgerIntegrityError - Invariant violations (programmer errors)
    └── ProviderNotFound - Provider lookup failures

LedgerIntegrityError covers releasing a non-hold entry, releasing a hold
twice, non-positive amounts, modifying an existing entry and a balance
replay that does not match the stored balance. These are never expected
at runtime and are not converted into user-facing results.

Usage:
    from payments.ledger.exceptions import LedgerIntegrityError

    if hold_entry.entry_type != LedgerEntryType.HOLD:
        raise LedgerIntegrityError(
            "Only hold entries can be released",
            details={"entry_id": str(hold_entry.id)},
        )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Example:
        try:
            LedgerService.release_funds(entry)
        except LedgerError as e:
            logger.error(f"Ledger operation failed: {e}")
            raise
    """

    default_error_code: str = "LEDGER_ERROR"


class LedgerIntegrityError(LedgerError):
    """
    Raised when a ledger invariant would be violated.

    Use for:
    - Releasing an entry that is not a hold
    - Releasing the same hold twice
    - Recording a zero or negative amount
    - Updating or deleting an existing entry
    - Replay of entries disagreeing with stored balance_after
    """

    default_error_code: str = "LEDGER_INTEGRITY_ERROR"


class ProviderNotFound(LedgerError):
    """Raised when a ledger operation references a missing provider."""

    default_error_code: str = "PROVIDER_NOT_FOUND"
