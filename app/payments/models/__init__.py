"""
Payment domain models.

- Payment: Client charge for a booking (escrow or split)
- Gateway / ProviderGatewayConfig: Processor registry and provider merchant accounts
- ScheduledPayout: Batched payout of provider escrow balance
- PaymentSettings: Admin overrides of the payment configuration

Ledger models live in payments.ledger and are imported here so the app
registry discovers them under the payments app label.
"""

from payments.ledger.models import LedgerEntry, LedgerEntryType, ProviderLedger
from payments.models.gateway import Gateway, ProviderGatewayConfig
from payments.models.payment import Payment
from payments.models.payment_settings import PaymentSettings
from payments.models.scheduled_payout import ScheduledPayout

__all__ = [
    "Gateway",
    "LedgerEntry",
    "LedgerEntryType",
    "Payment",
    "PaymentSettings",
    "ProviderGatewayConfig",
    "ProviderLedger",
    "ScheduledPayout",
]
