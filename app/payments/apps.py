"""
Payments app configuration.

This app provides the marketplace's payment and settlement engine:
- Fee calculation per subscription tier
- Escrow and split gateway strategies (WiPay)
- Append-only provider ledger
- Scheduled provider payouts
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
