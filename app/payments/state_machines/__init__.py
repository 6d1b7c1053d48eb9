"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    SPLIT_CAPABLE_PROVIDERS,
    GatewayProvider,
    GatewayType,
    PaymentStatus,
    PaymentType,
    PayoutFrequency,
    ScheduledPayoutStatus,
    VerificationStatus,
)

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
