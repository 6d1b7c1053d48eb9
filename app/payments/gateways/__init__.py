"""
Payment gateway strategies.

Usage:
    from payments.gateways import GatewayResolver, PaymentResult

    strategy = GatewayResolver.resolve(provider)
    result: PaymentResult = strategy.initialize_payment(payment, return_url, cancel_url)
"""

from payments.gateways.base import (
    GatewayStrategy,
    PaymentResult,
    RefundResult,
    SplitGatewayStrategy,
    SplitPaymentData,
    WebhookResult,
)
from payments.gateways.resolver import GatewayResolver
from payments.gateways.wipay import WiPayEscrowGateway, WiPaySplitGateway

__all__ = [
    "GatewayResolver",
    "GatewayStrategy",
    "PaymentResult",
    "RefundResult",
    "SplitGatewayStrategy",
    "SplitPaymentData",
    "WebhookResult",
    "WiPayEscrowGateway",
    "WiPaySplitGateway",
]
