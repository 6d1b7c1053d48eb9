"""
Gateway strategy contracts and result types.

A gateway strategy talks to one payment processor under one settlement
model. There are exactly two models, exposed as GatewayStrategy.gateway_type:

- ESCROW: funds land in the platform account. PaymentManager credits the
  provider's ledger on completion and PayoutScheduler pays them out later.
- SPLIT: the processor splits funds between the platform and the provider's
  own merchant account at capture. The ledger is never touched.

Callers dispatch on gateway_type, never on the concrete class.

Strategies only talk to the processor and return typed results. Persisting
state onto the Payment (status, order id, split details) is done by
PaymentManager.

Usage:
    strategy = GatewayResolver.resolve(provider)

    if strategy.gateway_type == GatewayType.SPLIT:
        strategy.configure_split(SplitPaymentData.from_payment(payment, ...))

    result = strategy.initialize_payment(payment, return_url, cancel_url)
    if result.success:
        redirect(result.redirect_url)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from payments.models import Payment
    from payments.state_machines import GatewayProvider, GatewayType


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PaymentResult:
    """
    Result of initializing, completing or verifying a payment.

    Attributes:
        success: Whether the gateway call succeeded
        redirect_url: Hosted checkout URL (initialization only)
        transaction_id: Gateway transaction id (completion/verification)
        order_id: Our order reference sent to the gateway
        status: Gateway's own status string, when it reported one
        error: Human-readable failure reason
        error_code: Gateway or internal error code
        raw_response: Gateway response body, stored for audit
        card_details: Card brand and last four, when the gateway reports them
        split_details: Split breakdown (split gateways only)

    Usage:
        result = strategy.complete_payment(payment, callback_data)
        if result.success:
            payment.complete(transaction_id=result.transaction_id)
        else:
            payment.fail(reason=result.error, response_code=result.error_code or "")
    """

    success: bool
    redirect_url: str | None = None
    transaction_id: str | None = None
    order_id: str | None = None
    status: str | None = None
    error: str | None = None
    error_code: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    card_details: dict[str, str] | None = None
    split_details: dict[str, Any] | list[Any] | None = None

    @classmethod
    def ok(cls, **kwargs: Any) -> PaymentResult:
        return cls(success=True, **kwargs)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        raw_response: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> PaymentResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            raw_response=raw_response or {},
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("raw_response")
        return data


@dataclass
class RefundResult:
    """Result of a refund request."""

    success: bool
    refund_id: str | None = None
    refunded_amount: Decimal | None = None
    error: str | None = None
    error_code: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        refund_id: str,
        refunded_amount: Decimal,
        raw_response: dict[str, Any] | None = None,
    ) -> RefundResult:
        return cls(
            success=True,
            refund_id=refund_id,
            refunded_amount=refunded_amount,
            raw_response=raw_response or {},
        )

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        raw_response: dict[str, Any] | None = None,
    ) -> RefundResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            raw_response=raw_response or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "refund_id": self.refund_id,
            "refunded_amount": str(self.refunded_amount) if self.refunded_amount is not None else None,
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class WebhookResult:
    """
    An inbound gateway callback, parsed but not yet applied.

    success is the gateway's verdict on the payment, not whether the
    callback was well formed; a malformed callback has no order_id.
    """

    success: bool
    order_id: str | None = None
    transaction_id: str | None = None
    status: str | None = None
    error: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return bool(self.order_id)


@dataclass(frozen=True)
class SplitPaymentData:
    """
    How a split payment divides between platform and provider.

    total_amount == platform_amount + provider_amount + processing_fee
    """

    total_amount: Decimal
    platform_amount: Decimal
    provider_amount: Decimal
    platform_merchant_id: str
    provider_merchant_id: str
    currency: str = "JMD"
    processing_fee: Decimal = Decimal("0.00")
    processing_fee_payer: str | None = None

    @classmethod
    def from_payment(
        cls,
        payment: Payment,
        platform_merchant_id: str,
        provider_merchant_id: str,
    ) -> SplitPaymentData:
        return cls(
            total_amount=payment.amount,
            platform_amount=payment.platform_fee,
            provider_amount=payment.provider_amount,
            platform_merchant_id=platform_merchant_id,
            provider_merchant_id=provider_merchant_id,
            currency=payment.currency,
            processing_fee=payment.processing_fee,
            processing_fee_payer=payment.processing_fee_payer,
        )

    def to_split_config(self) -> list[dict[str, str]]:
        """Split instructions in the shape processors expect."""
        return [
            {
                "account_number": self.platform_merchant_id,
                "amount": f"{self.platform_amount:.2f}",
                "description": "Platform fee",
            },
            {
                "account_number": self.provider_merchant_id,
                "amount": f"{self.provider_amount:.2f}",
                "description": "Provider payment",
            },
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_amount": str(self.total_amount),
            "platform_amount": str(self.platform_amount),
            "provider_amount": str(self.provider_amount),
            "platform_merchant_id": self.platform_merchant_id,
            "provider_merchant_id": self.provider_merchant_id,
            "currency": self.currency,
            "processing_fee": str(self.processing_fee),
            "processing_fee_payer": self.processing_fee_payer,
        }


# =============================================================================
# Strategy Contracts
# =============================================================================


class GatewayStrategy(ABC):
    """
    Abstract base class for payment gateway strategies.

    Subclasses set two class attributes and implement the abstract methods:
        provider: GatewayProvider this strategy talks to
        gateway_type: GatewayType.ESCROW or GatewayType.SPLIT

    No method raises for gateway failures; they come back as failed
    PaymentResult/RefundResult values.
    """

    provider: GatewayProvider
    gateway_type: GatewayType

    @abstractmethod
    def is_available(self) -> bool:
        """Whether credentials needed to use this strategy are configured."""

    @abstractmethod
    def supported_currencies(self) -> list[str]:
        """ISO 4217 codes this gateway can charge in."""

    @abstractmethod
    def initialize_payment(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> PaymentResult:
        """
        Start a hosted checkout.

        Returns:
            PaymentResult with redirect_url and order_id on success
        """

    @abstractmethod
    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> PaymentResult:
        """
        Interpret the gateway's completion callback for a payment.

        Returns:
            PaymentResult with transaction_id on success
        """

    @abstractmethod
    def refund(self, payment: Payment, amount: Decimal | None = None) -> RefundResult:
        """
        Refund all or part of a captured payment.

        Args:
            payment: Completed payment
            amount: Amount to refund; None refunds the refundable remainder
        """

    @abstractmethod
    def verify_payment(self, payment: Payment) -> PaymentResult:
        """
        Ask the gateway for the current state of a payment.

        Used by reconciliation to settle payments whose callback never
        arrived. success is True only once the gateway reports the
        payment as captured.
        """

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        """Parse a callback payload into a WebhookResult."""
        order_id = payload.get("order_id")
        status = payload.get("status")
        transaction_id = payload.get("transaction_id")

        if not order_id:
            return WebhookResult(
                success=False,
                error="Invalid webhook payload",
                raw_payload=payload,
            )

        success = status == "success" and bool(transaction_id)
        return WebhookResult(
            success=success,
            order_id=str(order_id),
            transaction_id=str(transaction_id) if transaction_id else None,
            status=status,
            error=None if success else payload.get("message") or "Payment failed",
            raw_payload=payload,
        )


class SplitGatewayStrategy(GatewayStrategy):
    """
    Strategy that splits funds at capture.

    configure_split() must be called before initialize_payment().
    """

    @abstractmethod
    def configure_split(self, split_data: SplitPaymentData) -> None:
        """Set the platform/provider split for the next checkout."""

    @abstractmethod
    def get_platform_merchant_id(self) -> str:
        """Platform's merchant account on this gateway."""

    @abstractmethod
    def get_split_details(self, transaction_id: str) -> dict[str, Any]:
        """Split breakdown the gateway recorded for a transaction."""

    @abstractmethod
    def validate_provider_credentials(self, credentials: dict[str, Any]) -> bool:
        """Check a provider's merchant account with the gateway."""
