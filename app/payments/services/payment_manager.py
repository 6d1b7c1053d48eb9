"""
Payment manager: one payment's lifecycle from checkout to refund.

PaymentManager is the only code that moves a Payment through its states:

    initialize_payment   PENDING -> PROCESSING   (client redirected to gateway)
    complete_payment     PROCESSING -> COMPLETED | FAILED   (gateway callback)
    refund               COMPLETED -> PARTIALLY_REFUNDED | REFUNDED

On successful completion of an ESCROW payment the provider's ledger is
credited exactly once. SPLIT payments never touch the ledger; the gateway
already paid the provider at capture.

Checkout and completion call the gateway outside database transactions.
State changes are applied under select_for_update and re-check the status
first, so duplicate callbacks are no-ops. Refunds hold the payment row lock
across the gateway call, so two refunds cannot exceed the captured amount.

Usage:
    from payments.services import PaymentManager

    result = PaymentManager.initialize_payment(
        booking,
        return_url="https://app.example.com/pay/return",
        cancel_url="https://app.example.com/pay/cancel",
        payment_type=PaymentType.DEPOSIT,
    )
    if result.success:
        redirect(result.data.redirect_url)

    # From the gateway callback
    PaymentManager.handle_callback("wipay", request.POST.dict())
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import transaction

from core.services import BaseService, ServiceResult

from payments.config import get_payment_config
from payments.exceptions import PaymentValidationError
from payments.fees import FeeCalculator
from payments.fees.money import money
from payments.gateways import GatewayResolver, SplitPaymentData
from payments.ledger import LedgerService
from payments.models import Payment, ProviderGatewayConfig
from payments.state_machines import (
    GatewayType,
    PaymentStatus,
    PaymentType,
    VerificationStatus,
)

if TYPE_CHECKING:
    from typing import Any

    from marketplace.models import Booking, Provider
    from payments.gateways import GatewayStrategy, PaymentResult, RefundResult
    from payments.ledger import BalanceSummary


OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
REFUNDABLE_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED)


@dataclass
class CheckoutSession:
    """
    A started checkout.

    Attributes:
        payment: The payment, now PROCESSING
        redirect_url: Hosted checkout page to send the client to
        order_id: Order reference the gateway will call back with
        gateway_type: escrow or split
    """

    payment: Payment
    redirect_url: str
    order_id: str
    gateway_type: GatewayType


class PaymentManager(BaseService):
    """
    Orchestrates payments across fees, gateways and the ledger.

    All methods are classmethods; there is no instance state.
    """

    # =========================================================================
    # Creation and checkout
    # =========================================================================

    @classmethod
    def create_payment(
        cls,
        booking: Booking,
        payment_type: PaymentType | str = PaymentType.FULL,
        calculator: FeeCalculator | None = None,
    ) -> Payment:
        """
        Create a PENDING payment for a booking.

        The booking's fees are snapshotted on first payment so a deposit
        and its later balance are charged from the same rates.

        Raises:
            PaymentValidationError: Bad amount, currency, or payment type
                for this booking, or the portion was already paid
        """
        payment_type = PaymentType(payment_type)
        calculator = calculator or FeeCalculator()
        config = calculator.config

        if booking.service_price is None or booking.service_price <= 0:
            raise PaymentValidationError(
                "Booking has no payable amount",
                details={"booking_id": str(booking.id)},
            )

        fees = calculator.get_booking_fees(booking)
        if payment_type != PaymentType.FULL and not fees.requires_deposit:
            raise PaymentValidationError(
                f"Booking does not take a deposit, cannot create a {payment_type.value} payment",
                details={"booking_id": str(booking.id), "payment_type": payment_type.value},
            )

        already_paid = Payment.objects.filter(
            booking=booking,
            payment_type=payment_type,
            status__in=[*REFUNDABLE_STATUSES, PaymentStatus.REFUNDED],
        ).exists()
        if already_paid:
            raise PaymentValidationError(
                f"The {payment_type.label.lower()} for this booking has already been paid",
                details={"booking_id": str(booking.id), "payment_type": payment_type.value},
            )

        if not booking.has_stored_fees:
            booking.store_fees(fees)

        payment_fees = calculator.calculate_payment_from_fees(
            fees, payment_type, booking.service_price
        )
        currency = config.default_currency
        if currency not in config.supported_currencies:
            raise PaymentValidationError(
                f"Unsupported currency: {currency}",
                details={"currency": currency},
            )

        payment = Payment.objects.create(
            booking=booking,
            client=booking.client,
            provider=booking.provider,
            amount=payment_fees.total_to_charge,
            platform_fee=payment_fees.platform_fee,
            provider_amount=payment_fees.provider_receives,
            processing_fee=payment_fees.gateway_fee,
            processing_fee_payer=fees.fee_payer,
            currency=currency,
            payment_type=payment_type,
            metadata={"fees": payment_fees.to_dict()},
        )

        cls.get_logger().info(
            "Payment created",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking.id),
                "payment_type": payment_type.value,
                "amount": str(payment.amount),
            },
        )
        return payment

    @classmethod
    def initialize_payment(
        cls,
        booking: Booking,
        return_url: str,
        cancel_url: str,
        payment_type: PaymentType | str = PaymentType.FULL,
        payment: Payment | None = None,
    ) -> ServiceResult[CheckoutSession]:
        """
        Start checkout for a booking.

        Resolves the provider's gateway, records it on the payment,
        configures the split for split gateways and asks the gateway for a
        hosted checkout.

        Args:
            booking: Booking being paid
            return_url: Where the gateway sends the client afterwards
            cancel_url: Where the client goes if they abandon checkout
            payment_type: full, deposit or balance
            payment: Existing PENDING payment to retry initialization for

        Returns:
            ServiceResult with a CheckoutSession. On gateway failure the
            payment stays PENDING so initialization can be retried.
        """
        validation = cls.validate_required(return_url=return_url, cancel_url=cancel_url)
        if validation is not None:
            return validation

        if payment is None:
            try:
                payment = cls.create_payment(booking, payment_type)
            except PaymentValidationError as e:
                return ServiceResult.from_exception(e)
        elif payment.status != PaymentStatus.PENDING:
            return ServiceResult.failure(
                f"Payment is {payment.status}, cannot start checkout",
                error_code="PAYMENT_NOT_PENDING",
            )

        strategy = GatewayResolver.resolve(booking.provider)
        if payment.currency not in strategy.supported_currencies():
            return ServiceResult.failure(
                f"{strategy.provider.label} does not support {payment.currency}",
                error_code="UNSUPPORTED_CURRENCY",
            )

        payment.gateway = strategy.provider
        payment.gateway_type = strategy.gateway_type

        if strategy.gateway_type == GatewayType.SPLIT:
            config = GatewayResolver.get_provider_config(booking.provider, split_only=True)
            split_data = SplitPaymentData.from_payment(
                payment,
                platform_merchant_id=strategy.get_platform_merchant_id(),
                provider_merchant_id=config.merchant_account_id,
            )
            strategy.configure_split(split_data)
            payment.split_details = split_data.to_dict()

        payment.save()

        result = strategy.initialize_payment(payment, return_url, cancel_url)
        payment.gateway_response = result.raw_response

        if not result.success:
            payment.save()
            cls.get_logger().warning(
                "Payment initialization failed",
                extra={
                    "payment_id": str(payment.id),
                    "gateway": strategy.provider.value,
                    "error": result.error,
                },
            )
            return ServiceResult.failure(
                result.error or "Payment initialization failed",
                error_code=result.error_code or "PAYMENT_INITIALIZATION_FAILED",
            )

        payment.gateway_order_id = result.order_id
        payment.start_processing()
        payment.save()

        cls.get_logger().info(
            "Payment initialized",
            extra={
                "payment_id": str(payment.id),
                "order_id": result.order_id,
                "gateway": strategy.provider.value,
                "gateway_type": strategy.gateway_type.value,
            },
        )
        return ServiceResult.success(
            CheckoutSession(
                payment=payment,
                redirect_url=result.redirect_url,
                order_id=result.order_id,
                gateway_type=strategy.gateway_type,
            )
        )

    # =========================================================================
    # Completion
    # =========================================================================

    @classmethod
    def handle_callback(
        cls,
        gateway_name: str,
        payload: dict[str, Any],
    ) -> ServiceResult[Payment]:
        """
        Route an inbound gateway callback to its payment and complete it.

        Raises:
            UnknownGatewayError: gateway_name is not registered
        """
        strategy = GatewayResolver.resolve_by_name(gateway_name)
        webhook = strategy.parse_webhook(payload)

        if not webhook.is_valid:
            return ServiceResult.failure(
                webhook.error or "Invalid webhook payload",
                error_code="INVALID_WEBHOOK",
            )

        payment = Payment.objects.filter(
            gateway_order_id=webhook.order_id,
            gateway=strategy.provider,
        ).first()
        if payment is None:
            cls.get_logger().warning(
                "Callback for unknown payment",
                extra={"gateway": gateway_name, "order_id": webhook.order_id},
            )
            return ServiceResult.failure(
                f"Payment with order id {webhook.order_id} not found",
                error_code="PAYMENT_NOT_FOUND",
            )

        return cls.complete_payment(payment, payload)

    @classmethod
    def complete_payment(
        cls,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> ServiceResult[Payment]:
        """
        Apply the gateway's completion callback to a payment.

        Duplicate deliveries for a payment that already left PENDING or
        PROCESSING return success without changing anything. A payment still
        PENDING was never sent to the gateway and is rejected.
        """
        if payment.status not in OPEN_STATUSES:
            return cls._already_settled(payment)
        if payment.status == PaymentStatus.PENDING:
            return cls._not_started(payment)

        strategy = GatewayResolver.resolve_for_payment(payment)
        result = strategy.complete_payment(payment, callback_data)
        return cls._apply_result(payment, strategy, result)

    @classmethod
    def verify_payment(cls, payment: Payment) -> ServiceResult[Payment]:
        """
        Poll the gateway for a payment whose callback never arrived.

        Settles the payment if the gateway reports it captured or failed;
        leaves it untouched while the gateway still reports it pending.
        """
        if payment.status not in OPEN_STATUSES:
            return ServiceResult.success(payment)
        if payment.status == PaymentStatus.PENDING:
            return cls._not_started(payment)

        strategy = GatewayResolver.resolve_for_payment(payment)
        result = strategy.verify_payment(payment)

        if result.success or result.status == "failed":
            return cls._apply_result(payment, strategy, result)

        cls.get_logger().info(
            "Payment still open at gateway",
            extra={"payment_id": str(payment.id), "gateway_status": result.status},
        )
        return ServiceResult.success(payment)

    @classmethod
    def _not_started(cls, payment: Payment) -> ServiceResult[Payment]:
        """A pending payment has no gateway order yet, so nothing can settle it."""
        cls.get_logger().warning(
            "Completion for payment not sent to the gateway",
            extra={"payment_id": str(payment.id)},
        )
        return ServiceResult.failure(
            "Payment has not been sent to the gateway",
            error_code="PAYMENT_NOT_STARTED",
        )

    @classmethod
    def _already_settled(cls, payment: Payment) -> ServiceResult[Payment]:
        cls.get_logger().info(
            "Duplicate completion ignored",
            extra={"payment_id": str(payment.id), "status": payment.status},
        )
        return ServiceResult.success(payment)

    @classmethod
    def _apply_result(
        cls,
        payment: Payment,
        strategy: GatewayStrategy,
        result: PaymentResult,
    ) -> ServiceResult[Payment]:
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status not in OPEN_STATUSES:
                return cls._already_settled(payment)

            payment.gateway_response = result.raw_response

            if not result.success:
                payment.fail(
                    reason=result.error or "Payment failed",
                    response_code=result.error_code or "",
                )
                payment.save()
                cls.get_logger().warning(
                    "Payment failed",
                    extra={"payment_id": str(payment.id), "reason": payment.failure_reason},
                )
                return ServiceResult.failure(
                    payment.failure_reason,
                    error_code="PAYMENT_FAILED",
                )

            payment.complete(transaction_id=result.transaction_id or "")
            if result.split_details:
                payment.split_details = result.split_details
                payment.split_transaction_id = result.transaction_id or ""
            if result.card_details:
                payment.card_brand = result.card_details.get("brand", "")[:20]
                payment.card_last_four = result.card_details.get("last_four", "")[-4:]
            payment.save()

            if strategy.gateway_type == GatewayType.ESCROW:
                LedgerService.credit_provider(payment)

        cls.get_logger().info(
            "Payment completed",
            extra={
                "payment_id": str(payment.id),
                "transaction_id": payment.gateway_transaction_id,
                "gateway_type": strategy.gateway_type.value,
            },
        )
        return ServiceResult.success(payment)

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def refund(
        cls,
        payment: Payment,
        amount: Decimal | None = None,
    ) -> ServiceResult[RefundResult]:
        """
        Refund all or part of a completed payment through its gateway.

        Does not touch the ledger. For escrow payments the caller debits the
        provider's share once the refund is confirmed:

            share = PaymentManager.provider_refund_share(payment, result.data.refunded_amount)
            LedgerService.debit_for_refund(payment, share, reference=result.data.refund_id)
        """
        with transaction.atomic():
            # The row stays locked through the gateway call so a concurrent
            # refund sees this one's refunded_amount.
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            if locked.status not in REFUNDABLE_STATUSES:
                return ServiceResult.failure(
                    f"Payment is {locked.status}, cannot refund",
                    error_code="PAYMENT_NOT_REFUNDABLE",
                )

            refundable = locked.refundable_amount
            amount = money(amount) if amount is not None else refundable
            if amount <= 0 or amount > refundable:
                return ServiceResult.failure(
                    f"Refund amount must be between 0.01 and {refundable}",
                    error_code="INVALID_REFUND_AMOUNT",
                )

            strategy = GatewayResolver.resolve_for_payment(locked)
            result = strategy.refund(locked, amount)

            if not result.success:
                cls.get_logger().warning(
                    "Refund failed",
                    extra={"payment_id": str(payment.id), "amount": str(amount), "error": result.error},
                )
                return ServiceResult.failure(
                    result.error or "Refund failed",
                    error_code=result.error_code or "REFUND_FAILED",
                )

            if amount >= refundable:
                locked.refund(amount)
            else:
                locked.partially_refund(amount)
            locked.save()

        cls.get_logger().info(
            "Payment refunded",
            extra={
                "payment_id": str(payment.id),
                "amount": str(amount),
                "refund_id": result.refund_id,
                "status": locked.status,
            },
        )
        return ServiceResult.success(result)

    @staticmethod
    def provider_refund_share(payment: Payment, refund_amount: Decimal) -> Decimal:
        """Provider's proportional part of a refund."""
        if payment.amount <= 0:
            return Decimal("0.00")
        return money(payment.provider_amount * refund_amount / payment.amount)

    # =========================================================================
    # Provider queries
    # =========================================================================

    @staticmethod
    def get_provider_balance_summary(provider: Provider) -> BalanceSummary:
        return LedgerService.get_balance_summary(provider)

    @staticmethod
    def provider_has_linked_account(provider: Provider) -> bool:
        """Whether the provider has any active, verified merchant account."""
        return ProviderGatewayConfig.objects.filter(
            provider=provider,
            is_active=True,
            verification_status=VerificationStatus.VERIFIED,
        ).exists()

    @staticmethod
    def get_provider_gateway_type(provider: Provider) -> GatewayType:
        return GatewayResolver.determine_gateway_type(provider)

    @staticmethod
    def get_commission_rate(provider: Provider) -> Decimal:
        """Platform fee rate currently applied to the provider."""
        return FeeCalculator(get_payment_config()).get_platform_fee_rate(provider)
