"""
WiPay gateway strategies.

WiPayEscrowGateway charges into the platform's WiPay account.
WiPaySplitGateway charges with split instructions so WiPay pays the
provider's own merchant account directly.

Both use WiPay's hosted checkout: a form POST to WIPAY_API_URL returns a
URL the client is redirected to, and WiPay calls back with order_id,
status and transaction_id when the client finishes.
"""

from __future__ import annotations

import json
import logging
import string
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils.crypto import get_random_string

from marketplace.models import FeePayer
from payments.adapters.http_client import GatewayHttpClient
from payments.exceptions import GatewayError
from payments.fees.money import money
from payments.gateways.base import (
    GatewayStrategy,
    PaymentResult,
    RefundResult,
    SplitGatewayStrategy,
)
from payments.state_machines import GatewayProvider, GatewayType

if TYPE_CHECKING:
    from typing import Any

    from payments.gateways.base import SplitPaymentData
    from payments.models import Payment


SANDBOX_ACCOUNT_NUMBER = "1234567890"
ORDER_ID_PREFIX = "WP-"
ORIGIN = "salon_marketplace"


def generate_order_id() -> str:
    """WP- followed by 12 uppercase alphanumerics."""
    return ORDER_ID_PREFIX + get_random_string(
        12, allowed_chars=string.ascii_uppercase + string.digits
    )


class WiPayGatewayMixin:
    """Settings, HTTP client and calls shared by both WiPay strategies."""

    provider = GatewayProvider.WIPAY

    def __init__(self, http_client: GatewayHttpClient | None = None):
        self.api_key = settings.WIPAY_API_KEY
        self.platform_account_id = settings.WIPAY_PLATFORM_ACCOUNT_ID
        self.country_code = settings.WIPAY_COUNTRY_CODE
        self.test_mode = settings.WIPAY_TEST_MODE
        self.base_url = settings.WIPAY_API_URL.rstrip("/")
        self.http = http_client or GatewayHttpClient(
            self.provider.value,
            base_url=self.base_url,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def supported_currencies(self) -> list[str]:
        return ["JMD", "TTD", "USD"]

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @staticmethod
    def _fee_structure(payment: Payment) -> str:
        if payment.processing_fee_payer == FeePayer.CLIENT:
            return "customer_pay"
        return "merchant_absorb"

    def _checkout(
        self,
        payment: Payment,
        return_url: str,
        account_number: str,
        total: Decimal,
        currency: str,
        extra_data: dict[str, Any] | None = None,
    ) -> PaymentResult:
        """POST the hosted checkout form and return the redirect URL."""
        order_id = generate_order_id()
        form = {
            "account_number": SANDBOX_ACCOUNT_NUMBER if self.test_mode else account_number,
            "country_code": self.country_code,
            "currency": currency or "JMD",
            "environment": "sandbox" if self.test_mode else "live",
            "fee_structure": self._fee_structure(payment),
            "method": "credit_card",
            "order_id": order_id,
            "origin": ORIGIN,
            "response_url": return_url,
            "total": f"{money(total):.2f}",
            "avs": 0,
            "data": json.dumps({"payment_id": str(payment.id), **(extra_data or {})}),
        }

        try:
            response = self.http.post("", data=form)
        except GatewayError as e:
            self.get_logger().error(
                "WiPay checkout failed",
                extra={"payment_id": str(payment.id), "error_code": e.error_code, "error": e.message},
            )
            return PaymentResult.failure(
                "Payment service unavailable" if e.is_retryable else e.message,
                error_code=e.error_code,
                raw_response=e.details,
            )

        data = response.data
        if not data.get("url"):
            return PaymentResult.failure(
                data.get("message") or "Payment initialization failed",
                raw_response=data,
            )

        self.get_logger().info(
            "WiPay checkout initialized",
            extra={"payment_id": str(payment.id), "order_id": order_id},
        )
        return PaymentResult.ok(
            redirect_url=data["url"],
            order_id=order_id,
            raw_response=data,
        )

    @staticmethod
    def _read_callback(callback_data: dict[str, Any]) -> PaymentResult:
        transaction_id = callback_data.get("transaction_id")
        status = callback_data.get("status")

        if status == "success" and transaction_id:
            return PaymentResult.ok(
                transaction_id=str(transaction_id),
                order_id=callback_data.get("order_id"),
                status=status,
                raw_response=callback_data,
            )
        return PaymentResult.failure(
            callback_data.get("message") or "Payment failed",
            error_code=str(status) if status else None,
            raw_response=callback_data,
            order_id=callback_data.get("order_id"),
            status=status,
        )

    def refund(self, payment: Payment, amount: Decimal | None = None) -> RefundResult:
        refund_amount = money(amount if amount is not None else payment.refundable_amount)
        payload = {
            "transaction_id": payment.gateway_transaction_id,
            "amount": f"{refund_amount:.2f}",
        }

        try:
            response = self.http.post("/refund", json=payload, headers=self._auth_headers())
        except GatewayError as e:
            self.get_logger().error(
                "WiPay refund failed",
                extra={"payment_id": str(payment.id), "error_code": e.error_code, "error": e.message},
            )
            return RefundResult.failure(
                "Refund service unavailable" if e.is_retryable else e.message,
                error_code=e.error_code,
                raw_response=e.details,
            )

        data = response.data
        if data.get("status") == "success":
            return RefundResult.ok(
                refund_id=str(data.get("refund_id") or ""),
                refunded_amount=refund_amount,
                raw_response=data,
            )
        return RefundResult.failure(data.get("message") or "Refund failed", raw_response=data)

    def verify_payment(self, payment: Payment) -> PaymentResult:
        if not payment.gateway_order_id:
            return PaymentResult.failure("Payment was never sent to WiPay", error_code="NO_ORDER")

        try:
            response = self.http.get(
                f"/transactions/{payment.gateway_order_id}",
                headers=self._auth_headers(),
            )
        except GatewayError as e:
            return PaymentResult.failure(e.message, error_code=e.error_code, raw_response=e.details)

        return self._read_callback({"order_id": payment.gateway_order_id, **response.data})


class WiPayEscrowGateway(WiPayGatewayMixin, GatewayStrategy):
    """
    WiPay checkout into the platform account.

    Completion only reports the outcome; the ledger credit is posted by
    PaymentManager because this is an escrow strategy.
    """

    gateway_type = GatewayType.ESCROW

    def is_available(self) -> bool:
        return bool(self.platform_account_id) and bool(self.api_key)

    def initialize_payment(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> PaymentResult:
        return self._checkout(
            payment,
            return_url,
            account_number=self.platform_account_id,
            total=payment.amount,
            currency=payment.currency,
        )

    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> PaymentResult:
        return self._read_callback(callback_data)


class WiPaySplitGateway(WiPayGatewayMixin, SplitGatewayStrategy):
    """
    WiPay checkout that splits between the platform and the provider.

    Args:
        credentials: Provider's decrypted merchant credentials
            (account_number required)
        merchant_account_id: Provider's merchant account id on file
    """

    gateway_type = GatewayType.SPLIT

    def __init__(
        self,
        credentials: dict[str, Any] | None = None,
        merchant_account_id: str = "",
        http_client: GatewayHttpClient | None = None,
    ):
        super().__init__(http_client=http_client)
        self.credentials = credentials or {}
        self.merchant_account_id = merchant_account_id or self.credentials.get(
            "account_number", ""
        )
        self._split_data: SplitPaymentData | None = None

    def is_available(self) -> bool:
        return bool(self.credentials.get("account_number"))

    def get_platform_merchant_id(self) -> str:
        return self.platform_account_id

    def configure_split(self, split_data: SplitPaymentData) -> None:
        self._split_data = split_data

    def initialize_payment(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> PaymentResult:
        if self._split_data is None:
            return PaymentResult.failure(
                "Split configuration not set",
                error_code="SPLIT_NOT_CONFIGURED",
            )

        splits = self._split_data.to_split_config()
        result = self._checkout(
            payment,
            return_url,
            account_number=self.credentials.get("account_number", ""),
            total=self._split_data.total_amount,
            currency=self._split_data.currency,
            extra_data={"splits": splits},
        )
        if result.success:
            result.split_details = self._split_data.to_dict()
        return result

    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> PaymentResult:
        result = self._read_callback(callback_data)
        if result.success:
            result.split_details = {
                **(payment.split_details or {}),
                "completed_splits": self.get_split_details(result.transaction_id),
            }
        return result

    def get_split_details(self, transaction_id: str) -> dict[str, Any]:
        """Split breakdown from WiPay; {} if it cannot be fetched."""
        try:
            response = self.http.get(
                f"/transactions/{transaction_id}/splits",
                headers=self._auth_headers(),
            )
        except GatewayError as e:
            self.get_logger().error(
                "Failed to get split details",
                extra={"transaction_id": transaction_id, "error": e.message},
            )
            return {}
        return response.data

    def validate_provider_credentials(self, credentials: dict[str, Any]) -> bool:
        account_number = credentials.get("account_number")
        if not account_number:
            return False

        try:
            response = self.http.get(
                f"/accounts/{account_number}/verify",
                headers=self._auth_headers(),
            )
        except GatewayError as e:
            self.get_logger().warning(
                "WiPay account verification failed",
                extra={"error_code": e.error_code, "error": e.message},
            )
            return False
        return bool(response.data.get("valid"))
