"""
Tests for the WiPay escrow and split strategies.

Covers the hosted checkout form, callback interpretation, refunds,
verification and the split-specific calls.
"""

import json
from decimal import Decimal

import pytest

from payments.adapters import GatewayResponse
from payments.exceptions import (
    GatewayAuthenticationError,
    GatewayInvalidRequestError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)
from payments.gateways import SplitPaymentData, WiPayEscrowGateway, WiPaySplitGateway
from payments.gateways.wipay import SANDBOX_ACCOUNT_NUMBER, generate_order_id
from payments.state_machines import GatewayType, PaymentStatus


def split_data(payment):
    return SplitPaymentData.from_payment(
        payment,
        platform_merchant_id="PLATFORM-001",
        provider_merchant_id="8001234567",
    )


def test_order_id_format():
    order_id = generate_order_id()

    assert order_id.startswith("WP-")
    assert len(order_id) == 15
    assert order_id[3:].isalnum()
    assert order_id[3:] == order_id[3:].upper()


class TestEscrowCheckout:
    """Hosted checkout into the platform account."""

    def test_posts_checkout_form(self, http, payment):
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.success
        assert result.redirect_url == "https://sandbox.wipayfinancial.com/checkout/abc"
        assert result.order_id.startswith("WP-")

        path = http.post.call_args.args[0]
        form = http.post.call_args.kwargs["data"]
        assert path == ""
        assert form["account_number"] == SANDBOX_ACCOUNT_NUMBER
        assert form["environment"] == "sandbox"
        assert form["total"] == "100.00"
        assert form["currency"] == "JMD"
        assert form["order_id"] == result.order_id
        assert form["response_url"] == "https://app/return"
        assert form["fee_structure"] == "merchant_absorb"
        assert json.loads(form["data"]) == {"payment_id": str(payment.id)}

    def test_live_mode_uses_platform_account(self, http, payment, settings):
        settings.WIPAY_TEST_MODE = False
        gateway = WiPayEscrowGateway(http_client=http)

        gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        form = http.post.call_args.kwargs["data"]
        assert form["account_number"] == "PLATFORM-001"
        assert form["environment"] == "live"

    def test_client_paid_fees(self, http, payment):
        payment.processing_fee_payer = "client"
        gateway = WiPayEscrowGateway(http_client=http)

        gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert http.post.call_args.kwargs["data"]["fee_structure"] == "customer_pay"

    def test_missing_redirect_url(self, http, payment):
        http.post.return_value = GatewayResponse(200, {"message": "Invalid total"})
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.success is False
        assert result.error == "Invalid total"

    def test_transient_error_is_generic(self, http, payment):
        http.post.side_effect = GatewayUnavailableError("HTTP 503 from wipay", status_code=503)
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.success is False
        assert result.error == "Payment service unavailable"
        assert result.error_code == "GATEWAY_UNAVAILABLE"

    def test_permanent_error_keeps_message(self, http, payment):
        http.post.side_effect = GatewayAuthenticationError("Invalid API key", status_code=401)
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.error == "Invalid API key"

    def test_is_available(self, http, settings):
        assert WiPayEscrowGateway(http_client=http).is_available() is True

        settings.WIPAY_API_KEY = ""
        assert WiPayEscrowGateway(http_client=http).is_available() is False

    def test_gateway_type(self, http):
        gateway = WiPayEscrowGateway(http_client=http)

        assert gateway.gateway_type == GatewayType.ESCROW
        assert "JMD" in gateway.supported_currencies()
        assert "EUR" not in gateway.supported_currencies()


class TestCallbacks:
    """Completion callbacks and webhook parsing."""

    def test_complete_success(self, http, payment):
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.complete_payment(
            payment,
            {"order_id": "WP-ABC123DEF456", "status": "success", "transaction_id": "TXN-9"},
        )

        assert result.success
        assert result.transaction_id == "TXN-9"

    def test_complete_failure(self, http, payment):
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.complete_payment(
            payment,
            {"order_id": "WP-ABC123DEF456", "status": "failed", "message": "Card declined"},
        )

        assert result.success is False
        assert result.error == "Card declined"
        assert result.error_code == "failed"

    def test_success_without_transaction_id_is_failure(self, http, payment):
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.complete_payment(payment, {"order_id": "WP-1", "status": "success"})

        assert result.success is False

    @pytest.mark.parametrize(
        "payload,valid,success",
        [
            ({"order_id": "WP-1", "status": "success", "transaction_id": "T1"}, True, True),
            ({"order_id": "WP-1", "status": "failed"}, True, False),
            ({"order_id": "WP-1", "status": "success"}, True, False),
            ({"status": "success", "transaction_id": "T1"}, False, False),
            ({}, False, False),
        ],
    )
    def test_parse_webhook(self, http, payload, valid, success):
        webhook = WiPayEscrowGateway(http_client=http).parse_webhook(payload)

        assert webhook.is_valid is valid
        assert webhook.success is success


class TestRefundAndVerify:
    """Refunds and status lookups."""

    def test_full_refund_defaults_to_refundable(self, http, payment):
        payment.gateway_transaction_id = "TXN-1"
        http.post.return_value = GatewayResponse(200, {"status": "success", "refund_id": "RF-1"})
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.refund(payment)

        assert result.success
        assert result.refund_id == "RF-1"
        assert result.refunded_amount == Decimal("100.00")
        assert http.post.call_args.args[0] == "/refund"
        assert http.post.call_args.kwargs["json"] == {"transaction_id": "TXN-1", "amount": "100.00"}
        assert http.post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-api-key"

    def test_partial_refund(self, http, payment):
        http.post.return_value = GatewayResponse(200, {"status": "success", "refund_id": "RF-2"})
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.refund(payment, Decimal("25.5"))

        assert result.refunded_amount == Decimal("25.50")
        assert http.post.call_args.kwargs["json"]["amount"] == "25.50"

    def test_refund_rejected(self, http, payment):
        http.post.return_value = GatewayResponse(200, {"status": "failed", "message": "Too late"})
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.refund(payment)

        assert result.success is False
        assert result.error == "Too late"

    def test_refund_timeout(self, http, payment):
        http.post.side_effect = GatewayTimeoutError("timed out")
        gateway = WiPayEscrowGateway(http_client=http)

        result = gateway.refund(payment)

        assert result.success is False
        assert result.error == "Refund service unavailable"

    def test_verify_without_order_id(self, http, payment):
        result = WiPayEscrowGateway(http_client=http).verify_payment(payment)

        assert result.success is False
        assert result.error_code == "NO_ORDER"
        http.get.assert_not_called()

    def test_verify_captured(self, http, payment):
        payment.gateway_order_id = "WP-ABC123DEF456"
        http.get.return_value = GatewayResponse(
            200, {"status": "success", "transaction_id": "TXN-5"}
        )

        result = WiPayEscrowGateway(http_client=http).verify_payment(payment)

        assert result.success
        assert result.transaction_id == "TXN-5"
        assert result.order_id == "WP-ABC123DEF456"
        assert http.get.call_args.args[0] == "/transactions/WP-ABC123DEF456"

    def test_verify_lookup_error(self, http, payment):
        payment.gateway_order_id = "WP-ABC123DEF456"
        http.get.side_effect = GatewayInvalidRequestError("Not found", status_code=404)

        result = WiPayEscrowGateway(http_client=http).verify_payment(payment)

        assert result.success is False
        assert result.error == "Not found"
        assert payment.status == PaymentStatus.PENDING


class TestSplitGateway:
    """Checkout with split instructions."""

    def test_requires_split_configuration(self, http, payment):
        gateway = WiPaySplitGateway({"account_number": "8001234567"}, http_client=http)

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.success is False
        assert result.error_code == "SPLIT_NOT_CONFIGURED"
        http.post.assert_not_called()

    def test_checkout_carries_splits(self, http, payment):
        gateway = WiPaySplitGateway({"account_number": "8001234567"}, http_client=http)
        gateway.configure_split(split_data(payment))

        result = gateway.initialize_payment(payment, "https://app/return", "https://app/cancel")

        assert result.success
        assert result.split_details["provider_amount"] == "92.88"
        assert result.split_details["platform_merchant_id"] == "PLATFORM-001"

        extra = json.loads(http.post.call_args.kwargs["data"]["data"])
        assert extra["splits"] == [
            {"account_number": "PLATFORM-001", "amount": "3.00", "description": "Platform fee"},
            {"account_number": "8001234567", "amount": "92.88", "description": "Provider payment"},
        ]

    def test_split_amounts_add_up(self, payment):
        data = split_data(payment)

        assert data.platform_amount + data.provider_amount + data.processing_fee == data.total_amount

    def test_complete_fetches_split_details(self, http, payment):
        payment.split_details = {"provider_amount": "92.88"}
        http.get.return_value = GatewayResponse(200, {"splits": [{"amount": "92.88"}]})
        gateway = WiPaySplitGateway({"account_number": "8001234567"}, http_client=http)

        result = gateway.complete_payment(
            payment,
            {"order_id": "WP-1", "status": "success", "transaction_id": "TXN-7"},
        )

        assert result.success
        assert result.split_details == {
            "provider_amount": "92.88",
            "completed_splits": {"splits": [{"amount": "92.88"}]},
        }
        assert http.get.call_args.args[0] == "/transactions/TXN-7/splits"

    def test_split_details_lookup_failure(self, http):
        http.get.side_effect = GatewayUnavailableError("down")
        gateway = WiPaySplitGateway({"account_number": "8001234567"}, http_client=http)

        assert gateway.get_split_details("TXN-7") == {}

    def test_validate_provider_credentials(self, http):
        http.get.return_value = GatewayResponse(200, {"valid": True})
        gateway = WiPaySplitGateway(http_client=http)

        assert gateway.validate_provider_credentials({"account_number": "8001234567"}) is True
        assert http.get.call_args.args[0] == "/accounts/8001234567/verify"

    def test_validate_rejects_missing_or_unknown_account(self, http):
        gateway = WiPaySplitGateway(http_client=http)

        assert gateway.validate_provider_credentials({}) is False

        http.get.side_effect = GatewayInvalidRequestError("Unknown account", status_code=404)
        assert gateway.validate_provider_credentials({"account_number": "0000"}) is False

    def test_availability_needs_account_number(self, http):
        assert WiPaySplitGateway({"account_number": "1"}, http_client=http).is_available()
        assert not WiPaySplitGateway({}, http_client=http).is_available()
        assert WiPaySplitGateway(http_client=http).gateway_type == GatewayType.SPLIT
