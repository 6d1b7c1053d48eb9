"""
Pytest fixtures for payment tests.

Fixtures provide providers, bookings and payments in the states the
payment and payout flows start from, plus fakes for the outbound gateway
and disbursement calls.

Usage:
    def test_refund(completed_payment, wipay_http):
        wipay_http.post.return_value = GatewayResponse(200, {"status": "success"})
        result = PaymentManager.refund(completed_payment)
        assert result.success
"""

from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from marketplace.models import FeePayer, SubscriptionTier
from marketplace.tests.factories import BookingFactory, ProviderFactory
from payments.adapters import DisbursementResult, GatewayHttpClient, GatewayResponse
from payments.config import get_default_config
from payments.ledger import LedgerService
from payments.state_machines import PaymentStatus
from payments.tests.factories import (
    PaymentFactory,
    ProviderGatewayConfigFactory,
    fund_provider,
)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def payment_config():
    """Settings configuration without admin overrides."""
    return get_default_config()


@pytest.fixture
def no_deposit_config(payment_config):
    """Starter tier at 3% platform / 4% gateway with deposits switched off."""
    fees = payment_config.fees.with_tier(
        SubscriptionTier.STARTER,
        default_deposit_percentage=Decimal("0"),
        minimum_deposit_percentage=Decimal("0"),
    )
    return replace(payment_config, fees=fees)


@pytest.fixture
def low_minimum_config(payment_config):
    """Payout minimum lowered to 100.00."""
    return replace(
        payment_config,
        payouts=replace(payment_config.payouts, minimum_amount=Decimal("100.00")),
    )


# =============================================================================
# Marketplace Fixtures
# =============================================================================


@pytest.fixture
def provider(db):
    """Starter provider paying its own fees, escrow mode."""
    return ProviderFactory()


@pytest.fixture
def split_provider(db):
    """Provider with a verified WiPay merchant account."""
    provider = ProviderFactory()
    ProviderGatewayConfigFactory(provider=provider, account_number="8001234567")
    return provider


@pytest.fixture
def booking(provider):
    """100.00 booking with no deposit override."""
    return BookingFactory(provider=provider)


@pytest.fixture
def client_pays_booking(db):
    """100.00 booking whose provider passes fees to the client."""
    provider = ProviderFactory(fee_payer=FeePayer.CLIENT)
    return BookingFactory(provider=provider)


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def processing_payment(booking):
    """Escrow payment handed off to WiPay, awaiting its callback."""
    return PaymentFactory(
        booking=booking,
        status=PaymentStatus.PROCESSING,
        gateway_order_id="WP-PROCESSING01",
    )


@pytest.fixture
def completed_payment(booking):
    """Captured escrow payment, provider ledger credited."""
    payment = PaymentFactory(
        booking=booking,
        status=PaymentStatus.COMPLETED,
        gateway_order_id="WP-COMPLETED001",
        gateway_transaction_id="TXN-COMPLETED-1",
    )
    LedgerService.credit_provider(payment)
    return payment


@pytest.fixture
def funded_provider(provider):
    """Provider with 1500.00 available in escrow."""
    fund_provider(provider, "1500.00")
    return provider


# =============================================================================
# Gateway Fakes
# =============================================================================


@pytest.fixture
def wipay_http(mocker):
    """
    Replace the HTTP client every WiPay strategy builds.

    Tests set wipay_http.post / wipay_http.get return values or side effects.
    """
    http = MagicMock(spec=GatewayHttpClient)
    http.post.return_value = GatewayResponse(
        status_code=200,
        data={"url": "https://sandbox.wipayfinancial.com/checkout/abc"},
    )
    http.get.return_value = GatewayResponse(status_code=200, data={})
    mocker.patch("payments.gateways.wipay.GatewayHttpClient", return_value=http)
    return http


@pytest.fixture
def disbursement_adapter():
    """Disbursement adapter that accepts every payout."""
    adapter = MagicMock()
    adapter.is_available.return_value = True
    adapter.disburse.return_value = DisbursementResult(
        success=True,
        disbursement_id="DSB-0001",
        response={"status": "success", "disbursement_id": "DSB-0001"},
    )
    return adapter
