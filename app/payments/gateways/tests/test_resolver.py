"""
Tests for GatewayResolver.

A provider resolves to split only with an active, verified merchant config
on an active split-capable gateway; everyone else gets escrow.
"""

import pytest

from payments.adapters import GatewayResponse
from payments.exceptions import PaymentProcessingError, UnknownGatewayError
from payments.gateways import GatewayResolver, WiPayEscrowGateway, WiPaySplitGateway
from payments.models import Gateway
from payments.state_machines import GatewayProvider, GatewayType, VerificationStatus
from payments.tests.factories import PaymentFactory, ProviderGatewayConfigFactory


class TestResolve:
    """Strategy for a provider's next payment."""

    def test_escrow_without_merchant_account(self, provider):
        strategy = GatewayResolver.resolve(provider)

        assert isinstance(strategy, WiPayEscrowGateway)
        assert GatewayResolver.determine_gateway_type(provider) == GatewayType.ESCROW

    def test_split_with_verified_account(self, split_provider):
        strategy = GatewayResolver.resolve(split_provider)

        assert isinstance(strategy, WiPaySplitGateway)
        assert strategy.credentials == {"account_number": "8001234567"}
        assert GatewayResolver.determine_gateway_type(split_provider) == GatewayType.SPLIT

    @pytest.mark.parametrize(
        "overrides",
        [
            {"verification_status": VerificationStatus.PENDING, "verified_at": None},
            {"verification_status": VerificationStatus.FAILED},
            {"is_active": False},
        ],
    )
    def test_unusable_config_falls_back_to_escrow(self, provider, overrides):
        ProviderGatewayConfigFactory(provider=provider, **overrides)

        assert isinstance(GatewayResolver.resolve(provider), WiPayEscrowGateway)
        assert GatewayResolver.determine_gateway_type(provider) == GatewayType.ESCROW

    def test_inactive_gateway_falls_back_to_escrow(self, split_provider):
        Gateway.objects.filter(slug=GatewayProvider.WIPAY).update(is_active=False)

        assert GatewayResolver.determine_gateway_type(split_provider) == GatewayType.ESCROW

    def test_gateway_without_split_support(self, split_provider):
        Gateway.objects.filter(slug=GatewayProvider.WIPAY).update(supports_split=False)

        assert isinstance(GatewayResolver.resolve(split_provider), WiPayEscrowGateway)


class TestResolveForPayment:
    """Strategy a payment was charged under."""

    def test_escrow_payment(self, payment):
        assert isinstance(GatewayResolver.resolve_for_payment(payment), WiPayEscrowGateway)

    def test_split_payment(self, split_provider):
        payment = PaymentFactory(
            booking__provider=split_provider,
            gateway_type=GatewayType.SPLIT,
        )

        strategy = GatewayResolver.resolve_for_payment(payment)

        assert isinstance(strategy, WiPaySplitGateway)

    def test_escrow_payment_stays_escrow_after_linking(self, payment):
        ProviderGatewayConfigFactory(provider=payment.provider)

        assert isinstance(GatewayResolver.resolve_for_payment(payment), WiPayEscrowGateway)

    def test_split_payment_without_config(self, provider):
        payment = PaymentFactory(booking__provider=provider, gateway_type=GatewayType.SPLIT)

        with pytest.raises(PaymentProcessingError, match="no merchant configuration"):
            GatewayResolver.resolve_for_payment(payment)

    def test_unknown_gateway_on_payment(self, provider):
        payment = PaymentFactory(booking__provider=provider, gateway="paypal")

        with pytest.raises(UnknownGatewayError):
            GatewayResolver.resolve_for_payment(payment)


class TestResolveByName:
    def test_known_name_is_case_insensitive(self):
        assert isinstance(GatewayResolver.resolve_by_name("WiPay"), WiPayEscrowGateway)

    def test_unknown_name(self):
        with pytest.raises(UnknownGatewayError, match="stripe"):
            GatewayResolver.resolve_by_name("stripe")

    def test_available_gateways(self):
        assert GatewayResolver.get_available_gateways() == [GatewayProvider.WIPAY]
        assert GatewayResolver.get_split_capable_gateways() == [GatewayProvider.WIPAY]


class TestVerifyProviderConfig:
    """Checking a merchant account with WiPay."""

    @pytest.fixture
    def pending_config(self, provider):
        return ProviderGatewayConfigFactory(
            provider=provider,
            verification_status=VerificationStatus.PENDING,
            verified_at=None,
            account_number="8001234567",
        )

    def test_valid_account_switches_provider_to_split(self, mocker, http, pending_config):
        http.get.return_value = GatewayResponse(200, {"valid": True})
        mocker.patch("payments.gateways.wipay.GatewayHttpClient", return_value=http)

        assert GatewayResolver.verify_provider_config(pending_config) is True

        pending_config.refresh_from_db()
        assert pending_config.verification_status == VerificationStatus.VERIFIED
        assert pending_config.verified_at is not None
        assert GatewayResolver.determine_gateway_type(pending_config.provider) == GatewayType.SPLIT

    def test_rejected_account(self, mocker, http, pending_config):
        http.get.return_value = GatewayResponse(200, {"valid": False})
        mocker.patch("payments.gateways.wipay.GatewayHttpClient", return_value=http)

        assert GatewayResolver.verify_provider_config(pending_config) is False

        pending_config.refresh_from_db()
        assert pending_config.verification_status == VerificationStatus.FAILED
        assert pending_config.verification_error == "Gateway rejected the merchant account"
