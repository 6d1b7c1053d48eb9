"""
Pytest fixtures for gateway strategy tests.

Strategies are built with a mocked GatewayHttpClient so no request leaves
the process; tests set http.post / http.get return values per case.
"""

from unittest.mock import MagicMock

import pytest

from marketplace.tests.factories import BookingFactory, ProviderFactory
from payments.adapters import GatewayHttpClient, GatewayResponse
from payments.tests.factories import PaymentFactory, ProviderGatewayConfigFactory


@pytest.fixture(autouse=True)
def wipay_settings(settings):
    settings.WIPAY_API_KEY = "test-api-key"
    settings.WIPAY_PLATFORM_ACCOUNT_ID = "PLATFORM-001"
    settings.WIPAY_TEST_MODE = True
    settings.WIPAY_COUNTRY_CODE = "JM"
    return settings


@pytest.fixture
def http():
    http = MagicMock(spec=GatewayHttpClient)
    http.post.return_value = GatewayResponse(
        status_code=200,
        data={"url": "https://sandbox.wipayfinancial.com/checkout/abc"},
    )
    http.get.return_value = GatewayResponse(status_code=200, data={})
    return http


@pytest.fixture
def provider(db):
    return ProviderFactory()


@pytest.fixture
def split_provider(db):
    provider = ProviderFactory()
    ProviderGatewayConfigFactory(provider=provider, account_number="8001234567")
    return provider


@pytest.fixture
def payment(provider):
    return PaymentFactory(booking=BookingFactory(provider=provider))
