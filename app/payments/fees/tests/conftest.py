"""
Pytest fixtures for fee calculation tests.

Calculators are built with an explicit PaymentConfig so the tests never
read admin overrides or the cache. Providers and services are unsaved
factory builds unless a test needs the database.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from marketplace.models import FeePayer, SubscriptionTier
from marketplace.tests.factories import ProviderFactory
from payments.config import get_default_config
from payments.fees import FeeCalculator


@pytest.fixture
def payment_config():
    """Settings defaults: 4% gateway, starter 3% with a 20% deposit."""
    return get_default_config()


@pytest.fixture
def no_deposit_config(payment_config):
    """Starter tier without a deposit requirement."""
    fees = payment_config.fees.with_tier(
        SubscriptionTier.STARTER,
        default_deposit_percentage=Decimal("0"),
        minimum_deposit_percentage=Decimal("0"),
    )
    return replace(payment_config, fees=fees)


@pytest.fixture
def calculator(payment_config):
    return FeeCalculator(payment_config)


@pytest.fixture
def no_deposit_calculator(no_deposit_config):
    return FeeCalculator(no_deposit_config)


@pytest.fixture
def starter_provider():
    return ProviderFactory.build(tier=SubscriptionTier.STARTER, fee_payer=FeePayer.PROVIDER)


@pytest.fixture
def client_paying_provider():
    return ProviderFactory.build(tier=SubscriptionTier.STARTER, fee_payer=FeePayer.CLIENT)
