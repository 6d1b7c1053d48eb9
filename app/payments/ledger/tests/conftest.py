"""
Pytest fixtures for ledger tests.

Sections:
    - Provider Fixtures: Providers with empty and funded ledgers
    - Payment Fixtures: Completed escrow payments to credit
"""

from decimal import Decimal

import pytest

from marketplace.tests.factories import ProviderFactory
from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory, fund_provider


# ==========================================================================
# Provider Fixtures
# ==========================================================================


@pytest.fixture
def provider(db):
    """Provider with no ledger entries yet."""
    return ProviderFactory()


@pytest.fixture
def funded_provider(provider):
    """Provider whose balance is 1000.00 from a single credit."""
    fund_provider(provider, "1000.00")
    return provider


# ==========================================================================
# Payment Fixtures
# ==========================================================================


@pytest.fixture
def escrow_payment(provider):
    """Completed escrow payment of 100.00; provider's share is 92.88."""
    return PaymentFactory(
        booking__provider=provider,
        status=PaymentStatus.COMPLETED,
        provider_amount=Decimal("92.88"),
        gateway_transaction_id="TXN-1",
    )
