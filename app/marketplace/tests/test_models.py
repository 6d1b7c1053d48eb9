"""
Tests for marketplace models.

Covers provider fee waiver and banking predicates, and the booking fee
snapshot used by FeeCalculator.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from marketplace.models import FeePayer, SubscriptionTier
from marketplace.tests.factories import BookingFactory, ProviderFactory
from payments.fees import FeeCalculator


class TestProviderModel:
    """Tests for Provider model."""

    def test_defaults(self, db):
        """New providers start on the starter tier paying their own fees."""
        provider = ProviderFactory()

        assert provider.tier == SubscriptionTier.STARTER
        assert provider.fee_payer == FeePayer.PROVIDER
        assert provider.deposit_percentage is None

    def test_fee_waiver_active_in_future(self, db):
        provider = ProviderFactory(
            founding_fee_waiver_until=timezone.now() + timedelta(days=30)
        )
        assert provider.has_founding_fee_waiver() is True

    def test_fee_waiver_expired(self, db):
        provider = ProviderFactory(
            founding_fee_waiver_until=timezone.now() - timedelta(days=1)
        )
        assert provider.has_founding_fee_waiver() is False

    def test_no_fee_waiver(self, db):
        assert ProviderFactory().has_founding_fee_waiver() is False

    def test_has_banking_info(self, db):
        assert ProviderFactory().has_banking_info is True

    def test_missing_bank_account_number(self, db):
        provider = ProviderFactory(bank_account_number="")
        assert provider.has_banking_info is False


class TestBookingModel:
    """Tests for Booking fee snapshot."""

    def test_new_booking_has_no_stored_fees(self, db):
        booking = BookingFactory()
        assert booking.has_stored_fees is False

    def test_store_fees_persists_snapshot(self, db):
        booking = BookingFactory(service_price=Decimal("100.00"))
        fees = FeeCalculator().calculate_fees(booking.provider, booking.service_price)

        booking.store_fees(fees)
        booking.refresh_from_db()

        assert booking.has_stored_fees is True
        assert booking.platform_fee == fees.platform_fee
        assert booking.gateway_fee == fees.gateway_fee
        assert booking.fee_payer == fees.fee_payer
        assert booking.deposit_amount == fees.deposit_amount

    @pytest.mark.parametrize("missing", ["platform_fee", "gateway_fee", "fee_payer"])
    def test_partial_snapshot_is_not_stored(self, db, missing):
        """All three of platform fee, gateway fee and fee payer are required."""
        booking = BookingFactory(
            platform_fee=Decimal("3.00"),
            gateway_fee=Decimal("4.12"),
            fee_payer=FeePayer.PROVIDER,
        )
        setattr(booking, missing, None)

        assert booking.has_stored_fees is False
