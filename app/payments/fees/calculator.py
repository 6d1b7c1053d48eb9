"""
Fee calculation for bookings and payments.

FeeCalculator is pure: given the same provider, price, service, booking and
configuration it always returns the same result, and it performs no writes.

Priority chain for calculate_fees():
    1. Booking with stored fees -> returned as-is (source "stored")
    2. Otherwise calculated from tier policy, global gateway rate and the
       service deposit override (source "calculated")

Usage:
    from payments.fees import FeeCalculator

    calculator = FeeCalculator()
    fees = calculator.calculate_fees(provider, Decimal("100.00"), service=service)
    fees.client_pays
    fees.provider_receives

    deposit = calculator.calculate_payment_amount(
        provider, Decimal("100.00"), payment_type=PaymentType.DEPOSIT
    )
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from marketplace.models import DepositType, FeePayer, SubscriptionTier
from payments.config import get_payment_config
from payments.state_machines import PaymentType

from .money import money, percent_of
from .types import DepositQuote, FeeResult, FeeSource, PaymentFeeResult

if TYPE_CHECKING:
    from marketplace.models import Booking, Provider, Service
    from payments.config import PaymentConfig, TierPolicy

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class FeeCalculator:
    """
    Computes platform fees, gateway fees and deposits.

    Args:
        config: Configuration to calculate with. Defaults to the effective
            configuration (settings merged with admin overrides), read on
            each call so admin edits apply without a restart.
    """

    def __init__(self, config: PaymentConfig | None = None):
        self._config = config

    @property
    def config(self) -> PaymentConfig:
        return self._config or get_payment_config()

    # =========================================================================
    # Main API
    # =========================================================================

    def calculate_fees(
        self,
        provider: Provider,
        service_price: Decimal,
        service: Service | None = None,
        booking: Booking | None = None,
    ) -> FeeResult:
        """
        Calculate the fee breakdown for a service price.

        A booking that already carries stored fees short-circuits the
        calculation so its charge never drifts when rates change.
        """
        if booking is not None and booking.has_stored_fees:
            return FeeResult.from_booking(booking)
        return self._calculate(provider, money(service_price), service)

    def calculate_payment_amount(
        self,
        provider: Provider,
        service_price: Decimal,
        payment_type: PaymentType | str = PaymentType.FULL,
        service: Service | None = None,
        booking: Booking | None = None,
    ) -> PaymentFeeResult:
        """Fees for one payment of the given type."""
        fees = self.calculate_fees(provider, service_price, service, booking)
        return self.calculate_payment_from_fees(fees, payment_type, service_price)

    def get_booking_fees(self, booking: Booking) -> FeeResult:
        """Fees for an existing booking, stored fees first."""
        return self.calculate_fees(
            booking.provider,
            booking.service_price,
            booking.service,
            booking,
        )

    def calculate_payment_from_fees(
        self,
        fees: FeeResult,
        payment_type: PaymentType | str,
        service_price: Decimal,
    ) -> PaymentFeeResult:
        """
        Derive the fees of a single payment from a FeeResult.

        Balance payments carry only a gateway fee on the remaining amount.
        Deposit and full payments reuse the platform and gateway split.
        """
        payment_type = PaymentType(payment_type)
        service_price = money(service_price)

        if payment_type == PaymentType.DEPOSIT:
            base_amount = fees.deposit_amount
        elif payment_type == PaymentType.BALANCE:
            base_amount = money(service_price - fees.deposit_amount)
        else:
            base_amount = service_price

        if payment_type == PaymentType.BALANCE:
            platform_fee = ZERO
            processing_base = base_amount
            gateway_fee = percent_of(processing_base, fees.gateway_fee_rate)
            total_fees = gateway_fee
        else:
            platform_fee = fees.platform_fee
            processing_base = fees.processing_base
            gateway_fee = fees.gateway_fee
            total_fees = fees.total_fees

        if fees.fee_payer == FeePayer.CLIENT:
            convenience_fee = money(platform_fee + gateway_fee)
            total_to_charge = money(base_amount + convenience_fee)
            amount_to_gateway = money(base_amount + platform_fee)
            provider_receives = base_amount
        else:
            convenience_fee = ZERO
            total_to_charge = base_amount
            amount_to_gateway = base_amount
            provider_receives = money(base_amount - total_fees)

        return PaymentFeeResult(
            amount=base_amount,
            platform_fee=platform_fee,
            gateway_fee=gateway_fee,
            total_fees=total_fees,
            convenience_fee=convenience_fee,
            total_to_charge=total_to_charge,
            amount_to_gateway=amount_to_gateway,
            processing_base=processing_base,
            payment_type=payment_type.value,
            provider_receives=provider_receives,
            base_fees=fees,
        )

    # =========================================================================
    # Rates
    # =========================================================================

    def get_tier_policy(self, provider: Provider) -> TierPolicy:
        return self.config.fees.policy_for(provider.tier)

    def get_platform_fee_rate(self, provider: Provider) -> Decimal:
        """Tier fee rate, or 0 while a founding fee waiver is active."""
        if provider.has_founding_fee_waiver():
            return Decimal("0")
        return self.get_tier_policy(provider).platform_fee_rate

    def get_gateway_fee_rate(self) -> Decimal:
        return self.config.fees.gateway_fee_rate

    def get_total_fee_rate(self, provider: Provider) -> Decimal:
        return self.get_platform_fee_rate(provider) + self.get_gateway_fee_rate()

    # =========================================================================
    # Deposits
    # =========================================================================

    def get_minimum_deposit_percentage(self, provider: Provider) -> Decimal:
        return self.get_tier_policy(provider).minimum_deposit_percentage

    def get_deposit_percentage(
        self,
        provider: Provider,
        service: Service | None = None,
    ) -> Decimal:
        """
        Effective deposit percentage for a provider and optional service.

        Candidate, first match wins:
            1. Service asks for no deposit and the tier allows it -> 0
            2. Service percentage override
            3. Provider's own deposit percentage, on tiers that allow it
            4. Tier default
        The candidate is then raised to the tier minimum. A "no deposit"
        service on a tier that cannot disable deposits falls through to 3/4.
        Starter and enterprise ignore the provider setting, so they always
        charge the tier default (20% and 0% by default).
        """
        policy = self.get_tier_policy(provider)

        if service is not None and service.deposit_type == DepositType.NONE:
            if policy.can_disable_deposit:
                return Decimal("0")
            logger.debug(
                "Tier cannot disable deposits, using tier default",
                extra={"provider_id": str(provider.id), "tier": provider.tier},
            )

        if (
            service is not None
            and service.deposit_type == DepositType.PERCENTAGE
            and service.deposit_amount is not None
        ):
            candidate = Decimal(service.deposit_amount)
        elif policy.provider_deposit_override and provider.deposit_percentage is not None:
            candidate = Decimal(provider.deposit_percentage)
        else:
            candidate = policy.default_deposit_percentage

        return max(candidate, policy.minimum_deposit_percentage)

    def calculate_deposit_amount(
        self,
        provider: Provider,
        service_price: Decimal,
        service: Service | None = None,
    ) -> DepositQuote:
        percentage = self.get_deposit_percentage(provider, service)
        return DepositQuote(
            amount=percent_of(money(service_price), percentage),
            percentage=percentage,
        )

    # =========================================================================
    # Core calculation
    # =========================================================================

    def _calculate(
        self,
        provider: Provider,
        service_price: Decimal,
        service: Service | None,
    ) -> FeeResult:
        fee_payer = FeePayer(provider.fee_payer or self.config.default_fee_payer)
        platform_fee_rate = self.get_platform_fee_rate(provider)
        gateway_fee_rate = self.get_gateway_fee_rate()

        deposit = self.calculate_deposit_amount(provider, service_price, service)

        # Platform fee is always on the full price, never the deposit
        platform_fee = percent_of(service_price, platform_fee_rate)
        charge_amount = deposit.amount if deposit.requires_deposit else service_price

        # The processor takes its cut on top of the platform's
        processing_base = money(charge_amount + platform_fee)
        gateway_fee = percent_of(processing_base, gateway_fee_rate)
        total_fees = money(platform_fee + gateway_fee)

        if fee_payer == FeePayer.CLIENT:
            convenience_fee = total_fees
            client_pays = money(service_price + convenience_fee)
            provider_receives = service_price
            amount_to_gateway = processing_base
        else:
            convenience_fee = ZERO
            client_pays = service_price
            provider_receives = money(service_price - total_fees)
            amount_to_gateway = charge_amount

        return FeeResult(
            service_price=service_price,
            platform_fee=platform_fee,
            gateway_fee=gateway_fee,
            total_fees=total_fees,
            convenience_fee=convenience_fee,
            platform_fee_rate=platform_fee_rate,
            gateway_fee_rate=gateway_fee_rate,
            total_fee_rate=platform_fee_rate + gateway_fee_rate,
            fee_payer=fee_payer,
            deposit_amount=deposit.amount,
            deposit_percentage=deposit.percentage,
            requires_deposit=deposit.requires_deposit,
            client_pays=client_pays,
            provider_receives=provider_receives,
            amount_to_gateway=amount_to_gateway,
            processing_base=processing_base,
            tier=SubscriptionTier(provider.tier),
            source=FeeSource.CALCULATED,
        )
