"""
Value objects produced by FeeCalculator.

Types:
    FeeSource: Where a FeeResult came from (stored on a booking or calculated)
    DepositQuote: Deposit amount and percentage for a price
    FeeResult: Complete fee breakdown for a service price
    PaymentFeeResult: Fees for one payment (full, deposit or balance)

All amounts are Decimals rounded to 2 places. Results are frozen; a booking's
charge is fixed by storing its FeeResult (Booking.store_fees).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import models

from marketplace.models import FeePayer, SubscriptionTier

from .money import money, rate_between

if TYPE_CHECKING:
    from typing import Any

    from marketplace.models import Booking


class FeeSource(models.TextChoices):
    STORED = "stored", "Stored on booking"
    CALCULATED = "calculated", "Calculated"


@dataclass(frozen=True)
class DepositQuote:
    """Deposit required for a price."""

    amount: Decimal
    percentage: Decimal

    @property
    def requires_deposit(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True)
class FeeResult:
    """
    Fee breakdown for a service price.

    Invariants:
        total_fees == platform_fee + gateway_fee
        fee_payer client:   client_pays - convenience_fee == service_price
        fee_payer provider: provider_receives + total_fees == service_price

    Attributes:
        service_price: Full price of the service
        platform_fee: Platform fee, always on the full service price
        gateway_fee: Processor fee on (processing_base)
        total_fees: platform_fee + gateway_fee
        convenience_fee: Surcharge added for the client (0 when the provider pays)
        platform_fee_rate / gateway_fee_rate / total_fee_rate: Percentages
        fee_payer: Who bears the fees
        deposit_amount / deposit_percentage / requires_deposit: Deposit terms
        client_pays: Total the client pays for the service
        provider_receives: Amount the provider keeps
        amount_to_gateway: Amount sent to the processor for the first charge
        processing_base: Charge amount plus platform fee
        tier: Provider tier used for the rates
        source: stored or calculated
    """

    service_price: Decimal
    platform_fee: Decimal
    gateway_fee: Decimal
    total_fees: Decimal
    convenience_fee: Decimal
    platform_fee_rate: Decimal
    gateway_fee_rate: Decimal
    total_fee_rate: Decimal
    fee_payer: FeePayer
    deposit_amount: Decimal
    deposit_percentage: Decimal
    requires_deposit: bool
    client_pays: Decimal
    provider_receives: Decimal
    amount_to_gateway: Decimal
    processing_base: Decimal
    tier: SubscriptionTier
    source: FeeSource = FeeSource.CALCULATED

    @property
    def charge_amount(self) -> Decimal:
        """Amount due now: the deposit if one is required, else the full price."""
        return self.deposit_amount if self.requires_deposit else self.service_price

    @classmethod
    def from_booking(cls, booking: Booking) -> FeeResult:
        """
        Rebuild a result from the fees stored on a booking.

        No current rates are consulted; rates are derived back from the
        stored amounts for display.
        """
        service_price = money(booking.service_price)
        platform_fee = money(booking.platform_fee or 0)
        gateway_fee = money(booking.gateway_fee or 0)
        convenience_fee = money(booking.convenience_fee or 0)
        fee_payer = FeePayer(booking.fee_payer or FeePayer.PROVIDER)
        deposit_amount = money(booking.deposit_amount or 0)

        total_fees = money(platform_fee + gateway_fee)
        requires_deposit = deposit_amount > 0
        charge_amount = deposit_amount if requires_deposit else service_price
        processing_base = money(charge_amount + platform_fee)

        if fee_payer == FeePayer.CLIENT:
            client_pays = money(service_price + convenience_fee)
            provider_receives = service_price
            amount_to_gateway = processing_base
        else:
            client_pays = service_price
            provider_receives = money(service_price - total_fees)
            amount_to_gateway = charge_amount

        platform_fee_rate = rate_between(platform_fee, service_price)
        gateway_fee_rate = rate_between(gateway_fee, processing_base)

        return cls(
            service_price=service_price,
            platform_fee=platform_fee,
            gateway_fee=gateway_fee,
            total_fees=total_fees,
            convenience_fee=convenience_fee,
            platform_fee_rate=platform_fee_rate,
            gateway_fee_rate=gateway_fee_rate,
            total_fee_rate=money(platform_fee_rate + gateway_fee_rate),
            fee_payer=fee_payer,
            deposit_amount=deposit_amount,
            deposit_percentage=rate_between(deposit_amount, service_price),
            requires_deposit=requires_deposit,
            client_pays=client_pays,
            provider_receives=provider_receives,
            amount_to_gateway=amount_to_gateway,
            processing_base=processing_base,
            tier=SubscriptionTier(booking.provider.tier),
            source=FeeSource.STORED,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
            elif isinstance(value, models.TextChoices):
                data[key] = value.value
        return data


@dataclass(frozen=True)
class PaymentFeeResult:
    """
    Fees for a single payment against a FeeResult.

    Balance payments carry no platform fee; it was collected with the
    deposit. Deposit and full payments reuse the base fee split.

    Attributes:
        amount: Base amount of this payment
        platform_fee / gateway_fee / total_fees: Fees for this payment
        convenience_fee: Client surcharge (client fee payer only)
        total_to_charge: What the client is charged
        amount_to_gateway: What is sent to the processor
        processing_base: Base the gateway fee was computed on
        payment_type: full, deposit or balance
        provider_receives: Provider's share of this payment
        base_fees: The FeeResult this was derived from
    """

    amount: Decimal
    platform_fee: Decimal
    gateway_fee: Decimal
    total_fees: Decimal
    convenience_fee: Decimal
    total_to_charge: Decimal
    amount_to_gateway: Decimal
    processing_base: Decimal
    payment_type: str
    provider_receives: Decimal
    base_fees: FeeResult

    @property
    def platform_amount(self) -> Decimal:
        """Platform's share of this payment (what the provider does not receive)."""
        return money(self.total_to_charge - self.provider_receives)

    def to_dict(self) -> dict[str, Any]:
        """Serializable snapshot without the nested base fees."""
        return {
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "gateway_fee": str(self.gateway_fee),
            "total_fees": str(self.total_fees),
            "convenience_fee": str(self.convenience_fee),
            "total_to_charge": str(self.total_to_charge),
            "amount_to_gateway": str(self.amount_to_gateway),
            "processing_base": str(self.processing_base),
            "payment_type": str(self.payment_type),
            "provider_receives": str(self.provider_receives),
        }
