"""
Marketplace models consumed by the payment engine.

These are the external collaborators of the settlement engine, modelled
with only the fields fees, gateways, ledger and payouts read:

- Provider: business with a subscription tier, fee payer and payout details
- Service: bookable service with an optional deposit override
- Booking: client appointment carrying the service price and, once the
  booking is confirmed, a snapshot of the fees charged

Usage:
    from marketplace.models import Booking, Provider, SubscriptionTier

    provider = Provider.objects.create(
        user=user,
        business_name="Studio Nine",
        tier=SubscriptionTier.PREMIUM,
    )

    booking.store_fees(FeeCalculator().calculate_fees(provider, booking.service_price))
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from payments.fees import FeeResult


# =============================================================================
# Choices
# =============================================================================


class SubscriptionTier(models.TextChoices):
    """
    Provider subscription tiers, cheapest first.

    The platform fee rate runs inversely to the tier: STARTER pays the
    highest rate, ENTERPRISE the lowest. Rates and deposit rules per tier
    come from payments.config.FeeSchedule.
    """

    STARTER = "starter", "Starter"
    PREMIUM = "premium", "Premium"
    ENTERPRISE = "enterprise", "Enterprise"


class FeePayer(models.TextChoices):
    """Who absorbs platform and gateway fees on a booking."""

    CLIENT = "client", "Client"
    PROVIDER = "provider", "Provider"


class DepositType(models.TextChoices):
    """Service-level deposit override."""

    NONE = "none", "No deposit"
    PERCENTAGE = "percentage", "Percentage of price"


class PayoutMethod(models.TextChoices):
    """How payouts reach the provider."""

    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    WIPAY_ACCOUNT = "wipay_account", "WiPay Account"


# =============================================================================
# Provider
# =============================================================================


class Provider(UUIDPrimaryKeyMixin, BaseModel):
    """
    A salon, spa or studio selling services on the marketplace.

    Fields:
        user: Owning account
        business_name: Display name, used in payout descriptions
        tier: Subscription tier driving the platform fee rate
        fee_payer: Whether clients or the provider absorb fees
        deposit_percentage: Provider-wide deposit override, honoured on tiers that allow it
            (never below the tier floor)
        founding_fee_waiver_until: Platform fee is waived until this moment
        payout_method: Preferred payout rail
        bank_*: Banking details for bank disbursements
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="provider_profile",
        help_text="Account that owns this provider",
    )

    business_name = models.CharField(
        max_length=255,
        help_text="Business display name",
    )

    tier = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        default=SubscriptionTier.STARTER,
        db_index=True,
        help_text="Subscription tier",
    )

    fee_payer = models.CharField(
        max_length=20,
        choices=FeePayer.choices,
        default=FeePayer.PROVIDER,
        help_text="Who pays platform and gateway fees",
    )

    deposit_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text="Default deposit percentage for this provider's services",
    )

    founding_fee_waiver_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Platform fee is waived until this date",
    )

    payout_method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        default=PayoutMethod.BANK_TRANSFER,
        help_text="Preferred payout method",
    )

    # ==========================================================================
    # Banking details
    # ==========================================================================

    bank_name = models.CharField(max_length=255, blank=True)
    bank_account_number = models.CharField(max_length=50, blank=True)
    bank_account_holder_name = models.CharField(max_length=255, blank=True)
    bank_branch_code = models.CharField(max_length=20, blank=True)
    bank_account_type = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["business_name"]
        verbose_name = "Provider"
        verbose_name_plural = "Providers"

    def __str__(self) -> str:
        return self.business_name

    def has_founding_fee_waiver(self) -> bool:
        """Check whether the platform fee waiver is currently active."""
        return (
            self.founding_fee_waiver_until is not None
            and self.founding_fee_waiver_until > timezone.now()
        )

    @property
    def has_banking_info(self) -> bool:
        """Check if enough bank details are on file for a bank disbursement."""
        return bool(
            self.bank_name and self.bank_account_number and self.bank_account_holder_name
        )


# =============================================================================
# Service
# =============================================================================


class Service(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bookable service.

    deposit_type left empty means the service follows the provider and
    tier defaults. NONE asks for no deposit, which only tiers allowed to
    disable deposits honour.
    """

    provider = models.ForeignKey(
        Provider,
        on_delete=models.CASCADE,
        related_name="services",
    )
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)

    deposit_type = models.CharField(
        max_length=20,
        choices=DepositType.choices,
        null=True,
        blank=True,
        help_text="Deposit override; empty uses the provider default",
    )
    deposit_amount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text="Deposit percentage when deposit_type is percentage",
    )

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["provider", "name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.provider})"


# =============================================================================
# Booking
# =============================================================================


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client's booking of a provider's service.

    The fee fields are a snapshot written by store_fees() when the booking
    is confirmed. Once present, FeeCalculator returns them verbatim so a
    booking's charge never drifts when platform rates change.
    """

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    provider = models.ForeignKey(
        Provider,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    service = models.ForeignKey(
        Service,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )

    service_price = models.DecimalField(max_digits=12, decimal_places=2)

    # ==========================================================================
    # Stored fee snapshot
    # ==========================================================================

    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    gateway_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    convenience_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    fee_payer = models.CharField(
        max_length=20,
        choices=FeePayer.choices,
        null=True,
        blank=True,
    )
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.service_price})"

    @property
    def has_stored_fees(self) -> bool:
        """True once platform fee, gateway fee and fee payer are all recorded."""
        return (
            self.platform_fee is not None
            and self.gateway_fee is not None
            and self.fee_payer is not None
        )

    def store_fees(self, fees: FeeResult) -> None:
        """
        Snapshot a fee calculation onto this booking.

        Args:
            fees: Result of FeeCalculator.calculate_fees for this booking
        """
        self.platform_fee = fees.platform_fee
        self.gateway_fee = fees.gateway_fee
        self.convenience_fee = fees.convenience_fee
        self.fee_payer = fees.fee_payer
        self.deposit_amount = fees.deposit_amount
        self.save(
            update_fields=[
                "platform_fee",
                "gateway_fee",
                "convenience_fee",
                "fee_payer",
                "deposit_amount",
                "updated_at",
            ]
        )
