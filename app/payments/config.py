"""
Typed payment configuration registry.

Fee rates, deposit rules and payout cadence are held in frozen dataclasses
keyed by enums instead of a free-form string map. The serialization layer
(from_dict/to_dict) is what the PAYMENT_CONFIG setting and the admin-edited
PaymentSettings overrides go through, so a misspelled key or an unmapped
tier fails when the configuration is loaded, not during a checkout.

Sources, lowest priority first:
    1. settings.PAYMENT_CONFIG (environment driven, see config/settings.py)
    2. PaymentSettings.overrides (single-row model edited in the admin)

Usage:
    from payments.config import get_payment_config

    config = get_payment_config()
    policy = config.fees.policy_for(provider.tier)
    policy.platform_fee_rate        # Decimal("3.0")
    config.payouts.minimum_amount   # Decimal("1000.00")

    # After editing overrides
    invalidate_payment_config()
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache

from marketplace.models import FeePayer, SubscriptionTier
from payments.exceptions import PaymentConfigError
from payments.state_machines import GatewayProvider, PayoutFrequency

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

logger = logging.getLogger(__name__)

CACHE_KEY = "payments:config:v1"
CACHE_TIMEOUT = 300

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise PaymentConfigError(
            f"{name} must be a number, got {value!r}",
            details={"key": name},
        )


def _percentage(value: Any, name: str) -> Decimal:
    result = _decimal(value, name)
    if not Decimal("0") <= result <= Decimal("100"):
        raise PaymentConfigError(
            f"{name} must be between 0 and 100, got {result}",
            details={"key": name},
        )
    return result


def _reject_unknown(data: Mapping[str, Any], allowed: set[str], section: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise PaymentConfigError(
            f"Unknown {section} keys: {', '.join(sorted(unknown))}",
            details={"section": section, "keys": sorted(unknown)},
        )


# =============================================================================
# Fee schedule
# =============================================================================


@dataclass(frozen=True)
class TierPolicy:
    """
    Fee and deposit rules for one subscription tier.

    Attributes:
        platform_fee_rate: Platform fee as a percentage of the service price
        default_deposit_percentage: Deposit used when nothing overrides it
        minimum_deposit_percentage: Floor no provider or service setting can go below
        can_disable_deposit: Whether a service may ask for no deposit at all
        provider_deposit_override: Whether the provider's own deposit percentage
            replaces the tier default
    """

    platform_fee_rate: Decimal
    default_deposit_percentage: Decimal
    minimum_deposit_percentage: Decimal
    can_disable_deposit: bool = False
    provider_deposit_override: bool = False

    def __post_init__(self) -> None:
        """Validate percentages after initialization."""
        for name in (
            "platform_fee_rate",
            "default_deposit_percentage",
            "minimum_deposit_percentage",
        ):
            _percentage(getattr(self, name), name)
        if self.default_deposit_percentage < self.minimum_deposit_percentage:
            raise PaymentConfigError(
                "default_deposit_percentage cannot be below minimum_deposit_percentage",
                details={
                    "default": str(self.default_deposit_percentage),
                    "minimum": str(self.minimum_deposit_percentage),
                },
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TierPolicy:
        _reject_unknown(
            data,
            {
                "platform_fee_rate",
                "default_deposit_percentage",
                "minimum_deposit_percentage",
                "can_disable_deposit",
                "provider_deposit_override",
            },
            "tier",
        )
        try:
            return cls(
                platform_fee_rate=_percentage(data["platform_fee_rate"], "platform_fee_rate"),
                default_deposit_percentage=_percentage(
                    data["default_deposit_percentage"], "default_deposit_percentage"
                ),
                minimum_deposit_percentage=_percentage(
                    data["minimum_deposit_percentage"], "minimum_deposit_percentage"
                ),
                can_disable_deposit=bool(data.get("can_disable_deposit", False)),
                provider_deposit_override=bool(data.get("provider_deposit_override", False)),
            )
        except KeyError as e:
            raise PaymentConfigError(
                f"Tier policy is missing {e.args[0]}",
                details={"key": e.args[0]},
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform_fee_rate": str(self.platform_fee_rate),
            "default_deposit_percentage": str(self.default_deposit_percentage),
            "minimum_deposit_percentage": str(self.minimum_deposit_percentage),
            "can_disable_deposit": self.can_disable_deposit,
            "provider_deposit_override": self.provider_deposit_override,
        }


@dataclass(frozen=True)
class FeeSchedule:
    """
    Gateway fee rate plus one TierPolicy per subscription tier.

    Every SubscriptionTier member must be mapped; a missing tier is a
    configuration error raised at construction.
    """

    gateway_fee_rate: Decimal
    tiers: Mapping[SubscriptionTier, TierPolicy]

    def __post_init__(self) -> None:
        _percentage(self.gateway_fee_rate, "gateway_fee_rate")
        missing = [tier.value for tier in SubscriptionTier if tier not in self.tiers]
        if missing:
            raise PaymentConfigError(
                f"Fee schedule has no policy for tiers: {', '.join(missing)}",
                details={"missing_tiers": missing},
            )

    def policy_for(self, tier: SubscriptionTier | str) -> TierPolicy:
        """Return the policy for a tier."""
        return self.tiers[SubscriptionTier(tier)]

    def with_tier(self, tier: SubscriptionTier, **changes: Any) -> FeeSchedule:
        """Return a copy with one tier's policy changed."""
        current = self.policy_for(tier).to_dict()
        current.update({k: str(v) if isinstance(v, Decimal) else v for k, v in changes.items()})
        tiers = dict(self.tiers)
        tiers[tier] = TierPolicy.from_dict(current)
        return FeeSchedule(gateway_fee_rate=self.gateway_fee_rate, tiers=tiers)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FeeSchedule:
        tiers_data = data.get("tiers") or {}
        tiers: dict[SubscriptionTier, TierPolicy] = {}
        for key, value in tiers_data.items():
            try:
                tier = SubscriptionTier(key)
            except ValueError:
                raise PaymentConfigError(
                    f"Unknown subscription tier: {key}",
                    details={"tier": key},
                )
            tiers[tier] = TierPolicy.from_dict(value)
        return cls(
            gateway_fee_rate=_percentage(data.get("gateway_fee_rate"), "gateway_fee_rate"),
            tiers=tiers,
        )


# =============================================================================
# Payout policy
# =============================================================================


@dataclass(frozen=True)
class PayoutPolicy:
    """
    When and how much the payout scheduler pays out.

    Attributes:
        frequency: Payout window cadence
        day_of_week: Weekday used by weekly and biweekly cadences
        minimum_amount: Available balance required before scheduling a payout
        hold_period_days: Age after which outstanding holds are auto-released
        auto_release_holds: Whether the hold sweep releases expired holds
    """

    frequency: PayoutFrequency = PayoutFrequency.WEEKLY
    day_of_week: str = "friday"
    minimum_amount: Decimal = Decimal("1000.00")
    hold_period_days: int = 7
    auto_release_holds: bool = True

    def __post_init__(self) -> None:
        if self.day_of_week not in WEEKDAYS:
            raise PaymentConfigError(
                f"Invalid payout day_of_week: {self.day_of_week}",
                details={"day_of_week": self.day_of_week},
            )
        if self.minimum_amount < 0:
            raise PaymentConfigError("Payout minimum_amount cannot be negative")
        if self.hold_period_days < 0:
            raise PaymentConfigError("hold_period_days cannot be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PayoutPolicy:
        _reject_unknown(
            data,
            {
                "frequency",
                "day_of_week",
                "minimum_amount",
                "hold_period_days",
                "auto_release_holds",
            },
            "payouts",
        )
        try:
            frequency = PayoutFrequency(data.get("frequency", PayoutFrequency.WEEKLY))
        except ValueError:
            raise PaymentConfigError(
                f"Unknown payout frequency: {data.get('frequency')}",
                details={"frequency": data.get("frequency")},
            )
        return cls(
            frequency=frequency,
            day_of_week=str(data.get("day_of_week", "friday")).lower(),
            minimum_amount=_decimal(data.get("minimum_amount", "1000.00"), "minimum_amount"),
            hold_period_days=int(data.get("hold_period_days", 7)),
            auto_release_holds=bool(data.get("auto_release_holds", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": self.frequency.value,
            "day_of_week": self.day_of_week,
            "minimum_amount": str(self.minimum_amount),
            "hold_period_days": self.hold_period_days,
            "auto_release_holds": self.auto_release_holds,
        }


# =============================================================================
# Top level
# =============================================================================


@dataclass(frozen=True)
class PaymentConfig:
    """Complete payment configuration."""

    fees: FeeSchedule
    payouts: PayoutPolicy = field(default_factory=PayoutPolicy)
    default_currency: str = "JMD"
    supported_currencies: tuple[str, ...] = ("JMD", "USD")
    default_gateway: GatewayProvider = GatewayProvider.WIPAY
    default_fee_payer: FeePayer = FeePayer.PROVIDER

    def __post_init__(self) -> None:
        if self.default_currency not in self.supported_currencies:
            raise PaymentConfigError(
                f"Default currency {self.default_currency} is not supported",
                details={"supported": list(self.supported_currencies)},
            )

    TOP_LEVEL_KEYS = frozenset(
        {
            "gateway_fee_rate",
            "tiers",
            "payouts",
            "default_currency",
            "supported_currencies",
            "default_gateway",
            "default_fee_payer",
        }
    )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PaymentConfig:
        """
        Build a config from its serialized form.

        Raises:
            PaymentConfigError: On unknown keys, unmapped tiers or bad values
        """
        _reject_unknown(data, set(cls.TOP_LEVEL_KEYS), "payment config")
        try:
            default_gateway = GatewayProvider(data.get("default_gateway", GatewayProvider.WIPAY))
        except ValueError:
            raise PaymentConfigError(
                f"Unknown default gateway: {data.get('default_gateway')}",
                details={"default_gateway": data.get("default_gateway")},
            )
        try:
            default_fee_payer = FeePayer(data.get("default_fee_payer", FeePayer.PROVIDER))
        except ValueError:
            raise PaymentConfigError(
                f"Unknown default fee payer: {data.get('default_fee_payer')}",
            )
        return cls(
            fees=FeeSchedule.from_dict(data),
            payouts=PayoutPolicy.from_dict(data.get("payouts") or {}),
            default_currency=str(data.get("default_currency", "JMD")).upper(),
            supported_currencies=tuple(
                str(c).upper() for c in data.get("supported_currencies", ("JMD", "USD"))
            ),
            default_gateway=default_gateway,
            default_fee_payer=default_fee_payer,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "gateway_fee_rate": str(self.fees.gateway_fee_rate),
            "tiers": {tier.value: policy.to_dict() for tier, policy in self.fees.tiers.items()},
            "payouts": self.payouts.to_dict(),
            "default_currency": self.default_currency,
            "supported_currencies": list(self.supported_currencies),
            "default_gateway": self.default_gateway.value,
            "default_fee_payer": self.default_fee_payer.value,
        }

    def with_overrides(self, overrides: Mapping[str, Any]) -> PaymentConfig:
        """Deep-merge overrides over this config and re-validate."""
        return PaymentConfig.from_dict(merge_config(self.to_dict(), overrides))


def merge_config(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge override values into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


# =============================================================================
# Loading
# =============================================================================


def get_default_config() -> PaymentConfig:
    """Config from settings.PAYMENT_CONFIG only, without admin overrides."""
    return PaymentConfig.from_dict(settings.PAYMENT_CONFIG)


def get_payment_config() -> PaymentConfig:
    """
    Return the effective payment configuration.

    Settings defaults merged with PaymentSettings overrides, cached in the
    Django cache until invalidate_payment_config() is called.
    """
    cached = cache.get(CACHE_KEY)
    if cached is not None:
        return PaymentConfig.from_dict(cached)

    from payments.models import PaymentSettings

    config = get_default_config()
    overrides = PaymentSettings.get_overrides()
    if overrides:
        config = config.with_overrides(overrides)

    cache.set(CACHE_KEY, config.to_dict(), CACHE_TIMEOUT)
    return config


def invalidate_payment_config() -> None:
    """Drop the cached configuration."""
    cache.delete(CACHE_KEY)
    logger.info("Payment configuration cache invalidated")


__all__ = [
    "FeeSchedule",
    "PaymentConfig",
    "PayoutPolicy",
    "TierPolicy",
    "get_default_config",
    "get_payment_config",
    "invalidate_payment_config",
    "merge_config",
]
