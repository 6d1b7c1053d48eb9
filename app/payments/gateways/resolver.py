"""
Gateway selection for providers, payments and inbound callbacks.

Decision rule for a provider:
    Active + verified merchant config on a split-capable gateway
        -> split strategy built with that provider's decrypted credentials
    Otherwise
        -> the platform's escrow strategy for the default gateway

Usage:
    from payments.gateways import GatewayResolver

    strategy = GatewayResolver.resolve(provider)
    GatewayResolver.determine_gateway_type(provider)   # GatewayType.ESCROW
    GatewayResolver.resolve_by_name("wipay")           # for callbacks
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService

from payments.config import get_payment_config
from payments.exceptions import PaymentProcessingError, UnknownGatewayError
from payments.gateways.wipay import WiPayEscrowGateway, WiPaySplitGateway
from payments.models import ProviderGatewayConfig
from payments.state_machines import GatewayProvider, GatewayType, VerificationStatus

if TYPE_CHECKING:
    from marketplace.models import Provider
    from payments.gateways.base import GatewayStrategy, SplitGatewayStrategy
    from payments.models import Payment


ESCROW_GATEWAYS: dict[GatewayProvider, type[GatewayStrategy]] = {
    GatewayProvider.WIPAY: WiPayEscrowGateway,
}

SPLIT_GATEWAYS: dict[GatewayProvider, type[SplitGatewayStrategy]] = {
    GatewayProvider.WIPAY: WiPaySplitGateway,
}


class GatewayResolver(BaseService):
    """Select and build gateway strategies."""

    @classmethod
    def resolve(cls, provider: Provider) -> GatewayStrategy:
        """
        Strategy to charge a provider's next payment with.

        Credentials are only decrypted when a split strategy is returned.
        """
        config = cls.get_provider_config(provider, split_only=True)
        if config is not None:
            return cls._build_split(config)
        return cls._build_escrow(get_payment_config().default_gateway)

    @classmethod
    def resolve_for_payment(cls, payment: Payment) -> GatewayStrategy:
        """
        Strategy a payment was initialized with.

        Completion, refund and verification must run against the same
        settlement model the payment was charged under, even if the
        provider linked or unlinked a merchant account since.

        Raises:
            UnknownGatewayError: Payment names a gateway with no strategy
            PaymentProcessingError: Split payment whose merchant config is gone
        """
        provider_name = cls._parse_provider(payment.gateway)

        if payment.gateway_type != GatewayType.SPLIT:
            return cls._build_escrow(provider_name)

        config = (
            ProviderGatewayConfig.objects.select_related("gateway")
            .filter(provider_id=payment.provider_id, gateway__slug=provider_name)
            .first()
        )
        if config is None:
            raise PaymentProcessingError(
                "Split payment has no merchant configuration",
                details={"payment_id": str(payment.id), "gateway": provider_name.value},
            )
        return cls._build_split(config)

    @classmethod
    def resolve_by_name(cls, name: str) -> GatewayStrategy:
        """
        Escrow strategy for a gateway name, for callback routing.

        Raises:
            UnknownGatewayError: Name is not a registered gateway
        """
        return cls._build_escrow(cls._parse_provider(name))

    @classmethod
    def determine_gateway_type(cls, provider: Provider) -> GatewayType:
        """Settlement model resolve() would pick, without building a strategy."""
        has_linked_account = cls._usable_configs(provider).filter(
            gateway__supports_split=True,
            gateway__slug__in=[p.value for p in SPLIT_GATEWAYS],
        ).exists()
        return GatewayType.SPLIT if has_linked_account else GatewayType.ESCROW

    @classmethod
    def get_provider_config(
        cls,
        provider: Provider,
        split_only: bool = False,
    ) -> ProviderGatewayConfig | None:
        """Provider's active, verified gateway config; primary first."""
        configs = cls._usable_configs(provider)
        if split_only:
            configs = configs.filter(
                gateway__supports_split=True,
                gateway__slug__in=[p.value for p in SPLIT_GATEWAYS],
            )
        return configs.order_by("-is_primary", "-created_at").first()

    @classmethod
    def verify_provider_config(cls, config: ProviderGatewayConfig) -> bool:
        """
        Check a provider's merchant account with its gateway and record the result.

        A verified config switches the provider to split payments on their
        next checkout.

        Raises:
            UnknownGatewayError: The config's gateway has no split strategy
        """
        strategy = cls._build_split(config)
        valid = strategy.validate_provider_credentials(config.get_credentials())
        if valid:
            config.mark_verified()
        else:
            config.mark_failed("Gateway rejected the merchant account")

        cls.get_logger().info(
            "Provider gateway config verified" if valid else "Provider gateway config rejected",
            extra={"config_id": str(config.id), "provider_id": str(config.provider_id)},
        )
        return valid

    @staticmethod
    def get_available_gateways() -> list[GatewayProvider]:
        return list(ESCROW_GATEWAYS)

    @staticmethod
    def get_split_capable_gateways() -> list[GatewayProvider]:
        return [provider for provider in SPLIT_GATEWAYS if provider.supports_split]

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _usable_configs(provider: Provider):
        return ProviderGatewayConfig.objects.select_related("gateway").filter(
            provider=provider,
            is_active=True,
            verification_status=VerificationStatus.VERIFIED,
            gateway__is_active=True,
        )

    @staticmethod
    def _parse_provider(name: str) -> GatewayProvider:
        try:
            return GatewayProvider(str(name).lower())
        except ValueError:
            raise UnknownGatewayError(
                f"Unknown payment gateway: {name}",
                details={"gateway": name},
            )

    @classmethod
    def _build_escrow(cls, provider: GatewayProvider) -> GatewayStrategy:
        try:
            strategy_class = ESCROW_GATEWAYS[provider]
        except KeyError:
            raise UnknownGatewayError(
                f"No escrow strategy for gateway: {provider}",
                details={"gateway": str(provider)},
            )
        return strategy_class()

    @classmethod
    def _build_split(cls, config: ProviderGatewayConfig) -> SplitGatewayStrategy:
        provider = cls._parse_provider(config.gateway.slug)
        try:
            strategy_class = SPLIT_GATEWAYS[provider]
        except KeyError:
            raise UnknownGatewayError(
                f"Gateway {provider.value} does not support split payments",
                details={"gateway": provider.value},
            )
        cls.get_logger().debug(
            "Resolved split gateway",
            extra={"provider_id": str(config.provider_id), "gateway": provider.value},
        )
        return strategy_class(
            credentials=config.get_credentials(),
            merchant_account_id=config.merchant_account_id,
        )
