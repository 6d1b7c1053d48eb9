"""
Gateway registry and provider merchant account configuration.

- Gateway: A payment processor the platform can route payments through
- ProviderGatewayConfig: A provider's own merchant account at a gateway,
  with encrypted credentials and a verification status

A provider is routed to a split strategy only when they have an active,
verified config for a split-capable gateway (see GatewayResolver).

Usage:
    config = ProviderGatewayConfig.objects.create(
        provider=provider,
        gateway=Gateway.objects.get(slug=GatewayProvider.WIPAY),
        merchant_account_id="WP-MERCHANT-42",
    )
    config.set_credentials({"account_number": "4242", "api_key": "..."})
    config.mark_verified()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models, transaction
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.crypto import decrypt_credentials, encrypt_credentials
from payments.state_machines import GatewayProvider, VerificationStatus

if TYPE_CHECKING:
    from typing import Any


def default_currencies() -> list[str]:
    return ["JMD", "USD"]


class Gateway(UUIDPrimaryKeyMixin, BaseModel):
    """
    A payment processor known to the platform.

    Fields:
        slug: Registry key (GatewayProvider value)
        name: Display name
        is_active: Whether new payments may use this gateway
        supports_split: Processor can split funds at capture
        supports_escrow: Processor can collect into the platform account
        supported_currencies: ISO 4217 codes
        config: Non-secret gateway settings
    """

    slug = models.CharField(
        max_length=20,
        unique=True,
        choices=GatewayProvider.choices,
    )
    name = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True)
    supports_split = models.BooleanField(default=False)
    supports_escrow = models.BooleanField(default=True)
    supported_currencies = models.JSONField(default=default_currencies, blank=True)
    config = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class ProviderGatewayConfig(UUIDPrimaryKeyMixin, BaseModel):
    """
    A provider's merchant account at a gateway.

    Credentials are stored encrypted and only decrypted when a split
    strategy is built for the provider.
    """

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.CASCADE,
        related_name="gateway_configs",
    )
    gateway = models.ForeignKey(
        Gateway,
        on_delete=models.PROTECT,
        related_name="provider_configs",
    )
    credentials = models.TextField(
        blank=True,
        default="",
        help_text="Encrypted merchant credentials",
    )
    merchant_account_id = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True, db_index=True)
    is_primary = models.BooleanField(default=False)
    verification_status = models.CharField(
        max_length=20,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING,
        db_index=True,
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    verification_error = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-is_primary", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "gateway"],
                name="provider_gateway_config_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.provider_id} @ {self.gateway_id} ({self.verification_status})"

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @property
    def is_usable(self) -> bool:
        """Active and verified; eligible for split payments."""
        return self.is_active and self.is_verified

    def get_credentials(self) -> dict[str, Any]:
        return decrypt_credentials(self.credentials)

    def set_credentials(self, credentials: dict[str, Any]) -> None:
        """Encrypt and save credentials; a changed account needs re-verification."""
        self.credentials = encrypt_credentials(credentials)
        self.verification_status = VerificationStatus.PENDING
        self.verified_at = None
        self.save(update_fields=["credentials", "verification_status", "verified_at", "updated_at"])

    def mark_verified(self) -> None:
        self.verification_status = VerificationStatus.VERIFIED
        self.verified_at = timezone.now()
        self.verification_error = ""
        self.save(
            update_fields=["verification_status", "verified_at", "verification_error", "updated_at"]
        )

    def mark_failed(self, error: str = "") -> None:
        self.verification_status = VerificationStatus.FAILED
        self.verification_error = error
        self.save(update_fields=["verification_status", "verification_error", "updated_at"])

    def make_primary(self) -> None:
        """Make this the provider's only primary config."""
        with transaction.atomic():
            ProviderGatewayConfig.objects.filter(
                provider_id=self.provider_id,
                is_primary=True,
            ).exclude(pk=self.pk).update(is_primary=False)
            self.is_primary = True
            self.save(update_fields=["is_primary", "updated_at"])
