"""
Admin-editable overrides for the payment configuration.

A single row holds a JSON document in the serialized PaymentConfig shape.
It is validated through PaymentConfig.from_dict on save, so a typo in a key
or tier is rejected in the admin instead of surfacing at checkout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError
from django.db import models

from payments.exceptions import PaymentConfigError

if TYPE_CHECKING:
    from typing import Any


class PaymentSettings(models.Model):
    """
    Singleton row of configuration overrides.

    Example overrides:
        {"gateway_fee_rate": "3.5", "payouts": {"minimum_amount": "500.00"}}
    """

    SINGLETON_ID = 1

    overrides = models.JSONField(
        default=dict,
        blank=True,
        help_text="Partial payment configuration merged over the settings defaults",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payment settings"
        verbose_name_plural = "Payment settings"

    def __str__(self) -> str:
        return "Payment settings"

    def clean(self) -> None:
        from payments.config import get_default_config

        try:
            get_default_config().with_overrides(self.overrides or {})
        except PaymentConfigError as e:
            raise ValidationError({"overrides": e.message})

    def save(self, *args, **kwargs):
        from payments.config import invalidate_payment_config

        self.pk = self.SINGLETON_ID
        self.full_clean(validate_unique=False)
        super().save(*args, **kwargs)
        invalidate_payment_config()

    @classmethod
    def load(cls) -> PaymentSettings:
        settings_row, _ = cls.objects.get_or_create(pk=cls.SINGLETON_ID)
        return settings_row

    @classmethod
    def get_overrides(cls) -> dict[str, Any]:
        """Current overrides, or {} if the row was never saved."""
        overrides = (
            cls.objects.filter(pk=cls.SINGLETON_ID)
            .values_list("overrides", flat=True)
            .first()
        )
        return overrides or {}
