"""Django app configuration for marketplace."""

from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    """Configuration for the marketplace app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"
    verbose_name = "Marketplace"
