"""
Django admin configuration for ledger models.

Both models are read-only in the admin. Ledger rows are written only by
LedgerService; corrections are new entries, never edits.
"""

from django.contrib import admin

from .models import LedgerEntry, ProviderLedger
from .services import LedgerService


class ReadOnlyAdminMixin:
    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ProviderLedger)
class ProviderLedgerAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Per-provider ledger head with derived balances."""

    list_display = [
        "provider",
        "balance",
        "held_display",
        "available_display",
        "last_sequence",
        "currency",
        "updated_at",
    ]
    search_fields = ["provider__business_name"]
    readonly_fields = [
        "id",
        "provider",
        "balance",
        "held_display",
        "available_display",
        "last_sequence",
        "currency",
        "updated_at",
    ]
    ordering = ["-updated_at"]

    @admin.display(description="Held")
    def held_display(self, obj: ProviderLedger) -> str:
        return f"{LedgerService.get_held_amount(obj.provider_id):.2f}"

    @admin.display(description="Available")
    def available_display(self, obj: ProviderLedger) -> str:
        return f"{LedgerService.get_available_balance(obj.provider_id):.2f}"


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for LedgerEntry.

    Ledger entries are immutable - they cannot be added, edited or deleted
    through the admin interface.
    """

    list_display = [
        "created_at",
        "provider",
        "sequence",
        "entry_type",
        "amount",
        "balance_after",
        "currency",
        "description",
    ]
    list_filter = ["entry_type", "currency", "created_at"]
    search_fields = [
        "id",
        "idempotency_key",
        "description",
        "provider__business_name",
    ]
    readonly_fields = [
        "id",
        "provider",
        "sequence",
        "entry_type",
        "amount",
        "balance_after",
        "currency",
        "booking",
        "payment",
        "payout",
        "hold_entry",
        "description",
        "metadata",
        "idempotency_key",
        "created_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            "Entry Details",
            {
                "fields": (
                    "id",
                    "provider",
                    "sequence",
                    "entry_type",
                    "amount",
                    "balance_after",
                    "currency",
                    "created_at",
                ),
            },
        ),
        (
            "Reference",
            {
                "fields": (
                    "booking",
                    "payment",
                    "payout",
                    "hold_entry",
                    "idempotency_key",
                ),
            },
        ),
        (
            "Additional Info",
            {
                "fields": ("description", "metadata"),
            },
        ),
    )
