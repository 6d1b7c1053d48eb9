"""Admin configuration for marketplace models."""

from django.contrib import admin

from marketplace.models import Booking, Provider, Service


class ServiceInline(admin.TabularInline):
    model = Service
    extra = 0
    fields = ["name", "price", "deposit_type", "deposit_amount", "is_active"]


@admin.register(Provider)
class ProviderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Provider.

    Tier, fee payer and deposit settings feed directly into fee
    calculation; banking details feed bank disbursements.
    """

    list_display = [
        "business_name",
        "tier",
        "fee_payer",
        "payout_method",
        "is_active",
        "created_at",
    ]
    list_filter = ["tier", "fee_payer", "payout_method", "is_active"]
    search_fields = ["business_name", "user__email", "user__username"]
    readonly_fields = ["id", "created_at", "updated_at"]
    inlines = [ServiceInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "user", "business_name", "is_active"),
            },
        ),
        (
            "Fees",
            {
                "fields": (
                    "tier",
                    "fee_payer",
                    "deposit_percentage",
                    "founding_fee_waiver_until",
                ),
            },
        ),
        (
            "Payouts",
            {
                "fields": (
                    "payout_method",
                    "bank_name",
                    "bank_account_number",
                    "bank_account_holder_name",
                    "bank_branch_code",
                    "bank_account_type",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Bookings with their stored fee snapshot (read-only once stored)."""

    list_display = [
        "id",
        "provider",
        "client",
        "service_price",
        "platform_fee",
        "gateway_fee",
        "fee_payer",
        "created_at",
    ]
    list_filter = ["fee_payer"]
    search_fields = ["id", "provider__business_name", "client__email"]
    readonly_fields = [
        "id",
        "platform_fee",
        "gateway_fee",
        "convenience_fee",
        "fee_payer",
        "deposit_amount",
        "created_at",
        "updated_at",
    ]
