"""
Payment admin configuration.

Registers payment domain models and imports the read-only ledger admin from
the ledger submodule. Payments and payouts change state only through the
service layer; the admin exposes that through actions.
"""

from django.contrib import admin

from payments.gateways import GatewayResolver
from payments.ledger.admin import LedgerEntryAdmin, ProviderLedgerAdmin
from payments.models import (
    Gateway,
    Payment,
    PaymentSettings,
    ProviderGatewayConfig,
    ScheduledPayout,
)
from payments.services import PaymentManager, PayoutScheduler
from payments.tasks import process_payout_batch

__all__ = [
    "GatewayAdmin",
    "LedgerEntryAdmin",
    "PaymentAdmin",
    "PaymentSettingsAdmin",
    "ProviderGatewayConfigAdmin",
    "ProviderLedgerAdmin",
    "ScheduledPayoutAdmin",
]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Status is read-only here. Stuck payments can be re-checked with the
    gateway through the verify action.
    """

    list_display = [
        "id",
        "booking",
        "provider",
        "amount_display",
        "payment_type",
        "status",
        "gateway_type",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "payment_type", "gateway", "gateway_type", "currency", "created_at"]
    search_fields = [
        "id",
        "gateway_order_id",
        "gateway_transaction_id",
        "provider__business_name",
        "client__email",
    ]
    readonly_fields = [
        "id",
        "status",
        "created_at",
        "updated_at",
        "version",
        "paid_at",
        "refunded_at",
        "refunded_amount",
        "ledger_entry",
    ]
    raw_id_fields = ["booking", "client", "provider"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["verify_with_gateway"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "booking", "client", "provider", "payment_type", "status"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "platform_fee",
                    "provider_amount",
                    "processing_fee",
                    "processing_fee_payer",
                    "currency",
                ),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "gateway",
                    "gateway_type",
                    "gateway_order_id",
                    "gateway_transaction_id",
                    "gateway_response_code",
                    "card_brand",
                    "card_last_four",
                ),
            },
        ),
        (
            "Settlement",
            {
                "fields": ("ledger_entry", "split_transaction_id", "split_details"),
                "classes": ("collapse",),
            },
        ),
        (
            "Refunds",
            {
                "fields": ("refunded_amount", "refunded_at"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason", "gateway_response"),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version", "paid_at", "created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Payment) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    @admin.action(description="Verify selected payments with the gateway")
    def verify_with_gateway(self, request, queryset):
        settled = 0
        for payment in queryset:
            before = payment.status
            result = PaymentManager.verify_payment(payment)
            if result.success and result.data.status != before:
                settled += 1
        self.message_user(request, f"Checked {queryset.count()} payments, {settled} changed status.")

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ScheduledPayout)
class ScheduledPayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for ScheduledPayout.

    Payouts are never deleted; cancel and retry go through PayoutScheduler.
    """

    list_display = [
        "id",
        "provider",
        "amount_display",
        "status",
        "scheduled_for",
        "batch_id",
        "reference_number",
        "processed_at",
    ]
    list_filter = ["status", "payout_method", "currency", "scheduled_for"]
    search_fields = [
        "id",
        "reference_number",
        "batch_id",
        "disbursement_id",
        "provider__business_name",
    ]
    readonly_fields = [
        "id",
        "status",
        "batch_id",
        "processed_at",
        "processed_by",
        "reference_number",
        "disbursement_id",
        "disbursement_response",
        "failure_reason",
        "retry_of",
        "cancelled_at",
        "version",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["provider"]
    date_hierarchy = "scheduled_for"
    ordering = ["-scheduled_for"]
    actions = ["process_as_batch", "cancel_payouts", "retry_payouts"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "provider", "status", "scheduled_for", "batch_id"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency", "payout_method"),
            },
        ),
        (
            "Disbursement",
            {
                "fields": (
                    "reference_number",
                    "disbursement_id",
                    "disbursement_response",
                    "processed_at",
                    "processed_by",
                ),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason", "retry_of", "cancelled_at", "notes"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("version", "created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: ScheduledPayout) -> str:
        return f"{obj.amount:.2f} {obj.currency}"

    @admin.action(description="Process selected payouts as a batch")
    def process_as_batch(self, request, queryset):
        batch_id = PayoutScheduler().create_batch(queryset.values_list("id", flat=True))
        process_payout_batch.delay(batch_id)
        self.message_user(request, f"Queued batch {batch_id} for processing.")

    @admin.action(description="Cancel selected payouts")
    def cancel_payouts(self, request, queryset):
        scheduler = PayoutScheduler()
        cancelled = sum(
            1
            for payout in queryset
            if scheduler.cancel_payout(payout, reason=f"Cancelled by {request.user}").success
        )
        self.message_user(request, f"Cancelled {cancelled} payouts.")

    @admin.action(description="Retry selected failed payouts")
    def retry_payouts(self, request, queryset):
        scheduler = PayoutScheduler()
        retried = sum(1 for payout in queryset if scheduler.retry_payout(payout).success)
        self.message_user(request, f"Scheduled {retried} retry payouts.")

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Gateway)
class GatewayAdmin(admin.ModelAdmin):
    list_display = ["slug", "name", "is_active", "supports_split", "supports_escrow"]
    list_filter = ["is_active", "supports_split"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(ProviderGatewayConfig)
class ProviderGatewayConfigAdmin(admin.ModelAdmin):
    """
    Provider merchant accounts.

    Credentials are stored encrypted and never shown here.
    """

    list_display = [
        "provider",
        "gateway",
        "merchant_account_id",
        "verification_status",
        "is_active",
        "is_primary",
        "verified_at",
    ]
    list_filter = ["gateway", "verification_status", "is_active"]
    search_fields = ["provider__business_name", "merchant_account_id"]
    exclude = ["credentials"]
    readonly_fields = [
        "id",
        "verification_status",
        "verified_at",
        "verification_error",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["provider"]
    actions = ["verify_accounts"]

    @admin.action(description="Verify selected merchant accounts with the gateway")
    def verify_accounts(self, request, queryset):
        verified = sum(
            1 for config in queryset.select_related("gateway")
            if GatewayResolver.verify_provider_config(config)
        )
        self.message_user(request, f"Verified {verified} of {queryset.count()} accounts.")


@admin.register(PaymentSettings)
class PaymentSettingsAdmin(admin.ModelAdmin):
    """Single row of payment configuration overrides."""

    list_display = ["__str__", "updated_at"]
    readonly_fields = ["updated_at"]

    def has_add_permission(self, request) -> bool:
        return not PaymentSettings.objects.exists()

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
