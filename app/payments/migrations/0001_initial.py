import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

import payments.models.gateway


def _id():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


FEE_PAYER_CHOICES = [("client", "Client"), ("provider", "Provider")]
GATEWAY_CHOICES = [("wipay", "WiPay")]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Gateway",
            fields=[
                _id(),
                *_timestamps(),
                ("slug", models.CharField(choices=GATEWAY_CHOICES, max_length=20, unique=True)),
                ("name", models.CharField(max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("supports_split", models.BooleanField(default=False)),
                ("supports_escrow", models.BooleanField(default=True)),
                (
                    "supported_currencies",
                    models.JSONField(blank=True, default=payments.models.gateway.default_currencies),
                ),
                ("config", models.JSONField(blank=True, default=dict)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="PaymentSettings",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "overrides",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Partial payment configuration merged over the settings defaults",
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Payment settings",
                "verbose_name_plural": "Payment settings",
            },
        ),
        migrations.CreateModel(
            name="ProviderLedger",
            fields=[
                _id(),
                (
                    "balance",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Cached balance (balance_after of the latest entry)",
                        max_digits=12,
                    ),
                ),
                (
                    "last_sequence",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Sequence number of the latest entry",
                    ),
                ),
                (
                    "currency",
                    models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "provider",
                    models.OneToOneField(
                        help_text="Provider owning this ledger",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger",
                        to="marketplace.provider",
                    ),
                ),
            ],
            options={
                "verbose_name": "Provider ledger",
                "verbose_name_plural": "Provider ledgers",
            },
        ),
        migrations.CreateModel(
            name="ProviderGatewayConfig",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "credentials",
                    models.TextField(blank=True, default="", help_text="Encrypted merchant credentials"),
                ),
                ("merchant_account_id", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("is_primary", models.BooleanField(default=False)),
                (
                    "verification_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("verified", "Verified"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("verification_error", models.TextField(blank=True, default="")),
                (
                    "gateway",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="provider_configs",
                        to="payments.gateway",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="gateway_configs",
                        to="marketplace.provider",
                    ),
                ),
            ],
            options={
                "ordering": ["-is_primary", "-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "gateway"),
                        name="provider_gateway_config_unique",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ScheduledPayout",
            fields=[
                _id(),
                *_timestamps(),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="JMD", max_length=3)),
                ("scheduled_for", models.DateTimeField(db_index=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("batch_id", models.CharField(blank=True, db_index=True, max_length=32, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payout_method",
                    models.CharField(
                        choices=[
                            ("bank_transfer", "Bank Transfer"),
                            ("wipay_account", "WiPay Account"),
                        ],
                        default="bank_transfer",
                        max_length=20,
                    ),
                ),
                ("reference_number", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("disbursement_id", models.CharField(blank=True, default="", max_length=255)),
                ("disbursement_response", models.JSONField(blank=True, default=dict)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="scheduled_payouts",
                        to="marketplace.provider",
                    ),
                ),
                (
                    "retry_of",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="retries",
                        to="payments.scheduledpayout",
                    ),
                ),
            ],
            options={
                "ordering": ["-scheduled_for", "-created_at"],
                "indexes": [
                    models.Index(fields=["status", "scheduled_for"], name="payments_sc_status_6a1f0d_idx"),
                    models.Index(fields=["provider", "status"], name="payments_sc_provide_0c9e2b_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="scheduled_payout_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                _id(),
                *_timestamps(),
                ("amount", models.DecimalField(decimal_places=2, help_text="Total charged to the client", max_digits=12)),
                (
                    "platform_fee",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Platform share of this payment",
                        max_digits=12,
                    ),
                ),
                (
                    "provider_amount",
                    models.DecimalField(decimal_places=2, help_text="Provider share of this payment", max_digits=12),
                ),
                (
                    "processing_fee",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Gateway processing fee",
                        max_digits=12,
                    ),
                ),
                (
                    "processing_fee_payer",
                    models.CharField(choices=FEE_PAYER_CHOICES, default="provider", max_length=20),
                ),
                ("currency", models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3)),
                (
                    "payment_type",
                    models.CharField(
                        choices=[
                            ("full", "Full Payment"),
                            ("deposit", "Deposit"),
                            ("balance", "Balance"),
                        ],
                        default="full",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("gateway", models.CharField(choices=GATEWAY_CHOICES, default="wipay", max_length=20)),
                (
                    "gateway_type",
                    models.CharField(
                        choices=[("escrow", "Escrow"), ("split", "Direct Split")],
                        default="escrow",
                        max_length=20,
                    ),
                ),
                (
                    "gateway_order_id",
                    models.CharField(
                        blank=True,
                        help_text="Order reference sent to the gateway",
                        max_length=64,
                        null=True,
                        unique=True,
                    ),
                ),
                ("gateway_transaction_id", models.CharField(blank=True, db_index=True, default="", max_length=255)),
                ("gateway_response_code", models.CharField(blank=True, default="", max_length=50)),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                ("split_transaction_id", models.CharField(blank=True, default="", max_length=255)),
                (
                    "split_details",
                    models.JSONField(blank=True, help_text="Split breakdown, set only for split gateways", null=True),
                ),
                ("card_brand", models.CharField(blank=True, default="", max_length=20)),
                ("card_last_four", models.CharField(blank=True, default="", max_length=4)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "refunded_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                ("failure_reason", models.TextField(blank=True, default="")),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        help_text="Booking this payment is for",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="marketplace.booking",
                    ),
                ),
                (
                    "client",
                    models.ForeignKey(
                        help_text="User paying",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        help_text="Provider being paid",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="marketplace.provider",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["provider", "status"], name="payments_pa_provide_4b7d51_idx"),
                    models.Index(fields=["booking", "payment_type"], name="payments_pa_booking_9e3c27_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                _id(),
                ("sequence", models.PositiveBigIntegerField(help_text="Per-provider insertion order")),
                (
                    "entry_type",
                    models.CharField(
                        choices=[
                            ("credit", "Credit"),
                            ("debit", "Debit"),
                            ("hold", "Hold"),
                            ("release", "Release"),
                        ],
                        db_index=True,
                        help_text="Category of this entry",
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(decimal_places=2, help_text="Amount moved (always positive)", max_digits=12),
                ),
                (
                    "balance_after",
                    models.DecimalField(decimal_places=2, help_text="Provider balance after this entry", max_digits=12),
                ),
                ("currency", models.CharField(default="JMD", help_text="ISO 4217 currency code", max_length=3)),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="Human-readable description of this entry"),
                ),
                (
                    "metadata",
                    models.JSONField(blank=True, default=dict, help_text="Arbitrary JSON data for extensibility"),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate entries",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this entry was recorded",
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="marketplace.booking",
                    ),
                ),
                (
                    "hold_entry",
                    models.OneToOneField(
                        blank=True,
                        help_text="Hold released by this entry",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="release_entry",
                        to="payments.ledgerentry",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="payments.payment",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="payments.scheduledpayout",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        help_text="Provider whose balance moved",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="marketplace.provider",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Ledger entries",
                "ordering": ["provider", "sequence"],
                "indexes": [
                    models.Index(fields=["provider", "entry_type"], name="payments_le_provide_2d8a6e_idx"),
                    models.Index(fields=["provider", "created_at"], name="payments_le_provide_7f31c4_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "sequence"),
                        name="ledger_entry_provider_sequence_unique",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="ledger_entry_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("hold_entry__isnull", True), ("entry_type", "release"), _connector="OR"),
                        name="ledger_entry_hold_reference_on_release_only",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="payment",
            name="ledger_entry",
            field=models.OneToOneField(
                blank=True,
                help_text="Ledger credit for this payment (escrow only)",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="credited_payment",
                to="payments.ledgerentry",
            ),
        ),
    ]
