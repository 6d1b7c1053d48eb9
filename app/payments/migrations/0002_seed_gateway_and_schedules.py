"""
Seed the WiPay gateway and the celery-beat schedules for payouts.

Periodic tasks:
    - Schedule Provider Payouts: daily, creates pending payouts
    - Process Scheduled Payouts: hourly, executes payouts that are due
    - Release Expired Ledger Holds: hourly, releases holds past the hold period
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Schedule Provider Payouts",
        "task": "payments.tasks.schedule_payouts",
        "every": 1,
        "period": "days",
        "description": "Creates pending payouts for providers with eligible escrow balance.",
    },
    {
        "name": "Process Scheduled Payouts",
        "task": "payments.tasks.process_scheduled_payouts",
        "every": 1,
        "period": "hours",
        "description": "Debits the ledger and disburses payouts whose window has opened.",
    },
    {
        "name": "Release Expired Ledger Holds",
        "task": "payments.tasks.release_expired_holds",
        "every": 1,
        "period": "hours",
        "description": "Releases ledger holds older than the configured hold period.",
    },
]


def seed_gateway(apps, schema_editor):
    Gateway = apps.get_model("payments", "Gateway")
    Gateway.objects.get_or_create(
        slug="wipay",
        defaults={
            "name": "WiPay",
            "is_active": True,
            "supports_split": True,
            "supports_escrow": True,
            "supported_currencies": ["JMD", "USD", "TTD"],
        },
    )


def remove_gateway(apps, schema_editor):
    Gateway = apps.get_model("payments", "Gateway")
    ProviderGatewayConfig = apps.get_model("payments", "ProviderGatewayConfig")
    if not ProviderGatewayConfig.objects.filter(gateway__slug="wipay").exists():
        Gateway.objects.filter(slug="wipay").delete()


def create_periodic_tasks(apps, schema_editor):
    """Create the payout periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for spec in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=spec["every"],
            period=spec["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=spec["name"],
            defaults={
                "task": spec["task"],
                "interval": schedule,
                "enabled": True,
                "description": spec["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[spec["name"] for spec in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(seed_gateway, remove_gateway),
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
