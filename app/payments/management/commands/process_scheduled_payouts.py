"""
Schedule and process provider payouts from the command line.

Usage:
    python manage.py process_scheduled_payouts --schedule
    python manage.py process_scheduled_payouts --process
    python manage.py process_scheduled_payouts --all
    python manage.py process_scheduled_payouts --batch BATCH-20260101-ABC123
"""

from django.core.management.base import BaseCommand, CommandError

from payments.exceptions import LockAcquisitionError
from payments.locks import schedule_lock
from payments.services import PayoutScheduler


class Command(BaseCommand):
    help = "Schedule new provider payouts and/or process the ones that are due"

    def add_arguments(self, parser):
        parser.add_argument(
            "--schedule",
            action="store_true",
            help="Schedule new payouts for eligible providers",
        )
        parser.add_argument(
            "--process",
            action="store_true",
            help="Process due scheduled payouts",
        )
        parser.add_argument(
            "--batch",
            metavar="BATCH_ID",
            help="Process the pending payouts of one batch",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Schedule, then process",
        )

    def handle(self, *args, **options):
        scheduler = PayoutScheduler()

        if options["batch"]:
            self._process_batch(scheduler, options["batch"])
            return

        schedule = options["schedule"] or options["all"]
        process = options["process"] or options["all"]
        if not schedule and not process:
            raise CommandError("Specify --schedule, --process, --all or --batch <id>")

        if schedule:
            self.stdout.write("Scheduling payouts for eligible providers...")
            try:
                with schedule_lock():
                    created = scheduler.schedule_payouts()
            except LockAcquisitionError as e:
                raise CommandError(f"Another scheduling run is in progress: {e.message}") from e
            self.stdout.write(self.style.SUCCESS(f"Scheduled {created} new payouts."))

        if process:
            self.stdout.write("Processing due payouts...")
            report = scheduler.process_scheduled_payouts()
            self.stdout.write(
                self.style.SUCCESS(
                    f"Processed {report.processed} of {report.total} payouts "
                    f"({report.failed} failed, {report.skipped} skipped)."
                )
            )

    def _process_batch(self, scheduler: PayoutScheduler, batch_id: str) -> None:
        self.stdout.write(f"Processing batch {batch_id}...")
        report = scheduler.process_batch(batch_id)
        self.stdout.write(
            f"Total: {report.total}  Processed: {report.processed}  Failed: {report.failed}"
        )

        if report.failed:
            raise CommandError(f"{report.failed} payouts failed, check the logs for details")

        self.stdout.write(self.style.SUCCESS("Batch processed successfully."))
