"""
Management command to generate invoices from due recurring templates.

Run this from cron once a day:
    0 6 * * * cd /path/to/project && .venv/bin/python manage.py generate_recurring_invoices
"""
from django.core.management.base import BaseCommand, CommandError

from billing.services.recurring import run_recurring_billing

from ._dates import resolve_run_date


class Command(BaseCommand):
    help = "Generate invoices for every active recurring template due on or before the run date"

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            dest="run_date",
            help="Run as of this date (YYYY-MM-DD). Defaults to today.",
        )
        parser.add_argument(
            "--fail-on-error",
            action="store_true",
            help="Exit with an error when any template failed.",
        )

    def handle(self, *args, **options):
        as_of = resolve_run_date(options.get("run_date"))
        report = run_recurring_billing(as_of=as_of)

        for template_id, number in report.succeeded.items():
            self.stdout.write(f"  template {template_id} -> {number}")
        for template_id, reason in report.skipped.items():
            self.stdout.write(f"  template {template_id} skipped: {reason}")
        for template_id, error in report.failed.items():
            self.stderr.write(f"  template {template_id} failed: {error}")

        message = f"Recurring billing {as_of.isoformat()}: {report.summary()}"
        if report.has_failures:
            if options["fail_on_error"]:
                raise CommandError(message)
            self.stdout.write(self.style.WARNING(message))
        elif report.succeeded:
            self.stdout.write(self.style.SUCCESS(message))
        else:
            self.stdout.write(message)
