"""
Management command to flag unpaid invoices past their due date as overdue.

Run this from cron once a day, after recurring generation:
    0 7 * * * cd /path/to/project && .venv/bin/python manage.py mark_overdue_invoices
"""
from django.core.management.base import BaseCommand

from billing.services.overdue import mark_overdue_invoices

from ._dates import resolve_run_date


class Command(BaseCommand):
    help = "Mark unpaid invoices whose due date has passed as overdue"

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            dest="run_date",
            help="Treat this date (YYYY-MM-DD) as today. Defaults to today.",
        )

    def handle(self, *args, **options):
        as_of = resolve_run_date(options.get("run_date"))
        count = mark_overdue_invoices(as_of=as_of)
        if count:
            self.stdout.write(self.style.SUCCESS(f"Marked {count} invoice(s) overdue as of {as_of.isoformat()}"))
        else:
            self.stdout.write(f"No unpaid invoices past due as of {as_of.isoformat()}")
