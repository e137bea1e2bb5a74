from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from billing.models import Customer, Invoice, RecurringTemplate
from billing.services.lifecycle import create_invoice
from billing.services.templates import create_recurring_template


class GenerateRecurringInvoicesCommandTests(TestCase):
    def setUp(self):
        self.customer = Customer.objects.create(name="Cedar Court")
        self.template = create_recurring_template(
            customer=self.customer,
            template_name="Cedar monthly",
            frequency=RecurringTemplate.Frequency.MONTHLY,
            start_date=date(2024, 1, 1),
            blueprint={"line_items": [{"description": "Maintenance", "unit_price": "150.00"}]},
            tax_rate=Decimal("8.25"),
        )

    def test_generates_for_given_date(self):
        out = StringIO()
        call_command("generate_recurring_invoices", "--date", "2024-02-01", stdout=out)
        self.assertIn("1 generated, 0 failed, 0 skipped", out.getvalue())
        self.assertIn("INV-2024-0001", out.getvalue())
        self.assertEqual(Invoice.objects.count(), 1)

    def test_fail_on_error_raises(self):
        RecurringTemplate.objects.filter(pk=self.template.pk).update(base_invoice_data={"line_items": []})
        out, err = StringIO(), StringIO()
        with self.assertRaises(CommandError):
            call_command("generate_recurring_invoices", "--date", "2024-02-01", "--fail-on-error", stdout=out, stderr=err)
        self.assertIn(f"template {self.template.pk} failed", err.getvalue())

    def test_failures_without_flag_only_warn(self):
        RecurringTemplate.objects.filter(pk=self.template.pk).update(base_invoice_data={"line_items": []})
        out = StringIO()
        call_command("generate_recurring_invoices", "--date", "2024-02-01", stdout=out, stderr=StringIO())
        self.assertIn("0 generated, 1 failed", out.getvalue())

    def test_rejects_bad_date(self):
        with self.assertRaises(CommandError):
            call_command("generate_recurring_invoices", "--date", "02/01/2024", stdout=StringIO())


class MarkOverdueInvoicesCommandTests(TestCase):
    def test_reports_count(self):
        customer = Customer.objects.create(name="Cedar Court")
        create_invoice(
            customer=customer,
            line_items=[{"description": "Repair", "unit_price": "20.00"}],
            invoice_date=date(2024, 1, 1),
            due_date=date(2024, 1, 31),
        )
        out = StringIO()
        call_command("mark_overdue_invoices", "--date", "2024-02-01", stdout=out)
        self.assertIn("Marked 1 invoice(s) overdue as of 2024-02-01", out.getvalue())

        out = StringIO()
        call_command("mark_overdue_invoices", "--date", "2024-02-01", stdout=out)
        self.assertIn("No unpaid invoices past due", out.getvalue())
