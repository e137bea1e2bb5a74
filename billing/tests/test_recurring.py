from datetime import date
from decimal import Decimal
from unittest import mock

from django.test import TestCase

from billing.exceptions import InvalidTransition, PartialBatchFailure, TemplateNotFound
from billing.models import Customer, Invoice, RecurringTemplate
from billing.services.recurring import (
    generate_invoice_for_template_id,
    generate_invoice_from_template,
    run_recurring_billing,
)
from billing.services.templates import create_recurring_template


def _blueprint(description="Monthly maintenance", unit_price="150.00"):
    return {"line_items": [{"description": description, "quantity": "1", "unit_price": unit_price}]}


class RecurringBillingTests(TestCase):
    def setUp(self):
        self.customer = Customer.objects.create(name="Riverside Apartments")

    def _template(self, **overrides):
        params = {
            "customer": self.customer,
            "template_name": "Riverside monthly",
            "frequency": RecurringTemplate.Frequency.MONTHLY,
            "start_date": date(2024, 1, 1),
            "blueprint": _blueprint(),
            "tax_rate": Decimal("8.25"),
        }
        params.update(overrides)
        return create_recurring_template(**params)

    def test_generates_invoice_and_advances_template(self):
        template = self._template()
        self.assertEqual(template.next_run_date, date(2024, 2, 1))

        report = run_recurring_billing(as_of=date(2024, 2, 1))

        self.assertEqual(report.summary(), "1 generated, 0 failed, 0 skipped")
        invoice = Invoice.objects.get(invoice_number=report.succeeded[template.pk])
        self.assertEqual(invoice.invoice_number, "INV-2024-0001")
        self.assertEqual(invoice.invoice_date, date(2024, 2, 1))
        self.assertEqual(invoice.due_date, date(2024, 3, 2))
        self.assertEqual(invoice.status, Invoice.Status.UNPAID)
        self.assertEqual(invoice.recurring_template_id, template.pk)
        self.assertEqual(invoice.notes, "Auto-generated from template: Riverside monthly")
        self.assertEqual(invoice.subtotal, Decimal("150.00"))
        self.assertEqual(invoice.tax_amount, Decimal("12.38"))
        self.assertEqual(invoice.grand_total, Decimal("162.38"))

        template.refresh_from_db()
        self.assertEqual(template.next_run_date, date(2024, 3, 1))
        self.assertEqual(template.completed_occurrences, 1)
        self.assertTrue(template.is_active)

    def test_not_due_templates_are_left_alone(self):
        self._template()
        report = run_recurring_billing(as_of=date(2024, 1, 31))
        self.assertEqual(report.total, 0)
        self.assertFalse(Invoice.objects.exists())

    def test_same_day_rerun_does_not_double_bill(self):
        self._template()
        run_recurring_billing(as_of=date(2024, 2, 1))
        report = run_recurring_billing(as_of=date(2024, 2, 1))
        self.assertEqual(report.total, 0)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_occurrence_cap_retires_after_last_invoice(self):
        template = self._template(occurrences=3)

        for run_date in (date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1), date(2024, 5, 1)):
            run_recurring_billing(as_of=run_date)

        template.refresh_from_db()
        self.assertEqual(template.invoices.count(), 3)
        self.assertEqual(template.completed_occurrences, 3)
        self.assertFalse(template.is_active)
        self.assertIsNone(template.next_run_date)

    def test_end_date_stops_generation(self):
        template = self._template(end_date=date(2024, 3, 15))

        for run_date in (date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)):
            run_recurring_billing(as_of=run_date)

        template.refresh_from_db()
        dates = list(template.invoices.order_by("invoice_date").values_list("invoice_date", flat=True))
        self.assertEqual(dates, [date(2024, 2, 1), date(2024, 3, 1)])
        self.assertFalse(template.is_active)
        self.assertIsNone(template.next_run_date)

    def test_late_run_past_end_date_retires_without_invoice(self):
        template = self._template(end_date=date(2024, 2, 15))

        report = run_recurring_billing(as_of=date(2024, 2, 20))

        self.assertIn(template.pk, report.skipped)
        self.assertFalse(Invoice.objects.exists())
        template.refresh_from_db()
        self.assertFalse(template.is_active)
        self.assertIsNone(template.next_run_date)

    def test_one_corrupted_template_does_not_stop_the_batch(self):
        templates = [self._template(template_name=f"Unit {n}") for n in range(10)]
        broken = templates[3]
        RecurringTemplate.objects.filter(pk=broken.pk).update(
            base_invoice_data={"line_items": [{"description": "Missing price", "quantity": "1"}]}
        )

        report = run_recurring_billing(as_of=date(2024, 2, 1))

        self.assertEqual(len(report.succeeded), 9)
        self.assertEqual(list(report.failed), [broken.pk])
        self.assertIn("BlueprintError", report.failed[broken.pk])
        self.assertEqual(Invoice.objects.count(), 9)
        self.assertEqual(len(set(report.succeeded.values())), 9)
        for template in RecurringTemplate.objects.all():
            if template.pk == broken.pk:
                self.assertEqual(template.next_run_date, date(2024, 2, 1))
                self.assertEqual(template.completed_occurrences, 0)
            else:
                self.assertEqual(template.next_run_date, date(2024, 3, 1))
                self.assertEqual(template.completed_occurrences, 1)

        with self.assertRaises(PartialBatchFailure) as ctx:
            report.raise_for_failures()
        self.assertIs(ctx.exception.report, report)

    def test_failure_after_invoice_write_rolls_back_the_unit(self):
        template = self._template()

        with mock.patch("billing.services.recurring.advance_template", side_effect=RuntimeError("clock skew")):
            report = run_recurring_billing(as_of=date(2024, 2, 1))

        self.assertEqual(report.failed, {template.pk: "RuntimeError: clock skew"})
        self.assertFalse(Invoice.objects.exists())
        template.refresh_from_db()
        self.assertEqual(template.next_run_date, date(2024, 2, 1))
        self.assertEqual(template.completed_occurrences, 0)

        retry = run_recurring_billing(as_of=date(2024, 2, 1))
        self.assertEqual(len(retry.succeeded), 1)

    def test_blueprint_notes_and_terms_are_used(self):
        template = self._template(
            blueprint={
                "line_items": [{"description": "Pool service", "quantity": "2", "unit_price": "40.00"}],
                "notes": "Net 14",
                "payment_terms_days": 14,
            }
        )
        invoice = generate_invoice_from_template(template=template, as_of=date(2024, 2, 1))
        self.assertEqual(invoice.notes, "Net 14")
        self.assertEqual(invoice.due_date, date(2024, 2, 15))
        self.assertEqual(invoice.line_items.get().line_total, Decimal("80.00"))

    def test_manual_generation_ignores_due_date(self):
        template = self._template()
        invoice = generate_invoice_for_template_id(template_id=template.pk, as_of=date(2024, 1, 15))
        self.assertEqual(invoice.invoice_date, date(2024, 1, 15))
        template.refresh_from_db()
        self.assertEqual(template.next_run_date, date(2024, 3, 1))
        self.assertEqual(template.completed_occurrences, 1)

    def test_manual_generation_of_retired_template_is_refused(self):
        template = self._template()
        RecurringTemplate.objects.filter(pk=template.pk).update(is_active=False, next_run_date=None)
        with self.assertRaises(InvalidTransition):
            generate_invoice_for_template_id(template_id=template.pk, as_of=date(2024, 2, 1))

    def test_manual_generation_of_unknown_template(self):
        with self.assertRaises(TemplateNotFound):
            generate_invoice_for_template_id(template_id="not-a-number", as_of=date(2024, 2, 1))
        with self.assertRaises(TemplateNotFound):
            generate_invoice_for_template_id(template_id=987654, as_of=date(2024, 2, 1))
