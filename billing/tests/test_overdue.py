from datetime import date

from django.test import TestCase

from billing.models import Customer, Invoice
from billing.services.lifecycle import create_invoice, mark_invoice_paid
from billing.services.overdue import mark_overdue_invoices


class MarkOverdueInvoicesTests(TestCase):
    def setUp(self):
        self.customer = Customer.objects.create(name="Elm Plaza")

    def _invoice(self, due_date, **kwargs):
        return create_invoice(
            customer=self.customer,
            line_items=[{"description": "Cleanup", "unit_price": "60.00"}],
            invoice_date=date(2024, 1, 1),
            due_date=due_date,
            **kwargs,
        )

    def test_only_unpaid_invoices_past_due_are_moved(self):
        late = self._invoice(date(2024, 1, 31))
        due_today = self._invoice(date(2024, 2, 15))
        draft = self._invoice(date(2024, 1, 10), status=Invoice.Status.DRAFT)
        paid = self._invoice(date(2024, 1, 10))
        mark_invoice_paid(invoice_id=paid.pk, paid_on=date(2024, 1, 9))

        moved = mark_overdue_invoices(as_of=date(2024, 2, 15))

        self.assertEqual(moved, 1)
        statuses = dict(Invoice.objects.values_list("pk", "status"))
        self.assertEqual(statuses[late.pk], Invoice.Status.OVERDUE)
        self.assertEqual(statuses[due_today.pk], Invoice.Status.UNPAID)
        self.assertEqual(statuses[draft.pk], Invoice.Status.DRAFT)
        self.assertEqual(statuses[paid.pk], Invoice.Status.PAID)

    def test_second_run_is_a_no_op(self):
        self._invoice(date(2024, 1, 31))
        self.assertEqual(mark_overdue_invoices(as_of=date(2024, 2, 15)), 1)
        self.assertEqual(mark_overdue_invoices(as_of=date(2024, 2, 15)), 0)
        self.assertEqual(Invoice.objects.filter(status=Invoice.Status.OVERDUE).count(), 1)

    def test_only_status_changes(self):
        invoice = self._invoice(date(2024, 1, 31))
        before = Invoice.objects.values("invoice_number", "due_date", "payment_date", "notes").get(pk=invoice.pk)
        mark_overdue_invoices(as_of=date(2024, 3, 1))
        after = Invoice.objects.values("invoice_number", "due_date", "payment_date", "notes").get(pk=invoice.pk)
        self.assertEqual(before, after)
