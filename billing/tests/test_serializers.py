from datetime import date
from decimal import Decimal

from django.test import TestCase

from billing.models import Customer, Property
from billing.serializers import build_invoice_snapshot
from billing.services.lifecycle import create_invoice


class InvoiceSnapshotTests(TestCase):
    def setUp(self):
        self.customer = Customer.objects.create(name="Birch Lofts", email="office@birch.example")
        self.property = Property.objects.create(customer=self.customer, name="Lobby", address="1 Birch Way")

    def test_snapshot_includes_nested_data_and_totals(self):
        invoice = create_invoice(
            customer=self.customer,
            property=self.property,
            line_items=[
                {"description": "Lobby repaint", "quantity": "1", "unit_price": "150.00"},
            ],
            invoice_date=date(2024, 2, 1),
            tax_rate=Decimal("8.25"),
        )

        data = build_invoice_snapshot(invoice)

        self.assertEqual(data["invoice_number"], "INV-2024-0001")
        self.assertEqual(data["status"], "Unpaid")
        self.assertEqual(data["customer"]["name"], "Birch Lofts")
        self.assertEqual(data["property"]["name"], "Lobby")
        self.assertEqual(len(data["line_items"]), 1)
        self.assertEqual(data["line_items"][0]["line_total"], "150.00")
        self.assertEqual(data["subtotal"], "150.00")
        self.assertEqual(data["tax_amount"], "12.38")
        self.assertEqual(data["grand_total"], "162.38")

    def test_snapshot_without_property(self):
        invoice = create_invoice(
            customer=self.customer,
            line_items=[{"description": "Consultation", "unit_price": "75.00"}],
            invoice_date=date(2024, 2, 1),
        )
        data = build_invoice_snapshot(invoice)
        self.assertIsNone(data["property"])
        self.assertEqual(data["grand_total"], "75.00")
