from __future__ import annotations

from typing import Any

from rest_framework import serializers

from .models import Customer, Invoice, InvoiceLineItem, Property


class LineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLineItem
        fields = ["id", "description", "quantity", "unit_price", "line_total"]
        read_only_fields = fields


class CustomerSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ["id", "name", "email", "phone"]
        read_only_fields = fields


class PropertySnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = Property
        fields = ["id", "name", "address", "last_service_date"]
        read_only_fields = fields


class InvoiceSnapshotSerializer(serializers.ModelSerializer):
    """
    Read-only view of an invoice for PDF and email rendering.

    Totals are computed from the serialized line items at read time.
    """

    customer = CustomerSnapshotSerializer(read_only=True)
    property = PropertySnapshotSerializer(read_only=True, allow_null=True)
    line_items = LineItemSerializer(many=True, read_only=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    grand_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "status",
            "invoice_date",
            "due_date",
            "payment_date",
            "sent_date",
            "tax_rate",
            "notes",
            "recurring_template",
            "customer",
            "property",
            "line_items",
            "subtotal",
            "tax_amount",
            "grand_total",
        ]
        read_only_fields = [
            "id",
            "invoice_number",
            "status",
            "invoice_date",
            "due_date",
            "payment_date",
            "sent_date",
            "tax_rate",
            "notes",
            "recurring_template",
        ]


def build_invoice_snapshot(invoice: Invoice) -> dict[str, Any]:
    invoice = (
        Invoice.objects.select_related("customer", "property")
        .prefetch_related("line_items")
        .get(pk=invoice.pk)
    )
    return InvoiceSnapshotSerializer(invoice).data
