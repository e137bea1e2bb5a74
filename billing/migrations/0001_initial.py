from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("email", models.EmailField(blank=True, max_length=255, null=True)),
                ("phone", models.CharField(blank=True, default="", max_length=50)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="InvoiceNumberSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("year", models.PositiveIntegerField(unique=True)),
                ("last_value", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["year"],
            },
        ),
        migrations.CreateModel(
            name="Property",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("address", models.TextField()),
                ("last_service_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="properties", to="billing.customer")),
            ],
            options={
                "verbose_name_plural": "properties",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="RecurringTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("template_name", models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(1)])),
                ("frequency", models.CharField(choices=[("WEEKLY", "Weekly"), ("MONTHLY", "Monthly"), ("QUARTERLY", "Quarterly"), ("YEARLY", "Yearly")], max_length=10)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(blank=True, null=True)),
                ("occurrences", models.PositiveIntegerField(blank=True, help_text="Maximum number of invoices to generate; empty means no cap.", null=True, validators=[django.core.validators.MinValueValidator(1)])),
                ("next_run_date", models.DateField(blank=True, db_index=True, null=True)),
                ("completed_occurrences", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("tax_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal("0")), django.core.validators.MaxValueValidator(Decimal("100"))])),
                ("base_invoice_data", models.JSONField(help_text="Blueprint snapshot (line items, notes, payment terms) cloned into each invoice.")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="recurring_templates", to="billing.customer")),
            ],
            options={
                "ordering": ["next_run_date", "id"],
                "indexes": [models.Index(fields=["is_active", "next_run_date"], name="billing_tpl_active_next_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("is_active", True), ("next_run_date__isnull", True), _connector="OR"), name="recurringtemplate_retired_has_no_next_run"),
                    models.CheckConstraint(condition=models.Q(("tax_rate__gte", 0), ("tax_rate__lte", 100)), name="recurringtemplate_tax_rate_range"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(editable=False, max_length=50, unique=True)),
                ("invoice_date", models.DateField(default=django.utils.timezone.localdate)),
                ("due_date", models.DateField()),
                ("tax_rate", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal("0")), django.core.validators.MaxValueValidator(Decimal("100"))])),
                ("status", models.CharField(choices=[("Draft", "Draft"), ("Unpaid", "Unpaid"), ("Paid", "Paid"), ("Overdue", "Overdue")], db_index=True, default="Unpaid", max_length=10)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("sent_date", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="invoices", to="billing.customer")),
                ("property", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="billing.property")),
                ("recurring_template", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="billing.recurringtemplate")),
            ],
            options={
                "ordering": ["-invoice_date", "-id"],
                "indexes": [models.Index(fields=["status", "due_date"], name="billing_inv_status_due_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("due_date__gte", models.F("invoice_date"))), name="invoice_due_not_before_invoice_date"),
                    models.CheckConstraint(condition=models.Q(("tax_rate__gte", 0), ("tax_rate__lte", 100)), name="invoice_tax_rate_range"),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceLineItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(max_length=500, validators=[django.core.validators.MinLengthValidator(1)])),
                ("quantity", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0"))])),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal("0"))])),
                ("line_total", models.DecimalField(decimal_places=2, editable=False, max_digits=12)),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="line_items", to="billing.invoice")),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="invoicelineitem_quantity_non_negative"),
                    models.CheckConstraint(condition=models.Q(("unit_price__gte", 0)), name="invoicelineitem_unit_price_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PropertyServiceHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("service_date", models.DateField(db_index=True)),
                ("service_type", models.CharField(choices=[("painting", "Painting"), ("repair", "Repair"), ("maintenance", "Maintenance"), ("inspection", "Inspection"), ("estimate", "Estimate"), ("consultation", "Consultation"), ("cleanup", "Cleanup"), ("preparation", "Preparation"), ("other", "Other")], default="other", max_length=20)),
                ("description", models.TextField()),
                ("total_cost", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("invoice", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="service_history", to="billing.invoice")),
                ("property", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="service_history", to="billing.property")),
            ],
            options={
                "verbose_name_plural": "property service history",
                "ordering": ["-service_date", "-id"],
            },
        ),
    ]
