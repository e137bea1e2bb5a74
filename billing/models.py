from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from .blueprint import InvoiceBlueprint
from .services.totals import InvoiceTotals, invoice_totals, line_total


class Customer(models.Model):
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=255, blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Property(models.Model):
    customer = models.ForeignKey(
        Customer,
        on_delete=models.CASCADE,
        related_name="properties",
    )
    name = models.CharField(max_length=100)
    address = models.TextField()
    last_service_date = models.DateField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "properties"

    def __str__(self) -> str:
        return self.name


class InvoiceNumberSequence(models.Model):
    """Per-year counter behind invoice numbers; one row per calendar year."""

    year = models.PositiveIntegerField(unique=True)
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["year"]

    def __str__(self) -> str:
        return f"{self.year}: {self.last_value}"


class RecurringTemplate(models.Model):
    class Frequency(models.TextChoices):
        WEEKLY = "WEEKLY", "Weekly"
        MONTHLY = "MONTHLY", "Monthly"
        QUARTERLY = "QUARTERLY", "Quarterly"
        YEARLY = "YEARLY", "Yearly"

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="recurring_templates",
    )
    template_name = models.CharField(max_length=100, validators=[MinLengthValidator(1)])
    frequency = models.CharField(max_length=10, choices=Frequency.choices)
    start_date = models.DateField()
    end_date = models.DateField(blank=True, null=True)
    occurrences = models.PositiveIntegerField(
        blank=True,
        null=True,
        validators=[MinValueValidator(1)],
        help_text="Maximum number of invoices to generate; empty means no cap.",
    )
    next_run_date = models.DateField(blank=True, null=True, db_index=True)
    completed_occurrences = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    base_invoice_data = models.JSONField(
        help_text="Blueprint snapshot (line items, notes, payment terms) cloned into each invoice.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["next_run_date", "id"]
        indexes = [
            models.Index(fields=["is_active", "next_run_date"], name="billing_tpl_active_next_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(is_active=True) | models.Q(next_run_date__isnull=True),
                name="recurringtemplate_retired_has_no_next_run",
            ),
            models.CheckConstraint(
                condition=models.Q(tax_rate__gte=0) & models.Q(tax_rate__lte=100),
                name="recurringtemplate_tax_rate_range",
            ),
        ]

    def __str__(self) -> str:
        return self.template_name

    @property
    def blueprint(self) -> InvoiceBlueprint:
        return InvoiceBlueprint.from_data(self.base_invoice_data)


class Invoice(models.Model):
    class Status(models.TextChoices):
        DRAFT = "Draft", "Draft"
        UNPAID = "Unpaid", "Unpaid"
        PAID = "Paid", "Paid"
        OVERDUE = "Overdue", "Overdue"

    # Totals are derived from the current line items on every read and never stored.
    # Declared ahead of the fields: the `property` field shadows the builtin below.
    @property
    def totals(self) -> InvoiceTotals:
        return invoice_totals(self.line_items.all(), self.tax_rate)

    @property
    def subtotal(self) -> Decimal:
        return self.totals.subtotal

    @property
    def tax_amount(self) -> Decimal:
        return self.totals.tax_amount

    @property
    def grand_total(self) -> Decimal:
        return self.totals.grand_total

    invoice_number = models.CharField(max_length=50, unique=True, editable=False)
    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    property = models.ForeignKey(
        Property,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
    )
    invoice_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.UNPAID,
        db_index=True,
    )
    payment_date = models.DateField(blank=True, null=True)
    sent_date = models.DateTimeField(blank=True, null=True)
    notes = models.TextField(blank=True, default="")
    recurring_template = models.ForeignKey(
        RecurringTemplate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-invoice_date", "-id"]
        indexes = [
            models.Index(fields=["status", "due_date"], name="billing_inv_status_due_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(due_date__gte=models.F("invoice_date")),
                name="invoice_due_not_before_invoice_date",
            ),
            models.CheckConstraint(
                condition=models.Q(tax_rate__gte=0) & models.Q(tax_rate__lte=100),
                name="invoice_tax_rate_range",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.invoice_number} – {self.customer.name}"


class InvoiceLineItem(models.Model):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="line_items",
    )
    description = models.CharField(max_length=500, validators=[MinLengthValidator(1)])
    quantity = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("1.00"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    line_total = models.DecimalField(max_digits=12, decimal_places=2, editable=False)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gte=0), name="invoicelineitem_quantity_non_negative"),
            models.CheckConstraint(condition=models.Q(unit_price__gte=0), name="invoicelineitem_unit_price_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.description} ({self.quantity}x)"

    def save(self, *args, **kwargs):
        self.line_total = line_total(self.quantity, self.unit_price)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and ("quantity" in update_fields or "unit_price" in update_fields):
            kwargs["update_fields"] = {*update_fields, "line_total"}
        super().save(*args, **kwargs)


class PropertyServiceHistory(models.Model):
    class ServiceType(models.TextChoices):
        PAINTING = "painting", "Painting"
        REPAIR = "repair", "Repair"
        MAINTENANCE = "maintenance", "Maintenance"
        INSPECTION = "inspection", "Inspection"
        ESTIMATE = "estimate", "Estimate"
        CONSULTATION = "consultation", "Consultation"
        CLEANUP = "cleanup", "Cleanup"
        PREPARATION = "preparation", "Preparation"
        OTHER = "other", "Other"

    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="service_history",
    )
    invoice = models.OneToOneField(
        Invoice,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="service_history",
    )
    service_date = models.DateField(db_index=True)
    service_type = models.CharField(
        max_length=20,
        choices=ServiceType.choices,
        default=ServiceType.OTHER,
    )
    description = models.TextField()
    total_cost = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-service_date", "-id"]
        verbose_name_plural = "property service history"

    def __str__(self) -> str:
        return f"{self.property.name} {self.service_date} ({self.service_type})"
