from django.contrib import admin

from .models import (
    Customer,
    Invoice,
    InvoiceLineItem,
    InvoiceNumberSequence,
    Property,
    PropertyServiceHistory,
    RecurringTemplate,
)


admin.site.site_header = "Contract Manager – Billing Admin"
admin.site.site_title = "Contract Manager Billing"


def _superuser_only(request):
    return request.user.is_active and request.user.is_superuser


admin.site.has_permission = _superuser_only


class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0
    fields = ("description", "quantity", "unit_price", "line_total")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_number",
        "customer",
        "invoice_date",
        "due_date",
        "status",
        "display_grand_total",
    )
    list_filter = ("status", "invoice_date")
    search_fields = ("invoice_number", "customer__name")
    ordering = ("-invoice_date", "-id")
    # Status changes go through the billing services so their side effects run.
    readonly_fields = ("invoice_number", "status", "payment_date", "sent_date", "recurring_template")
    inlines = [InvoiceLineItemInline]

    def has_add_permission(self, request):
        return False

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.status == Invoice.Status.PAID:
            return [field.name for field in obj._meta.concrete_fields]
        return self.readonly_fields

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("customer").prefetch_related("line_items")

    @admin.display(description="Grand total")
    def display_grand_total(self, obj):
        return obj.grand_total


@admin.register(RecurringTemplate)
class RecurringTemplateAdmin(admin.ModelAdmin):
    list_display = (
        "template_name",
        "customer",
        "frequency",
        "next_run_date",
        "completed_occurrences",
        "occurrences",
        "is_active",
    )
    list_filter = ("frequency", "is_active")
    search_fields = ("template_name", "customer__name")
    readonly_fields = ("next_run_date", "completed_occurrences", "is_active", "base_invoice_data")

    def has_add_permission(self, request):
        return False


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "phone", "is_active")
    search_fields = ("name", "email")


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = ("name", "customer", "last_service_date")
    search_fields = ("name", "address", "customer__name")


@admin.register(PropertyServiceHistory)
class PropertyServiceHistoryAdmin(admin.ModelAdmin):
    list_display = ("property", "service_date", "service_type", "total_cost", "invoice")
    list_filter = ("service_type",)


@admin.register(InvoiceNumberSequence)
class InvoiceNumberSequenceAdmin(admin.ModelAdmin):
    list_display = ("year", "last_value", "updated_at")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
