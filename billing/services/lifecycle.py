from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Iterator, Mapping

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from billing.exceptions import InvalidTransition, InvoiceNotFound, PersistenceError, ValidationError
from billing.models import Invoice, InvoiceLineItem, Property, PropertyServiceHistory
from billing.services.numbering import create_with_unique_number
from billing.services.totals import invoice_totals, line_total, validate_tax_rate


logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (Invoice.Status.UNPAID, Invoice.Status.OVERDUE)
DESCRIPTION_MAX_LENGTH = 500

# Marks an optional argument the caller did not pass, where None is a real value.
UNSET = object()


@contextmanager
def unit_of_work(action: str) -> Iterator[None]:
    """
    One transaction for ``action``.

    Database failures roll everything back and are re-raised as
    ``PersistenceError``; billing errors raised inside still roll back and
    propagate unchanged.
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception("%s failed; changes rolled back", action)
        raise PersistenceError(f"{action} failed: {exc}") from exc


def default_payment_terms_days() -> int:
    return int(getattr(settings, "BILLING_DEFAULT_PAYMENT_TERMS_DAYS", 30))


def _line_value(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _has_sub_cent_precision(value: Decimal) -> bool:
    return value != value.quantize(Decimal("0.01"))


def clean_line_items(line_items: Iterable[Any] | None) -> list[dict[str, Any]]:
    """
    Normalize line item input (mappings or objects with ``description``,
    ``quantity`` and ``unit_price``) into validated field dicts.

    ``quantity`` defaults to 1. Any ``line_total`` passed in is ignored; it is
    always recomputed.
    """
    cleaned: list[dict[str, Any]] = []
    for index, item in enumerate(line_items or [], start=1):
        description = str(_line_value(item, "description") or "").strip()
        if not description:
            raise ValidationError(f"Line item {index}: description is required.")
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f"Line item {index}: description is longer than {DESCRIPTION_MAX_LENGTH} characters.")
        quantity = _line_value(item, "quantity")
        if quantity is None or quantity == "":
            quantity = Decimal("1")
        unit_price = _line_value(item, "unit_price")
        try:
            total = line_total(quantity, unit_price)
        except ValidationError as exc:
            raise ValidationError(f"Line item {index}: {exc}") from None
        quantity, unit_price = Decimal(str(quantity)), Decimal(str(unit_price))
        if _has_sub_cent_precision(quantity) or _has_sub_cent_precision(unit_price):
            raise ValidationError(f"Line item {index}: quantity and unit_price allow at most 2 decimal places.")
        cleaned.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": unit_price,
                "line_total": total,
            }
        )
    return cleaned


def _create_line_items(invoice: Invoice, lines: list[dict[str, Any]]) -> list[InvoiceLineItem]:
    return InvoiceLineItem.objects.bulk_create(
        [
            InvoiceLineItem(
                invoice=invoice,
                description=line["description"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                line_total=line["line_total"],
            )
            for line in lines
        ]
    )


def persist_invoice(
    *,
    invoice_number: str,
    customer,
    lines: list[dict[str, Any]],
    invoice_date: date,
    due_date: date,
    tax_rate: Decimal,
    property: Property | None = None,
    notes: str = "",
    status: str = Invoice.Status.UNPAID,
    recurring_template=None,
) -> Invoice:
    """Write an invoice and its already cleaned lines; callers own the transaction."""
    invoice = Invoice.objects.create(
        invoice_number=invoice_number,
        customer=customer,
        property=property,
        invoice_date=invoice_date,
        due_date=due_date,
        tax_rate=tax_rate,
        status=status,
        notes=notes or "",
        recurring_template=recurring_template,
    )
    _create_line_items(invoice, lines)
    return invoice


def _get_invoice_for_update(invoice_id) -> Invoice:
    try:
        invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
    except (ValueError, TypeError):
        invoice = None
    if invoice is None:
        raise InvoiceNotFound(f"Invoice {invoice_id} not found.")
    return invoice


def create_invoice(
    *,
    customer,
    line_items: Iterable[Any] | None,
    invoice_date: date | None = None,
    due_date: date | None = None,
    tax_rate=Decimal("0.00"),
    property: Property | None = None,
    notes: str = "",
    status: str = Invoice.Status.UNPAID,
    recurring_template=None,
) -> Invoice:
    """
    Validate and persist a new invoice with its line items.

    The invoice number is allocated for the year of ``invoice_date``. Invoice
    and line items are written in one transaction; a number collision rolls
    the attempt back and retries with a fresh number.
    """
    if status not in (Invoice.Status.DRAFT, Invoice.Status.UNPAID):
        raise ValidationError("New invoices start as Draft or Unpaid.")
    lines = clean_line_items(line_items)
    if not lines and status != Invoice.Status.DRAFT:
        raise ValidationError("An invoice needs at least one line item.")
    rate = validate_tax_rate(tax_rate)
    invoice_date = invoice_date or timezone.localdate()
    if due_date is None:
        due_date = invoice_date + timedelta(days=default_payment_terms_days())
    if due_date < invoice_date:
        raise ValidationError("due_date cannot be before invoice_date.")
    if property is not None and property.customer_id != customer.pk:
        raise ValidationError("Property does not belong to this customer.")

    def _create(number: str) -> Invoice:
        return persist_invoice(
            invoice_number=number,
            customer=customer,
            lines=lines,
            invoice_date=invoice_date,
            due_date=due_date,
            tax_rate=rate,
            property=property,
            notes=notes,
            status=status,
            recurring_template=recurring_template,
        )

    invoice = create_with_unique_number(year=invoice_date.year, create=_create)
    logger.info("Created invoice %s for customer %s (%s)", invoice.invoice_number, customer.pk, invoice.status)
    return invoice


def update_invoice(
    *,
    invoice_id,
    due_date: date | None = None,
    tax_rate=None,
    notes: str | None = None,
    property: Property | None | object = UNSET,
    line_items: Iterable[Any] | None = None,
) -> Invoice:
    """
    Edit an open invoice's header fields and/or replace its line items.

    Arguments left at their default are not touched; ``property=None``
    detaches the property. The status never changes here, so correcting the
    due date of an overdue invoice leaves it overdue. Paid invoices are
    immutable.
    """
    lines = clean_line_items(line_items) if line_items is not None else None
    rate = validate_tax_rate(tax_rate) if tax_rate is not None else None
    with unit_of_work(f"Updating invoice {invoice_id}"):
        invoice = _get_invoice_for_update(invoice_id)
        if invoice.status == Invoice.Status.PAID:
            raise InvalidTransition(f"Invoice {invoice.invoice_number} is paid and cannot be edited.")

        update_fields = []
        if due_date is not None:
            if due_date < invoice.invoice_date:
                raise ValidationError("due_date cannot be before invoice_date.")
            invoice.due_date = due_date
            update_fields.append("due_date")
        if rate is not None:
            invoice.tax_rate = rate
            update_fields.append("tax_rate")
        if notes is not None:
            invoice.notes = notes
            update_fields.append("notes")
        if property is not UNSET:
            if property is not None and property.customer_id != invoice.customer_id:
                raise ValidationError("Property does not belong to this customer.")
            invoice.property = property
            update_fields.append("property")
        if lines is not None:
            if not lines and invoice.status != Invoice.Status.DRAFT:
                raise ValidationError("An invoice needs at least one line item.")
            invoice.line_items.all().delete()
            _create_line_items(invoice, lines)
        if update_fields:
            invoice.save(update_fields=update_fields)
    changed = update_fields + (["line_items"] if lines is not None else [])
    logger.info("Updated invoice %s (%s)", invoice.invoice_number, ", ".join(changed) or "no changes")
    return invoice


def replace_line_items(*, invoice_id, line_items: Iterable[Any] | None) -> Invoice:
    """Swap an open invoice's line items for a new set; paid invoices are immutable."""
    return update_invoice(invoice_id=invoice_id, line_items=line_items or [])


def _finalize(invoice: Invoice) -> None:
    if not invoice.line_items.exists():
        raise ValidationError(f"Invoice {invoice.invoice_number} has no line items and cannot be finalized.")
    invoice.status = Invoice.Status.UNPAID


def finalize_invoice(*, invoice_id) -> Invoice:
    """Draft -> Unpaid."""
    with unit_of_work(f"Finalizing invoice {invoice_id}"):
        invoice = _get_invoice_for_update(invoice_id)
        if invoice.status != Invoice.Status.DRAFT:
            raise InvalidTransition(f"Only draft invoices can be finalized; {invoice.invoice_number} is {invoice.status}.")
        _finalize(invoice)
        invoice.save(update_fields=["status"])
    return invoice


def record_invoice_sent(*, invoice_id, sent_at: datetime | None = None) -> Invoice:
    """
    Stamp the delivery time once an invoice went out to the customer.

    Sending a draft finalizes it. Delivery itself happens elsewhere.
    """
    with unit_of_work(f"Recording delivery of invoice {invoice_id}"):
        invoice = _get_invoice_for_update(invoice_id)
        update_fields = ["sent_date"]
        if invoice.status == Invoice.Status.DRAFT:
            _finalize(invoice)
            update_fields.append("status")
        invoice.sent_date = sent_at or timezone.now()
        invoice.save(update_fields=update_fields)
    return invoice


def _format_quantity(quantity: Decimal) -> str:
    return f"{Decimal(quantity).normalize():f}"


def service_summary(line_items: Iterable[InvoiceLineItem]) -> str:
    parts = [f"{item.description} ({_format_quantity(item.quantity)}x)" for item in line_items]
    return ", ".join(parts) if parts else "Service completed as per invoice"


def _record_service_history(invoice: Invoice) -> PropertyServiceHistory:
    lines = list(invoice.line_items.all())
    totals = invoice_totals(lines, invoice.tax_rate)
    history = PropertyServiceHistory.objects.create(
        property_id=invoice.property_id,
        invoice=invoice,
        service_date=invoice.invoice_date,
        service_type=PropertyServiceHistory.ServiceType.OTHER,
        description=service_summary(lines),
        total_cost=totals.grand_total,
        notes=f"Automatically created from paid invoice #{invoice.invoice_number}",
    )
    Property.objects.filter(pk=invoice.property_id).update(last_service_date=invoice.invoice_date)
    return history


def mark_invoice_paid(*, invoice_id, paid_on: date | None = None) -> Invoice:
    """
    Unpaid/Overdue -> Paid.

    For an invoice bound to a property the service history entry and the
    property's last service date are written in the same transaction as the
    status change; if either fails the invoice stays unpaid.
    """
    with unit_of_work(f"Marking invoice {invoice_id} paid"):
        invoice = _get_invoice_for_update(invoice_id)
        if invoice.status not in PAYABLE_STATUSES:
            raise InvalidTransition(f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be marked paid.")
        invoice.status = Invoice.Status.PAID
        invoice.payment_date = paid_on or timezone.localdate()
        invoice.save(update_fields=["status", "payment_date"])
        if invoice.property_id:
            history = _record_service_history(invoice)
            logger.info(
                "Recorded service history %s for property %s from invoice %s",
                history.pk,
                invoice.property_id,
                invoice.invoice_number,
            )
    logger.info("Invoice %s marked paid on %s", invoice.invoice_number, invoice.payment_date)
    return invoice
