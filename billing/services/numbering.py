from __future__ import annotations

import logging
from typing import Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from billing.exceptions import InvoiceNumberConflict, PersistenceError, ValidationError
from billing.models import Invoice, InvoiceNumberSequence


logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "INV"
SEQUENCE_WIDTH = 4

T = TypeVar("T")


def format_invoice_number(year: int, seq: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}-{year:04d}-{seq:0{SEQUENCE_WIDTH}d}"


def _year_prefix(year: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}-{year:04d}-"


def _check_year(year) -> int:
    if isinstance(year, bool) or not isinstance(year, int) or not 1000 <= year <= 9999:
        raise ValidationError(f"Invoice year must be a four-digit year, got {year!r}.")
    return year


def _highest_existing_sequence(year: int) -> int:
    """Largest sequence already used by invoices of ``year`` (0 when none)."""
    prefix = _year_prefix(year)
    highest = 0
    for number in Invoice.objects.filter(invoice_number__startswith=prefix).values_list("invoice_number", flat=True):
        tail = number[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def _get_sequence_for_update(year: int) -> InvoiceNumberSequence:
    sequence = InvoiceNumberSequence.objects.select_for_update().filter(year=year).first()
    if sequence:
        return sequence
    try:
        # Seeded from existing invoices so numbers written before the counter existed are never repeated.
        with transaction.atomic():
            return InvoiceNumberSequence.objects.create(year=year, last_value=_highest_existing_sequence(year))
    except IntegrityError:
        return InvoiceNumberSequence.objects.select_for_update().get(year=year)


def allocate_invoice_number(*, year: int | None = None) -> str:
    """
    Reserve the next invoice number for ``year``.

    The per-year counter row is locked and incremented inside its own
    transaction, so concurrent callers always get distinct numbers. Called
    outside an enclosing transaction the reservation is committed at once and
    a number is never handed out twice, even when the invoice that used it is
    later rolled back (leaving a gap). Inside an enclosing transaction the
    reservation lives and dies with that transaction.
    """
    if year is None:
        year = timezone.localdate().year
    year = _check_year(year)
    with transaction.atomic():
        sequence = _get_sequence_for_update(year)
        InvoiceNumberSequence.objects.filter(pk=sequence.pk).update(
            last_value=F("last_value") + 1,
            updated_at=timezone.now(),
        )
        sequence.refresh_from_db(fields=["last_value"])
    return format_invoice_number(year, sequence.last_value)


def create_with_unique_number(*, year: int, create: Callable[[str], T]) -> T:
    """
    Run ``create(number)`` in a transaction with a freshly allocated number.

    When the insert collides with an existing invoice number the attempt is
    rolled back and retried with a new number, up to
    ``BILLING_NUMBER_ALLOCATION_RETRIES`` times. Any other database failure
    aborts the unit and is raised as ``PersistenceError``.
    """
    attempts = max(1, int(getattr(settings, "BILLING_NUMBER_ALLOCATION_RETRIES", 5)))
    tried: list[str] = []
    for _ in range(attempts):
        number = allocate_invoice_number(year=year)
        tried.append(number)
        try:
            with transaction.atomic():
                return create(number)
        except IntegrityError as exc:
            if not Invoice.objects.filter(invoice_number=number).exists():
                raise PersistenceError(f"Could not save invoice {number}: {exc}") from exc
            logger.warning("Invoice number %s already taken; retrying with a fresh number", number)
        except DatabaseError as exc:
            raise PersistenceError(f"Could not save invoice {number}: {exc}") from exc
    raise InvoiceNumberConflict(f"Could not allocate a free invoice number after {attempts} attempts: {', '.join(tried)}")
