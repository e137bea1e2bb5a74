from __future__ import annotations

import logging
from datetime import date

from django.utils import timezone

from billing.models import Invoice


logger = logging.getLogger(__name__)


def overdue_candidates(*, as_of: date):
    return Invoice.objects.filter(status=Invoice.Status.UNPAID, due_date__lt=as_of)


def mark_overdue_invoices(*, as_of: date | None = None) -> int:
    """
    Move every unpaid invoice whose due date is before ``as_of`` to Overdue.

    A single UPDATE statement; only the status column changes. Draft and paid
    invoices are never matched, so running it again for the same day is a
    no-op. Returns the number of invoices moved.
    """
    as_of = as_of or timezone.localdate()
    updated = overdue_candidates(as_of=as_of).update(status=Invoice.Status.OVERDUE)
    logger.info("Marked %s invoice(s) overdue as of %s", updated, as_of.isoformat())
    return updated
