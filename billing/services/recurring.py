from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from django.db import connection
from django.utils import timezone

from billing.blueprint import InvoiceBlueprint
from billing.exceptions import InvalidTransition, PartialBatchFailure, TemplateBusy, TemplateNotFound
from billing.models import Invoice, RecurringTemplate
from billing.services.lifecycle import clean_line_items, persist_invoice, unit_of_work
from billing.services.numbering import create_with_unique_number
from billing.services.scheduling import advance_template
from billing.services.totals import invoice_totals


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateResult:
    template_id: int
    invoice_number: Optional[str] = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.invoice_number is not None


@dataclass
class BatchReport:
    """Outcome of one recurring billing run, per template."""

    as_of: date
    succeeded: dict[int, str] = field(default_factory=dict)
    failed: dict[int, str] = field(default_factory=dict)
    skipped: dict[int, str] = field(default_factory=dict)

    def record(self, result: TemplateResult) -> None:
        if result.ok:
            self.succeeded[result.template_id] = result.invoice_number
        elif result.skip_reason is not None:
            self.skipped[result.template_id] = result.skip_reason
        else:
            self.failed[result.template_id] = result.error or "unknown error"

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def summary(self) -> str:
        return f"{len(self.succeeded)} generated, {len(self.failed)} failed, {len(self.skipped)} skipped"

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self)


def due_templates(*, as_of: date):
    return RecurringTemplate.objects.filter(is_active=True, next_run_date__lte=as_of).order_by("next_run_date", "pk")


def _lock_template(template_id, *, skip_locked: bool) -> RecurringTemplate | None:
    skip_locked = skip_locked and connection.features.has_select_for_update_skip_locked
    return RecurringTemplate.objects.select_for_update(skip_locked=skip_locked).filter(pk=template_id).first()


def _build_invoice(template: RecurringTemplate, *, invoice_number: str, as_of: date) -> Invoice:
    blueprint = template.blueprint
    lines = clean_line_items(blueprint.line_items)
    totals = invoice_totals(blueprint.line_items, template.tax_rate)
    invoice = persist_invoice(
        invoice_number=invoice_number,
        customer=template.customer,
        lines=lines,
        invoice_date=as_of,
        due_date=as_of + timedelta(days=blueprint.payment_terms_days),
        tax_rate=template.tax_rate,
        notes=blueprint.notes or f"Auto-generated from template: {template.template_name}",
        recurring_template=template,
    )

    state = advance_template(template)
    template.next_run_date = state.next_run_date
    template.completed_occurrences = state.completed_occurrences
    template.is_active = state.is_active
    template.save(update_fields=["next_run_date", "completed_occurrences", "is_active", "updated_at"])

    logger.info(
        "Generated invoice %s (%s) from template %s; next run %s",
        invoice.invoice_number,
        totals.grand_total,
        template.template_name,
        state.next_run_date or "none (retired)",
    )
    return invoice


def _generate(*, template_id, as_of: date, require_due: bool) -> Invoice:
    try:
        template = RecurringTemplate.objects.filter(pk=template_id).first()
    except (ValueError, TypeError):
        template = None
    if template is None:
        raise TemplateNotFound(f"Recurring template {template_id} not found.")
    if not template.is_active:
        raise InvalidTransition(f"Recurring template {template_id} is retired.")
    if template.end_date is not None and as_of > template.end_date:
        raise InvalidTransition(f"Recurring template {template_id} ended on {template.end_date.isoformat()}.")
    # Fail on a malformed blueprint before a number is reserved.
    InvoiceBlueprint.from_data(template.base_invoice_data)

    def _create(invoice_number: str) -> Invoice:
        locked = _lock_template(template_id, skip_locked=require_due)
        if locked is None:
            raise TemplateBusy(f"Recurring template {template_id} is being processed by another run.")
        if not locked.is_active or locked.next_run_date is None:
            raise TemplateBusy(f"Recurring template {template_id} was retired by another run.")
        if require_due and locked.next_run_date > as_of:
            raise TemplateBusy(f"Recurring template {template_id} is no longer due.")
        return _build_invoice(locked, invoice_number=invoice_number, as_of=as_of)

    return create_with_unique_number(year=as_of.year, create=_create)


def generate_invoice_from_template(*, template: RecurringTemplate, as_of: date) -> Invoice:
    """
    Generate the next invoice of ``template`` dated ``as_of``, whether or not it is due.

    Runs the same unit as the scheduled job: invoice, line items and the
    advanced schedule are committed together or not at all.
    """
    return _generate(template_id=template.pk, as_of=as_of, require_due=False)


def generate_invoice_for_template_id(*, template_id, as_of: date | None = None) -> Invoice:
    return _generate(template_id=template_id, as_of=as_of or timezone.localdate(), require_due=False)


def _retire_if_ended(template_id, *, as_of: date) -> bool:
    with unit_of_work(f"Retiring recurring template {template_id}"):
        template = _lock_template(template_id, skip_locked=True)
        if template is None or template.end_date is None or as_of <= template.end_date:
            return False
        template.is_active = False
        template.next_run_date = None
        template.save(update_fields=["is_active", "next_run_date", "updated_at"])
    logger.info("Recurring template %s retired: %s is past its end date", template_id, as_of.isoformat())
    return True


def _run_template(template_id, *, as_of: date) -> TemplateResult:
    try:
        if _retire_if_ended(template_id, as_of=as_of):
            return TemplateResult(template_id=template_id, skip_reason="past end date; retired")
        invoice = _generate(template_id=template_id, as_of=as_of, require_due=True)
    except (TemplateBusy, TemplateNotFound) as exc:
        logger.info("Skipping recurring template %s: %s", template_id, exc)
        return TemplateResult(template_id=template_id, skip_reason=str(exc))
    except Exception as exc:
        logger.exception("Failed to generate invoice from template %s", template_id)
        return TemplateResult(template_id=template_id, error=f"{type(exc).__name__}: {exc}")
    return TemplateResult(template_id=template_id, invoice_number=invoice.invoice_number)


def run_recurring_billing(*, as_of: date | None = None) -> BatchReport:
    """
    Generate one invoice for every active template due on or before ``as_of``.

    Each template is its own transaction. A failing template is rolled back,
    keeps its schedule (so the next run retries it) and is recorded in the
    report; the remaining templates are still processed.
    """
    as_of = as_of or timezone.localdate()
    report = BatchReport(as_of=as_of)
    template_ids = list(due_templates(as_of=as_of).values_list("pk", flat=True))
    logger.info("Found %s recurring template(s) due on %s", len(template_ids), as_of.isoformat())
    for template_id in template_ids:
        report.record(_run_template(template_id, as_of=as_of))
    if report.has_failures:
        logger.error("Recurring billing for %s finished with failures: %s", as_of.isoformat(), report.summary())
    else:
        logger.info("Recurring billing for %s finished: %s", as_of.isoformat(), report.summary())
    return report
