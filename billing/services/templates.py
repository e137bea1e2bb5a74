from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from django.utils import timezone

from billing.blueprint import InvoiceBlueprint
from billing.exceptions import InvalidTransition, TemplateNotFound, ValidationError
from billing.models import RecurringTemplate
from billing.services.lifecycle import UNSET, unit_of_work
from billing.services.scheduling import first_run_date, next_run_date
from billing.services.totals import validate_tax_rate


logger = logging.getLogger(__name__)

TEMPLATE_NAME_MAX_LENGTH = 100


def get_template_for_update(template_id) -> RecurringTemplate:
    try:
        template = RecurringTemplate.objects.select_for_update().filter(pk=template_id).first()
    except (ValueError, TypeError):
        template = None
    if template is None:
        raise TemplateNotFound(f"Recurring template {template_id} not found.")
    return template


def _check_name(template_name: str) -> str:
    template_name = (template_name or "").strip()
    if not template_name or len(template_name) > TEMPLATE_NAME_MAX_LENGTH:
        raise ValidationError(f"template_name must be 1 to {TEMPLATE_NAME_MAX_LENGTH} characters.")
    return template_name


def _check_frequency(frequency: str) -> str:
    if frequency not in RecurringTemplate.Frequency.values:
        raise ValidationError(f"Unsupported frequency: {frequency!r}.")
    return frequency


def _check_occurrences(occurrences, *, completed: int = 0):
    if occurrences is None:
        return None
    if isinstance(occurrences, bool) or not isinstance(occurrences, int) or occurrences < 1:
        raise ValidationError("occurrences must be a positive whole number.")
    if occurrences < completed:
        raise ValidationError(f"occurrences cannot be below the {completed} invoice(s) already generated.")
    return occurrences


def _is_exhausted(*, next_run: date | None, end_date: date | None, occurrences, completed: int) -> bool:
    if occurrences is not None and completed >= occurrences:
        return True
    return next_run is not None and end_date is not None and next_run > end_date


def _initial_schedule(*, start_date: date, frequency: str, end_date: date | None) -> tuple[date | None, bool]:
    next_run = first_run_date(start_date, frequency)
    if end_date is not None and next_run > end_date:
        return None, False
    return next_run, True


def create_recurring_template(
    *,
    customer,
    template_name: str,
    frequency: str,
    start_date: date,
    blueprint: InvoiceBlueprint | dict[str, Any],
    tax_rate=Decimal("0.00"),
    end_date: date | None = None,
    occurrences: int | None = None,
) -> RecurringTemplate:
    """
    Validate the blueprint once and store it as the template's snapshot.

    The first invoice is due one period after ``start_date``. A template whose
    first run already falls after ``end_date`` is stored retired.
    """
    template_name = _check_name(template_name)
    _check_frequency(frequency)
    rate = validate_tax_rate(tax_rate)
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date cannot be before start_date.")
    _check_occurrences(occurrences)
    snapshot = InvoiceBlueprint.from_data(blueprint).to_data()
    next_run, is_active = _initial_schedule(start_date=start_date, frequency=frequency, end_date=end_date)

    with unit_of_work(f"Creating recurring template {template_name!r}"):
        template = RecurringTemplate.objects.create(
            customer=customer,
            template_name=template_name,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            occurrences=occurrences,
            next_run_date=next_run,
            is_active=is_active,
            tax_rate=rate,
            base_invoice_data=snapshot,
        )
    logger.info("Created recurring template %s (%s), next run %s", template.pk, frequency, next_run)
    return template


def update_recurring_template(
    *,
    template_id,
    template_name: str | None = None,
    tax_rate=None,
    start_date: date | None = None,
    frequency: str | None = None,
    end_date: date | None | object = UNSET,
    occurrences: int | None | object = UNSET,
) -> RecurringTemplate:
    """
    Edit a template's name, tax rate, schedule and bounds.

    Arguments left at their default are not touched; ``end_date=None`` and
    ``occurrences=None`` remove the bound. A new start date or frequency
    recomputes the next run from them, which is only possible on an active
    template. Bounds that leave nothing to generate retire the template.
    """
    if template_name is not None:
        template_name = _check_name(template_name)
    if frequency is not None:
        _check_frequency(frequency)
    rate = validate_tax_rate(tax_rate) if tax_rate is not None else None

    with unit_of_work(f"Updating recurring template {template_id}"):
        template = get_template_for_update(template_id)
        update_fields = ["updated_at"]

        if template_name is not None:
            template.template_name = template_name
            update_fields.append("template_name")
        if rate is not None:
            template.tax_rate = rate
            update_fields.append("tax_rate")
        if end_date is not UNSET:
            template.end_date = end_date
            update_fields.append("end_date")
        if occurrences is not UNSET:
            template.occurrences = _check_occurrences(occurrences, completed=template.completed_occurrences)
            update_fields.append("occurrences")

        rescheduled = start_date is not None or frequency is not None
        if rescheduled:
            if not template.is_active:
                raise InvalidTransition(
                    f"Recurring template {template.pk} is retired; reactivate it before rescheduling."
                )
            template.start_date = start_date or template.start_date
            template.frequency = frequency or template.frequency
            template.next_run_date = first_run_date(template.start_date, template.frequency)
            update_fields += ["start_date", "frequency", "next_run_date"]
        if template.end_date is not None and template.end_date < template.start_date:
            raise ValidationError("end_date cannot be before start_date.")

        if template.is_active and _is_exhausted(
            next_run=template.next_run_date,
            end_date=template.end_date,
            occurrences=template.occurrences,
            completed=template.completed_occurrences,
        ):
            template.is_active = False
            template.next_run_date = None
            update_fields += ["is_active", "next_run_date"]
        template.save(update_fields=list(dict.fromkeys(update_fields)))

    logger.info(
        "Updated recurring template %s (%s), next run %s",
        template.pk,
        ", ".join(field for field in update_fields if field != "updated_at") or "no changes",
        template.next_run_date or "none (retired)",
    )
    return template


def reschedule_recurring_template(
    *,
    template_id,
    start_date: date | None = None,
    frequency: str | None = None,
) -> RecurringTemplate:
    """Change start date and/or frequency and recompute the next run from them."""
    return update_recurring_template(template_id=template_id, start_date=start_date, frequency=frequency)


def deactivate_recurring_template(*, template_id) -> RecurringTemplate:
    with unit_of_work(f"Deactivating recurring template {template_id}"):
        template = get_template_for_update(template_id)
        template.is_active = False
        template.next_run_date = None
        template.save(update_fields=["is_active", "next_run_date", "updated_at"])
    logger.info("Recurring template %s deactivated", template.pk)
    return template


def reactivate_recurring_template(*, template_id, as_of: date | None = None) -> RecurringTemplate:
    """
    Resume a paused template.

    The next run is the first date on the template's cadence (start date plus
    whole periods) on or after ``as_of``; periods missed while paused are not
    billed. A template whose occurrence cap is used up or whose end date
    leaves no further run cannot be resumed.
    """
    as_of = as_of or timezone.localdate()
    with unit_of_work(f"Reactivating recurring template {template_id}"):
        template = get_template_for_update(template_id)
        if template.is_active:
            return template

        next_run = first_run_date(template.start_date, template.frequency)
        while next_run < as_of:
            next_run = next_run_date(next_run, template.frequency)
        if _is_exhausted(
            next_run=next_run,
            end_date=template.end_date,
            occurrences=template.occurrences,
            completed=template.completed_occurrences,
        ):
            raise InvalidTransition(f"Recurring template {template.pk} has no runs left to schedule.")

        template.is_active = True
        template.next_run_date = next_run
        template.save(update_fields=["is_active", "next_run_date", "updated_at"])
    logger.info("Recurring template %s reactivated, next run %s", template.pk, next_run)
    return template
