from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from billing.exceptions import ValidationError


WEEKLY = "WEEKLY"
MONTHLY = "MONTHLY"
QUARTERLY = "QUARTERLY"
YEARLY = "YEARLY"

MONTH_STEPS: dict[str, int] = {
    MONTHLY: 1,
    QUARTERLY: 3,
    YEARLY: 12,
}


@dataclass(frozen=True)
class ScheduleState:
    next_run_date: Optional[date]
    completed_occurrences: int
    is_active: bool


def _add_months(d: date, months: int) -> date:
    month_index = (d.month - 1) + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def next_run_date(base: date, frequency: str) -> date:
    """
    One period after ``base``.

    Month based frequencies clamp to the last day of the target month, so
    Jan 31 + 1 month is Feb 28/29 and Feb 29 + 1 year is Feb 28.
    """
    if frequency == WEEKLY:
        return base + timedelta(days=7)
    try:
        months = MONTH_STEPS[frequency]
    except KeyError:
        raise ValidationError(f"Unsupported frequency: {frequency!r}.") from None
    return _add_months(base, months)


def first_run_date(start_date: date, frequency: str) -> date:
    # New templates bill one period after their start date.
    return next_run_date(start_date, frequency)


def advance_schedule(
    *,
    next_run: date,
    frequency: str,
    completed_occurrences: int,
    end_date: Optional[date] = None,
    occurrences: Optional[int] = None,
) -> ScheduleState:
    """
    State of a template after it generated the invoice due on ``next_run``.

    The occurrence just generated is counted before the retire decision, so a
    template capped at N occurrences retires on its Nth run.
    """
    candidate = next_run_date(next_run, frequency)
    completed = completed_occurrences + 1
    should_retire = (end_date is not None and candidate > end_date) or (
        occurrences is not None and completed >= occurrences
    )
    if should_retire:
        return ScheduleState(next_run_date=None, completed_occurrences=completed, is_active=False)
    return ScheduleState(next_run_date=candidate, completed_occurrences=completed, is_active=True)


def advance_template(template) -> ScheduleState:
    if template.next_run_date is None:
        raise ValidationError("Template has no scheduled run to advance from.")
    return advance_schedule(
        next_run=template.next_run_date,
        frequency=template.frequency,
        completed_occurrences=template.completed_occurrences or 0,
        end_date=template.end_date,
        occurrences=template.occurrences,
    )
