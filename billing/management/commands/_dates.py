from __future__ import annotations

from datetime import date

from django.core.management.base import CommandError
from django.utils import timezone
from django.utils.dateparse import parse_date


def resolve_run_date(raw: str | None) -> date:
    if not raw:
        return timezone.localdate()
    try:
        parsed = parse_date(raw.strip())
    except ValueError:
        parsed = None
    if parsed is None:
        raise CommandError(f"Invalid --date {raw!r}; expected YYYY-MM-DD.")
    return parsed
