"""Date normalization across platform export formats, plus week helpers."""
from __future__ import annotations

import datetime
import re
from typing import Iterable, Optional, Tuple

import pytz

from django.conf import settings

SLASH_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})\b")
ISO_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})")
TWO_DIGIT_YEAR_PIVOT = 30
EARLIEST_REPORTING_YEAR = 2020


def _expand_year(year: str) -> int:
    value = int(year)
    if len(year) == 2:
        return 2000 + value if value < TWO_DIGIT_YEAR_PIVOT else 1900 + value
    return value


def normalize_platform_date(value) -> Optional[datetime.date]:
    """
    Parse a platform-native date into a calendar date.

    Accepts Uber Eats style ``M/D/YY`` (or ``M/D/YYYY``), DoorDash/Grubhub
    ``YYYY-MM-DD`` optionally followed by a time, and ``date``/``datetime``
    objects. Returns None when nothing sensible can be read.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value

    text = str(value).strip()
    if not text:
        return None

    try:
        match = ISO_DATE_RE.match(text)
        if match:
            year, month, day = match.groups()
            return datetime.date(int(year), int(month), int(day))

        match = SLASH_DATE_RE.match(text)
        if match:
            month, day, year = match.groups()
            return datetime.date(_expand_year(year), int(month), int(day))
    except ValueError:
        return None
    return None


def week_start(day: datetime.date) -> datetime.date:
    """Monday of the week containing ``day``."""
    return day - datetime.timedelta(days=day.weekday())


def week_range(day: datetime.date) -> Tuple[datetime.date, datetime.date]:
    start = week_start(day)
    return start, start + datetime.timedelta(days=6)


def current_week_range(tzname: str | None = None) -> Tuple[datetime.date, datetime.date]:
    """Monday to Sunday of the current week in the business timezone."""
    tz = pytz.timezone(tzname or getattr(settings, "DELIVERY_METRICS_TIMEZONE", "UTC"))
    today = datetime.datetime.now(tz).date()
    return week_range(today)


def available_weeks(dates: Iterable) -> list[dict]:
    """
    Distinct Monday-Sunday weeks covering ``dates``, newest first.

    Years before 2020 are treated as bad parses and dropped.
    """
    starts = set()
    for value in dates:
        day = normalize_platform_date(value)
        if day is None or day.year < EARLIEST_REPORTING_YEAR:
            continue
        starts.add(week_start(day))

    weeks = []
    for start in sorted(starts, reverse=True):
        end = start + datetime.timedelta(days=6)
        weeks.append(
            {
                "week_start": start,
                "week_end": end,
                "label": f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}",
            }
        )
    return weeks
