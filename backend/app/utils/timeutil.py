"""Calendar helpers shared by services and scheduled jobs."""

import calendar
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def subtract_months(moment: datetime, months: int) -> datetime:
    """Step back whole calendar months, clamping to the last valid day.

    31 May minus three months lands on 28/29 February rather than raising.
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def subtract_years(moment: datetime, years: int) -> datetime:
    return subtract_months(moment, years * 12)
