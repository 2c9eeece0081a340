"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from typing import List

MONTH_ABBREVIATIONS = ["ENE", "FEB", "MAR", "ABR", "MAY", "JUN", "JUL", "AGO", "SEP", "OCT", "NOV", "DIC"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def shift_month(from_date: date, months: int) -> date:
    """First day of the month `months` away from `from_date` (negative goes back)"""
    index = from_date.year * 12 + (from_date.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def format_month_label(month: date) -> str:
    """Short label like 'ENE 25'"""
    return f"{MONTH_ABBREVIATIONS[month.month - 1]} {month.year % 100:02d}"


def review_month_labels(reference: date, count: int = 3, skip: int = 1) -> List[str]:
    """
    Labels for the reviewed months before `reference`, oldest first.

    The `skip` most recent months are left out; the month right before the
    reference is usually still open when the review happens.

    Example:
        reference 2025-06-10 -> ['FEB 25', 'MAR 25', 'ABR 25']
    """
    newest_offset = -(skip + 1)
    offsets = range(newest_offset - count + 1, newest_offset + 1)
    return [format_month_label(shift_month(reference, offset)) for offset in offsets]
