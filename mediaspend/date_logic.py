"""
MediaSpend - Date Logic Module.

This module provides the calendar arithmetic used by proration and
reporting: inclusive day counts, month boundaries, canonical
"Month Year" labels, financial-year and rolling windows, and lenient
date coercion for stored records.

Classes:
    DateManager: Manages all date-related calculations.
"""

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Any, Iterator, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MONTH_NAMES = [name.lower() for name in calendar.month_name[1:]]
MONTH_ABBREVIATIONS = [name.lower() for name in calendar.month_abbr[1:]]

ISO_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})$")
SLASH_MONTH_PATTERN = re.compile(r"^(\d{1,2})/(\d{4})$")
SLASH_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


class DateManager:
    """
    Manages calendar calculations for spend proration.

    Day counts are inclusive of both endpoints, so a single-day range
    has one day. Local-day conversions use the configured IANA zone.

    Attributes:
        timezone_name: IANA zone for converting aware datetimes.

    Example:
        >>> dm = DateManager()
        >>> dm.days_between_inclusive(date(2025, 1, 15), date(2025, 2, 14))
        31
        >>> dm.month_label(date(2025, 3, 9))
        'March 2025'
    """

    def __init__(self, timezone_name: str = "Australia/Melbourne"):
        """
        Initialises the DateManager.

        Args:
            timezone_name: IANA zone used for local day boundaries.
                           Unknown zones fall back to UTC.
        """
        self.timezone_name = timezone_name
        try:
            self._zone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            self._zone = ZoneInfo("UTC")

    def get_days_in_month(self, year: int, month: int) -> int:
        """
        Returns the total number of days in the specified month.

        Args:
            year: Four-digit year.
            month: Month number (1-12).

        Returns:
            Number of days in the specified month.

        Raises:
            ValueError: If month is not in range 1-12.
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        return calendar.monthrange(year, month)[1]

    def days_between_inclusive(self, start: date, end: date) -> int:
        """
        Counts the days from start to end, counting both endpoints.

        Returns zero or a negative number when end precedes start.
        """
        return (end - start).days + 1

    def first_day_of_month(self, value: date) -> date:
        """Returns the first day of the month containing value."""
        return date(value.year, value.month, 1)

    def last_day_of_month(self, value: date) -> date:
        """Returns the last day of the month containing value."""
        return date(
            value.year,
            value.month,
            self.get_days_in_month(value.year, value.month)
        )

    def next_month(self, value: date) -> date:
        """Returns the first day of the month after value."""
        if value.month == 12:
            return date(value.year + 1, 1, 1)
        return date(value.year, value.month + 1, 1)

    def iter_months(self, start: date, end: date) -> Iterator[date]:
        """
        Yields the first day of every month from start to end inclusive.

        Nothing is yielded when end precedes the month of start.

        Args:
            start: Any date in the first month.
            end: Any date in the last month.
        """
        current = self.first_day_of_month(start)
        last = self.first_day_of_month(end)
        while current <= last:
            yield current
            current = self.next_month(current)

    def month_label(self, value: date) -> str:
        """Returns the canonical bucket label, e.g. 'March 2025'."""
        return f"{calendar.month_name[value.month]} {value.year}"

    def parse_month_label(self, value: Any) -> Optional[date]:
        """
        Parses a month label into the first day of that month.

        Accepts full or three-letter month names followed by a year
        ("March 2025", "Mar 2025"), "2025-03", "03/2025", and any value
        coerce_date understands, which resolves to its month.

        Args:
            value: Label from a stored schedule.

        Returns:
            First day of the month, or None if the label is not a month.
        """
        if isinstance(value, (date, datetime)):
            return date(value.year, value.month, 1)
        if not isinstance(value, str):
            return None

        text = value.strip()
        parts = text.split()
        if len(parts) == 2 and parts[1].isdigit():
            name = parts[0].lower().rstrip(".")
            if name in MONTH_NAMES:
                month = MONTH_NAMES.index(name) + 1
            elif name in MONTH_ABBREVIATIONS:
                month = MONTH_ABBREVIATIONS.index(name) + 1
            else:
                return None
            year = int(parts[1])
        else:
            match = ISO_MONTH_PATTERN.match(text)
            if match:
                year, month = int(match.group(1)), int(match.group(2))
            else:
                match = SLASH_MONTH_PATTERN.match(text)
                if not match:
                    parsed = self.coerce_date(text)
                    return date(parsed.year, parsed.month, 1) if parsed else None
                month, year = int(match.group(1)), int(match.group(2))

        try:
            return date(year, month, 1)
        except ValueError:
            return None

    def coerce_date(self, value: Any) -> Optional[date]:
        """
        Converts a stored date value to a date.

        Accepts date and datetime objects, ISO dates, ISO timestamps
        (including a trailing 'Z') and day/month/year strings. Aware
        timestamps are converted to the local zone first.

        Args:
            value: Raw value from a record.

        Returns:
            The date, or None when the value cannot be parsed.
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return self.to_local_date(value)
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None

        text = value.strip()
        match = SLASH_DATE_PATTERN.match(text)
        if match:
            day, month, year = (int(group) for group in match.groups())
            try:
                return date(year, month, day)
            except ValueError:
                return None

        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return self.to_local_date(datetime.fromisoformat(text))
        except ValueError:
            return None

    def to_local_date(self, value: datetime) -> date:
        """
        Returns the local calendar day of a datetime.

        Naive datetimes are taken as already local.
        """
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(self._zone).date()

    def today(self) -> date:
        """Returns the current local day."""
        return datetime.now(self._zone).date()

    def financial_year(
        self,
        reference_date: date,
        start_month: int = 7
    ) -> Tuple[date, date]:
        """
        Returns the inclusive financial-year window containing a date.

        With the default July start, 2025-03-10 falls in
        2024-07-01 .. 2025-06-30 and 2025-07-01 starts a new year.

        Args:
            reference_date: Any day in the financial year.
            start_month: First month of the financial year.

        Returns:
            Tuple of (first day, last day).

        Raises:
            ValueError: If start_month is not in range 1-12.
        """
        if not 1 <= start_month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {start_month}")

        year = reference_date.year
        if reference_date.month < start_month:
            year -= 1
        start = date(year, start_month, 1)
        if start_month == 1:
            end = date(year, 12, 31)
        else:
            end = date(year + 1, start_month, 1) - timedelta(days=1)
        return start, end

    def rolling_window(self, reference_date: date, days: int = 30) -> Tuple[date, date]:
        """
        Returns the inclusive window of `days` calendar days ending on
        the reference date.
        """
        return reference_date - timedelta(days=days - 1), reference_date
