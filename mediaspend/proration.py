"""
MediaSpend - Month Proration Engine.

This module splits a dated amount into calendar-month shares weighted by
the number of days each month contributes to the range, and prorates
amounts into arbitrary reporting windows by day overlap.

Invalid ranges (missing dates, start after end) never raise: they
contribute nothing and are logged.

Classes:
    ProrationEngine: Day-weighted month and window proration.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from mediaspend.date_logic import DateManager

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ProrationEngine:
    """
    Distributes amounts across calendar months by day overlap.

    Shares are exact Decimal fractions of the amount. The last month
    receives the amount less the earlier shares, so shares always sum
    to the amount exactly.

    Example:
        >>> engine = ProrationEngine(DateManager())
        >>> shares = engine.prorate(date(2025, 1, 15), date(2025, 2, 14), Decimal("3100"))
        >>> list(shares)
        ['January 2025', 'February 2025']
    """

    def __init__(self, date_manager: DateManager):
        """
        Initialises the ProrationEngine with a DateManager.

        Args:
            date_manager: DateManager instance for calendar arithmetic.
        """
        self._date_manager = date_manager

    def prorate(
        self,
        start: Optional[date],
        end: Optional[date],
        amount: Decimal
    ) -> Dict[str, Decimal]:
        """
        Splits an amount into month shares weighted by days.

        For each month touched by [start, end] the share is
        amount * days_in_slice / total_days, where both counts include
        their endpoints.

        Args:
            start: First day of the range.
            end: Last day of the range.
            amount: Amount to distribute.

        Returns:
            Month label to share, in chronological order. Empty when
            either date is missing or start is after end.
        """
        if start is None or end is None:
            logger.warning("Skipping proration of %s: missing date", amount)
            return {}

        total_days = self._date_manager.days_between_inclusive(start, end)
        if total_days <= 0:
            logger.warning(
                "Skipping proration of %s: start %s is after end %s",
                amount, start, end
            )
            return {}

        shares: Dict[str, Decimal] = {}
        allocated = ZERO
        months = list(self._date_manager.iter_months(start, end))
        for index, month_start in enumerate(months):
            label = self._date_manager.month_label(month_start)
            if index == len(months) - 1:
                shares[label] = amount - allocated
                break

            slice_start = max(start, month_start)
            slice_end = min(end, self._date_manager.last_day_of_month(month_start))
            days = self._date_manager.days_between_inclusive(slice_start, slice_end)
            share = amount * Decimal(days) / Decimal(total_days)
            shares[label] = share
            allocated += share

        return shares

    def overlap_days(
        self,
        start: date,
        end: date,
        window_start: date,
        window_end: date
    ) -> int:
        """Counts the days shared by two inclusive ranges, zero if disjoint."""
        overlap = self._date_manager.days_between_inclusive(
            max(start, window_start),
            min(end, window_end)
        )
        return max(overlap, 0)

    def prorate_into_window(
        self,
        start: Optional[date],
        end: Optional[date],
        amount: Decimal,
        window_start: date,
        window_end: date
    ) -> Decimal:
        """
        Returns the part of an amount that falls inside a window.

        The amount is spread evenly over the days of [start, end] and
        the days inside [window_start, window_end] are kept.

        Args:
            start: First day of the range carrying the amount.
            end: Last day of the range carrying the amount.
            amount: Amount spread over the range.
            window_start: First day of the reporting window.
            window_end: Last day of the reporting window.

        Returns:
            The in-window amount; zero for invalid or disjoint ranges.
        """
        if start is None or end is None:
            return ZERO
        total_days = self._date_manager.days_between_inclusive(start, end)
        if total_days <= 0:
            return ZERO

        overlap = self.overlap_days(start, end, window_start, window_end)
        if overlap == 0:
            return ZERO
        if overlap == total_days:
            return amount
        return amount * Decimal(overlap) / Decimal(total_days)


def prorate(
    start: Optional[date],
    end: Optional[date],
    amount: Decimal,
    date_manager: Optional[DateManager] = None
) -> Dict[str, Decimal]:
    """
    Splits an amount into calendar-month shares weighted by days.

    Convenience wrapper around ProrationEngine.prorate.
    """
    engine = ProrationEngine(date_manager or DateManager())
    return engine.prorate(start, end, amount)
