"""
MediaSpend - Finance Accrual Module.

Compares what was delivered against what was billed for chosen months.
Both stored hierarchies of a plan version (delivery and billing) are
flattened to line items, with month-level fees, ad serving and
production as service lines, and merged per MBA number, version and
line item. A positive difference means more was delivered than billed.

Classes:
    AccrualRow: Delivered and billed amounts of one line item.
    AccrualCalculator: Builds accrual rows from plan versions.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Collection, Dict, Iterable, List, Optional, Set, Tuple

from mediaspend.dashboard import parse_schedule
from mediaspend.date_logic import DateManager
from mediaspend.schema import DeliveryLineItem, DeliveryScheduleEntry, PlanVersion, slugify

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

DELIVERY = "delivery"
BILLING = "billing"

SERVICE_LINES = (
    ("__service__adserving", "Adserving & Tech Fees", "ad_serving_fee"),
    ("__service__production", "Production", "production"),
    ("__service__fees", "Fees", "fee_total"),
)


@dataclass
class AccrualRow:
    """
    Delivered and billed amounts of one line item over the chosen months.

    Attributes:
        client_name: Client of the plan.
        client_slug: URL slug of the client.
        campaign_name: Campaign of the plan.
        mba_number: MBA number of the plan.
        version_number: Plan version the schedules belong to.
        line_item_key: Lower-case line item id, or a key built from
            the media type and headers when the id is missing.
        line_item_name: Display name of the line item.
        delivery_amount: Delivered amount.
        billing_amount: Billed amount.
    """

    client_name: str
    client_slug: str
    campaign_name: str
    mba_number: str
    version_number: int
    line_item_key: str
    line_item_name: str
    delivery_amount: Decimal = ZERO
    billing_amount: Decimal = ZERO

    @property
    def difference(self) -> Decimal:
        """Delivered minus billed."""
        return self.delivery_amount - self.billing_amount


def line_item_name(media_label: str, item: DeliveryLineItem) -> str:
    """Returns 'header1 • header2', one header, the media type, or 'Line item'."""
    if item.header1 and item.header2:
        return f"{item.header1} • {item.header2}"
    return item.header1 or item.header2 or media_label or "Line item"


def line_item_key(media_label: str, item: DeliveryLineItem, name: str) -> str:
    """Returns the merge key of a line item."""
    if item.line_item_id.strip():
        return item.line_item_id.strip().lower()
    parts = (media_label, item.header1, item.header2, name)
    return "__".join(part.lower() for part in parts)


class AccrualCalculator:
    """
    Builds delivery against billing accrual rows.

    Example:
        >>> calculator = AccrualCalculator(DateManager())
        >>> rows = calculator.compute_rows(versions, ["March 2025"])
    """

    def __init__(self, date_manager: DateManager):
        self._date_manager = date_manager

    def compute_rows(
        self,
        versions: Iterable[PlanVersion],
        months: Iterable[Any],
        client_pays_line_items: Collection[str] = ()
    ) -> List[AccrualRow]:
        """
        Merges delivered and billed amounts for the chosen months.

        Args:
            versions: Plan versions to report, usually one per MBA.
            months: Month labels or dates; unreadable values are ignored.
            client_pays_line_items: Line item ids whose media the client
                pays for directly. Their delivery is left out.

        Returns:
            One row per MBA number, version and line item, in the order
            first seen. Empty when no month is chosen.
        """
        wanted = self._month_starts(months)
        if not wanted:
            return []
        client_pays = {str(item).strip().lower() for item in client_pays_line_items}

        rows: Dict[Tuple[str, int, str], AccrualRow] = OrderedDict()
        for plan in versions:
            client_name = plan.client_name.strip() or "Unknown"
            template = dict(
                client_name=client_name,
                client_slug=slugify(client_name),
                campaign_name=plan.campaign_name.strip() or "Unknown campaign",
                mba_number=plan.mba_number.strip() or "unknown",
                version_number=plan.version_number,
            )
            for source, schedule in ((DELIVERY, plan.delivery_schedule),
                                     (BILLING, plan.billing_schedule)):
                for key, name, amount in self._flatten(schedule, wanted):
                    if source == DELIVERY and key in client_pays:
                        continue
                    row_key = (template["mba_number"], plan.version_number, key)
                    row = rows.get(row_key)
                    if row is None:
                        row = AccrualRow(line_item_key=key, line_item_name=name, **template)
                        rows[row_key] = row
                    elif len(name) > len(row.line_item_name):
                        row.line_item_name = name
                    if source == DELIVERY:
                        row.delivery_amount += amount
                    else:
                        row.billing_amount += amount
        return list(rows.values())

    def _month_starts(self, months: Iterable[Any]) -> Set[date]:
        starts = set()
        for value in months:
            start = self._date_manager.parse_month_label(value)
            if start is None:
                logger.warning("Ignoring unreadable accrual month %r", value)
                continue
            starts.add(start)
        return starts

    def _flatten(self, schedule: Any, wanted: Set[date]) -> Iterable[Tuple[str, str, Decimal]]:
        """Yields (key, name, amount) for each line of the wanted months."""
        for entry in parse_schedule(schedule, self._date_manager):
            month_start = self._entry_month(entry)
            if month_start not in wanted:
                continue
            for key, name, attribute in SERVICE_LINES:
                amount = getattr(entry, attribute)
                if amount != ZERO:
                    yield key, name, amount
            for media in entry.media_types:
                for item in media.line_items:
                    name = line_item_name(media.media_type, item)
                    yield line_item_key(media.media_type, item, name), name, item.amount

    def _entry_month(self, entry: DeliveryScheduleEntry) -> Optional[date]:
        if entry.day is not None:
            return self._date_manager.first_day_of_month(entry.day)
        return self._date_manager.parse_month_label(entry.month_label)
