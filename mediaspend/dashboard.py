"""
MediaSpend - Financial-Year Dashboard Aggregator.

This module turns persisted delivery schedules into read-only spend
analytics. One version is selected per MBA number, its delivered spend
is placed into the financial year and the rolling window by day
overlap, and breakdowns by media type and campaign are produced for the
financial year.

Plans without usable delivery data are reported from a straight-line
estimate of their budget instead of being left out.

Classes:
    DashboardAggregator: Builds DashboardMetrics from plan versions.
"""

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from mediaspend.date_logic import DateManager
from mediaspend.money import parse_money
from mediaspend.proration import ProrationEngine
from mediaspend.schema import (
    CampaignSpend,
    DashboardMetrics,
    DeliveryLineItem,
    DeliveryMediaType,
    DeliveryScheduleEntry,
    MediaType,
    MonthlySpend,
    PlanStatus,
    PlanVersion,
    SpendShare,
    slugify,
)
from mediaspend.settings import EngineSettings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
OTHER_MEDIA_LABEL = "Other"

# (MBA number or None, display name)
ShareKey = Tuple[Optional[str], str]

MONTH_KEYS = ("monthYear", "month_year", "month")
DAY_KEYS = ("day", "date")


@dataclass
class SpendSlice:
    """An amount spread evenly over an inclusive date range."""

    start: date
    end: date
    amount: Decimal
    media_label: str


def media_type_label(value: Any) -> str:
    """
    Returns the display label for a stored media type name.

    Known media types resolve to their label; anything else is
    title-cased, and empty names become 'Other'.
    """
    media_type = MediaType.from_key(value)
    if media_type is not None:
        return media_type.label
    text = str(value or "").strip()
    return text.title() if text else OTHER_MEDIA_LABEL


def parse_schedule(raw: Any, date_manager: DateManager) -> List[DeliveryScheduleEntry]:
    """
    Parses a persisted delivery or billing schedule.

    The schedule may be a list of entries, an object with a 'months'
    list, or a JSON string of either. An entry with a month label
    covers that month; an entry with a 'day' or 'date' covers one day.
    Line items may sit under 'mediaTypes' or directly on the entry.
    Entries whose period cannot be read are skipped.

    Args:
        raw: Stored schedule value.
        date_manager: DateManager instance for parsing labels.

    Returns:
        Parsed entries in stored order.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed schedule JSON")
            return []
    if isinstance(raw, Mapping):
        raw = raw.get("months")
    if not isinstance(raw, list):
        return []

    entries = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        entry = _parse_entry(item, date_manager)
        if entry is not None:
            entries.append(entry)
    return entries


def _parse_entry(item: Mapping[str, Any], date_manager: DateManager) -> Optional[DeliveryScheduleEntry]:
    """Parses one schedule entry, or returns None if it has no period."""
    entry = DeliveryScheduleEntry(
        fee_total=parse_money(item.get("feeTotal")),
        ad_serving_fee=parse_money(item.get("adservingTechFees")),
        production=parse_money(item.get("production")),
    )

    raw_day = next((item[key] for key in DAY_KEYS if item.get(key)), None)
    raw_month = next((item[key] for key in MONTH_KEYS if item.get(key)), None)
    if raw_day is not None:
        entry.day = date_manager.coerce_date(raw_day)
        if entry.day is None:
            return None
    elif raw_month is not None:
        month_start = date_manager.parse_month_label(raw_month)
        if month_start is None:
            return None
        entry.month_label = date_manager.month_label(month_start)
    else:
        return None

    media_types = item.get("mediaTypes")
    if isinstance(media_types, list):
        for media in media_types:
            if not isinstance(media, Mapping):
                continue
            group = DeliveryMediaType(media_type=media_type_label(media.get("mediaType")))
            group.line_items = _parse_line_items(media.get("lineItems"))
            entry.media_types.append(group)

    loose_items = _parse_line_items(item.get("lineItems"))
    if loose_items:
        entry.media_types.append(
            DeliveryMediaType(media_type=OTHER_MEDIA_LABEL, line_items=loose_items)
        )
    return entry


def _parse_line_items(raw: Any) -> List[DeliveryLineItem]:
    """Parses a list of stored line items; other values give none."""
    if not isinstance(raw, list):
        return []
    items = []
    for line_item in raw:
        if not isinstance(line_item, Mapping):
            continue
        items.append(DeliveryLineItem(
            line_item_id=str(line_item.get("lineItemId") or ""),
            header1=str(line_item.get("header1") or "").strip(),
            header2=str(line_item.get("header2") or "").strip(),
            amount=parse_money(line_item.get("amount")),
        ))
    return items


def select_active_versions(versions: Iterable[PlanVersion]) -> Dict[str, PlanVersion]:
    """
    Selects the version used for reporting for each MBA number.

    The highest version with a booked, approved or completed status
    wins. When no version qualifies, the highest version that is not
    cancelled is used (the highest overall if all are cancelled) and a
    warning is logged. Versions without an MBA number are skipped.

    Args:
        versions: All versions of all plans.

    Returns:
        Selected version per MBA number, in first-seen order.
    """
    grouped: Dict[str, List[PlanVersion]] = OrderedDict()
    for version in versions:
        if not version.mba_number:
            logger.warning("Skipping plan version without an MBA number")
            continue
        grouped.setdefault(version.mba_number, []).append(version)

    selected: Dict[str, PlanVersion] = OrderedDict()
    for mba_number, candidates in grouped.items():
        ordered = sorted(candidates, key=lambda v: v.version_number, reverse=True)
        live = next((v for v in ordered if v.status.is_live), None)
        if live is None:
            live = next(
                (v for v in ordered if v.status is not PlanStatus.CANCELLED), ordered[0]
            )
            logger.warning(
                "No booked, approved or completed version for MBA %s; "
                "using version %s (%s)",
                mba_number, live.version_number, live.status.value
            )
        selected[mba_number] = live
    return selected


class DashboardAggregator:
    """
    Aggregates delivered spend across plans for the dashboard.

    Month entries are spread evenly over the days of their month and
    prorated into each window by day overlap. Day entries count in full
    when the day lies inside a window.

    Example:
        >>> aggregator = DashboardAggregator(EngineSettings(), DateManager())
        >>> metrics = aggregator.aggregate("acme", versions, date(2025, 3, 10))
        >>> metrics.financial_year_start
        datetime.date(2024, 7, 1)
    """

    def __init__(self, settings: EngineSettings, date_manager: DateManager):
        """
        Initialises the DashboardAggregator.

        Args:
            settings: Engine settings for windows and the fallback.
            date_manager: DateManager instance for calendar arithmetic.
        """
        self._settings = settings
        self._date_manager = date_manager
        self._proration_engine = ProrationEngine(date_manager)

    def aggregate(
        self,
        client_slug: Optional[str],
        versions: Iterable[PlanVersion],
        reference_date: Union[date, datetime, None] = None
    ) -> DashboardMetrics:
        """
        Builds dashboard metrics for a client, or for all clients.

        Args:
            client_slug: Slug of the client to report, or None for all.
            versions: Every version of every plan.
            reference_date: Day (or moment) to report at. Aware
                            datetimes are converted to the local zone.
                            Defaults to the current local day.

        Returns:
            DashboardMetrics for the financial year and rolling window
            containing the reference day.
        """
        today = self._resolve_reference(reference_date)
        fy_start, fy_end = self._date_manager.financial_year(
            today, self._settings.financial_year_start_month
        )
        rolling_start, rolling_end = self._date_manager.rolling_window(
            today, self._settings.rolling_window_days
        )
        metrics = DashboardMetrics(
            client_slug=client_slug,
            reference_date=today,
            financial_year_start=fy_start,
            financial_year_end=fy_end,
            rolling_start=rolling_start,
            rolling_end=rolling_end,
        )

        days = [rolling_start + timedelta(days=offset)
                for offset in range(self._settings.rolling_window_days)]
        months = list(self._date_manager.iter_months(fy_start, fy_end))
        metrics.daily_spend = {day: ZERO for day in days}
        monthly: Dict[date, Dict[str, Decimal]] = {month: {} for month in months}
        by_media: Dict[ShareKey, Decimal] = {}
        by_campaign: Dict[ShareKey, Decimal] = {}

        for plan in self._plans_for_client(client_slug, versions):
            slices, estimated = self._spend_slices(plan)
            campaign = CampaignSpend(
                mba_number=plan.mba_number,
                campaign_name=plan.campaign_name or plan.mba_number,
                version_number=plan.version_number,
                financial_year_spend=ZERO,
                rolling_spend=ZERO,
                estimated=estimated,
            )
            if estimated:
                metrics.estimated_mba_numbers.append(plan.mba_number)

            for spend in slices:
                fy_amount = self._in_window(spend, fy_start, fy_end)
                campaign.financial_year_spend += fy_amount
                campaign.rolling_spend += self._in_window(spend, rolling_start, rolling_end)
                if fy_amount != ZERO:
                    media_key = (None, spend.media_label)
                    by_media[media_key] = by_media.get(media_key, ZERO) + fy_amount
                    campaign_key = (plan.mba_number, campaign.campaign_name)
                    by_campaign[campaign_key] = by_campaign.get(campaign_key, ZERO) + fy_amount
                for day in days:
                    metrics.daily_spend[day] += self._in_window(spend, day, day)
                for month in months:
                    amount = self._in_window(
                        spend, month, self._date_manager.last_day_of_month(month)
                    )
                    if amount != ZERO:
                        bucket = monthly[month]
                        bucket[spend.media_label] = bucket.get(spend.media_label, ZERO) + amount

            metrics.financial_year_spend += campaign.financial_year_spend
            metrics.rolling_spend += campaign.rolling_spend
            metrics.campaigns.append(campaign)

            if plan.status.is_live and self._is_running(plan, today):
                metrics.live_campaigns.append(plan.mba_number)

        metrics.spend_by_media_type = self._shares(by_media, metrics.financial_year_spend)
        metrics.spend_by_campaign = self._shares(by_campaign, metrics.financial_year_spend)
        metrics.monthly_spend = [
            MonthlySpend(
                month_label=self._date_manager.month_label(month),
                by_media_type=monthly[month],
            )
            for month in months
        ]
        return metrics

    def expected_spend_to_date(
        self,
        schedule: Any,
        campaign_start: Optional[date],
        campaign_end: Optional[date],
        as_at: Union[date, datetime, None] = None
    ) -> Decimal:
        """
        Returns the spend a plan should have delivered by a day.

        Months before the as-at month count in full. The as-at month
        counts in proportion to its elapsed days, measured over the part
        of the month inside the campaign. Before the campaign starts the
        result is zero; after it ends it is the full planned spend.
        Planned spend per month is line items plus fees, ad-serving and
        production.

        Args:
            schedule: Stored delivery schedule with month entries.
            campaign_start: First day of the campaign, if known.
            campaign_end: Last day of the campaign, if known.
            as_at: Day (or moment) to measure at. Defaults to today.

        Returns:
            Expected spend to date.
        """
        entries = [
            entry for entry in parse_schedule(schedule, self._date_manager)
            if entry.month_label is not None
        ]
        if not entries:
            return ZERO

        today = self._resolve_reference(as_at)
        if campaign_start is not None and today < campaign_start:
            return ZERO

        planned = [(entry, self._planned_spend(entry)) for entry in entries]
        if campaign_end is not None and today > campaign_end:
            return sum((amount for _, amount in planned), ZERO)

        current_month = self._date_manager.first_day_of_month(today)
        expected = ZERO
        for entry, amount in planned:
            month_start = self._date_manager.parse_month_label(entry.month_label)
            if month_start < current_month:
                expected += amount
            elif month_start == current_month:
                expected += self._elapsed_share(
                    amount, month_start, today, campaign_start, campaign_end
                )
        return expected

    def _resolve_reference(self, value: Union[date, datetime, None]) -> date:
        """Returns the local reporting day for a reference value."""
        if value is None:
            return self._date_manager.today()
        if isinstance(value, datetime):
            return self._date_manager.to_local_date(value)
        return value

    def _plans_for_client(
        self,
        client_slug: Optional[str],
        versions: Iterable[PlanVersion]
    ) -> List[PlanVersion]:
        """Returns the selected versions, limited to one client when given."""
        selected = select_active_versions(versions).values()
        if client_slug is None:
            return list(selected)
        return [plan for plan in selected if slugify(plan.client_name) == client_slug]

    def _spend_slices(self, plan: PlanVersion) -> Tuple[List[SpendSlice], bool]:
        """
        Returns the spend slices of a plan and whether they are estimated.

        Delivery data is used whenever it carries any line-item amount;
        only otherwise is the straight-line estimate used.
        """
        entries = parse_schedule(plan.delivery_schedule, self._date_manager)
        if not entries:
            entries = parse_schedule(plan.billing_schedule, self._date_manager)

        slices = []
        for entry in entries:
            start, end = self._entry_period(entry)
            for media in entry.media_types:
                for line_item in media.line_items:
                    if line_item.amount != ZERO:
                        slices.append(SpendSlice(start, end, line_item.amount, media.media_type))
        if slices:
            return slices, False

        if not self._settings.use_fallback_estimate:
            return [], False
        return self._estimate_slices(plan), True

    def _estimate_slices(self, plan: PlanVersion) -> List[SpendSlice]:
        """Spreads the plan budget evenly over its days and media types."""
        start, end = plan.campaign_start, plan.campaign_end
        if start is None or end is None or start > end or plan.budget <= ZERO:
            logger.warning(
                "No delivery data or usable campaign dates for MBA %s; "
                "reporting no spend", plan.mba_number
            )
            return []

        labels = [media_type.label for media_type in plan.media_types] or [OTHER_MEDIA_LABEL]
        logger.warning(
            "No delivery data for MBA %s v%s; estimating %s straight-line "
            "from %s to %s across %d media types",
            plan.mba_number, plan.version_number, plan.budget, start, end, len(labels)
        )
        share = plan.budget / Decimal(len(labels))
        return [SpendSlice(start, end, share, label) for label in labels]

    def _entry_period(self, entry: DeliveryScheduleEntry) -> Tuple[date, date]:
        """Returns the inclusive days an entry covers."""
        if entry.day is not None:
            return entry.day, entry.day
        month_start = self._date_manager.parse_month_label(entry.month_label)
        return month_start, self._date_manager.last_day_of_month(month_start)

    def _in_window(self, spend: SpendSlice, window_start: date, window_end: date) -> Decimal:
        """Returns the part of a slice inside a window."""
        return self._proration_engine.prorate_into_window(
            spend.start, spend.end, spend.amount, window_start, window_end
        )

    def _is_running(self, plan: PlanVersion, today: date) -> bool:
        """True when the campaign dates include today."""
        return (
            plan.campaign_start is not None
            and plan.campaign_end is not None
            and plan.campaign_start <= today <= plan.campaign_end
        )

    def _shares(self, amounts: Dict[ShareKey, Decimal], total: Decimal) -> List[SpendShare]:
        """Builds chart slices, dropping zero groups, largest first."""
        if total == ZERO:
            return []
        shares = [
            SpendShare(
                name=name,
                amount=amount,
                percentage=amount / total * HUNDRED,
                mba_number=mba_number,
            )
            for (mba_number, name), amount in amounts.items()
            if amount != ZERO
        ]
        shares.sort(key=lambda share: (-share.amount, share.name, share.mba_number or ""))
        return shares

    def _planned_spend(self, entry: DeliveryScheduleEntry) -> Decimal:
        """Line items plus fee, ad-serving and production of an entry."""
        return entry.line_item_total + entry.fee_total + entry.ad_serving_fee + entry.production

    def _elapsed_share(
        self,
        amount: Decimal,
        month_start: date,
        today: date,
        campaign_start: Optional[date],
        campaign_end: Optional[date]
    ) -> Decimal:
        """Part of a month's amount for the campaign days elapsed so far."""
        window_start = month_start
        window_end = self._date_manager.last_day_of_month(month_start)
        if campaign_start is not None and campaign_start > window_start:
            window_start = campaign_start
        if campaign_end is not None and campaign_end < window_end:
            window_end = campaign_end
        if window_end < window_start:
            return ZERO

        elapsed = self._date_manager.days_between_inclusive(window_start, min(today, window_end))
        if elapsed <= 0:
            return ZERO
        total = self._date_manager.days_between_inclusive(window_start, window_end)
        if elapsed >= total:
            return amount
        return amount * Decimal(elapsed) / Decimal(total)
