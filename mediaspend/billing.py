"""
MediaSpend - Billing Schedule Builder.

This module assembles a plan's bursts into a month-by-month billing
schedule. Every burst is split into media and fee, the split is
prorated into months, and the burst's ad-serving fee is prorated the
same way with its own dates.

It also builds the persisted schedule hierarchy of month, media type
and line item that the dashboard later reads back.

Classes:
    BillingScheduleBuilder: Builds billing and delivery schedules.
"""

import dataclasses
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from mediaspend.ad_serving import AdServingCalculator
from mediaspend.date_logic import DateManager
from mediaspend.fees import FeeAllocator
from mediaspend.proration import ProrationEngine
from mediaspend.schema import (
    BillingSchedule,
    Burst,
    DeliveryLineItem,
    DeliveryMediaType,
    DeliveryScheduleEntry,
    FeeModelParameters,
    LineItem,
    MediaType,
    MonthBucket,
    PlanVersion,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

MEDIA_TYPE_ORDER = {media_type: index for index, media_type in enumerate(MediaType)}


class BillingScheduleBuilder:
    """
    Builds billing schedules from bursts.

    Media types are processed in MediaType declaration order and bursts
    in list order, so rebuilding from the same inputs gives identical
    totals.

    Example:
        >>> builder = BillingScheduleBuilder(DateManager())
        >>> schedule = builder.build(plan, {MediaType.RADIO: bursts}, parameters)
        >>> schedule.month_labels
        ['January 2025', 'February 2025']
    """

    def __init__(
        self,
        date_manager: DateManager,
        fee_allocator: Optional[FeeAllocator] = None
    ):
        """
        Initialises the BillingScheduleBuilder.

        Args:
            date_manager: DateManager instance for calendar arithmetic.
            fee_allocator: FeeAllocator to use. Defaults to a new one.
        """
        self._date_manager = date_manager
        self._proration_engine = ProrationEngine(date_manager)
        self._fee_allocator = fee_allocator or FeeAllocator()

    def build(
        self,
        plan: PlanVersion,
        bursts_by_media_type: Mapping[MediaType, Sequence[Burst]],
        parameters: FeeModelParameters
    ) -> BillingSchedule:
        """
        Builds the billing schedule of a plan.

        One bucket is created for every month from campaign start to
        campaign end, whether or not it receives spend. Shares landing
        outside the campaign months are dropped.

        Args:
            plan: Plan version supplying the campaign dates and the
                  enabled media types.
            bursts_by_media_type: Bursts of each media type.
            parameters: Fee percentages and ad-serving rates.

        Returns:
            BillingSchedule with buckets in chronological order. Empty
            when the campaign dates are missing or reversed.
        """
        schedule = BillingSchedule(months=self._create_buckets(plan))
        if not schedule.months:
            return schedule

        buckets = {bucket.month_label: bucket for bucket in schedule.months}
        ad_serving = AdServingCalculator(parameters.ad_serving_rates, self._proration_engine)

        for media_type in self._ordered_media_types(plan, bursts_by_media_type):
            for bucket in schedule.months:
                bucket.media_costs[media_type] = ZERO
            for burst in bursts_by_media_type.get(media_type, ()):
                burst = self._with_fee_percentage(burst, media_type, parameters)
                split = self._fee_allocator.allocate(burst)

                for label, share in self._prorate(burst, split.media_amount).items():
                    bucket = self._bucket(buckets, label, media_type)
                    if bucket is not None:
                        bucket.media_costs[media_type] += share

                for label, share in self._prorate(burst, split.fee_amount).items():
                    bucket = self._bucket(buckets, label, media_type)
                    if bucket is not None:
                        bucket.total_fee += share

                for label, share in ad_serving.prorate(burst).items():
                    bucket = self._bucket(buckets, label, media_type)
                    if bucket is not None:
                        bucket.ad_serving_fee += share

        for bucket in schedule.months:
            bucket.recalculate_totals()
        schedule.recalculate_grand_total()
        return schedule

    def recompute(
        self,
        plan: PlanVersion,
        line_items: Iterable[LineItem],
        parameters: FeeModelParameters
    ) -> BillingSchedule:
        """
        Rebuilds the billing schedule from the current line items.

        Callers invoke this whenever inputs change; it holds no state
        between calls.
        """
        return self.build(plan, self.group_bursts(line_items), parameters)

    def group_bursts(self, line_items: Iterable[LineItem]) -> Dict[MediaType, List[Burst]]:
        """Collects the bursts of line items per media type, in order."""
        grouped: Dict[MediaType, List[Burst]] = {}
        for line_item in line_items:
            grouped.setdefault(line_item.media_type, []).extend(line_item.bursts)
        return grouped

    def build_line_item_schedule(
        self,
        plan: PlanVersion,
        line_items: Iterable[LineItem],
        parameters: FeeModelParameters,
        delivery: bool = True
    ) -> List[DeliveryScheduleEntry]:
        """
        Builds the persisted month, media type and line item hierarchy.

        The delivery schedule carries the net media actually delivered,
        including media the client pays for directly. The billing
        variant carries the media amount the agency bills. Line items
        with no amount in a month and months with nothing to report
        are left out.

        Args:
            plan: Plan version supplying the campaign dates.
            line_items: Normalised line items of the plan.
            parameters: Fee percentages and ad-serving rates.
            delivery: True for delivered media, False for billed media.

        Returns:
            Entries in chronological order.
        """
        line_items = list(line_items)
        schedule = self.build(plan, self.group_bursts(line_items), parameters)
        if not schedule.months:
            return []

        enabled = set(plan.media_types) if plan.media_types else {
            line_item.media_type for line_item in line_items
        }
        ordered = sorted(
            (item for item in line_items if item.media_type in enabled),
            key=lambda item: MEDIA_TYPE_ORDER[item.media_type]
        )

        monthly_amounts: List[Dict[str, Decimal]] = []
        for line_item in ordered:
            monthly: Dict[str, Decimal] = {}
            for burst in line_item.bursts:
                burst = self._with_fee_percentage(burst, line_item.media_type, parameters)
                split = self._fee_allocator.allocate(burst)
                amount = split.delivery_media_amount if delivery else split.media_amount
                for label, share in self._prorate(burst, amount).items():
                    monthly[label] = monthly.get(label, ZERO) + share
            monthly_amounts.append(monthly)

        entries = []
        for bucket in schedule.months:
            media_entries: List[DeliveryMediaType] = []
            for line_item, monthly in zip(ordered, monthly_amounts):
                amount = monthly.get(bucket.month_label, ZERO)
                if amount <= ZERO:
                    continue
                label = line_item.media_type.label
                if not media_entries or media_entries[-1].media_type != label:
                    media_entries.append(DeliveryMediaType(media_type=label))
                media_entries[-1].line_items.append(DeliveryLineItem(
                    line_item_id=line_item.line_item_id,
                    header1=line_item.header1,
                    header2=line_item.header2,
                    amount=amount,
                ))

            entry = DeliveryScheduleEntry(
                month_label=bucket.month_label,
                media_types=media_entries,
                fee_total=bucket.total_fee,
                ad_serving_fee=bucket.ad_serving_fee,
                production=bucket.production,
            )
            if media_entries or entry.fee_total or entry.ad_serving_fee or entry.production:
                entries.append(entry)
        return entries

    def build_delivery_schedule(
        self,
        plan: PlanVersion,
        line_items: Iterable[LineItem],
        parameters: FeeModelParameters
    ) -> List[DeliveryScheduleEntry]:
        """Builds the delivery schedule the dashboard reads."""
        return self.build_line_item_schedule(plan, line_items, parameters, delivery=True)

    def _create_buckets(self, plan: PlanVersion) -> List[MonthBucket]:
        """Creates one empty bucket per campaign month."""
        start, end = plan.campaign_start, plan.campaign_end
        if start is None or end is None or start > end:
            logger.warning(
                "Plan %s v%s has an invalid campaign range %s to %s; schedule is empty",
                plan.mba_number, plan.version_number, start, end
            )
            return []
        return [
            MonthBucket(
                month_label=self._date_manager.month_label(month_start),
                month_start=month_start,
            )
            for month_start in self._date_manager.iter_months(start, end)
        ]

    def _ordered_media_types(
        self,
        plan: PlanVersion,
        bursts_by_media_type: Mapping[MediaType, Sequence[Burst]]
    ) -> List[MediaType]:
        """Returns the media types to process, in declaration order."""
        enabled = set(plan.media_types) if plan.media_types else set(bursts_by_media_type)
        skipped = set(bursts_by_media_type) - enabled
        if skipped:
            logger.warning(
                "Ignoring bursts of media types not enabled on plan %s: %s",
                plan.mba_number, ", ".join(sorted(media.value for media in skipped))
            )
        return [media_type for media_type in MediaType if media_type in enabled]

    def _with_fee_percentage(
        self,
        burst: Burst,
        media_type: MediaType,
        parameters: FeeModelParameters
    ) -> Burst:
        """Applies the plan's fee percentage for the media type, if it has one."""
        if media_type in parameters.fee_percentages:
            return dataclasses.replace(
                burst, fee_percentage=parameters.fee_percentages[media_type]
            )
        return burst

    def _prorate(self, burst: Burst, amount: Decimal) -> Dict[str, Decimal]:
        """Prorates an amount over the burst's dates; zero amounts are skipped."""
        if amount == ZERO:
            return {}
        return self._proration_engine.prorate(burst.start_date, burst.end_date, amount)

    def _bucket(
        self,
        buckets: Dict[str, MonthBucket],
        label: str,
        media_type: MediaType
    ) -> Optional[MonthBucket]:
        """Returns the bucket for a label, logging shares outside the campaign."""
        bucket = buckets.get(label)
        if bucket is None:
            logger.warning(
                "Dropping %s share for %s outside the campaign months",
                media_type.label, label
            )
        return bucket
