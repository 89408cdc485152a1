"""
MediaSpend - Billing Schedule Builder Tests.

Property-based and unit tests for BillingScheduleBuilder class.
Tests ensure every campaign month gets a bucket, media, fee and
ad-serving shares land in the right months, and rebuilding gives
identical totals.

**Feature: mediaspend, Property 5: Bucket Totals Add Up**
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis.strategies import composite, dates, decimals, integers, lists, sampled_from

from mediaspend.billing import BillingScheduleBuilder
from mediaspend.date_logic import DateManager
from mediaspend.money import quantize_money
from mediaspend.schema import (
    AdServingRates,
    Burst,
    BuyType,
    FeeModelParameters,
    LineItem,
    MediaType,
    PlanStatus,
    PlanVersion,
)


def make_plan(start: date, end: date, media_types, budget: str = "10000") -> PlanVersion:
    """Builds a booked plan version."""
    return PlanVersion(
        mba_number="MBA1001",
        version_number=1,
        status=PlanStatus.BOOKED,
        campaign_start=start,
        campaign_end=end,
        budget=Decimal(budget),
        media_types=list(media_types),
    )


def radio_burst(**overrides) -> Burst:
    """Builds the Jan 15 to Feb 14 radio burst of $3,100."""
    values = dict(
        start_date=date(2025, 1, 15),
        end_date=date(2025, 2, 14),
        budget=Decimal("3100"),
        media_type=MediaType.RADIO,
    )
    values.update(overrides)
    return Burst(**values)


def display_burst() -> Burst:
    """Builds a February display burst carrying $500 of ad-serving."""
    return Burst(
        start_date=date(2025, 2, 1),
        end_date=date(2025, 2, 28),
        budget=Decimal("1000"),
        media_type=MediaType.DIGITAL_DISPLAY,
        deliverables=Decimal("200000"),
        buy_type=BuyType.CPM,
    )


PARAMETERS = FeeModelParameters(
    fee_percentages={MediaType.RADIO: Decimal("10")},
    ad_serving_rates=AdServingRates(display=Decimal("2.50")),
)


@composite
def burst_lists(draw):
    """Generate radio and search bursts inside 2025."""
    result = []
    for _ in range(draw(integers(min_value=1, max_value=6))):
        start = draw(dates(min_value=date(2025, 1, 1), max_value=date(2025, 12, 31)))
        span = draw(integers(min_value=0, max_value=120))
        result.append(Burst(
            start_date=start,
            end_date=min(start + timedelta(days=span), date(2025, 12, 31)),
            budget=draw(decimals(
                min_value=Decimal("0"),
                max_value=Decimal("500000"),
                places=2,
                allow_nan=False,
                allow_infinity=False
            )),
            media_type=draw(sampled_from([MediaType.RADIO, MediaType.SEARCH])),
        ))
    return result


class TestBillingScheduleBuilderUnit:
    """Unit tests for BillingScheduleBuilder."""

    def setup_method(self) -> None:
        """Initialise BillingScheduleBuilder for each test."""
        self.builder = BillingScheduleBuilder(DateManager())
        self.plan = make_plan(
            date(2025, 1, 1), date(2025, 3, 31),
            [MediaType.RADIO, MediaType.DIGITAL_DISPLAY]
        )

    def build(self):
        return self.builder.build(
            self.plan,
            {MediaType.RADIO: [radio_burst()], MediaType.DIGITAL_DISPLAY: [display_burst()]},
            PARAMETERS
        )

    def test_bucket_per_campaign_month(self) -> None:
        """Verify one bucket per month, including months with no spend."""
        schedule = self.build()
        assert schedule.month_labels == ["January 2025", "February 2025", "March 2025"]

        march = schedule.get_month("March 2025")
        assert march.total_amount == Decimal("0")
        assert march.media_costs == {
            MediaType.RADIO: Decimal("0"),
            MediaType.DIGITAL_DISPLAY: Decimal("0"),
        }

    def test_media_fee_and_ad_serving_by_month(self) -> None:
        """Verify each cost lands in its month."""
        schedule = self.build()
        january = schedule.get_month("January 2025")
        february = schedule.get_month("February 2025")

        assert january.media_costs[MediaType.RADIO] == Decimal("1700")
        assert february.media_costs[MediaType.RADIO] == Decimal("1400")
        assert february.media_costs[MediaType.DIGITAL_DISPLAY] == Decimal("1000")
        assert february.total_media == Decimal("2400")
        assert quantize_money(january.total_fee) == Decimal("188.89")
        assert january.ad_serving_fee == Decimal("0")
        assert february.ad_serving_fee == Decimal("500")

    def test_grand_total(self) -> None:
        """Verify the grand total is media plus fee plus ad-serving."""
        schedule = self.build()
        assert quantize_money(schedule.grand_total) == Decimal("4944.44")
        assert schedule.grand_total == sum(b.total_amount for b in schedule.months)

    def test_rebuild_is_identical(self) -> None:
        """Verify rebuilding from the same inputs gives the same schedule."""
        assert self.build() == self.build()

    def test_plan_fee_percentage_overrides_burst(self) -> None:
        """Verify the plan's fee percentage replaces the burst's own."""
        schedule = self.builder.build(
            self.plan,
            {MediaType.RADIO: [radio_burst(fee_percentage=Decimal("50"))]},
            PARAMETERS
        )
        fee = sum(bucket.total_fee for bucket in schedule.months)
        assert quantize_money(fee) == Decimal("344.44")

    def test_shares_outside_campaign_are_dropped(self, caplog) -> None:
        """Verify months outside the campaign receive nothing."""
        plan = make_plan(date(2025, 1, 1), date(2025, 1, 31), [MediaType.RADIO])
        schedule = self.builder.build(
            plan, {MediaType.RADIO: [radio_burst()]}, FeeModelParameters()
        )

        assert schedule.month_labels == ["January 2025"]
        assert schedule.grand_total == Decimal("1700")
        assert "outside the campaign months" in caplog.text

    def test_invalid_campaign_range_is_empty(self) -> None:
        """Verify reversed campaign dates give an empty schedule."""
        plan = make_plan(date(2025, 3, 1), date(2025, 1, 1), [MediaType.RADIO])
        schedule = self.builder.build(plan, {MediaType.RADIO: [radio_burst()]}, PARAMETERS)

        assert schedule.months == []
        assert schedule.grand_total == Decimal("0")

    def test_disabled_media_types_are_ignored(self) -> None:
        """Verify bursts of media types the plan does not enable are skipped."""
        plan = make_plan(date(2025, 1, 1), date(2025, 3, 31), [MediaType.DIGITAL_DISPLAY])
        schedule = self.builder.build(
            plan,
            {MediaType.RADIO: [radio_burst()], MediaType.DIGITAL_DISPLAY: [display_burst()]},
            PARAMETERS
        )

        assert MediaType.RADIO not in schedule.months[0].media_costs
        assert schedule.grand_total == Decimal("1500")

    def test_invalid_burst_contributes_nothing(self) -> None:
        """Verify a burst without dates adds no cost."""
        schedule = self.builder.build(
            self.plan,
            {MediaType.RADIO: [radio_burst(start_date=None)]},
            PARAMETERS
        )
        assert schedule.grand_total == Decimal("0")

    def test_client_pays_bills_only_fee(self) -> None:
        """Verify client-paid media is not billed."""
        schedule = self.builder.build(
            self.plan,
            {MediaType.RADIO: [radio_burst(client_pays_for_media=True)]},
            PARAMETERS
        )
        assert sum(bucket.total_media for bucket in schedule.months) == Decimal("0")
        assert quantize_money(schedule.grand_total) == Decimal("344.44")


class TestLineItemSchedules:
    """Tests for the persisted delivery and billing hierarchies."""

    def setup_method(self) -> None:
        """Initialise the builder, plan and line items for each test."""
        self.builder = BillingScheduleBuilder(DateManager())
        self.plan = make_plan(date(2025, 1, 1), date(2025, 3, 31), [MediaType.RADIO])
        self.line_items = [
            LineItem(
                line_item_id="R1",
                media_type=MediaType.RADIO,
                header1="ARN",
                header2="KIIS",
                bursts=[radio_burst(client_pays_for_media=True)],
            ),
        ]

    def test_recompute_matches_build(self) -> None:
        """Verify recompute groups line item bursts by media type."""
        rebuilt = self.builder.recompute(self.plan, self.line_items, PARAMETERS)
        built = self.builder.build(
            self.plan, {MediaType.RADIO: self.line_items[0].bursts}, PARAMETERS
        )
        assert rebuilt == built

    def test_delivery_schedule_carries_delivered_media(self) -> None:
        """Verify client-paid media still appears as delivered."""
        entries = self.builder.build_delivery_schedule(self.plan, self.line_items, PARAMETERS)

        assert [entry.month_label for entry in entries] == ["January 2025", "February 2025"]
        january = entries[0]
        assert january.media_types[0].media_type == "Radio"
        item = january.media_types[0].line_items[0]
        assert (item.line_item_id, item.header1, item.header2) == ("R1", "ARN", "KIIS")
        assert item.amount == Decimal("1700")
        assert january.fee_total > 0

    def test_billing_variant_omits_client_paid_media(self) -> None:
        """Verify the billing hierarchy keeps only the fee."""
        entries = self.builder.build_line_item_schedule(
            self.plan, self.line_items, PARAMETERS, delivery=False
        )

        assert [entry.month_label for entry in entries] == ["January 2025", "February 2025"]
        assert all(entry.media_types == [] for entry in entries)
        assert quantize_money(sum(entry.fee_total for entry in entries)) == Decimal("344.44")


class TestBillingScheduleBuilderProperty:
    """
    Property-based tests for BillingScheduleBuilder.

    **Feature: mediaspend, Property 5: Bucket Totals Add Up**
    """

    def setup_method(self) -> None:
        """Initialise BillingScheduleBuilder for each test."""
        self.builder = BillingScheduleBuilder(DateManager())
        self.plan = make_plan(
            date(2025, 1, 1), date(2025, 12, 31), [MediaType.SEARCH, MediaType.RADIO]
        )

    @given(bursts=burst_lists())
    @settings(max_examples=50)
    def test_media_total_matches_budgets(self, bursts) -> None:
        """Without fees, billed media adds back to the burst budgets."""
        grouped = {}
        for burst in bursts:
            grouped.setdefault(burst.media_type, []).append(burst)
        schedule = self.builder.build(self.plan, grouped, FeeModelParameters())

        expected = sum((burst.budget for burst in bursts), Decimal("0"))
        assert len(schedule.months) == 12
        assert quantize_money(schedule.grand_total) == expected

    @given(bursts=burst_lists())
    @settings(max_examples=50)
    def test_bucket_totals_are_consistent(self, bursts) -> None:
        """Every bucket total is its media plus fee plus ad-serving plus production."""
        grouped = {}
        for burst in bursts:
            grouped.setdefault(burst.media_type, []).append(burst)
        parameters = FeeModelParameters(fee_percentages={MediaType.SEARCH: Decimal("12")})
        schedule = self.builder.build(self.plan, grouped, parameters)

        for bucket in schedule.months:
            assert bucket.total_media == sum(bucket.media_costs.values(), Decimal("0"))
            assert bucket.total_amount == (
                bucket.total_media + bucket.total_fee
                + bucket.ad_serving_fee + bucket.production
            )
