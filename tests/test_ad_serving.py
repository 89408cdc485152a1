"""
MediaSpend - Ad-Serving Fee Tests.

Unit tests for AdServingCalculator pricing and the media type rate
family mapping.
"""

from datetime import date
from decimal import Decimal

import pytest

from mediaspend.ad_serving import AdServingCalculator
from mediaspend.date_logic import DateManager
from mediaspend.proration import ProrationEngine
from mediaspend.schema import AdServingCategory, AdServingRates, Burst, BuyType, MediaType

RATES = AdServingRates(
    video=Decimal("0.05"),
    audio=Decimal("0.02"),
    display=Decimal("2.50"),
    impression=Decimal("0.01"),
)


def make_burst(media_type: MediaType, deliverables: str, buy_type: BuyType,
               no_ad_serving: bool = False) -> Burst:
    """Builds a burst spanning January 15 to February 14."""
    return Burst(
        start_date=date(2025, 1, 15),
        end_date=date(2025, 2, 14),
        budget=Decimal("3100"),
        media_type=media_type,
        deliverables=Decimal(deliverables),
        buy_type=buy_type,
        no_ad_serving=no_ad_serving,
    )


class TestAdServingCategories:
    """Tests for the media type to rate family mapping."""

    @pytest.mark.parametrize("media_type,category", [
        (MediaType.PROG_VIDEO, AdServingCategory.VIDEO),
        (MediaType.PROG_BVOD, AdServingCategory.VIDEO),
        (MediaType.DIGITAL_VIDEO, AdServingCategory.VIDEO),
        (MediaType.BVOD, AdServingCategory.VIDEO),
        (MediaType.PROG_AUDIO, AdServingCategory.AUDIO),
        (MediaType.DIGITAL_AUDIO, AdServingCategory.AUDIO),
        (MediaType.PROG_DISPLAY, AdServingCategory.DISPLAY),
        (MediaType.DIGITAL_DISPLAY, AdServingCategory.DISPLAY),
        (MediaType.PROG_OOH, AdServingCategory.IMPRESSION),
        (MediaType.SEARCH, AdServingCategory.IMPRESSION),
    ])
    def test_category(self, media_type: MediaType, category: AdServingCategory) -> None:
        """Verify each media type prices from its rate family."""
        assert media_type.ad_serving_category is category

    def test_traditional_media_is_not_eligible(self) -> None:
        """Verify broadcast and print carry no ad-serving."""
        assert not MediaType.TELEVISION.ad_serving_eligible
        assert not MediaType.NEWSPAPER.ad_serving_eligible
        assert MediaType.PROG_OOH.ad_serving_eligible


class TestAdServingCalculator:
    """Unit tests for AdServingCalculator."""

    def setup_method(self) -> None:
        """Initialise AdServingCalculator for each test."""
        self.calculator = AdServingCalculator(RATES, ProrationEngine(DateManager()))

    def test_cpm_priced_per_thousand(self) -> None:
        """Verify CPM buys divide deliverables by one thousand."""
        burst = make_burst(MediaType.DIGITAL_DISPLAY, "100000", BuyType.CPM)
        assert self.calculator.total_fee(burst) == Decimal("250")

    @pytest.mark.parametrize("buy_type", [BuyType.CPC, BuyType.CPV, BuyType.FIXED_COST])
    def test_other_buys_priced_per_unit(self, buy_type: BuyType) -> None:
        """Verify non-CPM buys multiply deliverables by the rate."""
        burst = make_burst(MediaType.PROG_VIDEO, "2000", buy_type)
        assert self.calculator.total_fee(burst) == Decimal("100")

    def test_opted_out_burst_has_no_fee(self) -> None:
        """Verify the no-ad-serving flag zeroes the fee."""
        burst = make_burst(MediaType.DIGITAL_DISPLAY, "100000", BuyType.CPM, no_ad_serving=True)
        assert self.calculator.total_fee(burst) == Decimal("0")
        assert self.calculator.prorate(burst) == {}

    def test_fee_is_prorated_by_burst_dates(self) -> None:
        """Verify the fee follows the same day weighting as media."""
        burst = make_burst(MediaType.DIGITAL_AUDIO, "155000", BuyType.CPC)
        shares = self.calculator.prorate(burst)

        assert shares == {
            "January 2025": Decimal("1700"),
            "February 2025": Decimal("1400"),
        }
