"""
MediaSpend - Burst Normalisation Tests.

Unit tests for converting stored line-item and plan records into
canonical LineItem, Burst, PlanVersion and FeeModelParameters objects.
"""

import json
from datetime import date
from decimal import Decimal

from mediaspend.date_logic import DateManager
from mediaspend.normalizer import (
    BurstNormalizer,
    fee_parameters_from_record,
    parse_burst_array,
    parse_flag,
    plan_version_from_record,
    schedule_headers,
)
from mediaspend.schema import BuyType, FeeModelParameters, MediaType, PlanStatus


class TestRecordHelpers:
    """Tests for the record parsing helpers."""

    def test_burst_array_from_json_string(self) -> None:
        """Verify bursts stored as a JSON string are decoded."""
        raw = json.dumps([{"budget": "100"}, {"budget": "200"}])
        assert parse_burst_array(raw) == [{"budget": "100"}, {"budget": "200"}]

    def test_malformed_burst_json_is_empty(self) -> None:
        """Verify malformed bursts JSON yields no bursts."""
        assert parse_burst_array("[{not json") == []
        assert parse_burst_array({"budget": "100"}) == []
        assert parse_burst_array(None) == []

    def test_flags(self) -> None:
        """Verify stored flags in their several forms."""
        assert parse_flag(True) is True
        assert parse_flag("Yes") is True
        assert parse_flag(1) is True
        assert parse_flag("false") is False
        assert parse_flag(None) is False

    def test_headers_for_broadcast(self) -> None:
        """Verify television uses network and station."""
        record = {"network": "Seven", "station": "7 Melbourne"}
        assert schedule_headers(MediaType.TELEVISION, record) == ("Seven", "7 Melbourne")

    def test_headers_for_platform_buys(self) -> None:
        """Verify platform buys use platform and targeting."""
        record = {"platform": "Meta", "creativeTargeting": "Prospecting"}
        assert schedule_headers(MediaType.SOCIAL_MEDIA, record) == ("Meta", "Prospecting")

    def test_headers_missing_are_blank(self) -> None:
        """Verify missing headers become empty strings."""
        assert schedule_headers(MediaType.OOH, {}) == ("", "")


class TestBurstNormalizer:
    """Unit tests for BurstNormalizer."""

    def setup_method(self) -> None:
        """Initialise BurstNormalizer with a radio fee for each test."""
        parameters = FeeModelParameters(fee_percentages={MediaType.RADIO: Decimal("10")})
        self.normalizer = BurstNormalizer(parameters, DateManager())

    def test_radio_record(self) -> None:
        """Verify a stored radio line item becomes a canonical burst."""
        record = {
            "line_item_id": "R1",
            "network": "ARN",
            "station": "KIIS",
            "buy_type": "spots",
            "bursts": json.dumps([{
                "startDate": "2025-01-15",
                "endDate": "2025-02-14",
                "budget": "$3,100.00",
                "calculatedValue": "62",
            }]),
        }
        result = self.normalizer.normalise_line_items([record], MediaType.RADIO)

        assert result.issue_count == 0
        line_item = result.line_items[0]
        assert line_item.line_item_id == "R1"
        assert (line_item.header1, line_item.header2) == ("ARN", "KIIS")

        burst = result.bursts[0]
        assert burst.start_date == date(2025, 1, 15)
        assert burst.end_date == date(2025, 2, 14)
        assert burst.budget == Decimal("3100.00")
        assert burst.deliverables == Decimal("62")
        assert burst.buy_type is BuyType.FIXED_COST
        assert burst.fee_percentage == Decimal("10")
        assert burst.no_ad_serving is True

    def test_burst_dates_fall_back_to_line_item(self) -> None:
        """Verify a burst without dates inherits the line item's."""
        record = {
            "start_date": "2025-03-01",
            "end_date": "2025-03-31",
            "bursts": [{"budget": 500}],
        }
        burst = self.normalizer.normalise_line_item(record, MediaType.SEARCH).bursts[0]
        assert (burst.start_date, burst.end_date) == (date(2025, 3, 1), date(2025, 3, 31))

    def test_missing_end_uses_start(self) -> None:
        """Verify a burst with only a start date covers one day."""
        record = {"bursts": [{"startDate": "2025-03-09", "budget": 500}]}
        burst = self.normalizer.normalise_line_item(record, MediaType.SEARCH).bursts[0]
        assert burst.end_date == date(2025, 3, 9)

    def test_bad_dates_are_reported_not_raised(self) -> None:
        """Verify unparseable dates are kept as None with issues recorded."""
        record = {"line_item_id": "S9", "bursts": [{"startDate": "soon", "budget": 500}]}
        result = self.normalizer.normalise_line_items([record], MediaType.SEARCH)

        burst = result.bursts[0]
        assert burst.start_date is None
        assert burst.end_date is None
        assert result.issue_count == 2
        assert "S9 burst 1 'start_date'" in str(result.issues[0])

    def test_reversed_dates_are_kept_and_reported(self) -> None:
        """Verify end before start is kept as given."""
        record = {"bursts": [{"startDate": "2025-02-01", "endDate": "2025-01-01", "budget": 1}]}
        result = self.normalizer.normalise_line_items([record], MediaType.SEARCH)

        assert result.bursts[0].has_valid_range is False
        assert result.issues[0].message == "End date is before start date"

    def test_bonus_buy_has_no_budget(self) -> None:
        """Verify bonus spots carry no budget."""
        record = {"bursts": [{"startDate": "2025-01-01", "budget": "$900", "buyType": "bonus"}]}
        burst = self.normalizer.normalise_line_item(record, MediaType.RADIO).bursts[0]
        assert burst.budget == Decimal("0")
        assert burst.buy_type is BuyType.FIXED_COST

    def test_flags_and_cpm(self) -> None:
        """Verify fee and ad-serving flags are read from the line item."""
        record = {
            "publisher": "News Corp",
            "site": "news.com.au",
            "buyType": "CPM",
            "clientPaysForMedia": "true",
            "no_adserving": False,
            "bursts": [{"startDate": "2025-01-01", "endDate": "2025-01-31",
                        "budget": "2000", "deliverables": "100000"}],
        }
        burst = self.normalizer.normalise_line_item(record, MediaType.DIGITAL_DISPLAY).bursts[0]

        assert burst.buy_type is BuyType.CPM
        assert burst.client_pays_for_media is True
        assert burst.budget_includes_fees is False
        assert burst.no_ad_serving is False
        assert burst.fee_percentage == Decimal("0")

    def test_generated_line_item_ids(self) -> None:
        """Verify records without ids are numbered by position."""
        result = self.normalizer.normalise_line_items([{}, {}], MediaType.OOH)
        assert [item.line_item_id for item in result.line_items] == ["ooh-1", "ooh-2"]


class TestPlanRecords:
    """Tests for reading plan version and fee records."""

    def test_plan_version_from_record(self) -> None:
        """Verify a stored plan version record is read."""
        record = {
            "mp_mba_number": "MBA1001",
            "mp_version": "3",
            "campaign_status": "Booked",
            "mp_campaigndates_start": "2025-01-01",
            "mp_campaigndates_end": "2025-03-31",
            "mp_campaignbudget": "$10,000.00",
            "mp_client_name": "Acme",
            "campaign_name": "Summer",
            "mp_television": True,
            "mp_radio": "false",
            "media_types": ["digiDisplay", "search"],
        }
        plan = plan_version_from_record(record, DateManager())

        assert plan.mba_number == "MBA1001"
        assert plan.version_number == 3
        assert plan.status is PlanStatus.BOOKED
        assert plan.campaign_start == date(2025, 1, 1)
        assert plan.campaign_end == date(2025, 3, 31)
        assert plan.budget == Decimal("10000.00")
        assert plan.client_name == "Acme"
        assert plan.media_types == [
            MediaType.SEARCH, MediaType.DIGITAL_DISPLAY, MediaType.TELEVISION,
        ]

    def test_bad_version_number_is_one(self) -> None:
        """Verify an unreadable version number defaults to 1."""
        plan = plan_version_from_record({"mba_number": "M", "version_number": "v2"}, DateManager())
        assert plan.version_number == 1
        assert plan.status is PlanStatus.DRAFT

    def test_fee_parameters_from_flat_fields(self) -> None:
        """Verify flat client fee and rate fields."""
        parameters = fee_parameters_from_record({
            "feeradio": "10",
            "feedigidisplay": 12.5,
            "adservdisplay": "2.50",
            "adservimp": "0.01",
        })

        assert parameters.fee_percentage_for(MediaType.RADIO) == Decimal("10")
        assert parameters.fee_percentage_for(MediaType.DIGITAL_DISPLAY) == Decimal("12.5")
        assert parameters.fee_percentage_for(MediaType.SEARCH) == Decimal("0")
        assert parameters.ad_serving_rates.display == Decimal("2.50")
        assert parameters.ad_serving_rates.impression == Decimal("0.01")
        assert parameters.ad_serving_rates.video == Decimal("0")

    def test_fee_parameters_from_mappings(self) -> None:
        """Verify nested fee and rate mappings take precedence."""
        parameters = fee_parameters_from_record({
            "fee_percentages": {"television": "8"},
            "feetelevision": "99",
            "ad_serving_rates": {"video": "0.05"},
        })

        assert parameters.fee_percentage_for(MediaType.TELEVISION) == Decimal("8")
        assert parameters.ad_serving_rates.video == Decimal("0.05")
