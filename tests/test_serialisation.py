"""
MediaSpend - Schedule Serialisation Tests.

Unit tests for ScheduleSerialiser and DecimalEncoder.
Tests ensure persisted schedules use display money strings, metrics
keep full Decimal precision, and a stored delivery schedule reads back
through the dashboard parser.
"""

import json
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from mediaspend.dashboard import DashboardAggregator, parse_schedule
from mediaspend.date_logic import DateManager
from mediaspend.schema import (
    BillingSchedule,
    DeliveryLineItem,
    DeliveryMediaType,
    DeliveryScheduleEntry,
    MediaType,
    MonthBucket,
    PlanStatus,
    PlanVersion,
)
from mediaspend.serialisation import DecimalEncoder, ScheduleSerialiser
from mediaspend.settings import EngineSettings


def create_test_schedule() -> BillingSchedule:
    """Creates a one-month radio schedule."""
    bucket = MonthBucket(
        month_label="January 2025",
        month_start=date(2025, 1, 1),
        media_costs={MediaType.RADIO: Decimal("1700")},
        total_fee=Decimal("188.888888"),
    )
    bucket.recalculate_totals()
    schedule = BillingSchedule(months=[bucket])
    schedule.recalculate_grand_total()
    return schedule


def create_test_entries():
    """Creates a month entry and a day entry."""
    return [
        DeliveryScheduleEntry(
            month_label="January 2025",
            media_types=[DeliveryMediaType(
                media_type="Radio",
                line_items=[DeliveryLineItem("R1", "ARN", "KIIS", Decimal("1700"))],
            )],
            fee_total=Decimal("188.888888"),
        ),
        DeliveryScheduleEntry(
            day=date(2025, 2, 3),
            media_types=[DeliveryMediaType(
                media_type="Search",
                line_items=[DeliveryLineItem("S1", "Google", "Brand", Decimal("45.5"))],
            )],
        ),
    ]


class TestDecimalEncoder:
    """Tests for DecimalEncoder."""

    def test_encodes_decimal_date_and_enum(self) -> None:
        """Verify Decimal keeps its digits and dates use ISO format."""
        encoded = json.dumps(
            {"amount": Decimal("1.10"), "day": date(2025, 1, 1), "media": MediaType.RADIO},
            cls=DecimalEncoder
        )
        assert json.loads(encoded) == {"amount": "1.10", "day": "2025-01-01", "media": "radio"}

    def test_unknown_objects_still_fail(self) -> None:
        """Verify other objects raise TypeError."""
        with pytest.raises(TypeError):
            json.dumps({"value": object()}, cls=DecimalEncoder)


class TestScheduleSerialiser:
    """Unit tests for ScheduleSerialiser."""

    def setup_method(self) -> None:
        """Initialise ScheduleSerialiser for each test."""
        self.serialiser = ScheduleSerialiser(version="1.2.3")

    def test_schedule_to_dict(self) -> None:
        """Verify the persisted billing schedule shape."""
        data = self.serialiser.schedule_to_dict(create_test_schedule())

        assert data["metadata"]["version"] == "1.2.3"
        assert data["metadata"]["generated_by"] == "MediaSpend"
        assert data["isManual"] is False
        assert data["grandTotal"] == "$1,888.89"
        month = data["months"][0]
        assert month["monthYear"] == "January 2025"
        assert month["mediaCosts"] == {"Radio": "$1,700.00"}
        assert month["feeTotal"] == "$188.89"
        assert month["adservingTechFees"] == "$0.00"
        assert month["totalAmount"] == "$1,888.89"

    def test_serialise_schedule_is_valid_json(self) -> None:
        """Verify the JSON string parses back."""
        parsed = json.loads(self.serialiser.serialise_schedule(create_test_schedule()))
        assert parsed["months"][0]["mediaTotal"] == "$1,700.00"

    def test_custom_currency_symbol(self) -> None:
        """Verify the display symbol is configurable."""
        serialiser = ScheduleSerialiser(currency_symbol="R")
        assert serialiser.schedule_to_dict(create_test_schedule())["grandTotal"] == "R1,888.89"

    def test_delivery_schedule_to_list(self) -> None:
        """Verify month and day entries and omitted zero totals."""
        data = self.serialiser.delivery_schedule_to_list(create_test_entries())

        assert data[0]["monthYear"] == "January 2025"
        assert data[0]["feeTotal"] == "$188.89"
        assert data[0]["mediaTypes"][0]["lineItems"][0] == {
            "lineItemId": "R1", "header1": "ARN", "header2": "KIIS", "amount": "$1,700.00",
        }
        assert data[1]["day"] == "2025-02-03"
        assert "feeTotal" not in data[1]
        assert "monthYear" not in data[1]

    def test_stored_delivery_schedule_reads_back(self) -> None:
        """Verify the dashboard parser reads what the serialiser writes."""
        stored = self.serialiser.serialise_delivery_schedule(create_test_entries())
        entries = parse_schedule(stored, DateManager())

        assert entries[0].month_label == "January 2025"
        assert entries[0].line_item_total == Decimal("1700.00")
        assert entries[0].fee_total == Decimal("188.89")
        assert entries[1].day == date(2025, 2, 3)
        assert entries[1].media_types[0].line_items[0].amount == Decimal("45.50")

    def test_metrics_keep_full_precision(self) -> None:
        """Verify dashboard amounts are written as Decimal strings."""
        plan = PlanVersion(
            "MBA1", 1, PlanStatus.BOOKED, date(2025, 1, 1), date(2025, 3, 31), Decimal("900"),
            campaign_name="Spring",
            delivery_schedule=[{"monthYear": "January 2025",
                                "mediaTypes": [{"mediaType": "radio", "lineItems": [{"amount": "310"}]}]}],
        )
        metrics = DashboardAggregator(EngineSettings(), DateManager()).aggregate(
            None, [plan], date(2025, 1, 10)
        )
        data = json.loads(self.serialiser.serialise_metrics(metrics))

        assert data["referenceDate"] == "2025-01-10"
        assert Decimal(data["financialYear"]["spend"]) == Decimal("310")
        assert Decimal(data["rollingWindow"]["spend"]) == Decimal("100")
        assert data["spendByMediaType"][0]["name"] == "Radio"
        assert data["campaigns"][0]["campaignName"] == "Spring"
        assert len(data["dailySpend"]) == 30
        assert data["liveCampaigns"] == ["MBA1"]

    def test_save_and_load(self) -> None:
        """Verify files are written with parent directories and read back."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "billing" / "MBA1.json"
            self.serialiser.save_to_file(self.serialiser.serialise_schedule(create_test_schedule()), path)

            assert path.exists()
            assert self.serialiser.load_from_file(path)["grandTotal"] == "$1,888.89"

    def test_load_missing_file_raises(self) -> None:
        """Verify a missing input file raises FileNotFoundError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                self.serialiser.load_from_file(Path(tmpdir) / "missing.json")

    def test_generate_filename(self) -> None:
        """Verify timestamped filenames."""
        filename = self.serialiser.generate_filename("billing_MBA1")
        assert filename.startswith("billing_MBA1_")
        assert filename.endswith(".json")
