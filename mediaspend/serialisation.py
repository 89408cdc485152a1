"""
MediaSpend - Schedule Serialisation Module.

This module converts billing schedules, delivery schedules and dashboard
metrics to JSON. Persisted schedules use the record store's shape, with
money as display strings such as "$1,700.00"; metrics keep full Decimal
precision as strings.

Classes:
    DecimalEncoder: JSON encoder for Decimal, date and Enum values.
    ScheduleSerialiser: Converts engine output to JSON structures.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from mediaspend import __version__
from mediaspend.money import format_money
from mediaspend.schema import (
    BillingSchedule,
    DashboardMetrics,
    DeliveryScheduleEntry,
    MonthBucket,
    SpendShare,
)


class DecimalEncoder(json.JSONEncoder):
    """
    JSON encoder for engine values.

    Decimals are written as strings with every digit kept, dates in ISO
    format and enums by value.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class ScheduleSerialiser:
    """
    Converts engine output to JSON structures and files.

    Example:
        >>> serialiser = ScheduleSerialiser()
        >>> json_str = serialiser.serialise_schedule(schedule)
        >>> serialiser.save_to_file(json_str, "billing/MBA001.json")
    """

    def __init__(self, version: str = None, currency_symbol: str = "$"):
        """
        Initialises the ScheduleSerialiser.

        Args:
            version: Version identifier for metadata.
                     Defaults to package version.
            currency_symbol: Symbol for formatted money strings.
        """
        self._version = version or __version__
        self._currency_symbol = currency_symbol

    def schedule_to_dict(self, schedule: BillingSchedule) -> Dict[str, Any]:
        """
        Converts a BillingSchedule to its persisted form.

        Args:
            schedule: Schedule to convert.

        Returns:
            Dictionary with metadata, months and the grand total.
        """
        return {
            "metadata": self._metadata(),
            "isManual": schedule.is_manual,
            "months": [self._bucket_to_dict(bucket) for bucket in schedule.months],
            "grandTotal": self._money(schedule.grand_total),
        }

    def serialise_schedule(self, schedule: BillingSchedule) -> str:
        """Serialises a BillingSchedule to a JSON string."""
        return json.dumps(self.schedule_to_dict(schedule), cls=DecimalEncoder, indent=2)

    def delivery_schedule_to_list(
        self,
        entries: Sequence[DeliveryScheduleEntry]
    ) -> List[Dict[str, Any]]:
        """
        Converts schedule entries to the persisted month hierarchy.

        Fee, ad-serving and production totals are written only when
        they are non-zero.

        Args:
            entries: Entries built by the billing schedule builder.

        Returns:
            List of entries keyed by 'monthYear' or 'day'.
        """
        result = []
        for entry in entries:
            data: Dict[str, Any] = {}
            if entry.day is not None:
                data["day"] = entry.day.isoformat()
            else:
                data["monthYear"] = entry.month_label
            data["mediaTypes"] = [
                {
                    "mediaType": media.media_type,
                    "lineItems": [
                        {
                            "lineItemId": item.line_item_id,
                            "header1": item.header1,
                            "header2": item.header2,
                            "amount": self._money(item.amount),
                        }
                        for item in media.line_items
                    ],
                }
                for media in entry.media_types
            ]
            if entry.fee_total:
                data["feeTotal"] = self._money(entry.fee_total)
            if entry.ad_serving_fee:
                data["adservingTechFees"] = self._money(entry.ad_serving_fee)
            if entry.production:
                data["production"] = self._money(entry.production)
            result.append(data)
        return result

    def serialise_delivery_schedule(self, entries: Sequence[DeliveryScheduleEntry]) -> str:
        """Serialises schedule entries to a JSON string."""
        return json.dumps(self.delivery_schedule_to_list(entries), indent=2)

    def metrics_to_dict(self, metrics: DashboardMetrics) -> Dict[str, Any]:
        """
        Converts DashboardMetrics to a dictionary.

        Amounts keep full precision as Decimal strings once encoded.
        """
        return {
            "metadata": self._metadata(),
            "clientSlug": metrics.client_slug,
            "referenceDate": metrics.reference_date,
            "financialYear": {
                "start": metrics.financial_year_start,
                "end": metrics.financial_year_end,
                "spend": metrics.financial_year_spend,
            },
            "rollingWindow": {
                "start": metrics.rolling_start,
                "end": metrics.rolling_end,
                "spend": metrics.rolling_spend,
            },
            "spendByMediaType": [self._share_to_dict(s) for s in metrics.spend_by_media_type],
            "spendByCampaign": [self._share_to_dict(s) for s in metrics.spend_by_campaign],
            "campaigns": [
                {
                    "mbaNumber": campaign.mba_number,
                    "campaignName": campaign.campaign_name,
                    "versionNumber": campaign.version_number,
                    "financialYearSpend": campaign.financial_year_spend,
                    "rollingSpend": campaign.rolling_spend,
                    "estimated": campaign.estimated,
                }
                for campaign in metrics.campaigns
            ],
            "dailySpend": [
                {"day": day, "amount": amount}
                for day, amount in metrics.daily_spend.items()
            ],
            "monthlySpend": [
                {"monthYear": month.month_label, "byMediaType": month.by_media_type}
                for month in metrics.monthly_spend
            ],
            "liveCampaigns": list(metrics.live_campaigns),
            "estimatedMbaNumbers": list(metrics.estimated_mba_numbers),
        }

    def serialise_metrics(self, metrics: DashboardMetrics) -> str:
        """Serialises DashboardMetrics to a JSON string."""
        return json.dumps(self.metrics_to_dict(metrics), cls=DecimalEncoder, indent=2)

    def save_to_file(self, json_str: str, file_path: Union[str, Path]) -> None:
        """
        Writes a JSON string to a file, creating parent directories.

        Raises:
            PermissionError: If file cannot be written.
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(json_str, encoding="utf-8")

    def load_from_file(self, file_path: Union[str, Path]) -> Any:
        """
        Loads JSON from a file.

        Raises:
            FileNotFoundError: If file does not exist.
            json.JSONDecodeError: If JSON is malformed.
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Input file not found: {file_path}")

        return json.loads(file_path.read_text(encoding="utf-8"))

    def generate_filename(self, prefix: str = "billing", extension: str = "json") -> str:
        """
        Generates a timestamped filename.

        Returns:
            Filename like "billing_2025-03-10_143052.json".
        """
        timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        return f"{prefix}_{timestamp}.{extension}"

    def _metadata(self) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now().isoformat(),
            "version": self._version,
            "generated_by": "MediaSpend",
        }

    def _bucket_to_dict(self, bucket: MonthBucket) -> Dict[str, Any]:
        return {
            "monthYear": bucket.month_label,
            "mediaCosts": {
                media_type.label: self._money(amount)
                for media_type, amount in bucket.media_costs.items()
            },
            "mediaTotal": self._money(bucket.total_media),
            "feeTotal": self._money(bucket.total_fee),
            "adservingTechFees": self._money(bucket.ad_serving_fee),
            "production": self._money(bucket.production),
            "totalAmount": self._money(bucket.total_amount),
        }

    def _share_to_dict(self, share: SpendShare) -> Dict[str, Any]:
        data = {"name": share.name, "amount": share.amount, "percentage": share.percentage}
        if share.mba_number is not None:
            data["mbaNumber"] = share.mba_number
        return data

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self._currency_symbol)
