"""
MediaSpend - Burst Normalisation Module.

Stored line-item records arrive with inconsistent field names (snake_case
and camelCase), money as display strings, dates in several formats and
bursts either as a list or as a JSON string. This module converts them
into canonical LineItem and Burst objects.

Bad values never stop normalisation: an unparseable date yields a burst
without that date, which later contributes nothing to any schedule.
Each such problem is recorded as a NormalisationIssue.

Classes:
    NormalisationIssue: A problem found in one burst of a record.
    NormalisationResult: Line items plus the issues found.
    BurstNormalizer: Converts stored records into line items.

Functions:
    plan_version_from_record: Reads a stored plan version record.
    fee_parameters_from_record: Reads fee percentages and rates.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from mediaspend.date_logic import DateManager
from mediaspend.money import parse_money
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

logger = logging.getLogger(__name__)

START_KEYS = ("start_date", "startDate", "start")
END_KEYS = ("end_date", "endDate", "end")
BUDGET_KEYS = ("budget", "spend", "media_investment", "investment")
BUY_AMOUNT_KEYS = ("buyAmount", "buy_amount")
DELIVERABLE_KEYS = (
    "calculatedValue", "deliverables", "deliverable", "deliverablesAmount",
    "impressions", "views", "spots",
)
INCLUDES_FEES_KEYS = ("budget_includes_fees", "budgetIncludesFees")
CLIENT_PAYS_KEYS = ("client_pays_for_media", "clientPaysForMedia")
NO_AD_SERVING_KEYS = ("no_adserving", "noAdserving", "noadserving", "no_ad_serving")
BUY_TYPE_KEYS = ("buy_type", "buyType")
LINE_ITEM_ID_KEYS = ("line_item_id", "lineItemId", "id")
BURST_KEYS = ("bursts", "bursts_json", "burstsJson")

PLATFORM_TARGETING_TYPES = frozenset([
    MediaType.SEARCH,
    MediaType.SOCIAL_MEDIA,
    MediaType.PROG_DISPLAY,
    MediaType.PROG_VIDEO,
    MediaType.PROG_BVOD,
    MediaType.PROG_AUDIO,
    MediaType.PROG_OOH,
])

# (header1 candidates, header2 candidates) per media type
HEADER_FIELDS: Dict[MediaType, tuple] = {
    MediaType.TELEVISION: (("network",), ("station",)),
    MediaType.RADIO: (("network", "platform"), ("station", "bid_strategy", "bidStrategy")),
    MediaType.NEWSPAPER: (("publisher", "network"), ("title",)),
    MediaType.MAGAZINES: (("publisher", "network"), ("title",)),
    MediaType.DIGITAL_DISPLAY: (("publisher",), ("site",)),
    MediaType.DIGITAL_AUDIO: (("publisher",), ("site",)),
    MediaType.DIGITAL_VIDEO: (("publisher",), ("site",)),
    MediaType.BVOD: (("publisher",), ("site",)),
    MediaType.OOH: (("network",), ("format", "oohFormat", "ooh_format")),
    MediaType.CINEMA: (("network",), ("format", "creative", "station")),
}
PLATFORM_HEADER_FIELDS = (
    ("platform", "publisher", "network"),
    ("targeting", "creativeTargeting", "creative_targeting",
     "targetingAttribute", "targeting_attribute"),
)
DEFAULT_HEADER_FIELDS = (
    ("network", "publisher", "platform", "header1"),
    ("station", "site", "title", "format", "header2"),
)


@dataclass
class NormalisationIssue:
    """
    A problem found while normalising one burst.

    Attributes:
        line_item_id: Identifier of the line item.
        burst_index: Zero-based position of the burst.
        field_name: The field that could not be used.
        value: The raw value.
        message: Description of the problem.
    """

    line_item_id: str
    burst_index: int
    field_name: str
    value: str
    message: str

    def __str__(self) -> str:
        """Returns a formatted message for display."""
        return (
            f"Line item {self.line_item_id} burst {self.burst_index + 1} "
            f"'{self.field_name}' - {self.message}"
        )


@dataclass
class NormalisationResult:
    """Line items produced by normalisation and the issues found."""

    line_items: List[LineItem] = field(default_factory=list)
    issues: List[NormalisationIssue] = field(default_factory=list)

    @property
    def bursts(self) -> List[Burst]:
        """All bursts of all line items, in order."""
        return [burst for item in self.line_items for burst in item.bursts]

    @property
    def issue_count(self) -> int:
        """Returns the number of issues found."""
        return len(self.issues)


def pick(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Returns the first present, non-empty value among keys."""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_flag(value: Any) -> bool:
    """Parses a stored boolean that may be a bool, number or string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y", "on")
    return False


def parse_burst_array(value: Any) -> List[Mapping[str, Any]]:
    """
    Returns the bursts of a record as a list of mappings.

    Bursts may be stored as a list or as a JSON string. Anything else,
    including malformed JSON, yields an empty list.
    """
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Ignoring malformed bursts JSON")
            return []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def schedule_headers(media_type: MediaType, record: Mapping[str, Any]) -> tuple:
    """
    Returns the (header1, header2) display headers of a line item.

    Platform-bought containers use platform and targeting; the others
    use their network, publisher, station, site or title fields.
    """
    if media_type in PLATFORM_TARGETING_TYPES:
        header1_keys, header2_keys = PLATFORM_HEADER_FIELDS
    else:
        header1_keys, header2_keys = HEADER_FIELDS.get(media_type, DEFAULT_HEADER_FIELDS)
    header1 = pick(record, header1_keys)
    header2 = pick(record, header2_keys)
    return (
        str(header1).strip() if header1 is not None else "",
        str(header2).strip() if header2 is not None else "",
    )


class BurstNormalizer:
    """
    Converts stored line-item records into canonical bursts.

    Fee percentages come from the plan's FeeModelParameters. Containers
    outside the digital and programmatic group never carry ad-serving.

    Example:
        >>> normalizer = BurstNormalizer(FeeModelParameters(), DateManager())
        >>> result = normalizer.normalise_line_items(records, MediaType.RADIO)
        >>> bursts = result.bursts
    """

    def __init__(self, parameters: FeeModelParameters, date_manager: DateManager):
        """
        Initialises the BurstNormalizer.

        Args:
            parameters: Fee percentages and ad-serving rates of the plan.
            date_manager: DateManager instance for date parsing.
        """
        self._parameters = parameters
        self._date_manager = date_manager

    def normalise_line_items(
        self,
        records: Iterable[Mapping[str, Any]],
        media_type: MediaType
    ) -> NormalisationResult:
        """
        Normalises every line-item record of one media type.

        Args:
            records: Stored line-item records.
            media_type: Container the records belong to.

        Returns:
            NormalisationResult with line items in record order.
        """
        result = NormalisationResult()
        for index, record in enumerate(records):
            line_item = self._normalise_record(record, media_type, index, result.issues)
            result.line_items.append(line_item)
        return result

    def normalise_line_item(
        self,
        record: Mapping[str, Any],
        media_type: MediaType
    ) -> LineItem:
        """Normalises a single line-item record, discarding issues."""
        return self._normalise_record(record, media_type, 0, [])

    def _normalise_record(
        self,
        record: Mapping[str, Any],
        media_type: MediaType,
        index: int,
        issues: List[NormalisationIssue]
    ) -> LineItem:
        """Builds a LineItem from one record, appending issues found."""
        raw_id = pick(record, LINE_ITEM_ID_KEYS)
        line_item_id = str(raw_id) if raw_id is not None else f"{media_type.value}-{index + 1}"
        header1, header2 = schedule_headers(media_type, record)

        bursts = []
        for burst_index, raw_burst in enumerate(parse_burst_array(pick(record, BURST_KEYS))):
            bursts.append(self._normalise_burst(
                raw_burst, record, media_type, line_item_id, burst_index, issues
            ))

        return LineItem(
            line_item_id=line_item_id,
            media_type=media_type,
            header1=header1,
            header2=header2,
            bursts=bursts,
        )

    def _normalise_burst(
        self,
        raw: Mapping[str, Any],
        record: Mapping[str, Any],
        media_type: MediaType,
        line_item_id: str,
        burst_index: int,
        issues: List[NormalisationIssue]
    ) -> Burst:
        """Builds one Burst, falling back to line-item values where absent."""
        raw_start = pick(raw, START_KEYS)
        if raw_start is None:
            raw_start = pick(record, START_KEYS)
        raw_end = pick(raw, END_KEYS)
        if raw_end is None:
            raw_end = pick(record, END_KEYS)
        if raw_end is None:
            raw_end = raw_start

        start_date = self._date_manager.coerce_date(raw_start)
        end_date = self._date_manager.coerce_date(raw_end)

        if start_date is None:
            issues.append(NormalisationIssue(
                line_item_id, burst_index, "start_date", str(raw_start),
                "Start date is missing or not a valid date"
            ))
        if end_date is None:
            issues.append(NormalisationIssue(
                line_item_id, burst_index, "end_date", str(raw_end),
                "End date is missing or not a valid date"
            ))
        if start_date is not None and end_date is not None and start_date > end_date:
            issues.append(NormalisationIssue(
                line_item_id, burst_index, "end_date", str(raw_end),
                "End date is before start date"
            ))

        raw_buy_type = pick(raw, BUY_TYPE_KEYS) or pick(record, BUY_TYPE_KEYS)
        budget = parse_money(pick(raw, BUDGET_KEYS))
        if str(raw_buy_type or "").strip().lower() == "bonus":
            budget = Decimal("0")

        return Burst(
            start_date=start_date,
            end_date=end_date,
            budget=budget,
            media_type=media_type,
            buy_amount=parse_money(pick(raw, BUY_AMOUNT_KEYS)),
            deliverables=parse_money(pick(raw, DELIVERABLE_KEYS)),
            buy_type=BuyType.parse(raw_buy_type),
            fee_percentage=self._parameters.fee_percentage_for(media_type),
            client_pays_for_media=self._flag(raw, record, CLIENT_PAYS_KEYS),
            budget_includes_fees=self._flag(raw, record, INCLUDES_FEES_KEYS),
            no_ad_serving=(
                not media_type.ad_serving_eligible
                or self._flag(raw, record, NO_AD_SERVING_KEYS)
            ),
        )

    def _flag(
        self,
        raw: Mapping[str, Any],
        record: Mapping[str, Any],
        keys: Sequence[str]
    ) -> bool:
        """Reads a flag from the burst, else from its line item."""
        value: Optional[Any] = pick(raw, keys)
        if value is None:
            value = pick(record, keys)
        return parse_flag(value)


PLAN_FIELDS = {
    "mba_number": ("mba_number", "mp_mba_number", "mbaNumber"),
    "version_number": ("version_number", "mp_version", "versionNumber", "version"),
    "status": ("campaign_status", "mp_campaignstatus", "status"),
    "campaign_start": ("campaign_start_date", "mp_campaigndates_start", "campaign_start", "campaignStart"),
    "campaign_end": ("campaign_end_date", "mp_campaigndates_end", "campaign_end", "campaignEnd"),
    "budget": ("mp_campaignbudget", "campaign_budget", "budget"),
    "client_name": ("mp_client_name", "mp_clientname", "client_name", "clientName"),
    "campaign_name": ("campaign_name", "mp_campaignname", "campaignName"),
    "delivery_schedule": ("deliverySchedule", "delivery_schedule"),
    "billing_schedule": ("billingSchedule", "billing_schedule"),
}

AD_SERVING_RATE_KEYS = {
    "video": ("video", "adservvideo"),
    "audio": ("audio", "adservaudio"),
    "display": ("display", "adservdisplay"),
    "impression": ("impression", "adservimp"),
}


def plan_version_from_record(
    record: Mapping[str, Any],
    date_manager: DateManager
) -> PlanVersion:
    """
    Builds a PlanVersion from a stored plan record.

    Enabled media types are read from a 'media_types' list or from
    per-container flags such as 'mp_television'.

    Args:
        record: Stored plan version record.
        date_manager: DateManager instance for date parsing.

    Returns:
        The plan version. Missing values take neutral defaults.
    """
    def value(name: str) -> Any:
        return pick(record, PLAN_FIELDS[name])

    try:
        version_number = int(value("version_number") or 1)
    except (TypeError, ValueError):
        logger.warning("Invalid version number %r treated as 1", value("version_number"))
        version_number = 1

    media_types: List[MediaType] = []
    listed = record.get("media_types") or record.get("mediaTypes")
    if isinstance(listed, (list, tuple)):
        for key in listed:
            media_type = MediaType.from_key(key)
            if media_type is not None and media_type not in media_types:
                media_types.append(media_type)
    for key, flag in record.items():
        if not str(key).startswith("mp_") or not parse_flag(flag):
            continue
        media_type = MediaType.from_key(key)
        if media_type is not None and media_type not in media_types:
            media_types.append(media_type)
    media_types.sort(key=list(MediaType).index)

    return PlanVersion(
        mba_number=str(value("mba_number") or ""),
        version_number=version_number,
        status=PlanStatus.parse(value("status")),
        campaign_start=date_manager.coerce_date(value("campaign_start")),
        campaign_end=date_manager.coerce_date(value("campaign_end")),
        budget=parse_money(value("budget")),
        client_name=str(value("client_name") or ""),
        campaign_name=str(value("campaign_name") or ""),
        media_types=media_types,
        delivery_schedule=value("delivery_schedule"),
        billing_schedule=value("billing_schedule"),
    )


def fee_parameters_from_record(record: Mapping[str, Any]) -> FeeModelParameters:
    """
    Builds FeeModelParameters from a stored client or plan record.

    Fee percentages are read from a 'fee_percentages' mapping keyed by
    media type, and from flat fields such as 'feeradio'. Ad-serving
    rates are read from an 'ad_serving_rates' mapping or from the flat
    'adservvideo', 'adservaudio', 'adservdisplay' and 'adservimp' fields.
    """
    fee_percentages: Dict[MediaType, Decimal] = {}
    nested = record.get("fee_percentages") or {}
    if isinstance(nested, Mapping):
        for key, pct in nested.items():
            media_type = MediaType.from_key(key)
            if media_type is not None:
                fee_percentages[media_type] = parse_money(pct)
    for key, pct in record.items():
        if str(key).startswith("fee") and key != "fee_percentages":
            media_type = MediaType.from_key(str(key)[3:])
            if media_type is not None and media_type not in fee_percentages:
                fee_percentages[media_type] = parse_money(pct)

    rates_record = record.get("ad_serving_rates")
    if not isinstance(rates_record, Mapping):
        rates_record = record
    rates = AdServingRates(**{
        name: parse_money(pick(rates_record, keys))
        for name, keys in AD_SERVING_RATE_KEYS.items()
    })
    return FeeModelParameters(fee_percentages=fee_percentages, ad_serving_rates=rates)
