"""
MediaSpend - Data Schema Module.

This module defines the core data structures for media plans, bursts,
fee splits, billing schedules and dashboard output. All monetary values
use Decimal type for financial precision.

Classes:
    MediaType: Media containers in their fixed processing order.
    AdServingCategory: Rate families for ad-serving fees.
    BuyType: Pricing basis of a buy.
    PlanStatus: Lifecycle status of a plan version.
    FeeModel: Contractual rule for splitting a budget into media and fee.
    Burst: One dated, budgeted slice of a line item.
    LineItem: A media buy made of bursts.
    FeeSplit: Result of a fee allocation.
    AdServingRates: Unit rates per ad-serving category.
    FeeModelParameters: Fee percentages and ad-serving rates for a plan.
    MonthBucket: One calendar month of a billing schedule.
    BillingSchedule: Month-by-month billing table for a plan version.
    PlanVersion: One saved version of a media plan.
    DashboardMetrics: Aggregated spend analytics.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

ZERO = Decimal("0")


class AdServingCategory(Enum):
    """Rate family used to price ad-serving for a media type."""

    VIDEO = "video"
    AUDIO = "audio"
    DISPLAY = "display"
    IMPRESSION = "impression"


class MediaType(Enum):
    """
    Media containers a plan can enable.

    Declaration order is the fixed processing order used when building
    schedules, which keeps rebuilt totals reproducible.
    """

    SEARCH = "search"
    SOCIAL_MEDIA = "social-media"
    PROG_AUDIO = "prog-audio"
    CINEMA = "cinema"
    DIGITAL_AUDIO = "digital-audio"
    DIGITAL_DISPLAY = "digital-display"
    DIGITAL_VIDEO = "digital-video"
    PROG_DISPLAY = "prog-display"
    PROG_VIDEO = "prog-video"
    PROG_BVOD = "prog-bvod"
    PROG_OOH = "prog-ooh"
    TELEVISION = "television"
    RADIO = "radio"
    NEWSPAPER = "newspaper"
    MAGAZINES = "magazines"
    OOH = "ooh"
    BVOD = "bvod"
    INTEGRATION = "integration"
    INFLUENCERS = "influencers"

    @property
    def label(self) -> str:
        """Display label, e.g. 'Digital Display'."""
        return MEDIA_TYPE_LABELS[self]

    @property
    def ad_serving_category(self) -> AdServingCategory:
        """Rate family for ad-serving fees."""
        return AD_SERVING_CATEGORIES.get(self, AdServingCategory.IMPRESSION)

    @property
    def ad_serving_eligible(self) -> bool:
        """True for the digital and programmatic containers that carry ad-serving."""
        return self in AD_SERVING_ELIGIBLE

    @classmethod
    def from_key(cls, key: Any) -> Optional["MediaType"]:
        """
        Resolves a loosely formatted media type key.

        Matching ignores case, separators and a leading 'mp_' or
        'media_plan_' prefix, and accepts display labels and the
        camelCase keys stored with line items.

        Args:
            key: Raw key such as 'digiDisplay', 'Social Media' or 'tv'.

        Returns:
            The MediaType, or None if the key is not recognised.
        """
        if isinstance(key, MediaType):
            return key
        if not isinstance(key, str):
            return None
        normalised = re.sub(r"[^a-z0-9]", "", key.lower())
        for prefix in ("mediaplan", "mp"):
            if normalised.startswith(prefix) and normalised[len(prefix):] in MEDIA_TYPE_ALIASES:
                normalised = normalised[len(prefix):]
                break
        return MEDIA_TYPE_ALIASES.get(normalised)


MEDIA_TYPE_LABELS: Dict[MediaType, str] = {
    MediaType.SEARCH: "Search",
    MediaType.SOCIAL_MEDIA: "Social Media",
    MediaType.PROG_AUDIO: "Programmatic Audio",
    MediaType.CINEMA: "Cinema",
    MediaType.DIGITAL_AUDIO: "Digital Audio",
    MediaType.DIGITAL_DISPLAY: "Digital Display",
    MediaType.DIGITAL_VIDEO: "Digital Video",
    MediaType.PROG_DISPLAY: "Programmatic Display",
    MediaType.PROG_VIDEO: "Programmatic Video",
    MediaType.PROG_BVOD: "Programmatic BVOD",
    MediaType.PROG_OOH: "Programmatic OOH",
    MediaType.TELEVISION: "Television",
    MediaType.RADIO: "Radio",
    MediaType.NEWSPAPER: "Newspaper",
    MediaType.MAGAZINES: "Magazines",
    MediaType.OOH: "OOH",
    MediaType.BVOD: "BVOD",
    MediaType.INTEGRATION: "Integration",
    MediaType.INFLUENCERS: "Influencers",
}

AD_SERVING_CATEGORIES: Dict[MediaType, AdServingCategory] = {
    MediaType.PROG_VIDEO: AdServingCategory.VIDEO,
    MediaType.PROG_BVOD: AdServingCategory.VIDEO,
    MediaType.DIGITAL_VIDEO: AdServingCategory.VIDEO,
    MediaType.BVOD: AdServingCategory.VIDEO,
    MediaType.PROG_AUDIO: AdServingCategory.AUDIO,
    MediaType.DIGITAL_AUDIO: AdServingCategory.AUDIO,
    MediaType.PROG_DISPLAY: AdServingCategory.DISPLAY,
    MediaType.DIGITAL_DISPLAY: AdServingCategory.DISPLAY,
}

AD_SERVING_ELIGIBLE = frozenset([
    MediaType.DIGITAL_AUDIO,
    MediaType.DIGITAL_DISPLAY,
    MediaType.DIGITAL_VIDEO,
    MediaType.BVOD,
    MediaType.PROG_AUDIO,
    MediaType.PROG_VIDEO,
    MediaType.PROG_BVOD,
    MediaType.PROG_OOH,
    MediaType.PROG_DISPLAY,
])

# Separator-free lowercase keys
MEDIA_TYPE_ALIASES: Dict[str, MediaType] = {}
for _media_type in MediaType:
    MEDIA_TYPE_ALIASES[_media_type.value.replace("-", "")] = _media_type
    MEDIA_TYPE_ALIASES[re.sub(r"[^a-z0-9]", "", MEDIA_TYPE_LABELS[_media_type].lower())] = _media_type
MEDIA_TYPE_ALIASES.update({
    "social": MediaType.SOCIAL_MEDIA,
    "progaudio": MediaType.PROG_AUDIO,
    "digiaudio": MediaType.DIGITAL_AUDIO,
    "digidisplay": MediaType.DIGITAL_DISPLAY,
    "digivideo": MediaType.DIGITAL_VIDEO,
    "progdisplay": MediaType.PROG_DISPLAY,
    "progvideo": MediaType.PROG_VIDEO,
    "progbvod": MediaType.PROG_BVOD,
    "progooh": MediaType.PROG_OOH,
    "tv": MediaType.TELEVISION,
    "magazine": MediaType.MAGAZINES,
    "influencer": MediaType.INFLUENCERS,
})
del _media_type


class BuyType(Enum):
    """Pricing basis of a buy."""

    CPC = "cpc"
    CPV = "cpv"
    CPM = "cpm"
    FIXED_COST = "fixed_cost"

    @classmethod
    def parse(cls, value: Any) -> "BuyType":
        """
        Parses a stored buy type.

        Anything other than cpc, cpv or cpm (packages, spots,
        insertions, bonus, unknown) is priced as a fixed cost.
        """
        if isinstance(value, BuyType):
            return value
        text = str(value or "").strip().lower()
        for member in (cls.CPC, cls.CPV, cls.CPM):
            if text == member.value:
                return member
        return cls.FIXED_COST


class PlanStatus(Enum):
    """Lifecycle status of a plan version."""

    DRAFT = "draft"
    PLANNED = "planned"
    APPROVED = "approved"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_live(self) -> bool:
        """True for statuses that count as committed spend."""
        return self in LIVE_STATUSES

    @classmethod
    def parse(cls, value: Any) -> "PlanStatus":
        """Parses a stored status; unknown or empty statuses are drafts."""
        if isinstance(value, PlanStatus):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.DRAFT


LIVE_STATUSES = frozenset([PlanStatus.BOOKED, PlanStatus.APPROVED, PlanStatus.COMPLETED])


class FeeModel(Enum):
    """Contractual rule for splitting a burst budget into media and fee."""

    GROSS_INCLUDES_FEE = "gross_includes_fee"
    NET_PLUS_FEE = "net_plus_fee"
    CLIENT_PAYS_MEDIA = "client_pays_media"


@dataclass
class Burst:
    """
    A contiguous, dated slice of a line item's delivery.

    A burst whose dates are missing or reversed is kept as given and
    contributes nothing when prorated.

    Attributes:
        start_date: First day of delivery, or None if unparseable.
        end_date: Last day of delivery, or None if unparseable.
        budget: Stated budget for the burst.
        media_type: Container the burst belongs to.
        buy_amount: Unit buy price.
        deliverables: Deliverable count (impressions, spots, clicks).
        buy_type: Pricing basis.
        fee_percentage: Agency fee percentage for the media type.
        client_pays_for_media: Client settles media directly.
        budget_includes_fees: Budget is gross of the agency fee.
        no_ad_serving: Burst carries no ad-serving fee.
    """

    start_date: Optional[date]
    end_date: Optional[date]
    budget: Decimal
    media_type: MediaType
    buy_amount: Decimal = ZERO
    deliverables: Decimal = ZERO
    buy_type: BuyType = BuyType.FIXED_COST
    fee_percentage: Decimal = ZERO
    client_pays_for_media: bool = False
    budget_includes_fees: bool = False
    no_ad_serving: bool = False

    @property
    def has_valid_range(self) -> bool:
        """True when both dates exist and start is not after end."""
        return (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date <= self.end_date
        )


@dataclass
class LineItem:
    """One media buy composed of bursts."""

    line_item_id: str
    media_type: MediaType
    header1: str = ""
    header2: str = ""
    bursts: List[Burst] = field(default_factory=list)


@dataclass
class FeeSplit:
    """
    Media and fee portions of a burst budget.

    Attributes:
        media_amount: Media cost billed by the agency.
        fee_amount: Agency fee.
        total_amount: media_amount + fee_amount.
        model: Fee model that produced the split.
        delivery_media_amount: Net media delivered, including media
            the client pays for directly.
    """

    media_amount: Decimal
    fee_amount: Decimal
    total_amount: Decimal
    model: FeeModel
    delivery_media_amount: Decimal = ZERO


@dataclass
class AdServingRates:
    """Ad-serving unit rates per category."""

    video: Decimal = ZERO
    audio: Decimal = ZERO
    display: Decimal = ZERO
    impression: Decimal = ZERO

    def rate_for(self, category: AdServingCategory) -> Decimal:
        """Returns the unit rate of a category."""
        return getattr(self, category.value)


@dataclass
class FeeModelParameters:
    """
    Fee and rate inputs for one plan's computations.

    Attributes:
        fee_percentages: Agency fee percentage per media type. Types
            without an entry carry no fee.
        ad_serving_rates: Unit rates for ad-serving fees.
    """

    fee_percentages: Dict[MediaType, Decimal] = field(default_factory=dict)
    ad_serving_rates: AdServingRates = field(default_factory=AdServingRates)

    def fee_percentage_for(self, media_type: MediaType) -> Decimal:
        """Returns the fee percentage for a media type, zero if unset."""
        return self.fee_percentages.get(media_type, ZERO)


@dataclass
class MonthBucket:
    """
    One calendar month of a billing schedule.

    Attributes:
        month_label: Canonical label, e.g. 'March 2025'.
        month_start: First day of the month.
        media_costs: Media cost per media type.
        total_media: Sum of media_costs.
        total_fee: Agency fee for the month.
        ad_serving_fee: Ad-serving fee for the month.
        production: Non-burst production cost.
        total_amount: total_media + total_fee + ad_serving_fee + production.
    """

    month_label: str
    month_start: date
    media_costs: Dict[MediaType, Decimal] = field(default_factory=dict)
    total_media: Decimal = ZERO
    total_fee: Decimal = ZERO
    ad_serving_fee: Decimal = ZERO
    production: Decimal = ZERO
    total_amount: Decimal = ZERO

    def recalculate_totals(self) -> None:
        """Recomputes total_media and total_amount from the leaf values."""
        self.total_media = sum(self.media_costs.values(), ZERO)
        self.total_amount = (
            self.total_media + self.total_fee + self.ad_serving_fee + self.production
        )


@dataclass
class BillingSchedule:
    """
    Ordered month buckets and grand total for one plan version.

    Attributes:
        months: Buckets in chronological order with no gaps.
        grand_total: Sum of the bucket totals.
        is_manual: True once the schedule has been edited by hand.
    """

    months: List[MonthBucket] = field(default_factory=list)
    grand_total: Decimal = ZERO
    is_manual: bool = False

    def get_month(self, month_label: str) -> MonthBucket:
        """
        Returns the bucket with the given label.

        Raises:
            KeyError: If no bucket has that label.
        """
        for bucket in self.months:
            if bucket.month_label == month_label:
                return bucket
        raise KeyError(month_label)

    @property
    def month_labels(self) -> List[str]:
        """Bucket labels in order."""
        return [bucket.month_label for bucket in self.months]

    def recalculate_grand_total(self) -> None:
        """Recomputes grand_total from the bucket totals."""
        self.grand_total = sum((bucket.total_amount for bucket in self.months), ZERO)


@dataclass
class DeliveryLineItem:
    """Delivered amount for one line item in one period."""

    line_item_id: str
    header1: str
    header2: str
    amount: Decimal


@dataclass
class DeliveryMediaType:
    """Delivered line items of one media type in one period."""

    media_type: str
    line_items: List[DeliveryLineItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        """Sum of the line item amounts."""
        return sum((item.amount for item in self.line_items), ZERO)


@dataclass
class DeliveryScheduleEntry:
    """
    One period of a persisted delivery or billing schedule.

    An entry covers either a whole month (month_label) or a single
    day (day).
    """

    month_label: Optional[str] = None
    day: Optional[date] = None
    media_types: List[DeliveryMediaType] = field(default_factory=list)
    fee_total: Decimal = ZERO
    ad_serving_fee: Decimal = ZERO
    production: Decimal = ZERO

    @property
    def line_item_total(self) -> Decimal:
        """Sum of all line item amounts in the entry."""
        return sum((media.total for media in self.media_types), ZERO)


@dataclass
class PlanVersion:
    """
    One saved version of a media plan.

    delivery_schedule and billing_schedule hold the persisted schedule
    as stored: a list of entries, an object with a 'months' list, or
    a JSON string of either.
    """

    mba_number: str
    version_number: int
    status: PlanStatus
    campaign_start: Optional[date]
    campaign_end: Optional[date]
    budget: Decimal
    client_name: str = ""
    campaign_name: str = ""
    media_types: List[MediaType] = field(default_factory=list)
    delivery_schedule: Any = None
    billing_schedule: Any = None


@dataclass
class SpendShare:
    """One slice of a spend breakdown chart.

    Campaign slices carry the MBA number, so campaigns that share a
    name stay separate.
    """

    name: str
    amount: Decimal
    percentage: Decimal
    mba_number: Optional[str] = None


@dataclass
class CampaignSpend:
    """Spend of one selected plan version."""

    mba_number: str
    campaign_name: str
    version_number: int
    financial_year_spend: Decimal
    rolling_spend: Decimal
    estimated: bool = False


@dataclass
class MonthlySpend:
    """Spend per media type for one financial-year month."""

    month_label: str
    by_media_type: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        """Total spend of the month."""
        return sum(self.by_media_type.values(), ZERO)


@dataclass
class DashboardMetrics:
    """
    Aggregated spend analytics for a client or for all clients.

    Attributes:
        client_slug: Client filter, or None for all clients.
        reference_date: Local day the metrics were computed for.
        financial_year_start: First day of the financial year window.
        financial_year_end: Last day of the financial year window.
        rolling_start: First day of the rolling window.
        rolling_end: Last day of the rolling window.
        financial_year_spend: Total spend in the financial year.
        rolling_spend: Total spend in the rolling window.
        spend_by_media_type: Financial-year breakdown by media type.
        spend_by_campaign: Financial-year breakdown by campaign.
        campaigns: Per-plan spend for every selected version.
        daily_spend: Rolling-window spend per day, oldest first.
        monthly_spend: Financial-year spend per month and media type.
        live_campaigns: MBA numbers of live versions running on the
            reference day.
        estimated_mba_numbers: Plans reported from the straight-line
            estimate instead of delivery data.
    """

    client_slug: Optional[str]
    reference_date: date
    financial_year_start: date
    financial_year_end: date
    rolling_start: date
    rolling_end: date
    financial_year_spend: Decimal = ZERO
    rolling_spend: Decimal = ZERO
    spend_by_media_type: List[SpendShare] = field(default_factory=list)
    spend_by_campaign: List[SpendShare] = field(default_factory=list)
    campaigns: List[CampaignSpend] = field(default_factory=list)
    daily_spend: Dict[date, Decimal] = field(default_factory=dict)
    monthly_spend: List[MonthlySpend] = field(default_factory=list)
    live_campaigns: List[str] = field(default_factory=list)
    estimated_mba_numbers: List[str] = field(default_factory=list)


def slugify(name: str) -> str:
    """
    Converts a client name to its URL slug.

    Example:
        >>> slugify("Acme & Sons Pty Ltd")
        'acme-sons-pty-ltd'
    """
    lowered = (name or "").lower()
    stripped = re.sub(r"[^a-z0-9\s-]", "", lowered)
    return re.sub(r"\s+", "-", stripped.strip())
