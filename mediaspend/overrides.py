"""
MediaSpend - Manual Billing Override Module.

Lets a user replace computed monthly figures with hand-entered values,
or bill only part of a plan (a partial MBA) from a chosen set of
months. Totals are recomputed after every edit, and a manual schedule
or partial MBA may only be saved when its total is within a fixed
tolerance of the plan budget.

Classes:
    BudgetMismatch: Rejected save of a manual schedule or partial MBA.
    OverrideResult: Outcome of saving a manual schedule.
    ManualBillingEditor: Edit session over a computed schedule.
    PartialBilling: Summed billing values of selected months.
    PartialBillingResult: Outcome of saving a partial MBA.
    PartialBillingEditor: Edit session over a partial MBA.
"""

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Collection, Dict, Iterable, Mapping, Optional, Tuple, Union

from mediaspend.money import format_money
from mediaspend.schema import BillingSchedule, MediaType
from mediaspend.settings import EngineSettings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_TOLERANCE = Decimal("2.00")

FEE_FIELD = "fee"
AD_SERVING_FIELD = "ad_serving"
PRODUCTION_FIELD = "production"

EditField = Union[MediaType, str]


@dataclass
class BudgetMismatch:
    """
    A manual total that strays from the plan budget.

    Attributes:
        grand_total: Total of the edited schedule or partial MBA.
        budget: Plan budget.
        tolerance: Largest allowed absolute difference.
        subject: What was being saved, for the message.
    """

    grand_total: Decimal
    budget: Decimal
    tolerance: Decimal
    subject: str = "manual billing"

    @property
    def difference(self) -> Decimal:
        """Signed gap between the grand total and the budget."""
        return self.grand_total - self.budget

    def __str__(self) -> str:
        """Returns a formatted message for display."""
        return (
            f"Budget Mismatch: {self.subject} total {format_money(self.grand_total)} "
            f"must be within {format_money(self.tolerance)} of the campaign budget "
            f"{format_money(self.budget)} (difference {format_money(self.difference)})"
        )


def check_budget(
    total: Decimal,
    budget: Decimal,
    tolerance: Decimal,
    subject: str = "manual billing"
) -> Optional[BudgetMismatch]:
    """Returns the mismatch of a total against the budget, or None if within tolerance."""
    if abs(total - budget) > tolerance:
        return BudgetMismatch(total, budget, tolerance, subject)
    return None


def _resolve_media_field(edit_field: str) -> MediaType:
    media_type = MediaType.from_key(edit_field)
    if media_type is None:
        raise ValueError(f"Unknown billing field: {edit_field!r}")
    return media_type


@dataclass
class OverrideResult:
    """
    Outcome of saving a manual schedule.

    Attributes:
        schedule: The committed schedule, or None when rejected.
        error: The mismatch that rejected the save, if any.
    """

    schedule: Optional[BillingSchedule] = None
    error: Optional[BudgetMismatch] = None

    @property
    def is_valid(self) -> bool:
        """Returns True if the schedule was accepted."""
        return self.error is None


class ManualBillingEditor:
    """
    An edit session over a computed billing schedule.

    A snapshot of the months and grand total is taken when the session
    starts; reset() returns to it. Ad-serving keeps its last computed
    value unless edited directly.

    Example:
        >>> editor = ManualBillingEditor(schedule)
        >>> editor.apply_edit("January 2025", MediaType.RADIO, Decimal("1500"))
        >>> result = editor.save(Decimal("10000"))
        >>> result.is_valid
        True
    """

    def __init__(
        self,
        schedule: BillingSchedule,
        tolerance: Decimal = DEFAULT_TOLERANCE
    ):
        """
        Starts an edit session.

        Args:
            schedule: The machine-computed schedule. It is not modified.
            tolerance: Largest allowed gap between the saved grand total
                       and the plan budget.
        """
        self._tolerance = tolerance
        self._snapshot = copy.deepcopy(schedule.months)
        self._snapshot_total = schedule.grand_total
        self._snapshot_manual = schedule.is_manual
        self._schedule = BillingSchedule(
            months=copy.deepcopy(schedule.months),
            grand_total=schedule.grand_total,
            is_manual=True,
        )

    @classmethod
    def from_settings(
        cls,
        schedule: BillingSchedule,
        settings: EngineSettings
    ) -> "ManualBillingEditor":
        """Starts an edit session using the configured budget tolerance."""
        return cls(schedule, settings.budget_tolerance)

    @property
    def schedule(self) -> BillingSchedule:
        """The schedule being edited."""
        return self._schedule

    @property
    def snapshot_total(self) -> Decimal:
        """Grand total of the computed schedule the session started from."""
        return self._snapshot_total

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def apply_edit(self, month_label: str, edit_field: EditField, amount: Decimal) -> None:
        """
        Replaces one monthly value and recomputes the totals.

        Editing marks the schedule as manual.

        Args:
            month_label: Label of the month to edit, e.g. 'March 2025'.
            edit_field: A MediaType for its media cost, or 'fee',
                        'ad_serving' or 'production'.
            amount: The new value.

        Raises:
            KeyError: If no month has that label.
            ValueError: If the field is not editable in that month.
        """
        bucket = self._schedule.get_month(month_label)

        if isinstance(edit_field, MediaType):
            if edit_field not in bucket.media_costs:
                raise ValueError(
                    f"{edit_field.label} is not part of the schedule for {month_label}"
                )
            bucket.media_costs[edit_field] = amount
        elif edit_field == FEE_FIELD:
            bucket.total_fee = amount
        elif edit_field == AD_SERVING_FIELD:
            bucket.ad_serving_fee = amount
        elif edit_field == PRODUCTION_FIELD:
            bucket.production = amount
        else:
            self.apply_edit(month_label, _resolve_media_field(edit_field), amount)
            return

        bucket.recalculate_totals()
        self._schedule.recalculate_grand_total()
        self._schedule.is_manual = True

    def apply_edits(
        self,
        edits: Union[Mapping[Tuple[str, EditField], Decimal],
                     Iterable[Tuple[str, EditField, Decimal]]]
    ) -> None:
        """Applies several edits, keyed by (month, field) or as triples."""
        if isinstance(edits, Mapping):
            items = [(month, edit_field, amount) for (month, edit_field), amount in edits.items()]
        else:
            items = list(edits)
        for month_label, edit_field, amount in items:
            self.apply_edit(month_label, edit_field, amount)

    def validate(self, budget: Decimal) -> Optional[BudgetMismatch]:
        """Returns the mismatch against the budget, or None if within tolerance."""
        return check_budget(self._schedule.grand_total, budget, self._tolerance)

    def save(self, budget: Decimal) -> OverrideResult:
        """
        Validates the edited schedule against the plan budget.

        A rejected save leaves the session open for further edits.

        Args:
            budget: The plan budget.

        Returns:
            OverrideResult with a copy of the schedule when accepted, or
            the BudgetMismatch when rejected.
        """
        mismatch = self.validate(budget)
        if mismatch is not None:
            logger.info("Rejected manual billing save: %s", mismatch)
            return OverrideResult(error=mismatch)
        return OverrideResult(schedule=copy.deepcopy(self._schedule))

    def reset(self) -> BillingSchedule:
        """Discards all edits and returns to the computed schedule."""
        self._schedule = BillingSchedule(
            months=copy.deepcopy(self._snapshot),
            grand_total=self._snapshot_total,
            is_manual=self._snapshot_manual,
        )
        return self._schedule


def apply_override(
    schedule: BillingSchedule,
    edits: Mapping[Tuple[str, EditField], Decimal],
    budget: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE
) -> OverrideResult:
    """
    Applies edits to a schedule and validates the result in one step.

    The input schedule is left unchanged.
    """
    editor = ManualBillingEditor(schedule, tolerance)
    editor.apply_edits(edits)
    return editor.save(budget)


@dataclass
class PartialBilling:
    """
    Billing values of a partial MBA.

    Attributes:
        month_labels: Months the values were summed over.
        media_totals: Media cost per media type.
        gross_media: Sum of the media totals.
        fee: Assembled fee.
        ad_serving: Ad-serving and tech fees.
        production: Production costs.
    """

    month_labels: Tuple[str, ...] = ()
    media_totals: Dict[MediaType, Decimal] = field(default_factory=dict)
    gross_media: Decimal = ZERO
    fee: Decimal = ZERO
    ad_serving: Decimal = ZERO
    production: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        """Total investment of the partial MBA."""
        return self.gross_media + self.fee + self.ad_serving + self.production

    def recalculate_gross_media(self) -> None:
        self.gross_media = sum(self.media_totals.values(), ZERO)


def partial_billing(
    schedule: BillingSchedule,
    month_labels: Iterable[str],
    enabled_media: Optional[Collection[MediaType]] = None
) -> PartialBilling:
    """
    Sums a billing schedule over the selected months.

    An empty selection means every month. Every media type billed in
    the schedule gets a total, zero when it has no cost in the
    selected months or is not in enabled_media.

    Args:
        schedule: Computed billing schedule of the plan.
        month_labels: Labels of the months to bill, e.g. 'March 2025'.
        enabled_media: Media types to include, or None for all.

    Returns:
        PartialBilling for the selected months.
    """
    wanted = list(month_labels)
    known = set(schedule.month_labels)
    for label in wanted:
        if label not in known:
            logger.warning("Partial MBA month %s is not part of the schedule", label)
    selected = [b for b in schedule.months if b.month_label in wanted] if wanted else schedule.months

    media_types = [
        media for media in MediaType
        if any(media in bucket.media_costs for bucket in schedule.months)
    ]
    values = PartialBilling(month_labels=tuple(b.month_label for b in selected))
    for media in media_types:
        if enabled_media is not None and media not in enabled_media:
            values.media_totals[media] = ZERO
            continue
        values.media_totals[media] = sum(
            (bucket.media_costs.get(media, ZERO) for bucket in selected), ZERO
        )
    values.recalculate_gross_media()
    values.fee = sum((bucket.total_fee for bucket in selected), ZERO)
    values.ad_serving = sum((bucket.ad_serving_fee for bucket in selected), ZERO)
    values.production = sum((bucket.production for bucket in selected), ZERO)
    return values


@dataclass
class PartialBillingResult:
    """Outcome of saving a partial MBA."""

    values: Optional[PartialBilling] = None
    error: Optional[BudgetMismatch] = None

    @property
    def is_valid(self) -> bool:
        """Returns True if the partial MBA was accepted."""
        return self.error is None


class PartialBillingEditor:
    """
    An edit session over a partial MBA.

    The values summed from the selected months are kept as a snapshot
    for reset(). Gross media always equals the sum of the media totals.

    Example:
        >>> editor = PartialBillingEditor(schedule, ["March 2025", "April 2025"])
        >>> editor.apply_edit(MediaType.RADIO, Decimal("1200"))
        >>> editor.save(Decimal("1500")).is_valid
        True
    """

    def __init__(
        self,
        schedule: BillingSchedule,
        month_labels: Iterable[str],
        tolerance: Decimal = DEFAULT_TOLERANCE,
        enabled_media: Optional[Collection[MediaType]] = None
    ):
        self._tolerance = tolerance
        self._snapshot = partial_billing(schedule, month_labels, enabled_media)
        self._values = copy.deepcopy(self._snapshot)

    @classmethod
    def from_settings(
        cls,
        schedule: BillingSchedule,
        month_labels: Iterable[str],
        settings: EngineSettings,
        enabled_media: Optional[Collection[MediaType]] = None
    ) -> "PartialBillingEditor":
        """Starts a partial MBA session using the configured budget tolerance."""
        return cls(schedule, month_labels, settings.budget_tolerance, enabled_media)

    @property
    def values(self) -> PartialBilling:
        """The partial MBA being edited."""
        return self._values

    def apply_edit(self, edit_field: EditField, amount: Decimal) -> None:
        """
        Replaces one partial MBA value.

        Args:
            edit_field: A MediaType for its media total, or 'fee',
                        'ad_serving' or 'production'.
            amount: The new value.

        Raises:
            ValueError: If the field is unknown or the media type is not
                        billed in the schedule.
        """
        if edit_field == FEE_FIELD:
            self._values.fee = amount
        elif edit_field == AD_SERVING_FIELD:
            self._values.ad_serving = amount
        elif edit_field == PRODUCTION_FIELD:
            self._values.production = amount
        else:
            media_type = (
                edit_field if isinstance(edit_field, MediaType)
                else _resolve_media_field(edit_field)
            )
            if media_type not in self._values.media_totals:
                raise ValueError(f"{media_type.label} is not billed in this plan")
            self._values.media_totals[media_type] = amount
            self._values.recalculate_gross_media()

    def validate(self, budget: Decimal) -> Optional[BudgetMismatch]:
        """Returns the mismatch against the budget, or None if within tolerance."""
        return check_budget(self._values.total, budget, self._tolerance, "partial MBA")

    def save(self, budget: Decimal) -> PartialBillingResult:
        """Validates the partial MBA against the plan budget."""
        mismatch = self.validate(budget)
        if mismatch is not None:
            logger.info("Rejected partial MBA save: %s", mismatch)
            return PartialBillingResult(error=mismatch)
        return PartialBillingResult(values=copy.deepcopy(self._values))

    def reset(self) -> PartialBilling:
        """Discards all edits and returns to the summed values."""
        self._values = copy.deepcopy(self._snapshot)
        return self._values
