"""
MediaSpend - Fee Allocation Module.

This module splits a burst's stated budget into the media cost and the
agency fee under the three contractual fee models:

    - Gross budget includes fee: fee = budget * pct / 100,
      media = budget * (100 - pct) / 100
    - Net media, fee on top: media = budget,
      fee = budget / (100 - pct) * pct
    - Client pays media directly: media = 0,
      fee = budget / (100 - pct) * pct

Classes:
    FeeAllocator: Applies the fee models to bursts.
"""

import logging
from decimal import Decimal

from mediaspend.schema import Burst, FeeModel, FeeSplit

logger = logging.getLogger(__name__)


class FeeAllocator:
    """
    Splits burst budgets into media and fee.

    A fee percentage of 100 or more would divide by zero in the net
    models, so it is defined as the fee consuming the whole budget.
    Negative percentages and budgets are treated as zero.

    Example:
        >>> allocator = FeeAllocator()
        >>> split = allocator.allocate(burst)
        >>> split.media_amount + split.fee_amount == split.total_amount
        True
    """

    HUNDRED = Decimal("100")
    ZERO = Decimal("0")

    def resolve_model(self, burst: Burst) -> FeeModel:
        """
        Returns the fee model selected by the burst's flags.

        A budget that includes fees takes precedence; otherwise the
        client-pays flag overrides the default net model.
        """
        if burst.budget_includes_fees:
            return FeeModel.GROSS_INCLUDES_FEE
        if burst.client_pays_for_media:
            return FeeModel.CLIENT_PAYS_MEDIA
        return FeeModel.NET_PLUS_FEE

    def allocate(self, burst: Burst) -> FeeSplit:
        """
        Splits a burst budget into media and fee.

        When a gross budget is also paid directly by the client, the fee
        is taken from the gross budget and no media is billed.

        Args:
            burst: Burst carrying budget, fee percentage and flags.

        Returns:
            FeeSplit with media, fee and their total. The total is
            always media_amount + fee_amount.
        """
        model = self.resolve_model(burst)
        budget = burst.budget
        pct = burst.fee_percentage

        if budget < self.ZERO:
            logger.warning("Negative budget %s treated as zero", budget)
            budget = self.ZERO
        if pct < self.ZERO:
            logger.warning("Negative fee percentage %s treated as zero", pct)
            pct = self.ZERO

        if pct >= self.HUNDRED:
            logger.warning(
                "Fee percentage %s leaves no media; fee takes the whole budget", pct
            )
            return self._split(model, media=self.ZERO, fee=budget, delivered=self.ZERO)

        if model is FeeModel.GROSS_INCLUDES_FEE:
            fee = budget * pct / self.HUNDRED
            net_media = budget * (self.HUNDRED - pct) / self.HUNDRED
            media = self.ZERO if burst.client_pays_for_media else net_media
            return self._split(model, media=media, fee=fee, delivered=net_media)

        fee = budget / (self.HUNDRED - pct) * pct
        if model is FeeModel.CLIENT_PAYS_MEDIA:
            return self._split(model, media=self.ZERO, fee=fee, delivered=budget)
        return self._split(model, media=budget, fee=fee, delivered=budget)

    def _split(
        self,
        model: FeeModel,
        media: Decimal,
        fee: Decimal,
        delivered: Decimal
    ) -> FeeSplit:
        """Builds a FeeSplit whose total is computed once from its parts."""
        return FeeSplit(
            media_amount=media,
            fee_amount=fee,
            total_amount=media + fee,
            model=model,
            delivery_media_amount=delivered,
        )
