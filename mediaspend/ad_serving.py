"""
MediaSpend - Ad-Serving Fee Calculator.

Ad-serving is a usage-based technology fee priced from a burst's
deliverables and the unit rate of its media type's rate family. The
resulting cost is day-prorated across months with the burst's own dates.

Classes:
    AdServingCalculator: Prices and prorates ad-serving fees.
"""

from decimal import Decimal
from typing import Dict

from mediaspend.proration import ProrationEngine
from mediaspend.schema import AdServingRates, Burst, BuyType, MediaType


class AdServingCalculator:
    """
    Computes ad-serving fees for bursts.

    CPM buys are priced per thousand deliverables; every other buy type
    is priced per deliverable.
    """

    THOUSAND = Decimal("1000")
    ZERO = Decimal("0")

    def __init__(self, rates: AdServingRates, proration_engine: ProrationEngine):
        """
        Initialises the AdServingCalculator.

        Args:
            rates: Unit rates per ad-serving category.
            proration_engine: Engine used to spread fees into months.
        """
        self._rates = rates
        self._proration_engine = proration_engine

    def rate_for(self, media_type: MediaType) -> Decimal:
        """Returns the unit rate for a media type's rate family."""
        return self._rates.rate_for(media_type.ad_serving_category)

    def total_fee(self, burst: Burst) -> Decimal:
        """
        Returns the ad-serving fee for the whole burst.

        Args:
            burst: Burst with deliverables, buy type and media type.

        Returns:
            Fee amount; zero when the burst opts out of ad-serving.
        """
        if burst.no_ad_serving:
            return self.ZERO

        rate = self.rate_for(burst.media_type)
        if burst.buy_type is BuyType.CPM:
            return burst.deliverables / self.THOUSAND * rate
        return burst.deliverables * rate

    def prorate(self, burst: Burst) -> Dict[str, Decimal]:
        """Returns the burst's ad-serving fee split into month shares."""
        fee = self.total_fee(burst)
        if fee == self.ZERO:
            return {}
        return self._proration_engine.prorate(burst.start_date, burst.end_date, fee)
