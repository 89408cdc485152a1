"""
MediaSpend - Engine Configuration.

Settings are read once from ``MEDIASPEND_*`` environment variables and
passed explicitly into the engines that need them. Nothing in the
package reads configuration from module-level state.

Classes:
    EngineSettings: Immutable engine configuration values.
    ConfigManager: Loads EngineSettings from the environment.
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSettings:
    """
    Engine configuration.

    Attributes:
        budget_tolerance: Largest allowed gap between a manual billing
            schedule's grand total and the plan budget.
        rolling_window_days: Length of the dashboard's rolling window.
        financial_year_start_month: First month of the financial year.
        timezone: IANA zone used for local day boundaries.
        use_fallback_estimate: Whether plans without delivery data get a
            straight-line estimate on the dashboard.
        currency_symbol: Symbol used by the display formatter.
    """

    budget_tolerance: Decimal = Decimal("2.00")
    rolling_window_days: int = 30
    financial_year_start_month: int = 7
    timezone: str = "Australia/Melbourne"
    use_fallback_estimate: bool = True
    currency_symbol: str = "$"


class ConfigManager:
    """Builds EngineSettings from environment variables."""

    PREFIX = "MEDIASPEND_"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def load_settings(self) -> EngineSettings:
        """Load settings, keeping the default for any missing or bad value."""
        defaults = EngineSettings()
        start_month = self._get_int_setting(
            "FY_START_MONTH", defaults.financial_year_start_month
        )
        if not 1 <= start_month <= 12:
            logger.warning(
                "Ignoring financial year start month %s, using %s",
                start_month, defaults.financial_year_start_month
            )
            start_month = defaults.financial_year_start_month

        window_days = self._get_int_setting(
            "ROLLING_WINDOW_DAYS", defaults.rolling_window_days
        )
        if window_days < 1:
            logger.warning(
                "Ignoring rolling window of %s days, using %s",
                window_days, defaults.rolling_window_days
            )
            window_days = defaults.rolling_window_days

        return EngineSettings(
            budget_tolerance=self._get_decimal_setting(
                "BUDGET_TOLERANCE", defaults.budget_tolerance
            ),
            rolling_window_days=window_days,
            financial_year_start_month=start_month,
            timezone=self._get_setting("TIMEZONE", defaults.timezone),
            use_fallback_estimate=self._get_bool_setting(
                "USE_FALLBACK_ESTIMATE", defaults.use_fallback_estimate
            ),
            currency_symbol=self._get_setting(
                "CURRENCY_SYMBOL", defaults.currency_symbol
            ),
        )

    def _get_setting(self, key: str, default: str) -> str:
        """Get string setting with default value."""
        value = self._environ.get(self.PREFIX + key)
        return value if value else default

    def _get_int_setting(self, key: str, default: int) -> int:
        """Get integer setting with default value."""
        value = self._environ.get(self.PREFIX + key)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                logger.warning("Invalid integer for %s%s: %r", self.PREFIX, key, value)
        return default

    def _get_decimal_setting(self, key: str, default: Decimal) -> Decimal:
        """Get non-negative Decimal setting with default value."""
        value = self._environ.get(self.PREFIX + key)
        if value is not None:
            try:
                parsed = Decimal(value)
            except InvalidOperation:
                logger.warning("Invalid decimal for %s%s: %r", self.PREFIX, key, value)
            else:
                if parsed.is_finite() and parsed >= 0:
                    return parsed
                logger.warning("Out of range value for %s%s: %r", self.PREFIX, key, value)
        return default

    def _get_bool_setting(self, key: str, default: bool) -> bool:
        """Get boolean setting with default value."""
        value = self._environ.get(self.PREFIX + key)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        logger.warning("Invalid boolean for %s%s: %r", self.PREFIX, key, value)
        return default
