"""
MediaSpend - Spend Proration and Reporting Engine for Media Plans.

Distributes dated media bursts into calendar-month billing schedules,
splits budgets into media and agency fee under the contractual fee
models, prices ad-serving technology fees, and aggregates delivered
spend into financial-year and rolling 30-day dashboard metrics.

Version: 0.1.0
"""

__version__ = "0.1.0"
__author__ = "MediaSpend Team"
