"""
Accounting-period helpers used to scope alert spend and deduplicate alerts.
"""
from datetime import datetime, timedelta

from finance_engine.models.alert_rule import AlertPeriod


def period_start(period: AlertPeriod, now: datetime) -> datetime:
    """First instant of the accounting window containing ``now``."""
    period = AlertPeriod(period)
    day_start = datetime(now.year, now.month, now.day)
    if period == AlertPeriod.DAILY:
        return day_start
    if period == AlertPeriod.WEEKLY:
        # ISO weeks start on Monday
        return day_start - timedelta(days=now.weekday())
    if period == AlertPeriod.YEARLY:
        return datetime(now.year, 1, 1)
    return datetime(now.year, now.month, 1)


def period_id(period: AlertPeriod, now: datetime) -> str:
    """Opaque identifier of the accounting window, e.g. 2024-05 or 2024-W18."""
    period = AlertPeriod(period)
    if period == AlertPeriod.DAILY:
        return now.strftime("%Y-%m-%d")
    if period == AlertPeriod.WEEKLY:
        iso_year, iso_week, _ = now.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == AlertPeriod.YEARLY:
        return f"{now.year:04d}"
    return now.strftime("%Y-%m")
