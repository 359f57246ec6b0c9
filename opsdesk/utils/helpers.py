"""
General helper utilities
"""
import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "GHS": "GH₵",
    "NGN": "₦",
    "KES": "KSh",
    "ZAR": "R",
    "ILS": "₪",
}

PERIODS = ("today", "day", "week", "month", "year")


def currency_symbol(currency: Optional[str]) -> str:
    """Symbol for an ISO currency code, falling back to the code itself"""
    if not currency:
        return CURRENCY_SYMBOLS["USD"]
    return CURRENCY_SYMBOLS.get(currency.upper(), currency)


def format_currency(amount: float, currency: Optional[str] = None) -> str:
    """Format amount with the organization's currency symbol"""
    return f"{currency_symbol(currency)} {amount:,.2f}"


def round_money(amount: Optional[float]) -> float:
    return round(float(amount or 0), 2)


def get_date_range(period: str = "month", today: Optional[date] = None) -> tuple[date, date]:
    """Get inclusive start and end dates for a period.

    Weeks start on Monday. Unknown periods fall back to the current month.
    """
    today = today or date.today()
    if period in ("today", "day"):
        return today, today
    if period == "week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == "year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    last_day = calendar.monthrange(today.year, today.month)[1]
    return date(today.year, today.month, 1), date(today.year, today.month, last_day)


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Datetime bounds covering whole days from start to end"""
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


def resolve_range(
    period: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
    today: Optional[date] = None,
) -> tuple[date, date]:
    """Explicit dates win over a named period"""
    if start_date and end_date:
        if start_date > end_date:
            raise ValueError("start_date must be on or before end_date")
        return start_date, end_date
    return get_date_range(period or "month", today)
