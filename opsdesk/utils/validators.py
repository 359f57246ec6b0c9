"""
Input validation utilities
"""
from typing import Optional

from opsdesk.utils.helpers import round_money

PAYMENT_METHODS = ("mobile_money", "bank_transfer", "cash", "other")


def validate_payment_method(method: str) -> str:
    if method not in PAYMENT_METHODS:
        raise ValueError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def validate_payment_amount(amount: float, outstanding_balance: Optional[float] = None) -> float:
    """Validate a payment is positive in cents and does not exceed the balance"""
    if amount is None or round_money(amount) <= 0:
        raise ValueError("Payment amount must be greater than 0")
    amount = round_money(amount)
    if outstanding_balance is not None and amount > round_money(outstanding_balance):
        raise ValueError("Payment amount cannot exceed outstanding balance")
    return amount


def validate_non_negative(amount: float, field: str = "Amount") -> float:
    if amount is None or amount < 0:
        raise ValueError(f"{field} must not be negative")
    return round_money(amount)


def validate_required_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()
