"""
Human-readable order numbers.

Service orders: ORD-YYYYMMDD-NNNN, sequence per organization per day.
Sales orders:   <PREFIX>-YYYYMM-NNNN, PREFIX = initials of the organization
                name, sequence per organization per month starting at 1001.
"""
import re
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.models.order import Order
from opsdesk.models.sales_order import SalesOrder

SALES_SEQUENCE_START = 1001


def _max_sequence(numbers: Iterable[str], prefix: str) -> Optional[int]:
    highest = None
    for number in numbers:
        if not number or not number.startswith(prefix):
            continue
        # Sequence is the segment right after the prefix
        segment = number[len(prefix):].split("-")[0]
        if segment.isdigit():
            value = int(segment)
            if highest is None or value > highest:
                highest = value
    return highest


def organization_prefix(name: Optional[str]) -> str:
    """Initials of the organization name, e.g. 'Acme Home Services' -> 'AHS'"""
    words = re.split(r"\s+", (name or "").strip().upper())
    initials = "".join(w[0] for w in words if w and w[0].isalnum())
    return initials or "SO"


def format_order_number(day: date, sequence: int) -> str:
    return f"ORD-{day:%Y%m%d}-{sequence:04d}"


async def next_order_number(db: AsyncSession, organization_id: int, day: Optional[date] = None) -> str:
    """Next service order number for the organization on the given day"""
    day = day or datetime.utcnow().date()
    prefix = f"ORD-{day:%Y%m%d}-"
    result = await db.execute(
        select(Order.order_number).where(
            Order.organization_id == organization_id,
            Order.order_number.like(f"{prefix}%"),
        )
    )
    highest = _max_sequence(result.scalars().all(), prefix) or 0
    return format_order_number(day, highest + 1)


async def next_sales_order_number(
    db: AsyncSession,
    organization_id: int,
    organization_name: Optional[str],
    created_at: Optional[datetime] = None,
) -> str:
    """Next sales order number for the organization in the month of created_at"""
    created_at = created_at or datetime.utcnow()
    prefix = f"{organization_prefix(organization_name)}-{created_at:%Y%m}-"
    result = await db.execute(
        select(SalesOrder.order_number).where(
            SalesOrder.organization_id == organization_id,
            SalesOrder.order_number.like(f"{prefix}%"),
        )
    )
    highest = _max_sequence(result.scalars().all(), prefix)
    sequence = SALES_SEQUENCE_START if highest is None else highest + 1
    return f"{prefix}{sequence:04d}"


def is_order_number_collision(exc: Exception) -> bool:
    """True when an IntegrityError came from an order number uniqueness constraint"""
    text = str(getattr(exc, "orig", exc))
    return "order_number" in text or "_number_unique" in text
