"""
Financial API - collections by payment method over a period
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, datetime
from typing import Optional

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.order import OrderStatus
from opsdesk.models.payment import PaymentMethod
from opsdesk.api.auth import get_current_user
from opsdesk.services.reports import payments_in_range, payment_parent
from opsdesk.utils.helpers import resolve_range

router = APIRouter()


def _counts(payment) -> bool:
    """Active payments whose order has not been cancelled"""
    if payment.status == "cancelled":
        return False
    parent = payment_parent(payment)
    if parent is None:
        return False
    return parent.status not in (OrderStatus.CANCELLED, "cancelled")


@router.get("/")
async def get_financial_summary(
    period: str = Query("month", pattern="^(today|day|week|month|year|custom)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Per-method totals and the payment list for a period"""
    if period == "custom" and not (start_date and end_date):
        raise HTTPException(status_code=400, detail="start_date and end_date are required for a custom period")
    try:
        start, end = resolve_range(
            None if period == "custom" else period, start_date, end_date, datetime.utcnow().date()
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    payments = await payments_in_range(db, current_user.organization_id, start, end)

    by_method = {m.value: {"amount": 0.0, "count": 0} for m in PaymentMethod}
    details = []
    for p in payments:
        parent = payment_parent(p)
        counted = _counts(p)
        if counted:
            stats = by_method[p.payment_method.value]
            stats["amount"] = round(stats["amount"] + p.amount, 2)
            stats["count"] += 1

        status = parent.status if parent is not None else None
        details.append({
            "id": p.id,
            "created_at": p.created_at,
            "amount": p.amount,
            "payment_method": p.payment_method.value,
            "payment_reference": p.payment_reference,
            "status": p.status,
            "reference_type": p.reference_type.value,
            "order_number": parent.order_number if parent is not None else None,
            "client_name": parent.client.name if parent is not None and parent.client else None,
            "order_status": status.value if isinstance(status, OrderStatus) else status,
            "counted": counted,
        })

    return {
        "start_date": start,
        "end_date": end,
        "currency": current_user.organization.currency if current_user.organization else None,
        "total_collected": round(sum(s["amount"] for s in by_method.values()), 2),
        "payment_count": sum(s["count"] for s in by_method.values()),
        "by_method": by_method,
        "payments": details,
    }
