"""
Dashboard API - headline numbers, revenue trend and order statistics
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime, timedelta
from typing import Dict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.order import Order, OrderStatus
from opsdesk.models.sales_order import SalesOrder
from opsdesk.models.payment import Payment
from opsdesk.models.task import Task, TaskStatus
from opsdesk.api.auth import get_current_user
from opsdesk.utils.db_compat import extract_date
from opsdesk.utils.helpers import day_bounds, get_date_range

router = APIRouter()

TREND_DAYS = 30


def _zero_filled(totals: Dict[str, float], end, days: int = TREND_DAYS) -> list:
    """One entry per day, oldest first, with missing days as zero"""
    start = end - timedelta(days=days - 1)
    series = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        series.append({"date": day, "value": round(totals.get(day, 0) or 0, 2)})
    return series


@router.get("/")
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Active orders, today's revenue, outstanding balances and completions"""
    org_id = current_user.organization_id
    today = datetime.utcnow().date()
    day_start, day_end = day_bounds(today, today)

    active_orders = (await db.execute(
        select(func.count(Order.id)).where(
            Order.organization_id == org_id,
            Order.status.notin_([OrderStatus.COMPLETED, OrderStatus.CANCELLED]),
        )
    )).scalar() or 0

    orders_outstanding = (await db.execute(
        select(func.coalesce(func.sum(Order.outstanding_balance), 0)).where(
            Order.organization_id == org_id,
            Order.status != OrderStatus.CANCELLED,
        )
    )).scalar() or 0
    sales_outstanding = (await db.execute(
        select(func.coalesce(func.sum(SalesOrder.outstanding_balance), 0)).where(
            SalesOrder.organization_id == org_id,
            SalesOrder.status != "cancelled",
        )
    )).scalar() or 0

    revenue_today = (await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.organization_id == org_id,
            Payment.status == "active",
            Payment.created_at >= day_start,
            Payment.created_at <= day_end,
        )
    )).scalar() or 0

    tasks_completed_today = (await db.execute(
        select(func.count(Task.id)).where(
            Task.organization_id == org_id,
            Task.status == TaskStatus.COMPLETED,
            Task.completed_at >= day_start,
            Task.completed_at <= day_end,
        )
    )).scalar() or 0

    orders_completed_today = (await db.execute(
        select(func.count(Order.id)).where(
            Order.organization_id == org_id,
            Order.status == OrderStatus.COMPLETED,
            Order.updated_at >= day_start,
            Order.updated_at <= day_end,
        )
    )).scalar() or 0

    trend_start, _ = day_bounds(today - timedelta(days=TREND_DAYS - 1), today)
    day_col = extract_date(Payment.created_at)
    revenue_rows = (await db.execute(
        select(day_col, func.sum(Payment.amount))
        .where(
            Payment.organization_id == org_id,
            Payment.status == "active",
            Payment.created_at >= trend_start,
            Payment.created_at <= day_end,
        )
        .group_by(day_col)
    )).all()

    return {
        "active_orders": active_orders,
        "revenue_today": round(revenue_today, 2),
        "outstanding_amount": round(orders_outstanding + sales_outstanding, 2),
        "tasks_completed_today": tasks_completed_today,
        "orders_completed_today": orders_completed_today,
        "daily_revenue": _zero_filled({day: total for day, total in revenue_rows}, today),
        "currency": current_user.organization.currency if current_user.organization else None,
    }


@router.get("/order-stats")
async def get_order_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Orders per status this month and orders per day over the last 30 days"""
    org_id = current_user.organization_id
    today = datetime.utcnow().date()

    month_start, month_end = day_bounds(*get_date_range("month", today))
    status_rows = (await db.execute(
        select(Order.status, func.count(Order.id))
        .where(
            Order.organization_id == org_id,
            Order.created_at >= month_start,
            Order.created_at <= month_end,
        )
        .group_by(Order.status)
    )).all()
    by_status = {s.value: 0 for s in OrderStatus}
    for status, count in status_rows:
        by_status[status.value if isinstance(status, OrderStatus) else status] = count

    trend_start, trend_end = day_bounds(today - timedelta(days=TREND_DAYS - 1), today)
    day_col = extract_date(Order.created_at)
    daily_rows = (await db.execute(
        select(day_col, func.count(Order.id))
        .where(
            Order.organization_id == org_id,
            Order.created_at >= trend_start,
            Order.created_at <= trend_end,
        )
        .group_by(day_col)
    )).all()

    return {
        "by_status": by_status,
        "total_this_month": sum(by_status.values()),
        "daily_orders": [
            {"date": p["date"], "count": int(p["value"])}
            for p in _zero_filled({day: count for day, count in daily_rows}, today)
        ],
    }
