"""
Reports API - worker reports and CSV/Excel exports
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, datetime
from typing import Optional

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.order import OrderStatus
from opsdesk.models.worker import Worker
from opsdesk.api.auth import get_current_user
from opsdesk.services import reports as report_service
from opsdesk.services.tasks import list_tasks
from opsdesk.utils.helpers import resolve_range

router = APIRouter()

CSV_TYPE = "text/csv"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _range(period: Optional[str], start_date: Optional[date], end_date: Optional[date]):
    try:
        return resolve_range(period, start_date, end_date, datetime.utcnow().date())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _download(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/workers/{worker_id}")
async def worker_report(
    worker_id: int,
    period: str = Query("week", pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    format: str = Query("json", pattern="^(json|csv)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Worker tasks and earnings for a period"""
    result = await db.execute(
        select(Worker).where(Worker.id == worker_id, Worker.organization_id == current_user.organization_id)
    )
    worker = result.scalar_one_or_none()
    if not worker:
        raise HTTPException(status_code=404, detail="Worker not found")

    start, end = _range(period, start_date, end_date)
    tasks = await list_tasks(
        db, current_user.organization_id, worker_id=worker_id, start_date=start, end_date=end
    )
    currency = current_user.organization.currency if current_user.organization else "USD"
    report = report_service.worker_report(worker.name, tasks, start, end, currency)

    if format == "csv":
        content = report_service.to_csv(
            report_service.WORKER_TASK_COLUMNS, report_service.worker_report_rows(report)
        )
        return _download(content, CSV_TYPE, f"worker-{worker_id}-{start}-{end}.csv")
    return report


@router.get("/payments")
async def export_payments(
    period: str = Query("month", pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Export payments in a period as CSV or Excel"""
    start, end = _range(period, start_date, end_date)
    payments = await report_service.payments_in_range(db, current_user.organization_id, start, end)
    rows = report_service.payment_rows(payments)

    if format == "xlsx":
        content = report_service.to_xlsx("Payments", report_service.PAYMENT_COLUMNS, rows)
        return _download(content, XLSX_TYPE, f"payments-{start}-{end}.xlsx")
    content = report_service.to_csv(report_service.PAYMENT_COLUMNS, rows)
    return _download(content, CSV_TYPE, f"payments-{start}-{end}.csv")


@router.get("/orders")
async def export_orders(
    period: str = Query("month", pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[OrderStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Export orders in a period as CSV"""
    start, end = _range(period, start_date, end_date)
    rows = await report_service.order_rows(db, current_user.organization_id, start, end, status)
    content = report_service.to_csv(report_service.ORDER_COLUMNS, rows)
    return _download(content, CSV_TYPE, f"orders-{start}-{end}.csv")
