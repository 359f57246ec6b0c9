"""
Report builders - worker reports and payment/order exports as CSV or Excel
"""
import csv
import io
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.models.order import Order, OrderStatus
from opsdesk.models.payment import Payment, ReferenceType
from opsdesk.models.sales_order import SalesOrder
from opsdesk.models.task import Task, TaskStatus
from opsdesk.utils.helpers import day_bounds, format_currency

logger = logging.getLogger(__name__)

PAYMENT_COLUMNS = [
    "Date", "Order Number", "Type", "Client", "Method", "Reference", "Amount", "Status",
]
ORDER_COLUMNS = [
    "Order Number", "Created", "Due", "Client", "Status", "Payment Status",
    "Total", "Outstanding",
]
WORKER_TASK_COLUMNS = [
    "Date", "Project", "Description", "Status", "Completed", "Amount", "Deductions", "Net Amount",
]


def worker_report(worker_name: str, tasks: Sequence[Task], start: date, end: date, currency: str) -> Dict[str, Any]:
    """Summary and task rows for a worker over a period. Tasks need deductions loaded."""
    live = [t for t in tasks if t.status != TaskStatus.CANCELLED]
    completed = [t for t in live if t.status == TaskStatus.COMPLETED]
    assigned = [t for t in live if t.status == TaskStatus.PENDING]
    completed_earnings = round(sum(t.net_amount for t in completed), 2)
    deductions = round(sum(t.deductions_total for t in completed), 2)
    project_total = round(sum(t.amount or 0 for t in live), 2)

    rows = [
        {
            "date": t.due_date,
            "project": t.project.name if t.project else "Unknown Project",
            "description": t.description,
            "status": t.status.value,
            "completed_at": t.completed_at,
            "amount": t.amount,
            "deductions": t.deductions_total,
            "net_amount": t.net_amount,
        }
        for t in tasks
    ]

    return {
        "worker": worker_name,
        "start_date": start,
        "end_date": end,
        "currency": currency,
        "summary": {
            "total_tasks": len(tasks),
            "assigned_tasks": len(assigned),
            "completed_tasks": len(completed),
            "project_total": project_total,
            "total_deductions": deductions,
            "completed_earnings": completed_earnings,
            "completed_earnings_display": format_currency(completed_earnings, currency),
        },
        "tasks": rows,
    }


def _fmt(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_csv(columns: List[str], rows: List[List[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_fmt(v) for v in row])
    return buffer.getvalue()


def to_xlsx(title: str, columns: List[str], rows: List[List[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill("solid", fgColor="111827")
    header_font = Font(bold=True, color="FFFFFF")
    for col, name in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=col, value=name)
        cell.fill = header_fill
        cell.font = header_font
        ws.column_dimensions[get_column_letter(col)].width = 18

    for i, row in enumerate(rows, start=2):
        for col, value in enumerate(row, start=1):
            # Numbers stay numeric so the sheet can total them
            ws.cell(i, col, value if isinstance(value, (int, float)) else _fmt(value))

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def worker_report_rows(report: Dict[str, Any]) -> List[List[Any]]:
    return [
        [
            r["date"], r["project"], r["description"], r["status"],
            r["completed_at"], r["amount"], r["deductions"], r["net_amount"],
        ]
        for r in report["tasks"]
    ]


async def payments_in_range(
    db: AsyncSession,
    organization_id: int,
    start: date,
    end: date,
) -> Sequence[Payment]:
    """Payments created between start and end (inclusive days), newest first"""
    start_dt, end_dt = day_bounds(start, end)
    result = await db.execute(
        select(Payment)
        .options(
            selectinload(Payment.order).selectinload(Order.client),
            selectinload(Payment.sales_order).selectinload(SalesOrder.client),
        )
        .where(
            Payment.organization_id == organization_id,
            Payment.created_at >= start_dt,
            Payment.created_at <= end_dt,
        )
        .order_by(Payment.created_at.desc())
    )
    return result.scalars().all()


def payment_parent(payment: Payment):
    return payment.order if payment.reference_type == ReferenceType.SERVICE_ORDER else payment.sales_order


def payment_rows(payments: Sequence[Payment]) -> List[List[Any]]:
    rows = []
    for p in payments:
        parent = payment_parent(p)
        client = parent.client if parent else None
        rows.append([
            p.created_at,
            parent.order_number if parent else None,
            p.reference_type.value,
            client.name if client else None,
            p.payment_method.value,
            p.payment_reference,
            p.amount,
            p.status,
        ])
    return rows


async def order_rows(
    db: AsyncSession,
    organization_id: int,
    start: date,
    end: date,
    status: Optional[OrderStatus] = None,
) -> List[List[Any]]:
    start_dt, end_dt = day_bounds(start, end)
    query = (
        select(Order)
        .options(selectinload(Order.client))
        .where(
            Order.organization_id == organization_id,
            Order.created_at >= start_dt,
            Order.created_at <= end_dt,
        )
        .order_by(Order.created_at.desc())
    )
    if status:
        query = query.where(Order.status == status)
    result = await db.execute(query)
    return [
        [
            o.order_number,
            o.created_at,
            o.due_date,
            o.client.name if o.client else None,
            o.status.value,
            o.payment_status.value,
            o.total_amount,
            o.outstanding_balance,
        ]
        for o in result.scalars().all()
    ]
