"""
Worker task lifecycle, deductions and earnings
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.models.project import Project
from opsdesk.models.task import Task, TaskStatus, Deduction
from opsdesk.models.worker import Worker, WorkerProjectRate
from opsdesk.services.errors import NotFoundError, ValidationError, ConflictError
from opsdesk.utils.helpers import day_bounds, round_money
from opsdesk.utils.validators import validate_non_negative, validate_required_text

logger = logging.getLogger(__name__)


def task_query():
    return select(Task).options(
        selectinload(Task.deductions),
        selectinload(Task.project),
        selectinload(Task.worker),
        selectinload(Task.order),
    )


async def get_task(db: AsyncSession, organization_id: int, task_id: int) -> Task:
    result = await db.execute(
        task_query()
        .where(Task.id == task_id, Task.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found")
    return task


async def worker_rate(db: AsyncSession, worker_id: int, project_id: int) -> float:
    """The worker's rate for a project, 0 when none is set"""
    result = await db.execute(
        select(WorkerProjectRate.rate).where(
            WorkerProjectRate.worker_id == worker_id,
            WorkerProjectRate.project_id == project_id,
        )
    )
    rate = result.scalar_one_or_none()
    if rate is None:
        logger.info(f"No rate found for worker {worker_id} and project {project_id}. Using default rate of 0")
        return 0.0
    return rate


async def create_task(
    db: AsyncSession,
    organization_id: int,
    worker_id: int,
    project_id: int,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
    amount: Optional[float] = None,
) -> Task:
    """Create a task outside of any order. Amount defaults to the worker's project rate."""
    for model, obj_id, label in ((Worker, worker_id, "Worker"), (Project, project_id, "Project")):
        result = await db.execute(
            select(model.id).where(model.id == obj_id, model.organization_id == organization_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError(f"{label} {obj_id} not found")
    if amount is not None:
        try:
            amount = validate_non_negative(amount)
        except ValueError as exc:
            raise ValidationError(str(exc))

    now = datetime.utcnow()
    task = Task(
        organization_id=organization_id,
        worker_id=worker_id,
        project_id=project_id,
        description=description,
        due_date=due_date or now.date(),
        status=TaskStatus.PENDING,
        status_changed_at=now,
        amount=amount if amount is not None else await worker_rate(db, worker_id, project_id),
    )
    db.add(task)
    await db.commit()
    logger.info(f"Created task {task.id} for worker {worker_id}")
    return await get_task(db, organization_id, task.id)


async def list_tasks(
    db: AsyncSession,
    organization_id: int,
    worker_id: Optional[int] = None,
    order_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Sequence[Task]:
    query = task_query().where(Task.organization_id == organization_id)
    if worker_id:
        query = query.where(Task.worker_id == worker_id)
    if order_id:
        query = query.where(Task.order_id == order_id)
    if status:
        query = query.where(Task.status == status)
    if start_date and end_date:
        start, end = day_bounds(start_date, end_date)
        query = query.where(Task.created_at >= start, Task.created_at <= end)
    result = await db.execute(query.order_by(Task.created_at.desc()))
    return result.scalars().all()


async def update_task_status(
    db: AsyncSession,
    task: Task,
    status: TaskStatus,
    delay_reason: Optional[str] = None,
) -> Task:
    """Move a task to a new status, stamping the change time.

    Delayed tasks need a reason. Completing a task records completed_at.
    Cancelled tasks stay cancelled.
    """
    if task.status == TaskStatus.CANCELLED:
        raise ConflictError("Cancelled tasks cannot change status")
    if status == TaskStatus.DELAYED:
        try:
            delay_reason = validate_required_text(delay_reason, "Delay reason")
        except ValueError as exc:
            raise ValidationError(str(exc))

    now = datetime.utcnow()
    previous = task.status
    task.status = status
    task.status_changed_at = now
    task.updated_at = now
    if status == TaskStatus.COMPLETED:
        task.completed_at = now
    if status == TaskStatus.DELAYED:
        task.delay_reason = delay_reason

    await db.commit()
    logger.info(f"Task {task.id} status {previous.value} -> {status.value}")
    return task


async def add_deduction(db: AsyncSession, task: Task, amount: float, reason: str) -> Deduction:
    """Withhold part of a task's payout. All deductions together stay within the task amount."""
    if amount is None or round_money(amount) <= 0:
        raise ValidationError("Deduction amount must be greater than 0")
    try:
        reason = validate_required_text(reason, "Deduction reason")
    except ValueError as exc:
        raise ValidationError(str(exc))
    amount = round_money(amount)

    result = await db.execute(
        select(func.coalesce(func.sum(Deduction.amount), 0)).where(Deduction.task_id == task.id)
    )
    already_deducted = round_money(result.scalar_one())
    if round_money(already_deducted + amount) > round_money(task.amount):
        raise ValidationError(
            f"Deductions cannot exceed the task amount ({already_deducted:.2f} already deducted)"
        )

    deduction = Deduction(task_id=task.id, amount=amount, reason=reason)
    db.add(deduction)
    await db.commit()
    await db.refresh(deduction)
    logger.info(f"Deducted {deduction.amount:.2f} from task {task.id}: {deduction.reason}")
    return deduction


async def remove_deduction(db: AsyncSession, task: Task, deduction_id: int) -> None:
    result = await db.execute(
        select(Deduction).where(Deduction.id == deduction_id, Deduction.task_id == task.id)
    )
    deduction = result.scalar_one_or_none()
    if deduction is None:
        raise NotFoundError("Deduction not found")
    await db.delete(deduction)
    await db.commit()
    logger.info(f"Removed deduction {deduction_id} from task {task.id}")


def earnings(tasks: Sequence[Task]) -> dict:
    """Totals for a set of tasks with deductions loaded"""
    live = [t for t in tasks if t.status != TaskStatus.CANCELLED]
    completed = [t for t in live if t.status == TaskStatus.COMPLETED]
    return {
        "total_earnings": round(sum(t.amount or 0 for t in live), 2),
        "completed_earnings": round(sum(t.net_amount for t in completed), 2),
        "total_deductions": round(sum(t.deductions_total for t in live), 2),
    }


def task_stats(tasks: Sequence[Task], today: Optional[date] = None) -> dict:
    """Task counts all time, this week (Monday start) and today"""
    today = today or datetime.utcnow().date()
    week_start = today - timedelta(days=today.weekday())

    def created(t: Task) -> Optional[date]:
        return t.created_at.date() if t.created_at else None

    return {
        "all_time": len(tasks),
        "weekly": sum(1 for t in tasks if created(t) and created(t) >= week_start),
        "daily": sum(1 for t in tasks if created(t) == today),
    }
