"""
Tasks API endpoints - worker tasks, status changes and deductions
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.task import Task, TaskStatus
from opsdesk.api.auth import get_current_user
from opsdesk.services import tasks as task_service
from opsdesk.utils.helpers import resolve_range

router = APIRouter()


# --- Pydantic Schemas ---

class DeductionResponse(BaseModel):
    id: int
    amount: float
    reason: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TaskResponse(BaseModel):
    id: int
    worker_id: int
    worker_name: Optional[str] = None
    project_id: Optional[int]
    project_name: Optional[str] = None
    order_id: Optional[int]
    order_number: Optional[str] = None
    description: Optional[str]
    due_date: Optional[date]
    status: TaskStatus
    amount: float
    deductions_total: float = 0
    net_amount: float = 0
    completed_at: Optional[datetime]
    status_changed_at: Optional[datetime]
    delay_reason: Optional[str]
    created_at: Optional[datetime]
    deductions: List[DeductionResponse] = []


class TaskCreate(BaseModel):
    worker_id: int
    project_id: int
    description: Optional[str] = None
    due_date: Optional[date] = None
    amount: Optional[float] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    delay_reason: Optional[str] = None


class DeductionCreate(BaseModel):
    amount: float
    reason: str


# --- Helper ---

def build_task_response(t: Task, order_number: Optional[str] = None) -> TaskResponse:
    return TaskResponse(
        id=t.id,
        worker_id=t.worker_id,
        worker_name=t.worker.name if t.worker else None,
        project_id=t.project_id,
        project_name=t.project.name if t.project else None,
        order_id=t.order_id,
        order_number=order_number or (t.order.order_number if t.order else None),
        description=t.description,
        due_date=t.due_date,
        status=t.status,
        amount=t.amount or 0,
        deductions_total=t.deductions_total,
        net_amount=t.net_amount,
        completed_at=t.completed_at,
        status_changed_at=t.status_changed_at,
        delay_reason=t.delay_reason,
        created_at=t.created_at,
        deductions=[DeductionResponse.model_validate(d) for d in t.deductions or []],
    )


# --- Task Endpoints ---

@router.get("/", response_model=List[TaskResponse])
async def list_tasks(
    worker_id: Optional[int] = None,
    order_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    period: Optional[str] = Query(None, pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List tasks, optionally for a worker, an order, a status or a period"""
    start = end = None
    if period or (start_date and end_date):
        try:
            start, end = resolve_range(period, start_date, end_date, datetime.utcnow().date())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    tasks = await task_service.list_tasks(
        db, current_user.organization_id,
        worker_id=worker_id, order_id=order_id, status=status,
        start_date=start, end_date=end,
    )
    return [build_task_response(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    return build_task_response(task)


@router.post("/", response_model=TaskResponse)
async def create_task(
    data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a task for a worker outside of an order"""
    task = await task_service.create_task(
        db, current_user.organization_id,
        data.worker_id, data.project_id,
        description=data.description, due_date=data.due_date, amount=data.amount,
    )
    return build_task_response(task)


@router.put("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: int,
    data: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    await task_service.update_task_status(db, task, data.status, data.delay_reason)
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    return build_task_response(task)


@router.post("/{task_id}/deductions", response_model=TaskResponse)
async def add_deduction(
    task_id: int,
    data: DeductionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    await task_service.add_deduction(db, task, data.amount, data.reason)
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    return build_task_response(task)


@router.delete("/{task_id}/deductions/{deduction_id}", response_model=TaskResponse)
async def remove_deduction(
    task_id: int,
    deduction_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    await task_service.remove_deduction(db, task, deduction_id)
    task = await task_service.get_task(db, current_user.organization_id, task_id)
    return build_task_response(task)
