"""
Workers API endpoints - staff, project rates and earnings
"""
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel
import logging

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.worker import Worker, WorkerProjectRate
from opsdesk.models.project import Project
from opsdesk.models.order import OrderWorker
from opsdesk.api.auth import get_current_user
from opsdesk.api.tasks import TaskResponse, build_task_response
from opsdesk.services import tasks as task_service
from opsdesk.services.storage import storage_service, public_url
from opsdesk.utils.helpers import resolve_range

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---

class ProjectRateResponse(BaseModel):
    id: int
    project_id: int
    project_name: Optional[str] = None
    rate: float


class WorkerResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    whatsapp: Optional[str]
    status: str
    image_url: Optional[str] = None
    created_at: Optional[datetime]
    project_rates: List[ProjectRateResponse] = []


class WorkerStats(BaseModel):
    all_time: int
    weekly: int
    daily: int
    total_earnings: float
    completed_earnings: float
    total_deductions: float


class WorkerDetailResponse(BaseModel):
    worker: WorkerResponse
    start_date: date
    end_date: date
    tasks: List[TaskResponse]
    stats: WorkerStats


class WorkerCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    status: str = "active"


class WorkerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    status: Optional[str] = None


class RateSet(BaseModel):
    project_id: int
    rate: float


# --- Helpers ---

def _build_worker_response(w: Worker) -> WorkerResponse:
    return WorkerResponse(
        id=w.id,
        name=w.name,
        email=w.email,
        phone=w.phone,
        whatsapp=w.whatsapp,
        status=w.status,
        image_url=public_url(w.image),
        created_at=w.created_at,
        project_rates=[
            ProjectRateResponse(
                id=r.id,
                project_id=r.project_id,
                project_name=r.project.name if r.project else None,
                rate=r.rate,
            )
            for r in w.project_rates or []
        ],
    )


async def _get_worker(db: AsyncSession, worker_id: int, current_user: User) -> Worker:
    result = await db.execute(
        select(Worker)
        .options(selectinload(Worker.project_rates).selectinload(WorkerProjectRate.project))
        .where(Worker.id == worker_id, Worker.organization_id == current_user.organization_id)
        .execution_options(populate_existing=True)
    )
    worker = result.scalar_one_or_none()
    if not worker:
        raise HTTPException(status_code=404, detail="Worker not found")
    return worker


async def _ensure_unique_name(db: AsyncSession, name: str, current_user: User, exclude_id: Optional[int] = None):
    query = select(Worker.id).where(
        Worker.organization_id == current_user.organization_id,
        func.lower(Worker.name) == name.strip().lower(),
    )
    if exclude_id:
        query = query.where(Worker.id != exclude_id)
    result = await db.execute(query)
    if result.first():
        raise HTTPException(status_code=409, detail="A worker with this name already exists")


# --- Worker Endpoints ---

@router.get("/", response_model=List[WorkerResponse])
async def list_workers(
    search: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Worker)
        .options(selectinload(Worker.project_rates).selectinload(WorkerProjectRate.project))
        .where(Worker.organization_id == current_user.organization_id)
        .order_by(Worker.name)
    )
    if status:
        query = query.where(Worker.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Worker.name.ilike(pattern), Worker.phone.ilike(pattern)))

    result = await db.execute(query)
    return [_build_worker_response(w) for w in result.scalars().all()]


@router.get("/{worker_id}", response_model=WorkerResponse)
async def get_worker(
    worker_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)


@router.get("/{worker_id}/details", response_model=WorkerDetailResponse)
async def get_worker_details(
    worker_id: int,
    period: str = Query("week", pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Worker with tasks in the period, task counts and earnings"""
    worker = await _get_worker(db, worker_id, current_user)
    try:
        start, end = resolve_range(period, start_date, end_date, datetime.utcnow().date())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    all_tasks = await task_service.list_tasks(db, current_user.organization_id, worker_id=worker_id)
    in_range = [
        t for t in all_tasks
        if t.created_at and start <= t.created_at.date() <= end
    ]

    return WorkerDetailResponse(
        worker=_build_worker_response(worker),
        start_date=start,
        end_date=end,
        tasks=[build_task_response(t) for t in in_range],
        stats=WorkerStats(**task_service.task_stats(all_tasks), **task_service.earnings(in_range)),
    )


@router.post("/", response_model=WorkerResponse)
async def create_worker(
    data: WorkerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    await _ensure_unique_name(db, data.name, current_user)

    values = data.model_dump(exclude_none=True)
    values["name"] = data.name.strip()
    worker = Worker(**values, organization_id=current_user.organization_id)
    db.add(worker)
    await db.commit()
    logger.info(f"Created worker {worker.name} (id={worker.id})")

    worker = await _get_worker(db, worker.id, current_user)
    return _build_worker_response(worker)


@router.put("/{worker_id}", response_model=WorkerResponse)
async def update_worker(
    worker_id: int,
    data: WorkerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    worker = await _get_worker(db, worker_id, current_user)

    updates = data.model_dump(exclude_none=True)
    if "name" in updates:
        if not updates["name"].strip():
            raise HTTPException(status_code=400, detail="Name is required")
        await _ensure_unique_name(db, updates["name"], current_user, exclude_id=worker_id)
        updates["name"] = updates["name"].strip()
    for key, value in updates.items():
        setattr(worker, key, value)

    await db.commit()
    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)


@router.delete("/{worker_id}")
async def delete_worker(
    worker_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a worker. Workers assigned to orders cannot be deleted."""
    worker = await _get_worker(db, worker_id, current_user)
    assigned = await db.execute(select(OrderWorker.id).where(OrderWorker.worker_id == worker_id).limit(1))
    if assigned.first():
        raise HTTPException(status_code=409, detail="Worker is assigned to orders and cannot be deleted")

    image = worker.image
    for task in await task_service.list_tasks(db, current_user.organization_id, worker_id=worker_id):
        await db.delete(task)
    await db.delete(worker)
    await db.commit()

    storage_service.remove(image)
    logger.info(f"Deleted worker {worker_id}")
    return {"message": "Worker deleted"}


# --- Profile Image ---

@router.post("/{worker_id}/image", response_model=WorkerResponse)
async def upload_worker_image(
    worker_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    worker = await _get_worker(db, worker_id, current_user)
    stored = await storage_service.save("profiles", worker_id, file, images_only=True)

    previous = worker.image
    worker.image = stored.path
    await db.commit()
    storage_service.remove(previous)

    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)


@router.delete("/{worker_id}/image", response_model=WorkerResponse)
async def delete_worker_image(
    worker_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    worker = await _get_worker(db, worker_id, current_user)
    previous = worker.image
    worker.image = None
    await db.commit()
    storage_service.remove(previous)

    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)


# --- Project Rates ---

@router.put("/{worker_id}/rates", response_model=WorkerResponse)
async def set_project_rate(
    worker_id: int,
    data: RateSet,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the worker's rate for a project, replacing any existing rate"""
    worker = await _get_worker(db, worker_id, current_user)
    if data.rate < 0:
        raise HTTPException(status_code=400, detail="Rate must not be negative")

    project = await db.execute(
        select(Project.id).where(
            Project.id == data.project_id,
            Project.organization_id == current_user.organization_id,
        )
    )
    if not project.first():
        raise HTTPException(status_code=404, detail="Project not found")

    existing = next((r for r in worker.project_rates if r.project_id == data.project_id), None)
    if existing:
        existing.rate = round(data.rate, 2)
    else:
        db.add(WorkerProjectRate(worker_id=worker_id, project_id=data.project_id, rate=round(data.rate, 2)))
    await db.commit()

    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)


@router.delete("/{worker_id}/rates/{project_id}", response_model=WorkerResponse)
async def remove_project_rate(
    worker_id: int,
    project_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    worker = await _get_worker(db, worker_id, current_user)
    existing = next((r for r in worker.project_rates if r.project_id == project_id), None)
    if not existing:
        raise HTTPException(status_code=404, detail="Rate not found")

    await db.delete(existing)
    await db.commit()

    worker = await _get_worker(db, worker_id, current_user)
    return _build_worker_response(worker)
