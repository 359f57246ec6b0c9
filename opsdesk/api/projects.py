"""
Projects API endpoints - the kinds of work workers are assigned to
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.project import Project
from opsdesk.models.order import OrderWorker
from opsdesk.models.task import Task
from opsdesk.models.worker import WorkerProjectRate
from opsdesk.api.auth import get_current_user

router = APIRouter()


# --- Pydantic Schemas ---

class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    base_price: float
    status: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    base_price: float = 0
    status: str = "active"


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[float] = None
    status: Optional[str] = None


# --- Helper ---

async def _get_project(db: AsyncSession, project_id: int, current_user: User) -> Project:
    result = await db.execute(
        select(Project).where(
            Project.id == project_id,
            Project.organization_id == current_user.organization_id,
        )
    )
    project = result.scalar_one_or_none()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def _ensure_unique_name(db: AsyncSession, name: str, current_user: User, exclude_id: Optional[int] = None):
    query = select(Project.id).where(
        Project.organization_id == current_user.organization_id,
        func.lower(Project.name) == name.strip().lower(),
    )
    if exclude_id:
        query = query.where(Project.id != exclude_id)
    result = await db.execute(query)
    if result.first():
        raise HTTPException(status_code=409, detail="A project with this name already exists")


# --- Project Endpoints ---

@router.get("/", response_model=List[ProjectResponse])
async def list_projects(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Project)
        .where(Project.organization_id == current_user.organization_id)
        .order_by(Project.name)
    )
    if status:
        query = query.where(Project.status == status)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_project(db, project_id, current_user)


@router.post("/", response_model=ProjectResponse)
async def create_project(
    data: ProjectCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if data.base_price < 0:
        raise HTTPException(status_code=400, detail="Base price must not be negative")
    await _ensure_unique_name(db, data.name, current_user)

    project = Project(
        **data.model_dump(exclude_none=True),
        organization_id=current_user.organization_id,
    )
    project.name = data.name.strip()
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = await _get_project(db, project_id, current_user)

    updates = data.model_dump(exclude_none=True)
    if "name" in updates:
        await _ensure_unique_name(db, updates["name"], current_user, exclude_id=project_id)
        updates["name"] = updates["name"].strip()
    if updates.get("base_price", 0) < 0:
        raise HTTPException(status_code=400, detail="Base price must not be negative")
    for key, value in updates.items():
        setattr(project, key, value)

    await db.commit()
    await db.refresh(project)
    return project


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a project with its worker rates. Projects with orders or tasks cannot be deleted."""
    project = await _get_project(db, project_id, current_user)
    for model in (OrderWorker, Task):
        used = await db.execute(select(model.id).where(model.project_id == project_id).limit(1))
        if used.first():
            raise HTTPException(status_code=409, detail="Project is in use and cannot be deleted")

    await db.execute(delete(WorkerProjectRate).where(WorkerProjectRate.project_id == project_id))
    await db.delete(project)
    await db.commit()
    return {"message": "Project deleted"}
