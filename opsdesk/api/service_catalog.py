"""
Service catalog API endpoints - billable services sold on orders
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.project import Service
from opsdesk.models.order import OrderService
from opsdesk.api.auth import get_current_user

router = APIRouter()


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    price: float
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = 0


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None


async def _get_service(db: AsyncSession, service_id: int, current_user: User) -> Service:
    result = await db.execute(
        select(Service).where(
            Service.id == service_id,
            Service.organization_id == current_user.organization_id,
        )
    )
    service = result.scalar_one_or_none()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


@router.get("/", response_model=List[ServiceResponse])
async def list_services(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Service)
        .where(Service.organization_id == current_user.organization_id)
        .order_by(Service.name)
    )
    if search:
        query = query.where(Service.name.ilike(f"%{search}%"))
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_service(db, service_id, current_user)


@router.post("/", response_model=ServiceResponse)
async def create_service(
    data: ServiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if data.price < 0:
        raise HTTPException(status_code=400, detail="Price must not be negative")

    service = Service(
        name=data.name.strip(),
        description=data.description,
        price=round(data.price, 2),
        organization_id=current_user.organization_id,
    )
    db.add(service)
    await db.commit()
    await db.refresh(service)
    return service


@router.put("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = await _get_service(db, service_id, current_user)

    updates = data.model_dump(exclude_none=True)
    if updates.get("price", 0) < 0:
        raise HTTPException(status_code=400, detail="Price must not be negative")
    for key, value in updates.items():
        setattr(service, key, value)

    await db.commit()
    await db.refresh(service)
    return service


@router.delete("/{service_id}")
async def delete_service(
    service_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = await _get_service(db, service_id, current_user)
    used = await db.execute(select(OrderService.id).where(OrderService.service_id == service_id).limit(1))
    if used.first():
        raise HTTPException(status_code=409, detail="Service is used on orders and cannot be deleted")

    await db.delete(service)
    await db.commit()
    return {"message": "Service deleted"}
