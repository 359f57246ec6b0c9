"""
Orders API endpoints - service orders, worker assignment, cancellation and receipts
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.client import Client
from opsdesk.models.order import Order, OrderStatus, OrderWorker, PaymentStatus
from opsdesk.models.payment import PaymentMethod
from opsdesk.api.auth import get_current_user
from opsdesk.api.tasks import TaskResponse, build_task_response
from opsdesk.services import orders as order_service
from opsdesk.services.payments import InitialPayment
from opsdesk.utils.helpers import resolve_range, day_bounds

router = APIRouter()


# --- Pydantic Schemas ---

class OrderWorkerResponse(BaseModel):
    id: int
    worker_id: int
    worker_name: Optional[str] = None
    project_id: int
    project_name: Optional[str] = None
    status: str


class OrderServiceResponse(BaseModel):
    id: int
    service_id: int
    service_name: Optional[str] = None
    quantity: int
    cost: float
    line_total: float


class OrderCustomFieldResponse(BaseModel):
    id: int
    custom_field_id: Optional[int]
    title: Optional[str]
    value: Optional[str]


class OrderPaymentResponse(BaseModel):
    id: int
    amount: float
    payment_method: PaymentMethod
    payment_reference: Optional[str]
    status: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class OrderSummary(BaseModel):
    id: int
    order_number: str
    client_id: int
    client_name: Optional[str] = None
    description: Optional[str]
    due_date: Optional[datetime]
    status: OrderStatus
    total_amount: float
    outstanding_balance: float
    payment_status: PaymentStatus
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class OrderDetailResponse(OrderSummary):
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    workers: List[OrderWorkerResponse] = []
    services: List[OrderServiceResponse] = []
    custom_fields: List[OrderCustomFieldResponse] = []
    payments: List[OrderPaymentResponse] = []
    tasks: List[TaskResponse] = []


class WorkerAssignmentIn(BaseModel):
    worker_id: int
    project_id: int


class ServiceLineIn(BaseModel):
    service_id: int
    quantity: int = 1
    cost: Optional[float] = None


class CustomFieldIn(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = None
    value: Optional[str] = None


class InitialPaymentIn(BaseModel):
    amount: float
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None


class OrderCreate(BaseModel):
    client_id: int
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    total_amount: Optional[float] = None
    workers: List[WorkerAssignmentIn] = []
    services: List[ServiceLineIn] = []
    custom_fields: List[CustomFieldIn] = []
    initial_payment: Optional[InitialPaymentIn] = None


class OrderUpdate(BaseModel):
    description: Optional[str] = None
    due_date: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderCancel(BaseModel):
    reason: Optional[str] = None
    cancel_worker_tasks: bool = True


class OrderWorkerStatusUpdate(BaseModel):
    status: str


class CancelResult(BaseModel):
    order_id: int
    tasks_cancelled: int
    payments_cancelled: int


# --- Helpers ---

def _build_summary(o: Order) -> OrderSummary:
    return OrderSummary(
        id=o.id,
        order_number=o.order_number,
        client_id=o.client_id,
        client_name=o.client.name if o.client else None,
        description=o.description,
        due_date=o.due_date,
        status=o.status,
        total_amount=o.total_amount,
        outstanding_balance=o.outstanding_balance,
        payment_status=o.payment_status,
        created_at=o.created_at,
        updated_at=o.updated_at,
    )


def _build_detail(o: Order) -> OrderDetailResponse:
    return OrderDetailResponse(
        **_build_summary(o).model_dump(),
        cancellation_reason=o.cancellation_reason,
        cancelled_at=o.cancelled_at,
        cancelled_by=o.cancelled_by,
        workers=[
            OrderWorkerResponse(
                id=w.id,
                worker_id=w.worker_id,
                worker_name=w.worker.name if w.worker else None,
                project_id=w.project_id,
                project_name=w.project.name if w.project else None,
                status=w.status,
            )
            for w in o.workers
        ],
        services=[
            OrderServiceResponse(
                id=s.id,
                service_id=s.service_id,
                service_name=s.service.name if s.service else None,
                quantity=s.quantity,
                cost=s.cost,
                line_total=round(s.cost * s.quantity, 2),
            )
            for s in o.services
        ],
        custom_fields=[
            OrderCustomFieldResponse(
                id=f.id,
                custom_field_id=f.custom_field_id,
                title=f.title or (f.field.title if f.field else None),
                value=f.value or (f.field.value if f.field else None),
            )
            for f in o.custom_fields
        ],
        payments=[OrderPaymentResponse.model_validate(p) for p in o.payments],
        tasks=[build_task_response(t, order_number=o.order_number) for t in o.tasks],
    )


# --- Order Endpoints ---

@router.get("/", response_model=List[OrderSummary])
async def list_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    client_id: Optional[int] = None,
    period: Optional[str] = Query(None, pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List orders, newest first"""
    query = (
        select(Order)
        .options(selectinload(Order.client))
        .where(Order.organization_id == current_user.organization_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if status:
        query = query.where(Order.status == status)
    if payment_status:
        query = query.where(Order.payment_status == payment_status)
    if client_id:
        query = query.where(Order.client_id == client_id)
    if period or (start_date and end_date):
        try:
            start, end = resolve_range(period, start_date, end_date, datetime.utcnow().date())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        start_dt, end_dt = day_bounds(start, end)
        query = query.where(Order.created_at >= start_dt, Order.created_at <= end_dt)
    if search:
        pattern = f"%{search}%"
        query = query.outerjoin(Client, Order.client_id == Client.id).where(or_(
            Order.order_number.ilike(pattern),
            Order.description.ilike(pattern),
            Client.name.ilike(pattern),
        ))

    result = await db.execute(query)
    return [_build_summary(o) for o in result.scalars().all()]


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return _build_detail(order)


@router.post("/", response_model=OrderDetailResponse)
async def create_order(
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create an order with workers, services, custom fields and an optional first payment"""
    initial_payment = None
    if data.initial_payment:
        initial_payment = InitialPayment(
            amount=data.initial_payment.amount,
            payment_method=data.initial_payment.payment_method.value,
            payment_reference=data.initial_payment.payment_reference,
        )

    order = await order_service.create_order(
        db,
        current_user.organization_id,
        client_id=data.client_id,
        description=data.description,
        due_date=data.due_date,
        total_amount=data.total_amount,
        workers=[order_service.WorkerAssignment(w.worker_id, w.project_id) for w in data.workers],
        services=[order_service.ServiceLine(s.service_id, s.quantity, s.cost) for s in data.services],
        custom_fields=[order_service.CustomFieldValue(f.id, f.title, f.value) for f in data.custom_fields],
        initial_payment=initial_payment,
        created_by=current_user.id,
    )
    return _build_detail(order)


@router.put("/{order_id}", response_model=OrderDetailResponse)
async def update_order(
    order_id: int,
    data: OrderUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    if order.status == OrderStatus.CANCELLED:
        raise HTTPException(status_code=409, detail="Cancelled orders cannot be edited")

    for key, value in data.model_dump(exclude_none=True).items():
        setattr(order, key, value)
    order.updated_at = datetime.utcnow()
    await db.commit()

    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return _build_detail(order)


@router.put("/{order_id}/status", response_model=OrderDetailResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    await order_service.update_order_status(db, order, data.status)
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return _build_detail(order)


@router.post("/{order_id}/cancel", response_model=CancelResult)
async def cancel_order(
    order_id: int,
    data: OrderCancel,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel an order, its payments and optionally its workers' tasks"""
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return await order_service.cancel_order(
        db, order, data.reason, data.cancel_worker_tasks, current_user.id
    )


@router.post("/{order_id}/workers", response_model=OrderDetailResponse)
async def assign_worker(
    order_id: int,
    data: WorkerAssignmentIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Assign a worker to the order; a pending task is created for them"""
    await order_service.assign_worker(
        db, current_user.organization_id, order_id, data.worker_id, data.project_id
    )
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return _build_detail(order)


@router.put("/{order_id}/workers/{order_worker_id}", response_model=OrderWorkerResponse)
async def update_order_worker_status(
    order_id: int,
    order_worker_id: int,
    data: OrderWorkerStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    assignment = await order_service.update_order_worker_status(
        db, current_user.organization_id, order_id, order_worker_id, data.status
    )
    result = await db.execute(
        select(OrderWorker)
        .options(selectinload(OrderWorker.worker), selectinload(OrderWorker.project))
        .where(OrderWorker.id == assignment.id)
    )
    w = result.scalar_one()
    return OrderWorkerResponse(
        id=w.id,
        worker_id=w.worker_id,
        worker_name=w.worker.name if w.worker else None,
        project_id=w.project_id,
        project_name=w.project.name if w.project else None,
        status=w.status,
    )


@router.get("/{order_id}/receipt")
async def get_receipt(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Receipt data for printing"""
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    organization = current_user.organization
    return order_service.receipt(order, organization.name, organization.currency)


@router.get("/{order_id}/payments", response_model=List[OrderPaymentResponse])
async def list_order_payments(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = await order_service.get_order(db, current_user.organization_id, order_id)
    return [OrderPaymentResponse.model_validate(p) for p in order.payments]
