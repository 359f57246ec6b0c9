"""
Sales orders API endpoints - inventory sales
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.client import Client
from opsdesk.models.order import PaymentStatus
from opsdesk.models.payment import PaymentMethod
from opsdesk.models.sales_order import SalesOrder
from opsdesk.api.auth import get_current_user
from opsdesk.services import sales_orders as sales_service
from opsdesk.services.payments import InitialPayment

router = APIRouter()


# --- Pydantic Schemas ---

class SalesItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    name: str
    quantity: int
    unit_price: float
    total_price: float
    is_custom_item: bool

    model_config = ConfigDict(from_attributes=True)


class SalesPaymentResponse(BaseModel):
    id: int
    amount: float
    payment_method: PaymentMethod
    payment_reference: Optional[str]
    status: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class SalesOrderResponse(BaseModel):
    id: int
    order_number: str
    client_id: Optional[int]
    client_name: Optional[str] = None
    status: str
    notes: Optional[str]
    total_amount: float
    outstanding_balance: float
    payment_status: PaymentStatus
    created_at: Optional[datetime]
    items: List[SalesItemResponse] = []
    payments: List[SalesPaymentResponse] = []


class SalesItemIn(BaseModel):
    quantity: int
    product_id: Optional[int] = None
    name: Optional[str] = None
    unit_price: Optional[float] = None


class SalesPaymentIn(BaseModel):
    amount: float
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None


class SalesOrderCreate(BaseModel):
    client_id: Optional[int] = None
    notes: Optional[str] = None
    items: List[SalesItemIn]
    initial_payment: Optional[SalesPaymentIn] = None


# --- Helper ---

def _build_response(s: SalesOrder) -> SalesOrderResponse:
    return SalesOrderResponse(
        id=s.id,
        order_number=s.order_number,
        client_id=s.client_id,
        client_name=s.client.name if s.client else None,
        status=s.status,
        notes=s.notes,
        total_amount=s.total_amount,
        outstanding_balance=s.outstanding_balance,
        payment_status=s.payment_status,
        created_at=s.created_at,
        items=[SalesItemResponse.model_validate(i) for i in s.items],
        payments=[SalesPaymentResponse.model_validate(p) for p in s.payments],
    )


# --- Sales Order Endpoints ---

@router.get("/", response_model=List[SalesOrderResponse])
async def list_sales_orders(
    client_id: Optional[int] = None,
    payment_status: Optional[PaymentStatus] = None,
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List sales orders with client, items and payments, newest first"""
    query = (
        sales_service.sales_order_query()
        .where(SalesOrder.organization_id == current_user.organization_id)
        .order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc())
        .limit(limit)
    )
    if client_id:
        query = query.where(SalesOrder.client_id == client_id)
    if payment_status:
        query = query.where(SalesOrder.payment_status == payment_status)
    if search:
        pattern = f"%{search}%"
        query = query.outerjoin(Client, SalesOrder.client_id == Client.id).where(or_(
            SalesOrder.order_number.ilike(pattern),
            Client.name.ilike(pattern),
        ))

    result = await db.execute(query)
    return [_build_response(s) for s in result.scalars().all()]


@router.get("/{sales_order_id}", response_model=SalesOrderResponse)
async def get_sales_order(
    sales_order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    sales_order = await sales_service.get_sales_order(db, current_user.organization_id, sales_order_id)
    return _build_response(sales_order)


@router.post("/", response_model=SalesOrderResponse)
async def create_sales_order(
    data: SalesOrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Sell products and custom items; stock is taken out of the catalog"""
    initial_payment = None
    if data.initial_payment:
        initial_payment = InitialPayment(
            amount=data.initial_payment.amount,
            payment_method=data.initial_payment.payment_method.value,
            payment_reference=data.initial_payment.payment_reference,
        )

    sales_order = await sales_service.create_sales_order(
        db,
        current_user.organization_id,
        items=[
            sales_service.SalesItem(
                quantity=i.quantity, product_id=i.product_id, name=i.name, unit_price=i.unit_price
            )
            for i in data.items
        ],
        client_id=data.client_id,
        notes=data.notes,
        initial_payment=initial_payment,
        created_by=current_user.id,
    )
    return _build_response(sales_order)


@router.post("/{sales_order_id}/recalculate", response_model=SalesOrderResponse)
async def recalculate_totals(
    sales_order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Recompute total and balance from items and active payments"""
    sales_order = await sales_service.get_sales_order(db, current_user.organization_id, sales_order_id)
    await sales_service.refresh_totals(db, sales_order)
    return _build_response(sales_order)


@router.delete("/{sales_order_id}")
async def delete_sales_order(
    sales_order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a sales order with its items and payments, restoring stock"""
    sales_order = await sales_service.get_sales_order(db, current_user.organization_id, sales_order_id)
    await sales_service.delete_sales_order(db, sales_order)
    return {"message": "Sales order deleted"}
