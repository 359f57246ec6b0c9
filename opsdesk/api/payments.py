"""
Payments API endpoints - record payments against service or sales orders
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.order import PaymentStatus
from opsdesk.models.payment import PaymentMethod, ReferenceType
from opsdesk.api.auth import get_current_user
from opsdesk.services import payments as payment_service
from opsdesk.services.reports import payments_in_range, payment_parent
from opsdesk.utils.helpers import resolve_range

router = APIRouter()


# --- Pydantic Schemas ---

class PaymentCreate(BaseModel):
    order_id: int
    order_type: ReferenceType = ReferenceType.SERVICE_ORDER
    amount: float
    payment_method: str
    payment_reference: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    reference_type: ReferenceType
    reference_id: int
    order_number: Optional[str] = None
    client_name: Optional[str] = None
    amount: float
    payment_method: PaymentMethod
    payment_reference: Optional[str]
    recorded_by: int
    status: str
    created_at: Optional[datetime]


class RecordedPaymentResponse(PaymentResponse):
    outstanding_balance: float
    payment_status: PaymentStatus


class OutstandingItem(BaseModel):
    id: int
    type: ReferenceType
    number: str
    client_name: Optional[str]
    total_amount: float
    outstanding_balance: float
    created_at: Optional[datetime]


# --- Helper ---

def _build_response(p) -> PaymentResponse:
    parent = payment_parent(p)
    client = parent.client if parent is not None else None
    return PaymentResponse(
        id=p.id,
        reference_type=p.reference_type,
        reference_id=p.reference_id,
        order_number=parent.order_number if parent is not None else None,
        client_name=client.name if client else None,
        amount=p.amount,
        payment_method=p.payment_method,
        payment_reference=p.payment_reference,
        recorded_by=p.recorded_by,
        status=p.status,
        created_at=p.created_at,
    )


# --- Payment Endpoints ---

@router.post("/", response_model=RecordedPaymentResponse)
async def record_payment(
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Apply a payment to an order and return the updated balance"""
    payment = await payment_service.record_payment(
        db,
        current_user.organization_id,
        data.order_id,
        data.amount,
        data.payment_method,
        data.payment_reference,
        current_user.id,
        order_type=data.order_type,
    )
    parent = await payment_service.load_payable(
        db, current_user.organization_id, data.order_id, data.order_type
    )
    return RecordedPaymentResponse(
        id=payment.id,
        reference_type=payment.reference_type,
        reference_id=payment.reference_id,
        order_number=parent.order_number,
        amount=payment.amount,
        payment_method=payment.payment_method,
        payment_reference=payment.payment_reference,
        recorded_by=payment.recorded_by,
        status=payment.status,
        created_at=payment.created_at,
        outstanding_balance=parent.outstanding_balance,
        payment_status=parent.payment_status,
    )


@router.get("/", response_model=List[PaymentResponse])
async def list_payments(
    period: str = Query("month", pattern="^(day|today|week|month|year)$"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reference_type: Optional[ReferenceType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Payments in a period, newest first"""
    try:
        start, end = resolve_range(period, start_date, end_date, datetime.utcnow().date())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    payments = await payments_in_range(db, current_user.organization_id, start, end)
    if reference_type:
        payments = [p for p in payments if p.reference_type == reference_type]
    return [_build_response(p) for p in payments]


@router.get("/outstanding", response_model=List[OutstandingItem])
async def list_outstanding(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Orders and sales orders that still have a balance, for the payment picker"""
    return await payment_service.outstanding_items(db, current_user.organization_id, search)
