"""
Payment application - the record_payment procedure.

A payment is applied to exactly one parent (service order or sales order)
in a single transaction: the payment row is inserted and the parent's
outstanding balance is decremented, never below zero, with the payment
status recomputed from the new balance.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.models.order import Order, OrderStatus, PaymentStatus
from opsdesk.models.sales_order import SalesOrder
from opsdesk.models.payment import Payment, PaymentMethod, ReferenceType
from opsdesk.services.errors import NotFoundError, ValidationError
from opsdesk.utils.validators import validate_payment_amount, validate_payment_method

logger = logging.getLogger(__name__)

Payable = Union[Order, SalesOrder]


@dataclass
class InitialPayment:
    """Payment taken while an order is being created"""
    amount: float
    payment_method: str
    payment_reference: Optional[str] = None


def derive_payment_status(total_amount: float, outstanding_balance: float) -> PaymentStatus:
    """Payment status from the balance left against the order total"""
    total = round(total_amount or 0, 2)
    outstanding = round(outstanding_balance or 0, 2)
    if total > 0 and outstanding <= 0:
        return PaymentStatus.PAID
    if outstanding < total:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.UNPAID


def _is_cancelled(parent: Payable) -> bool:
    status = parent.status
    return status == OrderStatus.CANCELLED or status == "cancelled"


async def load_payable(
    db: AsyncSession,
    organization_id: int,
    order_id: int,
    order_type: ReferenceType = ReferenceType.SERVICE_ORDER,
    lock: bool = False,
) -> Payable:
    """Fetch the parent order of a payment, scoped to the organization"""
    model = SalesOrder if order_type == ReferenceType.SALES_ORDER else Order
    query = select(model).where(
        model.id == order_id,
        model.organization_id == organization_id,
    )
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    parent = result.scalar_one_or_none()
    if parent is None:
        raise NotFoundError("Order not found")
    return parent


def check_payment(parent: Payable, amount: float, payment_method: str, recorded_by: Optional[int]) -> float:
    """Validate a payment against its parent. Returns the amount rounded to cents."""
    if recorded_by is None:
        raise ValidationError("recorded_by cannot be null")
    try:
        validate_payment_method(payment_method)
        if _is_cancelled(parent):
            raise ValueError("Cannot record a payment on a cancelled order")
        return validate_payment_amount(amount, parent.outstanding_balance)
    except ValueError as exc:
        raise ValidationError(str(exc))


def check_initial_payment(payment: InitialPayment, total_amount: float) -> None:
    """Validate a payment taken at order creation before anything is written"""
    try:
        validate_payment_method(payment.payment_method)
        validate_payment_amount(payment.amount, total_amount)
    except ValueError as exc:
        raise ValidationError(str(exc))


async def apply_payment(
    db: AsyncSession,
    parent: Payable,
    amount: float,
    payment_method: str,
    payment_reference: Optional[str],
    recorded_by: int,
) -> Payment:
    """Insert the payment and decrement the parent's balance. Does not commit."""
    amount = check_payment(parent, amount, payment_method, recorded_by)
    is_sales_order = isinstance(parent, SalesOrder)

    payment = Payment(
        organization_id=parent.organization_id,
        order_id=None if is_sales_order else parent.id,
        sales_order_id=parent.id if is_sales_order else None,
        reference_type=ReferenceType.SALES_ORDER if is_sales_order else ReferenceType.SERVICE_ORDER,
        amount=amount,
        payment_method=PaymentMethod(payment_method),
        payment_reference=payment_reference or None,
        recorded_by=recorded_by,
        status="active",
        created_at=datetime.utcnow(),
    )
    db.add(payment)

    parent.outstanding_balance = max(0.0, round(parent.outstanding_balance - amount, 2))
    parent.payment_status = derive_payment_status(parent.total_amount, parent.outstanding_balance)
    parent.updated_at = datetime.utcnow()

    await db.flush()
    logger.info(
        f"Recorded {payment_method} payment of {amount:.2f} on {parent.order_number} "
        f"(balance now {parent.outstanding_balance:.2f}, {parent.payment_status.value})"
    )
    return payment


async def record_payment(
    db: AsyncSession,
    organization_id: int,
    order_id: int,
    amount: float,
    payment_method: str,
    payment_reference: Optional[str],
    recorded_by: Optional[int],
    order_type: ReferenceType = ReferenceType.SERVICE_ORDER,
) -> Payment:
    """Atomically apply a payment to a service order or sales order"""
    parent = await load_payable(db, organization_id, order_id, order_type, lock=True)
    check_payment(parent, amount, payment_method, recorded_by)

    try:
        payment = await apply_payment(db, parent, amount, payment_method, payment_reference, recorded_by)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error(f"Error recording payment on order {order_id}", exc_info=True)
        raise

    await db.refresh(payment)
    return payment


async def outstanding_items(
    db: AsyncSession,
    organization_id: int,
    search: Optional[str] = None,
) -> list[dict]:
    """Open service and sales orders that still owe money, newest first"""
    orders_result = await db.execute(
        select(Order)
        .options(selectinload(Order.client))
        .where(
            Order.organization_id == organization_id,
            Order.outstanding_balance > 0,
            Order.status != OrderStatus.CANCELLED,
        )
    )
    sales_result = await db.execute(
        select(SalesOrder)
        .options(selectinload(SalesOrder.client))
        .where(
            SalesOrder.organization_id == organization_id,
            SalesOrder.outstanding_balance > 0,
            SalesOrder.status != "cancelled",
        )
    )

    items = []
    for order in orders_result.scalars().all():
        items.append({
            "id": order.id,
            "type": ReferenceType.SERVICE_ORDER.value,
            "number": order.order_number,
            "client_name": order.client.name if order.client else None,
            "total_amount": order.total_amount,
            "outstanding_balance": order.outstanding_balance,
            "created_at": order.created_at,
        })
    for sale in sales_result.scalars().all():
        items.append({
            "id": sale.id,
            "type": ReferenceType.SALES_ORDER.value,
            "number": sale.order_number,
            "client_name": sale.client.name if sale.client else None,
            "total_amount": sale.total_amount,
            "outstanding_balance": sale.outstanding_balance,
            "created_at": sale.created_at,
        })

    if search:
        needle = search.lower()
        items = [
            i for i in items
            if needle in i["number"].lower() or needle in str(i["id"])
            or (i["client_name"] and needle in i["client_name"].lower())
        ]

    items.sort(key=lambda i: i["created_at"] or datetime.min, reverse=True)
    return items
