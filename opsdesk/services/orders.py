"""
Service order lifecycle - the create_order procedure, worker assignment
with task fan-out, status changes and the cancellation cascade.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.config import get_settings
from opsdesk.models.client import Client, ClientCustomField
from opsdesk.models.order import (
    Order, OrderStatus, OrderWorker, OrderService, OrderCustomField, PaymentStatus,
)
from opsdesk.models.payment import Payment
from opsdesk.models.project import Project, Service
from opsdesk.models.task import Task, TaskStatus
from opsdesk.models.worker import Worker
from opsdesk.services.errors import NotFoundError, ValidationError, ConflictError
from opsdesk.services.numbering import next_order_number, is_order_number_collision
from opsdesk.services.payments import InitialPayment, apply_payment, check_initial_payment
from opsdesk.services.tasks import worker_rate
from opsdesk.utils.validators import validate_non_negative

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class WorkerAssignment:
    worker_id: int
    project_id: int


@dataclass
class ServiceLine:
    service_id: int
    quantity: int = 1
    cost: Optional[float] = None  # unit cost, defaults to the catalog price


@dataclass
class CustomFieldValue:
    id: Optional[int] = None  # client custom field this value was taken from
    title: Optional[str] = None
    value: Optional[str] = None


def order_details_query():
    """Select an order with everything the details screen shows"""
    return select(Order).options(
        selectinload(Order.client),
        selectinload(Order.workers).selectinload(OrderWorker.worker),
        selectinload(Order.workers).selectinload(OrderWorker.project),
        selectinload(Order.services).selectinload(OrderService.service),
        selectinload(Order.custom_fields).selectinload(OrderCustomField.field),
        selectinload(Order.payments),
        selectinload(Order.tasks).selectinload(Task.deductions),
        selectinload(Order.tasks).selectinload(Task.worker),
        selectinload(Order.tasks).selectinload(Task.project),
    )


async def get_order(db: AsyncSession, organization_id: int, order_id: int) -> Order:
    result = await db.execute(
        order_details_query()
        .where(Order.id == order_id, Order.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def _require(db: AsyncSession, model, organization_id: int, obj_id: int, label: str):
    result = await db.execute(
        select(model).where(model.id == obj_id, model.organization_id == organization_id)
    )
    obj = result.scalar_one_or_none()
    if obj is None:
        raise NotFoundError(f"{label} {obj_id} not found")
    return obj


def task_description(order: Order) -> str:
    if order.description:
        return f"Order {order.order_number}: {order.description}"
    return f"Order {order.order_number}"


async def _add_assignment(db: AsyncSession, order: Order, worker_id: int, project_id: int) -> OrderWorker:
    """Attach a worker to an order and create the worker's task for it"""
    assignment = OrderWorker(
        order_id=order.id,
        worker_id=worker_id,
        project_id=project_id,
        status="assigned",
    )
    db.add(assignment)

    now = datetime.utcnow()
    db.add(Task(
        organization_id=order.organization_id,
        worker_id=worker_id,
        project_id=project_id,
        order_id=order.id,
        description=task_description(order),
        due_date=order.due_date.date() if order.due_date else now.date(),
        status=TaskStatus.PENDING,
        status_changed_at=now,
        amount=await worker_rate(db, worker_id, project_id),
    ))
    return assignment


async def _validate_assignments(
    db: AsyncSession, organization_id: int, workers: Sequence[WorkerAssignment]
) -> None:
    seen = set()
    for w in workers:
        key = (w.worker_id, w.project_id)
        if key in seen:
            raise ValidationError(f"Worker {w.worker_id} is assigned to project {w.project_id} twice")
        seen.add(key)
        await _require(db, Worker, organization_id, w.worker_id, "Worker")
        await _require(db, Project, organization_id, w.project_id, "Project")


async def create_order(
    db: AsyncSession,
    organization_id: int,
    client_id: int,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    total_amount: Optional[float] = None,
    workers: Sequence[WorkerAssignment] = (),
    services: Sequence[ServiceLine] = (),
    custom_fields: Sequence[CustomFieldValue] = (),
    initial_payment: Optional[InitialPayment] = None,
    created_by: Optional[int] = None,
) -> Order:
    """Create an order with its workers, services and custom fields in one transaction.

    Every worker assignment creates a pending task for that worker. The order
    number is regenerated and the insert retried when another order took the
    same number concurrently.
    """
    await _require(db, Client, organization_id, client_id, "Client")
    await _validate_assignments(db, organization_id, workers)

    lines = []
    seen_services = set()
    for line in services:
        if line.service_id in seen_services:
            raise ValidationError(f"Service {line.service_id} listed twice")
        seen_services.add(line.service_id)
        if line.quantity is None or line.quantity < 1:
            raise ValidationError("Service quantity must be at least 1")
        service = await _require(db, Service, organization_id, line.service_id, "Service")
        try:
            cost = validate_non_negative(service.price if line.cost is None else line.cost, "Service cost")
        except ValueError as exc:
            raise ValidationError(str(exc))
        lines.append((line.service_id, line.quantity, cost))

    if total_amount is None:
        total_amount = sum(quantity * cost for _, quantity, cost in lines)
    try:
        total_amount = validate_non_negative(total_amount, "Total amount")
    except ValueError as exc:
        raise ValidationError(str(exc))

    if initial_payment is not None:
        check_initial_payment(initial_payment, total_amount)

    field_ids = [f.id for f in custom_fields if f.id is not None]
    if field_ids:
        result = await db.execute(
            select(ClientCustomField.id).where(
                ClientCustomField.id.in_(field_ids),
                ClientCustomField.client_id == client_id,
            )
        )
        known = set(result.scalars().all())
        missing = [fid for fid in field_ids if fid not in known]
        if missing:
            raise NotFoundError(f"Custom field {missing[0]} not found for this client")

    attempts = 0
    while True:
        try:
            order = Order(
                organization_id=organization_id,
                order_number=await next_order_number(db, organization_id),
                client_id=client_id,
                description=description,
                due_date=due_date,
                status=OrderStatus.PENDING,
                total_amount=total_amount,
                outstanding_balance=total_amount,
                payment_status=PaymentStatus.UNPAID,
            )
            db.add(order)
            await db.flush()

            for service_id, quantity, cost in lines:
                db.add(OrderService(order_id=order.id, service_id=service_id, quantity=quantity, cost=cost))

            for field in custom_fields:
                # Entries with nothing to store are skipped
                if field.id is None and not (field.title and field.value):
                    continue
                db.add(OrderCustomField(
                    order_id=order.id,
                    custom_field_id=field.id,
                    title=field.title,
                    value=field.value,
                ))

            for w in workers:
                await _add_assignment(db, order, w.worker_id, w.project_id)
            await db.flush()

            if initial_payment is not None:
                await apply_payment(
                    db,
                    order,
                    initial_payment.amount,
                    initial_payment.payment_method,
                    initial_payment.payment_reference,
                    created_by,
                )

            order_id = order.id
            order_number = order.order_number
            await db.commit()
            break
        except IntegrityError as exc:
            await db.rollback()
            if not is_order_number_collision(exc):
                logger.error(f"Failed to create order: {exc}")
                raise ConflictError("Order conflicts with existing data")
            attempts += 1
            if attempts >= settings.ORDER_NUMBER_MAX_ATTEMPTS:
                raise ConflictError(
                    f"Failed to generate unique order number after {attempts} attempts"
                )
            logger.warning(f"Order number collision, retrying ({attempts})")
        except Exception:
            await db.rollback()
            raise

    logger.info(f"Created order {order_number} with {len(workers)} worker(s) and {len(lines)} service(s)")
    return await get_order(db, organization_id, order_id)


async def assign_worker(
    db: AsyncSession,
    organization_id: int,
    order_id: int,
    worker_id: int,
    project_id: int,
) -> OrderWorker:
    """Assign a worker to an existing order; the worker gets a pending task"""
    order = await get_order(db, organization_id, order_id)
    if order.status == OrderStatus.CANCELLED:
        raise ValidationError("Cannot assign workers to a cancelled order")
    await _validate_assignments(db, organization_id, [WorkerAssignment(worker_id, project_id)])

    existing = await db.execute(
        select(OrderWorker.id).where(
            OrderWorker.order_id == order_id,
            OrderWorker.worker_id == worker_id,
            OrderWorker.project_id == project_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Worker is already assigned to this order for that project")

    try:
        assignment = await _add_assignment(db, order, worker_id, project_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Assigned worker {worker_id} to order {order.order_number}")
    await db.refresh(assignment)
    return assignment


async def update_order_status(db: AsyncSession, order: Order, status: OrderStatus) -> Order:
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Cancelled orders cannot change status")
    if status == OrderStatus.CANCELLED:
        raise ValidationError("Use the cancel operation to cancel an order")

    previous = order.status
    order.status = status
    order.updated_at = datetime.utcnow()
    await db.commit()
    logger.info(f"Order {order.order_number} status {previous.value} -> {status.value}")
    return order


async def update_order_worker_status(
    db: AsyncSession, organization_id: int, order_id: int, order_worker_id: int, status: str
) -> OrderWorker:
    await get_order(db, organization_id, order_id)
    result = await db.execute(
        select(OrderWorker).where(
            OrderWorker.id == order_worker_id,
            OrderWorker.order_id == order_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Order worker not found")
    assignment.status = status
    await db.commit()
    return assignment


async def cancel_order(
    db: AsyncSession,
    order: Order,
    reason: Optional[str],
    cancel_worker_tasks: bool,
    cancelled_by: Optional[int],
) -> dict:
    """Cancel an order and cascade to its payments and, optionally, its tasks.

    Order, tasks and payments change in one transaction.
    """
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order is already cancelled")

    now = datetime.utcnow()
    order_id = order.id
    order_number = order.order_number
    try:
        order.status = OrderStatus.CANCELLED
        order.cancellation_reason = reason
        order.cancelled_at = now
        order.cancelled_by = cancelled_by
        order.updated_at = now

        tasks_cancelled = 0
        if cancel_worker_tasks:
            result = await db.execute(
                update(Task)
                .where(Task.order_id == order_id, Task.status != TaskStatus.CANCELLED)
                .values(status=TaskStatus.CANCELLED, status_changed_at=now, updated_at=now)
                .execution_options(synchronize_session="fetch")
            )
            tasks_cancelled = result.rowcount

        result = await db.execute(
            update(Payment)
            .where(Payment.order_id == order_id, Payment.status != "cancelled")
            .values(status="cancelled")
            .execution_options(synchronize_session="fetch")
        )
        payments_cancelled = result.rowcount

        await db.commit()
    except Exception:
        await db.rollback()
        logger.error(f"Error cancelling order {order_number}", exc_info=True)
        raise

    logger.info(
        f"Cancelled order {order_number}: {tasks_cancelled} task(s), {payments_cancelled} payment(s)"
    )
    return {
        "order_id": order_id,
        "tasks_cancelled": tasks_cancelled,
        "payments_cancelled": payments_cancelled,
    }


def receipt(order: Order, organization_name: str, currency: str) -> dict:
    """Printable receipt data for an order"""
    lines = [
        {
            "service": s.service.name if s.service else None,
            "quantity": s.quantity,
            "unit_cost": s.cost,
            "line_total": round(s.cost * s.quantity, 2),
        }
        for s in order.services
    ]
    paid = round(sum(p.amount for p in order.payments if p.status == "active"), 2)
    return {
        "organization_name": organization_name,
        "currency": currency,
        "order_number": order.order_number,
        "created_at": order.created_at,
        "due_date": order.due_date,
        "client_name": order.client.name if order.client else None,
        "description": order.description,
        "workers": [
            {
                "worker": ow.worker.name if ow.worker else None,
                "project": ow.project.name if ow.project else None,
            }
            for ow in order.workers
        ],
        "lines": lines,
        "total_amount": order.total_amount,
        "amount_paid": paid,
        "outstanding_balance": order.outstanding_balance,
        "payment_status": order.payment_status.value,
        "status": order.status.value,
    }


