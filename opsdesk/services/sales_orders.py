"""
Inventory sales - sales orders with product and custom line items.

Creating a sales order takes stock out of the catalog; deleting one puts it
back. Totals are always recomputed from items and active payments.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.config import get_settings
from opsdesk.models.client import Client
from opsdesk.models.organization import Organization
from opsdesk.models.order import PaymentStatus
from opsdesk.models.product import Product
from opsdesk.models.sales_order import SalesOrder, SalesOrderItem
from opsdesk.services.errors import NotFoundError, ValidationError, ConflictError
from opsdesk.services.numbering import next_sales_order_number, is_order_number_collision
from opsdesk.services.payments import InitialPayment, apply_payment, check_initial_payment, derive_payment_status
from opsdesk.utils.helpers import round_money
from opsdesk.utils.validators import validate_non_negative

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class SalesItem:
    quantity: int
    product_id: Optional[int] = None
    name: Optional[str] = None
    unit_price: Optional[float] = None


def sales_order_query():
    return select(SalesOrder).options(
        selectinload(SalesOrder.client),
        selectinload(SalesOrder.items),
        selectinload(SalesOrder.payments),
    )


async def get_sales_order(db: AsyncSession, organization_id: int, sales_order_id: int) -> SalesOrder:
    result = await db.execute(
        sales_order_query()
        .where(SalesOrder.id == sales_order_id, SalesOrder.organization_id == organization_id)
        .execution_options(populate_existing=True)
    )
    sales_order = result.scalar_one_or_none()
    if sales_order is None:
        raise NotFoundError("Sales order not found")
    return sales_order


def recalculate_sales_order_totals(sales_order: SalesOrder) -> SalesOrder:
    """Recompute total, balance and payment status from items and active payments"""
    total = round_money(sum(item.total_price for item in sales_order.items))
    paid = round_money(sum(p.amount for p in sales_order.payments if p.status == "active"))
    sales_order.total_amount = total
    sales_order.outstanding_balance = max(0.0, round_money(total - paid))
    sales_order.payment_status = derive_payment_status(total, sales_order.outstanding_balance)
    return sales_order


async def _resolve_items(db: AsyncSession, organization_id: int, items: Sequence[SalesItem]):
    """Turn requested items into (product, name, quantity, unit_price) tuples"""
    if not items:
        raise ValidationError("A sales order needs at least one item")

    resolved = []
    requested = {}
    for item in items:
        if item.quantity is None or item.quantity < 1:
            raise ValidationError("Item quantity must be at least 1")

        if item.product_id is None:
            if not item.name or item.unit_price is None:
                raise ValidationError("Custom items need a name and a unit price")
            try:
                unit_price = validate_non_negative(item.unit_price, "Unit price")
            except ValueError as exc:
                raise ValidationError(str(exc))
            resolved.append((None, item.name, item.quantity, unit_price))
            continue

        result = await db.execute(
            select(Product)
            .where(Product.id == item.product_id, Product.organization_id == organization_id)
            .with_for_update()
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise NotFoundError(f"Product {item.product_id} not found")

        requested[product.id] = requested.get(product.id, 0) + item.quantity
        if requested[product.id] > product.stock_quantity:
            raise ValidationError(
                f"Insufficient stock for {product.name}: "
                f"{product.stock_quantity} available, {requested[product.id]} requested"
            )

        unit_price = product.unit_price if item.unit_price is None else item.unit_price
        resolved.append((product, item.name or product.name, item.quantity, round(unit_price, 2)))
    return resolved


async def create_sales_order(
    db: AsyncSession,
    organization_id: int,
    items: Sequence[SalesItem],
    client_id: Optional[int] = None,
    notes: Optional[str] = None,
    initial_payment: Optional[InitialPayment] = None,
    created_by: Optional[int] = None,
) -> SalesOrder:
    if client_id is not None:
        result = await db.execute(
            select(Client.id).where(Client.id == client_id, Client.organization_id == organization_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Client not found")

    organization = await db.get(Organization, organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    organization_name = organization.name

    resolved = await _resolve_items(db, organization_id, items)
    total = round(sum(quantity * price for _, _, quantity, price in resolved), 2)
    if initial_payment is not None:
        check_initial_payment(initial_payment, total)

    attempts = 0
    while True:
        try:
            now = datetime.utcnow()
            sales_order = SalesOrder(
                organization_id=organization_id,
                order_number=await next_sales_order_number(db, organization_id, organization_name, now),
                client_id=client_id,
                status="completed",
                notes=notes,
                total_amount=total,
                outstanding_balance=total,
                payment_status=PaymentStatus.UNPAID,
                created_at=now,
            )
            db.add(sales_order)
            await db.flush()

            for product, name, quantity, unit_price in resolved:
                db.add(SalesOrderItem(
                    sales_order_id=sales_order.id,
                    product_id=product.id if product else None,
                    name=name,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=round(quantity * unit_price, 2),
                    is_custom_item=product is None,
                ))
                if product is not None:
                    product.stock_quantity -= quantity
                    product.updated_at = now

            await db.flush()
            if initial_payment is not None:
                await apply_payment(
                    db,
                    sales_order,
                    initial_payment.amount,
                    initial_payment.payment_method,
                    initial_payment.payment_reference,
                    created_by,
                )

            sales_order_id = sales_order.id
            order_number = sales_order.order_number
            await db.commit()
            break
        except IntegrityError as exc:
            await db.rollback()
            if not is_order_number_collision(exc):
                logger.error(f"Failed to create sales order: {exc}")
                raise ConflictError("Sales order conflicts with existing data")
            attempts += 1
            if attempts >= settings.ORDER_NUMBER_MAX_ATTEMPTS:
                raise ConflictError(
                    f"Failed to generate unique order number after {attempts} attempts"
                )
            # Stock was rolled back with the insert
            resolved = await _resolve_items(db, organization_id, items)
        except Exception:
            await db.rollback()
            raise

    logger.info(f"Created sales order {order_number} with {len(resolved)} item(s), total {total:.2f}")
    return await get_sales_order(db, organization_id, sales_order_id)


async def delete_sales_order(db: AsyncSession, sales_order: SalesOrder) -> None:
    """Delete a sales order with its items and payments, returning stock to the catalog"""
    order_number = sales_order.order_number
    try:
        if sales_order.status != "cancelled":
            for item in sales_order.items:
                if item.product_id is None:
                    continue
                product = await db.get(Product, item.product_id)
                if product is not None:
                    product.stock_quantity += item.quantity
        await db.delete(sales_order)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error(f"Error deleting sales order {order_number}", exc_info=True)
        raise
    logger.info(f"Deleted sales order {order_number}, stock restored")


async def refresh_totals(db: AsyncSession, sales_order: SalesOrder) -> SalesOrder:
    recalculate_sales_order_totals(sales_order)
    await db.commit()
    return sales_order
