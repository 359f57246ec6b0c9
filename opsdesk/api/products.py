"""
Products API endpoints - inventory catalog and stock levels
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict
import logging

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.product import Category, Product
from opsdesk.models.sales_order import SalesOrderItem
from opsdesk.api.auth import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---

class ProductResponse(BaseModel):
    id: int
    name: str
    category: str
    description: Optional[str]
    unit_price: float
    stock_quantity: int
    reorder_point: int
    low_stock: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    name: str
    category: str
    description: Optional[str] = None
    unit_price: float = 0
    stock_quantity: int = 0
    reorder_point: int = 0


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    unit_price: Optional[float] = None
    stock_quantity: Optional[int] = None
    reorder_point: Optional[int] = None


class StockUpdate(BaseModel):
    stock_quantity: int


# --- Helpers ---

async def _get_product(db: AsyncSession, product_id: int, current_user: User) -> Product:
    result = await db.execute(
        select(Product).where(
            Product.id == product_id,
            Product.organization_id == current_user.organization_id,
        )
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def _check_category(db: AsyncSession, name: str, current_user: User):
    result = await db.execute(
        select(Category.id).where(
            Category.organization_id == current_user.organization_id,
            Category.name == name,
        )
    )
    if not result.first():
        raise HTTPException(status_code=400, detail=f"Unknown category: {name}")


def _check_numbers(values: dict):
    for field in ("unit_price", "stock_quantity", "reorder_point"):
        if values.get(field) is not None and values[field] < 0:
            raise HTTPException(status_code=400, detail=f"{field} must not be negative")


# --- Product Endpoints ---

@router.get("/", response_model=List[ProductResponse])
async def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    low_stock: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = (
        select(Product)
        .where(Product.organization_id == current_user.organization_id)
        .order_by(Product.name)
    )
    if category:
        query = query.where(Product.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if low_stock is True:
        query = query.where(Product.stock_quantity <= Product.reorder_point)
    elif low_stock is False:
        query = query.where(Product.stock_quantity > Product.reorder_point)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _get_product(db, product_id, current_user)


@router.post("/", response_model=ProductResponse)
async def create_product(
    data: ProductCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    _check_numbers(data.model_dump())
    await _check_category(db, data.category, current_user)

    product = Product(
        **data.model_dump(exclude_none=True),
        organization_id=current_user.organization_id,
    )
    product.name = data.name.strip()
    product.unit_price = round(data.unit_price, 2)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    logger.info(f"Created product {product.name} (stock {product.stock_quantity})")
    return product


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    product = await _get_product(db, product_id, current_user)

    updates = data.model_dump(exclude_none=True)
    _check_numbers(updates)
    if "category" in updates:
        await _check_category(db, updates["category"], current_user)
    for key, value in updates.items():
        setattr(product, key, value)
    product.updated_at = datetime.utcnow()

    await db.commit()
    await db.refresh(product)
    return product


@router.put("/{product_id}/stock", response_model=ProductResponse)
async def update_product_stock(
    product_id: int,
    data: StockUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the stock level of a product"""
    product = await _get_product(db, product_id, current_user)
    if data.stock_quantity < 0:
        raise HTTPException(status_code=400, detail="stock_quantity must not be negative")

    previous = product.stock_quantity
    product.stock_quantity = data.stock_quantity
    product.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(product)
    logger.info(f"Stock for {product.name}: {previous} -> {product.stock_quantity}")
    return product


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a product. Sales order items keep their name and price."""
    product = await _get_product(db, product_id, current_user)
    await db.execute(
        update(SalesOrderItem)
        .where(SalesOrderItem.product_id == product_id)
        .values(product_id=None, is_custom_item=True)
        .execution_options(synchronize_session="fetch")
    )
    await db.delete(product)
    await db.commit()
    return {"message": "Product deleted"}
