"""
Product categories API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel
import logging

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.product import Category, Product
from opsdesk.api.auth import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


class CategoryResponse(BaseModel):
    id: int
    name: str
    product_count: int = 0
    created_at: Optional[datetime]


class CategoryCreate(BaseModel):
    name: str


async def _get_category(db: AsyncSession, category_id: int, current_user: User) -> Category:
    result = await db.execute(
        select(Category).where(
            Category.id == category_id,
            Category.organization_id == current_user.organization_id,
        )
    )
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


async def _product_count(db: AsyncSession, name: str, organization_id: int) -> int:
    result = await db.execute(
        select(func.count(Product.id)).where(
            Product.organization_id == organization_id,
            Product.category == name,
        )
    )
    return result.scalar() or 0


async def _ensure_unique_name(db: AsyncSession, name: str, current_user: User, exclude_id: Optional[int] = None):
    query = select(Category.id).where(
        Category.organization_id == current_user.organization_id,
        func.lower(Category.name) == name.lower(),
    )
    if exclude_id:
        query = query.where(Category.id != exclude_id)
    result = await db.execute(query)
    if result.first():
        raise HTTPException(status_code=409, detail="A category with this name already exists")


@router.get("/", response_model=List[CategoryResponse])
async def list_categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List categories with the number of products in each"""
    counts_result = await db.execute(
        select(Product.category, func.count(Product.id))
        .where(Product.organization_id == current_user.organization_id)
        .group_by(Product.category)
    )
    counts = {name: count for name, count in counts_result.all()}

    result = await db.execute(
        select(Category)
        .where(Category.organization_id == current_user.organization_id)
        .order_by(Category.name)
    )
    return [
        CategoryResponse(id=c.id, name=c.name, product_count=counts.get(c.name, 0), created_at=c.created_at)
        for c in result.scalars().all()
    ]


@router.post("/", response_model=CategoryResponse)
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    await _ensure_unique_name(db, name, current_user)

    category = Category(name=name, organization_id=current_user.organization_id)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return CategoryResponse(id=category.id, name=category.name, created_at=category.created_at)


@router.put("/{category_id}", response_model=CategoryResponse)
async def rename_category(
    category_id: int,
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Rename a category and move its products to the new name"""
    category = await _get_category(db, category_id, current_user)
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    await _ensure_unique_name(db, name, current_user, exclude_id=category_id)

    old_name = category.name
    category.name = name
    await db.execute(
        update(Product)
        .where(Product.organization_id == current_user.organization_id, Product.category == old_name)
        .values(category=name)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
    logger.info(f"Renamed category {old_name} -> {name}")

    count = await _product_count(db, name, current_user.organization_id)
    return CategoryResponse(id=category.id, name=category.name, product_count=count, created_at=category.created_at)


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    category = await _get_category(db, category_id, current_user)
    if await _product_count(db, category.name, current_user.organization_id):
        raise HTTPException(status_code=409, detail="Category has products and cannot be deleted")

    await db.delete(category)
    await db.commit()
    return {"message": "Category deleted"}
