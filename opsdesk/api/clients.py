"""
Clients API endpoints - customers, their custom fields and balances
"""
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from sqlalchemy.orm import selectinload
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict
import logging

from opsdesk.database import get_db
from opsdesk.models.user import User
from opsdesk.models.client import Client, ClientCustomField
from opsdesk.models.order import OrderStatus, PaymentStatus
from opsdesk.api.auth import get_current_user
from opsdesk.services.storage import storage_service, public_url

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---

class CustomFieldResponse(BaseModel):
    id: int
    title: str
    value: Optional[str]
    type: str
    url: Optional[str] = None
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ClientOrderSummary(BaseModel):
    id: int
    order_number: str
    description: Optional[str] = None
    status: str
    total_amount: float
    outstanding_balance: float
    payment_status: PaymentStatus
    created_at: Optional[datetime]


class BalanceBreakdown(BaseModel):
    total: float
    outstanding: float
    paid: float


class ClientResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    date_of_birth: Optional[date]
    image_url: Optional[str] = None
    created_at: Optional[datetime]
    total_balance: float = 0
    total_spent: float = 0


class ClientDetailResponse(ClientResponse):
    custom_fields: List[CustomFieldResponse] = []
    orders: List[ClientOrderSummary] = []
    sales_orders: List[ClientOrderSummary] = []
    orders_summary: BalanceBreakdown
    sales_orders_summary: BalanceBreakdown
    combined_summary: BalanceBreakdown


class ClientCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None


class TextFieldCreate(BaseModel):
    title: str
    value: str


# --- Helpers ---

def _breakdown(rows) -> BalanceBreakdown:
    total = round(sum(r.total_amount or 0 for r in rows), 2)
    outstanding = round(sum(r.outstanding_balance or 0 for r in rows), 2)
    return BalanceBreakdown(total=total, outstanding=outstanding, paid=round(total - outstanding, 2))


def _field_response(f: ClientCustomField) -> CustomFieldResponse:
    return CustomFieldResponse(
        id=f.id,
        title=f.title,
        value=f.value,
        type=f.type,
        url=public_url(f.value) if f.type == "file" else None,
        created_at=f.created_at,
    )


def _build_client_response(c: Client) -> ClientResponse:
    orders = _breakdown(c.orders or [])
    sales = _breakdown(c.sales_orders or [])
    return ClientResponse(
        id=c.id,
        name=c.name,
        email=c.email,
        phone=c.phone,
        address=c.address,
        date_of_birth=c.date_of_birth,
        image_url=public_url(c.image),
        created_at=c.created_at,
        total_balance=round(orders.outstanding + sales.outstanding, 2),
        total_spent=round(orders.total + sales.total, 2),
    )


def _order_summary(o) -> ClientOrderSummary:
    status = o.status.value if isinstance(o.status, OrderStatus) else o.status
    return ClientOrderSummary(
        id=o.id,
        order_number=o.order_number,
        description=getattr(o, "description", None) or getattr(o, "notes", None),
        status=status,
        total_amount=o.total_amount,
        outstanding_balance=o.outstanding_balance,
        payment_status=o.payment_status,
        created_at=o.created_at,
    )


def _newest_first(rows):
    return sorted(rows, key=lambda r: r.created_at or datetime.min, reverse=True)


def _build_client_detail(c: Client) -> ClientDetailResponse:
    base = _build_client_response(c)
    orders = _breakdown(c.orders or [])
    sales = _breakdown(c.sales_orders or [])
    combined = BalanceBreakdown(
        total=round(orders.total + sales.total, 2),
        outstanding=round(orders.outstanding + sales.outstanding, 2),
        paid=round(orders.paid + sales.paid, 2),
    )
    return ClientDetailResponse(
        **base.model_dump(),
        custom_fields=[_field_response(f) for f in c.custom_fields or []],
        orders=[_order_summary(o) for o in _newest_first(c.orders or [])],
        sales_orders=[_order_summary(s) for s in _newest_first(c.sales_orders or [])],
        orders_summary=orders,
        sales_orders_summary=sales,
        combined_summary=combined,
    )


def _client_query():
    return select(Client).options(
        selectinload(Client.orders),
        selectinload(Client.sales_orders),
        selectinload(Client.custom_fields),
    )


async def _get_client(db: AsyncSession, client_id: int, current_user: User) -> Client:
    result = await db.execute(
        _client_query()
        .where(Client.id == client_id, Client.organization_id == current_user.organization_id)
        .execution_options(populate_existing=True)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


async def _ensure_unique_name(db: AsyncSession, name: str, current_user: User, exclude_id: Optional[int] = None):
    query = select(Client.id).where(
        Client.organization_id == current_user.organization_id,
        func.lower(Client.name) == name.strip().lower(),
    )
    if exclude_id:
        query = query.where(Client.id != exclude_id)
    result = await db.execute(query)
    if result.first():
        raise HTTPException(status_code=409, detail="A client with this name already exists")


# --- Client Endpoints ---

@router.get("/", response_model=List[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List clients with their balance and lifetime spend"""
    query = (
        select(Client)
        .options(selectinload(Client.orders), selectinload(Client.sales_orders))
        .where(Client.organization_id == current_user.organization_id)
        .order_by(Client.name)
    )
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Client.name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.phone.ilike(pattern),
        ))

    result = await db.execute(query)
    return [_build_client_response(c) for c in result.scalars().all()]


@router.get("/{client_id}", response_model=ClientDetailResponse)
async def get_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Client details with orders, sales orders and balance breakdowns"""
    client = await _get_client(db, client_id, current_user)
    return _build_client_detail(client)


@router.post("/", response_model=ClientDetailResponse)
async def create_client(
    data: ClientCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    await _ensure_unique_name(db, data.name, current_user)

    values = data.model_dump(exclude_none=True)
    values["name"] = data.name.strip()
    client = Client(**values, organization_id=current_user.organization_id)
    db.add(client)
    await db.commit()
    logger.info(f"Created client {client.name} (id={client.id})")

    client = await _get_client(db, client.id, current_user)
    return _build_client_detail(client)


@router.put("/{client_id}", response_model=ClientDetailResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    client = await _get_client(db, client_id, current_user)

    updates = data.model_dump(exclude_none=True)
    if "name" in updates:
        if not updates["name"].strip():
            raise HTTPException(status_code=400, detail="Name is required")
        await _ensure_unique_name(db, updates["name"], current_user, exclude_id=client_id)
        updates["name"] = updates["name"].strip()
    for key, value in updates.items():
        setattr(client, key, value)

    await db.commit()
    client = await _get_client(db, client_id, current_user)
    return _build_client_detail(client)


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a client. Clients with orders cannot be deleted."""
    client = await _get_client(db, client_id, current_user)
    if client.orders or client.sales_orders:
        raise HTTPException(status_code=409, detail="Client has orders and cannot be deleted")

    stored = [client.image] + [f.value for f in client.custom_fields if f.type == "file"]
    await db.delete(client)
    await db.commit()

    for path in stored:
        storage_service.remove(path)
    logger.info(f"Deleted client {client_id}")
    return {"message": "Client deleted"}


# --- Profile Image ---

@router.post("/{client_id}/image", response_model=ClientDetailResponse)
async def upload_client_image(
    client_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    client = await _get_client(db, client_id, current_user)
    stored = await storage_service.save("profiles", client_id, file, images_only=True)

    previous = client.image
    client.image = stored.path
    await db.commit()
    storage_service.remove(previous)

    client = await _get_client(db, client_id, current_user)
    return _build_client_detail(client)


@router.delete("/{client_id}/image", response_model=ClientDetailResponse)
async def delete_client_image(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    client = await _get_client(db, client_id, current_user)
    previous = client.image
    client.image = None
    await db.commit()
    storage_service.remove(previous)

    client = await _get_client(db, client_id, current_user)
    return _build_client_detail(client)


# --- Custom Fields ---

@router.post("/{client_id}/custom-fields", response_model=CustomFieldResponse)
async def add_text_field(
    client_id: int,
    data: TextFieldCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Add a text custom field to a client"""
    await _get_client(db, client_id, current_user)
    if not data.title.strip() or not data.value.strip():
        raise HTTPException(status_code=400, detail="Title and value are required")

    field = ClientCustomField(
        client_id=client_id,
        title=data.title.strip(),
        value=data.value.strip(),
        type="text",
    )
    db.add(field)
    await db.commit()
    await db.refresh(field)
    return _field_response(field)


@router.post("/{client_id}/custom-fields/file", response_model=CustomFieldResponse)
async def add_file_field(
    client_id: int,
    title: str = Form(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Upload a file and attach it to a client as a custom field"""
    await _get_client(db, client_id, current_user)
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")

    stored = await storage_service.save("client-fields", client_id, file)
    field = ClientCustomField(
        client_id=client_id,
        title=title.strip(),
        value=stored.path,
        type="file",
    )
    db.add(field)
    await db.commit()
    await db.refresh(field)
    return _field_response(field)


@router.delete("/{client_id}/custom-fields/{field_id}")
async def delete_custom_field(
    client_id: int,
    field_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a custom field, removing its stored file"""
    await _get_client(db, client_id, current_user)
    result = await db.execute(
        select(ClientCustomField).where(
            ClientCustomField.id == field_id,
            ClientCustomField.client_id == client_id,
        )
    )
    field = result.scalar_one_or_none()
    if not field:
        raise HTTPException(status_code=404, detail="Custom field not found")

    path = field.value if field.type == "file" else None
    await db.delete(field)
    await db.commit()
    storage_service.remove(path)
    return {"message": "Custom field deleted"}
