"""
Service order models - orders, their workers, services and custom fields
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from opsdesk.database import Base


class OrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    """Service order billed to a client and fulfilled by workers"""
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("organization_id", "order_number", name="orders_organization_number_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    order_number = Column(String, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)

    status = Column(
        SQLEnum(OrderStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=OrderStatus.DRAFT,
        index=True,
    )

    # Financial
    total_amount = Column(Float, nullable=False, default=0)
    outstanding_balance = Column(Float, nullable=False, default=0)
    payment_status = Column(
        SQLEnum(PaymentStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    # Cancellation
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("Client", back_populates="orders")
    workers = relationship("OrderWorker", back_populates="order", cascade="all, delete-orphan")
    services = relationship("OrderService", back_populates="order", cascade="all, delete-orphan")
    custom_fields = relationship("OrderCustomField", back_populates="order", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="order")
    payments = relationship("Payment", back_populates="order", order_by="Payment.created_at")


class OrderWorker(Base):
    """Worker assigned to an order for a given project"""
    __tablename__ = "order_workers"
    __table_args__ = (
        UniqueConstraint("order_id", "worker_id", "project_id", name="order_workers_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(String, nullable=False, default="assigned")
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="workers")
    worker = relationship("Worker")
    project = relationship("Project")


class OrderService(Base):
    """Line item: a catalog service sold on an order"""
    __tablename__ = "order_services"
    __table_args__ = (
        UniqueConstraint("order_id", "service_id", name="order_services_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    cost = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="services")
    service = relationship("Service")


class OrderCustomField(Base):
    """Custom value captured on an order, optionally copied from a client field"""
    __tablename__ = "order_custom_fields"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    custom_field_id = Column(
        Integer, ForeignKey("client_custom_fields.id", ondelete="SET NULL"), nullable=True
    )
    title = Column(String, nullable=True)
    value = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="custom_fields")
    field = relationship("ClientCustomField")
