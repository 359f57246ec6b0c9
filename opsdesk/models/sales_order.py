"""
Sales order models - inventory sales with line items
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from opsdesk.database import Base
from opsdesk.models.order import PaymentStatus, _values


class SalesOrder(Base):
    __tablename__ = "sales_orders"
    __table_args__ = (
        UniqueConstraint("organization_id", "order_number", name="sales_orders_organization_number_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    order_number = Column(String, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="RESTRICT"), nullable=True, index=True)
    status = Column(String, nullable=False, default="completed")  # completed, cancelled
    notes = Column(Text, nullable=True)

    # Financial - derived from items and payments
    total_amount = Column(Float, nullable=False, default=0)
    outstanding_balance = Column(Float, nullable=False, default=0)
    payment_status = Column(
        SQLEnum(PaymentStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("Client", back_populates="sales_orders")
    items = relationship(
        "SalesOrderItem",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
    )


class SalesOrderItem(Base):
    """Line item in a sales order - a catalog product or a custom item"""
    __tablename__ = "sales_order_items"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    is_custom_item = Column(Boolean, default=False)

    sales_order = relationship("SalesOrder", back_populates="items")
    product = relationship("Product")
