"""
Payment model - linked polymorphically to a service order or a sales order
"""
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from opsdesk.database import Base
from opsdesk.models.order import _values


class PaymentMethod(str, Enum):
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    OTHER = "other"


class ReferenceType(str, Enum):
    SERVICE_ORDER = "service_order"
    SALES_ORDER = "sales_order"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(
            "(order_id IS NULL) <> (sales_order_id IS NULL)",
            name="payments_single_parent",
        ),
        CheckConstraint("amount > 0", name="payments_positive_amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # Parent order - exactly one is set
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=True, index=True)
    reference_type = Column(
        SQLEnum(ReferenceType, native_enum=False, values_callable=_values),
        nullable=False,
    )

    amount = Column(Float, nullable=False)
    payment_method = Column(
        SQLEnum(PaymentMethod, native_enum=False, values_callable=_values),
        nullable=False,
    )
    payment_reference = Column(String, nullable=True)
    recorded_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="active")  # active, cancelled
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    order = relationship("Order", back_populates="payments")
    sales_order = relationship("SalesOrder", back_populates="payments")
    recorder = relationship("User")

    @property
    def reference_id(self):
        return self.order_id if self.order_id is not None else self.sales_order_id
