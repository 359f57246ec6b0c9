"""
Client models - customers with ad hoc custom fields
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from opsdesk.database import Base


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="clients_organization_name_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    image = Column(String, nullable=True)  # storage path
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    custom_fields = relationship(
        "ClientCustomField",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="ClientCustomField.id",
    )
    orders = relationship("Order", back_populates="client")
    sales_orders = relationship("SalesOrder", back_populates="client")


class ClientCustomField(Base):
    """User-defined text value or uploaded file attached to a client"""
    __tablename__ = "client_custom_fields"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    value = Column(Text, nullable=True)  # text value, or storage path for files
    type = Column(String, nullable=False, default="text")  # text, file
    created_at = Column(DateTime, default=datetime.utcnow)

    client = relationship("Client", back_populates="custom_fields")
