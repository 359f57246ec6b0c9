"""
Project and service catalog models
"""
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from opsdesk.database import Base


class Project(Base):
    """A kind of work workers are assigned to and paid for"""
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="projects_organization_name_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=False, default=0)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow)


class Service(Base):
    """Billable catalog item sold on service orders"""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
