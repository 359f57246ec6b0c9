"""
Worker models - staff paid per project rate
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from opsdesk.database import Base


class Worker(Base):
    __tablename__ = "workers"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="workers_organization_name_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    whatsapp = Column(String, nullable=True)
    image = Column(String, nullable=True)  # storage path
    status = Column(String, nullable=False, default="active")  # active, inactive
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    project_rates = relationship(
        "WorkerProjectRate",
        back_populates="worker",
        cascade="all, delete-orphan",
    )
    tasks = relationship("Task", back_populates="worker", passive_deletes=True)


class WorkerProjectRate(Base):
    """What a worker earns for one task of a project"""
    __tablename__ = "worker_project_rates"
    __table_args__ = (
        UniqueConstraint("worker_id", "project_id", name="worker_project_rates_unique"),
    )

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    rate = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    worker = relationship("Worker", back_populates="project_rates")
    project = relationship("Project")
