"""
Task models - per-worker unit of work, usually created for an order assignment
"""
from sqlalchemy import Column, Integer, Text, Float, Date, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from opsdesk.database import Base
from opsdesk.models.order import _values


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELAYED = "delayed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    status = Column(
        SQLEnum(TaskStatus, native_enum=False, values_callable=_values),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    amount = Column(Float, nullable=False, default=0)  # worker's rate for the project

    completed_at = Column(DateTime, nullable=True)
    status_changed_at = Column(DateTime, nullable=True)
    delay_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    worker = relationship("Worker", back_populates="tasks")
    project = relationship("Project")
    order = relationship("Order", back_populates="tasks")
    deductions = relationship(
        "Deduction",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Deduction.created_at",
    )

    @property
    def deductions_total(self) -> float:
        return round(sum(d.amount for d in self.deductions or []), 2)

    @property
    def net_amount(self) -> float:
        return round((self.amount or 0) - self.deductions_total, 2)


class Deduction(Base):
    """Amount withheld from a worker's task payout"""
    __tablename__ = "deductions"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    task = relationship("Task", back_populates="deductions")
