from opsdesk.models.organization import Organization
from opsdesk.models.user import User
from opsdesk.models.client import Client, ClientCustomField
from opsdesk.models.worker import Worker, WorkerProjectRate
from opsdesk.models.project import Project, Service
from opsdesk.models.order import Order, OrderWorker, OrderService, OrderCustomField
from opsdesk.models.sales_order import SalesOrder, SalesOrderItem
from opsdesk.models.product import Product, Category
from opsdesk.models.payment import Payment
from opsdesk.models.task import Task, Deduction

__all__ = [
    "Organization",
    "User",
    "Client",
    "ClientCustomField",
    "Worker",
    "WorkerProjectRate",
    "Project",
    "Service",
    "Order",
    "OrderWorker",
    "OrderService",
    "OrderCustomField",
    "SalesOrder",
    "SalesOrderItem",
    "Product",
    "Category",
    "Payment",
    "Task",
    "Deduction",
]
