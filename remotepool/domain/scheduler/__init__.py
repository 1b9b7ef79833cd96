"""
Order scheduling domain module
"""
from .models import Order, OrderHandler, OrderKind
from .scheduler import Scheduler

__all__ = [
    "Order",
    "OrderHandler",
    "OrderKind",
    "Scheduler",
]
