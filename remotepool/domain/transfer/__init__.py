"""
Transfer domain module
"""
from .engine import TransferEngine
from .filters import GlobPattern, PathFilter
from .models import TransferEntry, TransferPlan

__all__ = [
    "GlobPattern",
    "PathFilter",
    "TransferEngine",
    "TransferEntry",
    "TransferPlan",
]
