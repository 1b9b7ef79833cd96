"""
Connection pool domain module
"""
from .models import PoolConfig, PooledConnection
from .pool import ConnectionPool

__all__ = [
    "ConnectionPool",
    "PoolConfig",
    "PooledConnection",
]
