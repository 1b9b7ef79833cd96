"""
Scheduler data models
"""
import itertools
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict

from ...core.interfaces import Session

_order_ids = itertools.count(1)


class OrderKind(str, Enum):
    """Kind of work an order performs"""
    EXEC = "exec"
    PUT = "put"
    RECURSIVE_PUT = "recursive-put"
    GET = "get"
    RECURSIVE_GET = "recursive-get"
    LIST = "list"
    MKDIR = "mkdir"
    REALPATH = "realpath"
    REMOVE = "remove"
    CHMOD = "chmod"
    CHOWN = "chown"


# Runs one order on an acquired session and returns its result value
OrderHandler = Callable[[Session, "Order"], Any]


@dataclass(eq=False)
class Order:
    """
    One unit of queued work.

    ``result`` is completed exactly once by the scheduler, either with the
    handler's return value or with a RemoteError.
    """
    kind: OrderKind
    handler: OrderHandler
    payload: Dict[str, Any] = field(default_factory=dict)
    retry_on_reconnect: bool = False
    result: Future = field(default_factory=Future)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    id: int = field(default_factory=lambda: next(_order_ids))
    attempts: int = 0
    requeues: int = 0
    reconnects: int = 0
    not_before: float = 0.0  # time.monotonic() value
    started: bool = False

    @property
    def done(self) -> bool:
        return self.result.done()

    def describe(self) -> str:
        target = self.payload.get("cmd") or self.payload.get("src") or self.payload.get("path")
        return f"{self.kind.value}#{self.id}" + (f" {target}" if target else "")
