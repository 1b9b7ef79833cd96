"""
Telemetry and metrics collection
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import threading
import time


@dataclass
class Metric:
    """Single metric value"""
    name: str
    value: float
    timestamp: float = field(default_factory=time.time)
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class Event:
    """Event record"""
    name: str
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)


class Telemetry:
    """Telemetry collector, one per client; safe to use from worker threads"""

    def __init__(self, max_records: int = 10000):
        self._metrics: list[Metric] = []
        self._events: list[Event] = []
        self._counters: Dict[str, int] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a metric"""
        with self._lock:
            self._metrics.append(Metric(name=name, value=value, tags=tags or {}))
            del self._metrics[:-self._max_records]

    def record_event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record an event and bump its counter"""
        with self._lock:
            self._events.append(Event(name=name, metadata=metadata or {}))
            del self._events[:-self._max_records]
            self._counters[name] = self._counters.get(name, 0) + 1

    def count(self, name: str) -> int:
        """Number of events recorded under name"""
        with self._lock:
            return self._counters.get(name, 0)

    def get_metrics(self) -> list[Metric]:
        """Get all recorded metrics"""
        with self._lock:
            return self._metrics.copy()

    def get_events(self) -> list[Event]:
        """Get all recorded events"""
        with self._lock:
            return self._events.copy()
