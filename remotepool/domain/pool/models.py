"""
Connection pool data models
"""
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...core.constants import (
    DEFAULT_CONNECTION_RETRY,
    DEFAULT_CONNECTION_RETRY_DELAY,
    DEFAULT_EXEC_RETRY_DELAY,
    DEFAULT_MAX_CONNECTION,
    DEFAULT_RECONNECT_RETRY,
    RUNNING_PER_CONNECTION,
)
from ...core.exceptions import ConfigError
from ...core.interfaces import Session


@dataclass
class PoolConfig:
    """Pool and scheduler tuning, delays in seconds"""
    max_connection: int = DEFAULT_MAX_CONNECTION
    connection_retry: int = DEFAULT_CONNECTION_RETRY
    connection_retry_delay: float = DEFAULT_CONNECTION_RETRY_DELAY
    exec_retry_delay: float = DEFAULT_EXEC_RETRY_DELAY
    reconnect_retry: int = DEFAULT_RECONNECT_RETRY
    max_running: Optional[int] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Normalize values in place.

        Raises:
            ConfigError: If max_connection or max_running is below 1
        """
        try:
            self.max_connection = int(self.max_connection)
            self.connection_retry = max(0, int(self.connection_retry))
            self.reconnect_retry = max(0, int(self.reconnect_retry))
            self.connection_retry_delay = max(0.0, float(self.connection_retry_delay))
            self.exec_retry_delay = max(0.0, float(self.exec_retry_delay))
            if self.max_running is not None:
                self.max_running = int(self.max_running)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid pool option: {e}") from e

        if self.max_connection < 1:
            raise ConfigError(f"max_connection must be >= 1, got {self.max_connection}")
        if self.max_running is not None and self.max_running < 1:
            raise ConfigError(f"max_running must be >= 1, got {self.max_running}")

    @property
    def effective_max_running(self) -> int:
        if self.max_running is not None:
            return self.max_running
        return self.max_connection * RUNNING_PER_CONNECTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "max_connection": self.max_connection,
            "connection_retry": self.connection_retry,
            "connection_retry_delay": self.connection_retry_delay,
            "exec_retry_delay": self.exec_retry_delay,
            "reconnect_retry": self.reconnect_retry,
            "max_running": self.max_running,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolConfig":
        """Create from dictionary, unknown keys are ignored"""
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


@dataclass(eq=False)
class PooledConnection:
    """One pool slot; the session inside is replaced on forced reconnect"""
    session: Session
    index: int
    busy_count: int = 0
    connected_at: Optional[float] = None
    # serializes connect() on this slot
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def is_idle(self) -> bool:
        return self.busy_count == 0
