"""
Connection pool

Owns at most ``max_connection`` sessions and hands out the least busy one.
Sessions are connected lazily on acquisition.
"""
import threading
import time
from typing import Callable, List, Optional, Tuple

from ...core.exceptions import ConnectionError
from ...core.interfaces import Session, SessionFactory
from ...core.logging import get_logger
from ...core.telemetry import Telemetry
from ..classify import classify_connect, describe
from .models import PoolConfig, PooledConnection

logger = get_logger(__name__)


class ConnectionPool:
    """
    Bounded pool of sessions.

    Selection order for ``get_connection``:
    1. the first idle connection
    2. a new connection while below ``max_connection``
    3. the connection with the lowest busy count (lowest index on ties)
    """

    def __init__(
        self,
        factory: SessionFactory,
        config: Optional[PoolConfig] = None,
        telemetry: Optional[Telemetry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize pool.

        Args:
            factory: Creates unconnected sessions
            config: Pool options (defaults if None)
            telemetry: Collector for connect / reconnect events
            sleep: Delay function between connect retries
        """
        self.factory = factory
        self.config = config or PoolConfig()
        self.telemetry = telemetry or Telemetry()
        self._sleep = sleep
        self._connections: List[PooledConnection] = []
        self._lock = threading.Lock()

    # ============================================================
    # State
    # ============================================================

    @property
    def size(self) -> int:
        """Number of pooled sessions, connected or not"""
        with self._lock:
            return len(self._connections)

    @property
    def connections(self) -> List[PooledConnection]:
        with self._lock:
            return list(self._connections)

    def update_config(self, config: PoolConfig) -> None:
        """Apply new options; surplus idle connections are dropped"""
        with self._lock:
            self.config = config
            dropped = self._trim_locked()
        self._close_all(dropped)

    # ============================================================
    # Acquire / release
    # ============================================================

    def get_connection(self) -> PooledConnection:
        """
        Pick a connection, mark it busy and make sure it is connected.

        Returns:
            Connected PooledConnection; call ``release`` when done

        Raises:
            ConnectionError: If the session could not be connected
        """
        conn, _ = self.acquire()
        return conn

    def acquire(self) -> Tuple[PooledConnection, Session]:
        """
        Like ``get_connection``, also returning the session that was verified.

        The slot may get a new session through ``invalidate`` at any time; the
        returned session is the one this caller must run on.
        """
        with self._lock:
            conn = self._select_locked()
            conn.busy_count += 1

        try:
            session = self._ensure_connected(conn)
        except BaseException:
            self.release(conn)
            raise
        return conn, session

    def release(self, conn: PooledConnection) -> None:
        """Drop one busy mark, never below zero"""
        with self._lock:
            conn.busy_count = max(0, conn.busy_count - 1)
            dropped = self._trim_locked()
        self._close_all(dropped)

    def _select_locked(self) -> PooledConnection:
        for conn in self._connections:
            if conn.is_idle:
                return conn

        if len(self._connections) < self.config.max_connection:
            conn = PooledConnection(
                session=self.factory.create(),
                index=len(self._connections),
            )
            self._connections.append(conn)
            logger.debug(f"pool: created session #{conn.index}")
            return conn

        return min(self._connections, key=lambda c: (c.busy_count, c.index))

    def _trim_locked(self) -> List[PooledConnection]:
        """Remove idle trailing slots beyond max_connection"""
        dropped: List[PooledConnection] = []
        while (
            len(self._connections) > self.config.max_connection
            and self._connections[-1].is_idle
        ):
            dropped.append(self._connections.pop())
        return dropped

    # ============================================================
    # Connect
    # ============================================================

    def _ensure_connected(self, conn: PooledConnection) -> Session:
        with conn.lock:
            if conn.session.is_connected():
                return conn.session

            attempts = self.config.connection_retry + 1
            last_error: Optional[Exception] = None
            reason = "connection failure"
            code: Optional[str] = None

            for attempt in range(1, attempts + 1):
                session = conn.session
                try:
                    session.connect()
                except Exception as e:
                    info = describe(e)
                    classification = classify_connect(info)
                    self._close_quietly(session)

                    if classification.is_fatal:
                        logger.error(f"pool: connect failed ({classification.reason})")
                        raise ConnectionError(
                            f"Failed to connect: {classification.reason}",
                            reason=classification.reason,
                            category=classification.category.value,
                            code=info.code,
                        ) from e

                    last_error, reason, code = e, classification.reason, info.code
                    logger.debug(
                        f"pool: connect attempt {attempt}/{attempts} "
                        f"on session #{conn.index} failed: {reason}"
                    )
                    if attempt < attempts:
                        self._sleep(self.config.connection_retry_delay)
                    continue

                conn.connected_at = time.time()
                self.telemetry.record_event("connect", {"index": conn.index, "attempts": attempt})
                logger.debug(f"pool: session #{conn.index} connected")
                return session

            logger.error(f"pool: giving up after {attempts} connect attempts ({reason})")
            raise ConnectionError(
                f"Failed to connect after {attempts} attempts: {reason}",
                reason=reason,
                category="connect-transient",
                code=code,
            ) from last_error

    # ============================================================
    # Reconnect / shutdown
    # ============================================================

    def invalidate(self, conn: PooledConnection, session: Optional[Session] = None) -> bool:
        """
        Close the session of conn and put a fresh unconnected one in its place.

        Args:
            conn: Pooled connection whose session was lost
            session: The session the caller saw fail; if conn already holds a
                different one it has been replaced and nothing is done

        Returns:
            True if the session was replaced
        """
        with self._lock:
            old = conn.session
            if session is not None and old is not session:
                return False
            if conn not in self._connections:
                return False
            conn.session = self.factory.create()
            conn.connected_at = None

        self._close_quietly(old)
        self.telemetry.record_event("reconnect", {"index": conn.index})
        logger.warning(f"pool: session #{conn.index} invalidated, will reconnect on next use")
        return True

    def disconnect_all(self) -> int:
        """Close every session and empty the pool; returns how many were closed"""
        with self._lock:
            connections = self._connections
            self._connections = []
        self._close_all(connections)
        if connections:
            logger.debug(f"pool: closed {len(connections)} session(s)")
        return len(connections)

    def _close_all(self, connections: List[PooledConnection]) -> None:
        for conn in connections:
            self._close_quietly(conn.session)

    @staticmethod
    def _close_quietly(session: Session) -> None:
        try:
            session.close()
        except Exception as e:
            logger.debug(f"pool: error while closing session: {e}")
