"""
Order scheduler

A single pump thread takes orders from the front of the queue, acquires a
pooled connection for each and hands the pair to a worker thread. Workers
complete the order's future or put the order back at the front of the queue.
"""
import threading
import time
from collections import deque
from concurrent.futures import CancelledError, ThreadPoolExecutor
from typing import Deque, List, Optional

from ...core.exceptions import (
    CommandError,
    ConnectionError,
    RemoteError,
    SessionLostError,
    TransferError,
)
from ...core.interfaces import Session
from ...core.logging import get_logger
from ...core.telemetry import Telemetry
from ..classify import Classification, ErrorCategory, ErrorInfo, classify, describe
from ..pool import ConnectionPool, PoolConfig, PooledConnection
from .models import Order, OrderKind

logger = get_logger(__name__)

_CONNECT_CATEGORIES = (ErrorCategory.CONNECT_FATAL, ErrorCategory.CONNECT_TRANSIENT)


class Scheduler:
    """FIFO order queue dispatched onto a ConnectionPool"""

    def __init__(
        self,
        pool: ConnectionPool,
        config: Optional[PoolConfig] = None,
        telemetry: Optional[Telemetry] = None,
    ):
        """
        Initialize scheduler and start the pump thread.

        Args:
            pool: Connection pool orders run on
            config: Retry / concurrency options (the pool's if None)
            telemetry: Collector for dispatch / requeue events
        """
        self.pool = pool
        self.config = config or pool.config
        self.telemetry = telemetry or pool.telemetry

        self._queue: Deque[Order] = deque()
        self._cond = threading.Condition()
        self._num_running = 0
        self._max_running = self.config.effective_max_running
        self._stopped = False

        self._workers = self._max_running
        self._executor = ThreadPoolExecutor(
            max_workers=self._workers,
            thread_name_prefix="remotepool-worker",
        )
        self._pump_thread = threading.Thread(
            target=self._pump,
            name="remotepool-pump",
            daemon=True,
        )
        self._pump_thread.start()

    # ============================================================
    # State
    # ============================================================

    @property
    def num_running(self) -> int:
        with self._cond:
            return self._num_running

    @property
    def max_running(self) -> int:
        return self._max_running

    def pending(self) -> List[Order]:
        """Snapshot of queued orders, head first"""
        with self._cond:
            return list(self._queue)

    def update_config(self, config: PoolConfig) -> None:
        """Apply new retry / concurrency options to future dispatches"""
        with self._cond:
            self.config = config
            max_running = config.effective_max_running
            if max_running > self._workers:
                # Executor size is fixed at creation; replace it for growth
                old = self._executor
                self._workers = max_running
                self._executor = ThreadPoolExecutor(
                    max_workers=max_running,
                    thread_name_prefix="remotepool-worker",
                )
                old.shutdown(wait=False)
            self._max_running = max_running
            self._cond.notify_all()

    # ============================================================
    # Queue operations
    # ============================================================

    def enqueue(self, order: Order) -> Order:
        """
        Append an order to the queue.

        Raises:
            ConnectionError: If the scheduler has been shut down
        """
        with self._cond:
            if self._stopped:
                raise ConnectionError("Client is closed", reason="client closed")
            self._queue.append(order)
            self._cond.notify_all()
        logger.debug(f"queued {order.describe()}")
        return order

    def requeue_front(self, order: Order) -> None:
        """Put an order back at the head of the queue"""
        with self._cond:
            if not self._stopped:
                self._queue.appendleft(order)
                self._cond.notify_all()
                return
        self._abort(order, ConnectionError("Client is closed", reason="client closed"))

    def cancel(self, order: Order) -> bool:
        """
        Cancel an order.

        A queued order is removed and its future cancelled. A dispatched order
        gets its cancel event set; transfers stop at the next chunk.

        Returns:
            True if the order will not complete normally
        """
        with self._cond:
            if order in self._queue:
                self._queue.remove(order)
                removed = True
            else:
                removed = False

        if removed:
            self._abort(order, CancelledError())
            logger.debug(f"cancelled queued {order.describe()}")
            return True

        order.cancel_event.set()
        return not order.done

    def shutdown(self, wait: bool = True) -> None:
        """Stop the pump and fail every queued order"""
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            pending = list(self._queue)
            self._queue.clear()
            self._cond.notify_all()

        for order in pending:
            self._abort(order, ConnectionError("Client is closed", reason="client closed"))

        if threading.current_thread() is not self._pump_thread:
            self._pump_thread.join()
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _abort(order: Order, error: BaseException) -> None:
        """Complete an order that never ran to completion"""
        if order.done:
            return
        if isinstance(error, CancelledError) and order.result.cancel():
            return
        order.result.set_exception(error)

    # ============================================================
    # Pump
    # ============================================================

    def _next_order(self) -> Optional[Order]:
        """Wait until the head order may be dispatched; None once stopped"""
        with self._cond:
            while not self._stopped:
                if not self._queue or self._num_running >= self._max_running:
                    self._cond.wait()
                    continue

                # A requeued head keeps its place while it backs off
                head = self._queue[0]
                delay = head.not_before - time.monotonic()
                if delay > 0:
                    self._cond.wait(delay)
                    continue

                self._queue.popleft()
                self._num_running += 1
                return head
            return None

    def _pump(self) -> None:
        while True:
            order = self._next_order()
            if order is None:
                return

            if not order.started:
                if not order.result.set_running_or_notify_cancel():
                    self._finish(None)
                    continue
                order.started = True

            try:
                conn, session = self.pool.acquire()
            except RemoteError as e:
                self._finish(None)
                order.result.set_exception(e)
                continue
            except Exception as e:
                self._finish(None)
                error = ConnectionError(f"Failed to acquire connection: {e}", reason=str(e))
                error.__cause__ = e
                order.result.set_exception(error)
                continue

            self.telemetry.record_event(
                "dispatch", {"order": order.id, "kind": order.kind.value, "connection": conn.index}
            )
            logger.debug(f"dispatch {order.describe()} on session #{conn.index}")
            try:
                self._executor.submit(self._run, order, conn, session)
            except RuntimeError as e:
                # executor already shut down
                self.pool.release(conn)
                self._finish(None)
                self._abort(order, ConnectionError(f"Client is closed: {e}", reason="client closed"))

    def _finish(self, conn: Optional[PooledConnection]) -> None:
        if conn is not None:
            self.pool.release(conn)
        with self._cond:
            self._num_running -= 1
            self._cond.notify_all()

    # ============================================================
    # Worker
    # ============================================================

    def _run(self, order: Order, conn: PooledConnection, session: Session) -> None:
        if conn.session is not session:
            # Invalidated after acquisition; the order never reached the transport
            logger.debug(f"{order.describe()} redispatched, session #{conn.index} was replaced")
            self.requeue_front(order)
            self._finish(conn)
            return

        order.attempts += 1
        started = time.monotonic()
        try:
            value = order.handler(session, order)
        except Exception as e:
            self._handle_failure(order, conn, session, e)
        else:
            self.telemetry.record_metric(
                "order.duration",
                time.monotonic() - started,
                tags={"kind": order.kind.value},
            )
            order.result.set_result(value)
        finally:
            self._finish(conn)

    def _handle_failure(
        self,
        order: Order,
        conn: PooledConnection,
        session: Session,
        exc: Exception,
    ) -> None:
        info = describe(exc)
        classification = classify(info)

        if classification.category is ErrorCategory.EXEC_TRANSIENT_BUSY:
            order.requeues += 1
            order.not_before = time.monotonic() + self.config.exec_retry_delay
            self.telemetry.record_event("requeue", {"order": order.id, "reason": classification.reason})
            logger.debug(f"{order.describe()} requeued: {classification.reason}")
            self.requeue_front(order)
            return

        if classification.category is ErrorCategory.NEEDS_RECONNECT:
            self.pool.invalidate(conn, session)
            if order.retry_on_reconnect and order.reconnects < self.config.reconnect_retry:
                order.reconnects += 1
                logger.warning(
                    f"{order.describe()} lost its session ({classification.reason}), "
                    f"retry {order.reconnects}/{self.config.reconnect_retry}"
                )
                self.requeue_front(order)
                return

            logger.error(f"{order.describe()} lost its session: {classification.reason}")
            error = SessionLostError(
                f"Session lost during {order.kind.value}: {classification.reason}",
                reason=classification.reason,
                category=classification.category.value,
                code=info.code,
            )
            error.__cause__ = exc
            order.result.set_exception(error)
            return

        if order.cancel_event.is_set():
            order.result.set_exception(CancelledError())
            return

        order.result.set_exception(self._to_error(order, exc, info, classification))

    @staticmethod
    def _to_error(
        order: Order,
        exc: Exception,
        info: ErrorInfo,
        classification: Classification,
    ) -> RemoteError:
        """Map a classified failure to the RemoteError surfaced to the caller"""
        category = classification.category.value
        if isinstance(exc, RemoteError):
            exc.category = exc.category or category
            exc.code = exc.code or info.code
            return exc

        if classification.category in _CONNECT_CATEGORIES:
            error_class = ConnectionError
        elif order.kind is OrderKind.EXEC:
            error_class = CommandError
        else:
            error_class = TransferError

        error = error_class(
            f"{order.describe()} failed: {info.message}",
            reason=classification.reason,
            category=category,
            code=info.code,
        )
        error.__cause__ = exc
        return error
