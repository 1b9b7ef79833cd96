"""
Output sinks for remote command stdout / stderr

A sink is any callable taking one decoded text chunk. Each exec order gets its
own sinks, nothing is shared between orders.
"""
import queue
import threading
from collections import deque
from typing import Iterator, List, Optional

from .constants import OUTPUT_TAIL_LENGTH


class TailBuffer:
    """Keeps the last ``maxlen`` chunks of output"""

    def __init__(self, maxlen: int = OUTPUT_TAIL_LENGTH) -> None:
        self._chunks: deque[str] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, data: str) -> None:
        with self._lock:
            self._chunks.append(data)

    @property
    def chunks(self) -> List[str]:
        with self._lock:
            return list(self._chunks)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class QueueSink:
    """
    Forwards chunks into a bounded queue.

    ``put`` blocks while the queue is full, so a slow consumer slows the
    reading of the remote channel instead of growing memory. ``close`` is
    called by the client once the command has finished and enqueues ``None``
    as end marker.
    """

    def __init__(self, maxsize: int = 64, put_timeout: Optional[float] = None) -> None:
        self.queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=maxsize)
        self._put_timeout = put_timeout

    def __call__(self, data: str) -> None:
        self.queue.put(data, timeout=self._put_timeout)

    def close(self) -> None:
        self.queue.put(None, timeout=self._put_timeout)

    def __iter__(self) -> Iterator[str]:
        while True:
            item = self.queue.get()
            if item is None:
                return
            yield item
