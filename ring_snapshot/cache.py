"""Single-flight in-memory cache for the high-resolution frame.

Starting a live stream is slow and the camera supports only one at a time, so
concurrent requests share one pipeline run and a recent frame is served from
memory for `freshness_sec` seconds.
"""

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import ExtractionError
from .log import get_logger

log = get_logger("ring_snapshot.cache")


@dataclass(frozen=True)
class FrameCacheEntry:
    """A successfully extracted frame."""
    jpeg_bytes: bytes  # Non-empty JPEG
    captured_at: float  # Monotonic time the extraction completed


class SingleFlightFrameCache:
    """Serves fresh frames from memory and coalesces concurrent misses.

    At most one producer call runs at a time. Every caller that arrives while
    it runs receives that run's bytes or exception.

    The freshness window is fixed per cache instance (`freshness_sec`) rather
    than passed to each `get_frame()` call, since the proxy serves a single
    configured window.
    """

    def __init__(
        self,
        producer: Callable[[], bytes],
        freshness_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a cache.

        Args:
          producer: Blocking callable returning JPEG bytes or raising.
          freshness_sec: Max age of a served entry; 0 disables caching.
          clock: Monotonic time source.
        """
        self.producer = producer
        self.freshness_sec = float(freshness_sec)
        self.clock = clock
        self._lock = threading.Lock()  # Guards _entry and _inflight
        self._entry: Optional[FrameCacheEntry] = None
        self._inflight: Optional[Future] = None

    @property
    def in_flight(self) -> bool:
        """True while a producer run is active."""
        with self._lock:
            return self._inflight is not None

    def peek(self) -> Optional[FrameCacheEntry]:
        """Return the current entry regardless of age."""
        with self._lock:
            return self._entry

    def get_frame(self) -> bytes:
        """Return a fresh frame, running the producer at most once concurrently.

        Raises:
          Exception: whatever the producer raised, identically for all waiters.
        """
        with self._lock:
            entry = self._entry
            if entry is not None and self.clock() - entry.captured_at < self.freshness_sec:
                return entry.jpeg_bytes
            flight = self._inflight
            leader = flight is None
            if leader:
                flight = Future()
                self._inflight = flight

        if not leader:
            log.debug("Frame run in flight; waiting for its result")
            return flight.result()
        return self._lead(flight)

    def _lead(self, flight: Future) -> bytes:
        """Run the producer and publish its outcome to every waiter."""
        try:
            jpg = self.producer()
            if not jpg:
                raise ExtractionError("Frame producer returned no bytes")
        except BaseException as e:
            with self._lock:
                self._inflight = None
            flight.set_exception(e)
            raise
        entry = FrameCacheEntry(bytes(jpg), self.clock())
        with self._lock:
            self._entry = entry
            self._inflight = None
        flight.set_result(entry.jpeg_bytes)
        return entry.jpeg_bytes
