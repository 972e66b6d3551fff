import threading
import time
from typing import Callable

from loguru import logger


class DeduplicationGate:
    """Rejects a channel message id that is still in flight.

    A marker expires ``window`` seconds after it was inserted whether or not
    processing finished, so a crashed pipeline never pins an id forever.
    Expiry is checked lazily against the stored insertion time.
    """

    def __init__(self, window: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._in_flight: dict[str, float] = {}
        self._lock = threading.Lock()

    def admit(self, message_id: str) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if message_id in self._in_flight:
                logger.debug("Duplicate delivery of {} dropped", message_id)
                return False
            self._in_flight[message_id] = now
            return True

    def release(self, message_id: str) -> None:
        with self._lock:
            self._in_flight.pop(message_id, None)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [mid for mid, at in self._in_flight.items() if now - at >= self.window]
        for mid in expired:
            del self._in_flight[mid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_flight)
