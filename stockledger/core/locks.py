from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from stockledger.core.exceptions import StockBusyError

logger = logging.getLogger(__name__)


class ProductLockRegistry:
    """One mutex per product id; mutations on different products never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, product_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_id: int, *, timeout: float | None = None) -> Iterator[None]:
        lock = self._lock_for(product_id)
        acquired = lock.acquire(timeout=timeout if timeout is not None and timeout > 0 else -1)
        if not acquired:
            logger.warning("Stock lock timeout for product %s after %.1fs", product_id, timeout)
            raise StockBusyError(product_id, timeout)
        try:
            yield
        finally:
            lock.release()

    def forget(self, product_id: int) -> None:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is not None and not lock.locked():
                del self._locks[product_id]


product_locks = ProductLockRegistry()

__all__ = ["ProductLockRegistry", "product_locks"]
