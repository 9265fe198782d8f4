"""
Scratch buffer pool used by batched pooling.

Each batch item borrows its own float32 buffer through ``acquire()`` and
hands it back when the ``with`` block exits, whether it exits normally, with
an exception, or through cancellation.  Buffers are never shared between
items that run at the same time.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

import numpy as np

logger = logging.getLogger(__name__)


class BufferPool:
    """Thread-safe pool of reusable 1-D float32 buffers keyed by length."""

    def __init__(self, max_per_size: int = 64):
        self._max_per_size = max_per_size
        self._free: Dict[int, List[np.ndarray]] = {}
        self._lock = threading.Lock()
        self._outstanding = 0

    @property
    def outstanding(self) -> int:
        """Number of buffers currently lent out."""
        with self._lock:
            return self._outstanding

    def rent(self, size: int) -> np.ndarray:
        with self._lock:
            self._outstanding += 1
            bucket = self._free.get(size)
            if bucket:
                return bucket.pop()
        return np.empty(size, dtype=np.float32)

    def give_back(self, buffer: np.ndarray) -> None:
        with self._lock:
            self._outstanding -= 1
            bucket = self._free.setdefault(buffer.shape[0], [])
            if len(bucket) < self._max_per_size:
                bucket.append(buffer)

    @contextmanager
    def acquire(self, size: int) -> Iterator[np.ndarray]:
        buffer = self.rent(size)
        try:
            yield buffer
        finally:
            self.give_back(buffer)
