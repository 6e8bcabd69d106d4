"""
Per-device critical sections

Serialises merge / divergence / enqueue decisions for one device id
between the reconciliation engine and the write path. Locks are held only
around database work, never around vendor network calls.
"""

import threading
from contextlib import contextmanager
from typing import Dict


class DeviceLockRegistry:
    """Hands out one lock per device id"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, device: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(device)
            if lock is None:
                lock = threading.Lock()
                self._locks[device] = lock
            return lock

    @contextmanager
    def hold(self, device: str):
        lock = self.lock_for(device)
        with lock:
            yield


# Shared by the engine and the write path in one process
device_locks = DeviceLockRegistry()
