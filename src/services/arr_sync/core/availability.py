"""
Availability flag shared by webhook-triggered calls and the monitor.
"""

from __future__ import annotations

import threading


class AvailabilityFlag:
    """Lock-guarded boolean; starts available, last writer wins."""

    def __init__(self, initial: bool = True):
        self._lock = threading.Lock()
        self._value = initial

    def get(self) -> bool:
        with self._lock:
            return self._value

    def set(self, value: bool) -> None:
        with self._lock:
            self._value = value

    def __bool__(self) -> bool:
        return self.get()

    def __repr__(self) -> str:
        return f"AvailabilityFlag({self.get()})"
