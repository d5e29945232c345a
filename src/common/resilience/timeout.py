"""
Per-attempt Timeout

Bounds a single attempt. The attempt is cancelled when the limit passes and
UpstreamTimeoutError is raised in its place. Nothing is retried here.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.common.exceptions import UpstreamTimeoutError

T = TypeVar("T")


class TimeoutPolicy:
    """
    Optimistic timeout as a composable policy.

    Example:
        policy = TimeoutPolicy(timeout_seconds=30, operation="overseerr")
        response = await policy.call(client.get, "/api/v1/status")
    """

    def __init__(self, timeout_seconds: float, operation: str = "upstream"):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")
        self.timeout_seconds = timeout_seconds
        self.operation = operation

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            # wait_for already cancelled the attempt
            raise UpstreamTimeoutError(self.operation, self.timeout_seconds) from e
