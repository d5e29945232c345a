"""
Resilience Patterns

Circuit breaker, retry with backoff, and timeout utilities
for building fault-tolerant services.
"""

from src.common.exceptions import CircuitOpenError, UpstreamTimeoutError
from src.common.resilience.backoff import BackoffSchedule
from src.common.resilience.circuit_breaker import CircuitBreaker, CircuitState, CircuitStats
from src.common.resilience.pipeline import PolicyChain, ResiliencePipeline
from src.common.resilience.retry import RetryConfig, RetryPolicy, retry_with_backoff
from src.common.resilience.timeout import TimeoutPolicy

__all__ = [
    "BackoffSchedule",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "CircuitStats",
    "PolicyChain",
    "ResiliencePipeline",
    "RetryConfig",
    "RetryPolicy",
    "TimeoutPolicy",
    "UpstreamTimeoutError",
    "retry_with_backoff",
]
