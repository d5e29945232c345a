"""
Shared building blocks for ArrSync services.

- exceptions: structured error hierarchy
- resilience: retry, circuit breaker and timeout policies
- timing: cancellable sleeps and periodic timers
- telemetry: OpenTelemetry setup and metrics
- logging: log sanitization
"""
