"""
eventline ops - Operational extension for eventline

Provides reusable events and middleware for the cross-cutting concerns
most production chains need.

Features:
- Function, validation, fan-out and nested-chain events
- Logging, profiling and error-containment middleware
- Timeouts, circuit breaking and caching
- JSONL audit logs and metrics export
"""

__version__ = "1.0.0"
__author__ = "eventline Contributors"

from .events import (
    FunctionEvent,
    RequireKeysEvent,
    FanOutEvent,
    SubChainEvent,
)

from .middleware import (
    LoggingMiddleware,
    PerformanceProfilerMiddleware,
    ErrorHandlingMiddleware,
    TimeoutMiddleware,
    CircuitBreakerMiddleware,
    CircuitState,
    CacheMiddleware,
    AuditLogMiddleware,
    MetricsCollectorMiddleware,
)

__all__ = [
    # Events
    'FunctionEvent',
    'RequireKeysEvent',
    'FanOutEvent',
    'SubChainEvent',

    # Middleware
    'LoggingMiddleware',
    'PerformanceProfilerMiddleware',
    'ErrorHandlingMiddleware',
    'TimeoutMiddleware',
    'CircuitBreakerMiddleware',
    'CircuitState',
    'CacheMiddleware',
    'AuditLogMiddleware',
    'MetricsCollectorMiddleware',
]
