"""
Health Checks
=============
Health check registry with dependency-aware status roll-up.
"""

from .models import (
    AggregateHealthResult,
    HealthCheckConfig,
    HealthCheckResult,
    HealthStatus,
    HealthSummary,
    worst_status,
)
from .registry import HealthCheckEntry, HealthCheckFunction, HealthCheckRegistry, find_cycle

__all__ = [
    # Models
    "AggregateHealthResult",
    "HealthCheckConfig",
    "HealthCheckResult",
    "HealthStatus",
    "HealthSummary",
    "worst_status",
    # Registry
    "HealthCheckEntry",
    "HealthCheckFunction",
    "HealthCheckRegistry",
    "find_cycle",
]
