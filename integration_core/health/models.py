"""
Health Check Models
===================
Pydantic models for per-service and aggregate health results.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import HEALTH_CHECK_TIMEOUT


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Roll-up order: the worst status wins
STATUS_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst_status(*statuses: HealthStatus) -> HealthStatus:
    """Most severe of ``statuses``; healthy when none are given."""
    if not statuses:
        return HealthStatus.HEALTHY
    return max(statuses, key=STATUS_SEVERITY.__getitem__)


class HealthCheckResult(BaseModel):
    status: HealthStatus
    service: str
    timestamp: float = Field(default_factory=time.time)
    response_time_ms: float = 0.0
    message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    dependencies: Optional[Dict[str, "HealthCheckResult"]] = None


HealthCheckResult.model_rebuild()


class HealthSummary(BaseModel):
    total: int = 0
    healthy: int = 0
    unhealthy: int = 0
    degraded: int = 0


class AggregateHealthResult(BaseModel):
    status: HealthStatus
    timestamp: float = Field(default_factory=time.time)
    services: Dict[str, HealthCheckResult] = Field(default_factory=dict)
    summary: HealthSummary = Field(default_factory=HealthSummary)


class HealthCheckConfig(BaseModel):
    """Per-service check settings. ``timeout`` is in seconds."""
    timeout: float = Field(default=HEALTH_CHECK_TIMEOUT, gt=0)
    retries: int = Field(default=0, ge=0)  # extra attempts for raising or timed-out checks
    dependencies: List[str] = Field(default_factory=list)
