"""
Health Check Registry
=====================
Named health checks with a validated dependency graph.

Dependencies are checked before the service that declares them and their
status rolls up into the dependant's result by severity. Within one
``check()`` or ``check_all()`` invocation every service is evaluated once,
so a dependency shared by several dependants (a diamond) runs a single check.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union
import structlog

from .. import timing
from ..errors import NotFoundError, OperationTimeoutError, ValidationError
from .models import (
    AggregateHealthResult,
    HealthCheckConfig,
    HealthCheckResult,
    HealthStatus,
    HealthSummary,
    worst_status,
)

logger = structlog.get_logger(__name__)

CheckOutcome = Union[HealthCheckResult, Mapping[str, Any]]
HealthCheckFunction = Callable[[], Union[CheckOutcome, Awaitable[CheckOutcome]]]

# DFS colours
_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass
class HealthCheckEntry:
    service: str
    check: HealthCheckFunction
    config: HealthCheckConfig

    @property
    def dependencies(self) -> List[str]:
        return self.config.dependencies


def find_cycle(graph: Mapping[str, Iterable[str]], start: str) -> Optional[List[str]]:
    """
    Return a dependency cycle reachable from ``start`` as a path, or None.

    Nodes without an entry in ``graph`` are leaves.
    """
    colour: Dict[str, int] = {}
    path: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        colour[node] = _GREY
        path.append(node)
        for dep in graph.get(node, ()):
            state = colour.get(dep, _WHITE)
            if state == _GREY:
                return path[path.index(dep):] + [dep]
            if state == _WHITE:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        colour[node] = _BLACK
        return None

    return visit(start)


class HealthCheckRegistry:
    """
    Directory of named health checks.

    Example:
        registry = HealthCheckRegistry()
        registry.register("database", check_database, timeout=2.0)
        registry.register("api", check_api, dependencies=["database"])

        report = await registry.check_all()
    """

    def __init__(self):
        self._checks: Dict[str, HealthCheckEntry] = {}

    def register(
        self,
        service: str,
        check: HealthCheckFunction,
        config: Optional[HealthCheckConfig] = None,
        **overrides: Any,
    ) -> None:
        """
        Register ``check`` for ``service``.

        Raises:
            ValidationError: On a duplicate name, a self-dependency or a
                dependency cycle. Nothing is registered in that case.
        """
        if service in self._checks:
            raise ValidationError(f"Health check already registered for service: {service}")

        config = config or HealthCheckConfig()
        if overrides:
            config = HealthCheckConfig(**{**config.model_dump(), **overrides})
        # Own copy; unregister() edits dependency lists in place
        config = config.model_copy(update={"dependencies": list(dict.fromkeys(config.dependencies))})

        if service in config.dependencies:
            raise ValidationError(f"Service '{service}' cannot depend on itself")

        graph = {name: entry.dependencies for name, entry in self._checks.items()}
        graph[service] = config.dependencies
        cycle = find_cycle(graph, service)
        if cycle:
            raise ValidationError(
                f"Circular dependency detected: {' -> '.join(cycle)}",
                details={"cycle": cycle},
            )

        for dep in config.dependencies:
            if dep not in self._checks:
                logger.warning("health_dependency_not_registered", service=service, dependency=dep)

        self._checks[service] = HealthCheckEntry(service=service, check=check, config=config)
        logger.info("health_check_registered", service=service, dependencies=config.dependencies)

    def unregister(self, service: str) -> bool:
        """Remove ``service`` and drop it from every dependency list."""
        if self._checks.pop(service, None) is None:
            return False

        for entry in self._checks.values():
            if service in entry.config.dependencies:
                entry.config.dependencies.remove(service)

        logger.info("health_check_unregistered", service=service)
        return True

    def is_registered(self, service: str) -> bool:
        return service in self._checks

    def get_registered_services(self) -> List[str]:
        return list(self._checks)

    def get_dependencies(self, service: str) -> List[str]:
        entry = self._checks.get(service)
        if entry is None:
            raise NotFoundError("Health check", f"No health check registered for service: {service}")
        return list(entry.dependencies)

    async def check(self, service: str) -> HealthCheckResult:
        """
        Check ``service`` and, first, everything it depends on.

        Raises:
            NotFoundError: If ``service`` is not registered
        """
        if service not in self._checks:
            raise NotFoundError("Health check", f"No health check registered for service: {service}")
        return await self._evaluate(service, {})

    async def check_all(self) -> AggregateHealthResult:
        """Check every registered service concurrently and aggregate."""
        services = self.get_registered_services()
        cache: Dict[str, asyncio.Future] = {}
        timestamp = time.time()

        results = await asyncio.gather(*(self._evaluate_safely(name, cache) for name in services))
        by_service = dict(zip(services, results))

        statuses = [result.status for result in results]
        summary = HealthSummary(
            total=len(statuses),
            healthy=statuses.count(HealthStatus.HEALTHY),
            unhealthy=statuses.count(HealthStatus.UNHEALTHY),
            degraded=statuses.count(HealthStatus.DEGRADED),
        )
        aggregate = AggregateHealthResult(
            status=worst_status(*statuses),
            timestamp=timestamp,
            services=by_service,
            summary=summary,
        )

        logger.info(
            "health_check_completed",
            status=aggregate.status.value,
            total=summary.total,
            healthy=summary.healthy,
            degraded=summary.degraded,
            unhealthy=summary.unhealthy,
        )
        return aggregate

    # Evaluation

    async def _evaluate_safely(self, service: str, cache: Dict[str, asyncio.Future]) -> HealthCheckResult:
        try:
            return await self._evaluate(service, cache)
        except Exception as exc:
            logger.error("health_check_execution_failed", service=service, error=str(exc))
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                service=service,
                message=str(exc) or "Check execution failed",
            )

    async def _evaluate(self, service: str, cache: Dict[str, asyncio.Future]) -> HealthCheckResult:
        task = cache.get(service)
        if task is None:
            if service not in self._checks:
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    service=service,
                    message=f"No health check registered for service: {service}",
                )
            task = asyncio.ensure_future(self._run(self._checks[service], cache))
            cache[service] = task
        return await asyncio.shield(task)

    async def _run(self, entry: HealthCheckEntry, cache: Dict[str, asyncio.Future]) -> HealthCheckResult:
        start = time.perf_counter()

        dependencies = list(entry.dependencies)
        dependency_results: Dict[str, HealthCheckResult] = {}
        if dependencies:
            results = await asyncio.gather(*(self._evaluate(dep, cache) for dep in dependencies))
            dependency_results = dict(zip(dependencies, results))

        own = await self._execute_check(entry)

        update: Dict[str, Any] = {"response_time_ms": timing.elapsed_ms(start)}
        if dependency_results:
            update["status"] = worst_status(
                own.status, *(result.status for result in dependency_results.values())
            )
            update["dependencies"] = dependency_results
        result = own.model_copy(update=update)

        self._log_result(result)
        return result

    async def _execute_check(self, entry: HealthCheckEntry) -> HealthCheckResult:
        """Run the check function with timeout and retries; never raises."""
        attempts = entry.config.retries + 1
        message = "Unknown error"

        for attempt in range(1, attempts + 1):
            try:
                outcome = await timing.with_timeout(
                    self._invoke(entry.check),
                    entry.config.timeout,
                    f"Health check for {entry.service}",
                )
                return self._normalize(entry.service, outcome)
            except OperationTimeoutError:
                message = f"Health check timed out after {entry.config.timeout}s"
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__

            if attempt < attempts:
                logger.warning(
                    "health_check_retrying",
                    service=entry.service,
                    attempt=attempt,
                    error=message,
                )

        logger.error("health_check_failed", service=entry.service, error=message)
        return HealthCheckResult(
            status=HealthStatus.UNHEALTHY,
            service=entry.service,
            message=message,
        )

    @staticmethod
    async def _invoke(check: HealthCheckFunction) -> CheckOutcome:
        outcome = check()
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    @staticmethod
    def _normalize(service: str, outcome: CheckOutcome) -> HealthCheckResult:
        if isinstance(outcome, HealthCheckResult):
            return outcome
        if isinstance(outcome, Mapping):
            return HealthCheckResult.model_validate({"service": service, **outcome})
        raise TypeError(
            f"Health check for {service} returned {type(outcome).__name__}, "
            "expected HealthCheckResult or mapping"
        )

    @staticmethod
    def _log_result(result: HealthCheckResult) -> None:
        if result.status == HealthStatus.HEALTHY:
            logger.debug(
                "health_check_passed",
                service=result.service,
                response_time_ms=result.response_time_ms,
            )
        else:
            logger.warning(
                "health_check_not_healthy",
                service=result.service,
                status=result.status.value,
                response_time_ms=result.response_time_ms,
                health_message=result.message,
            )
