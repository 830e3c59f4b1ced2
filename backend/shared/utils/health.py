"""
Health Check Utilities.

Decorator and aggregation helpers so every dependency check reports the
same shape and never hangs the health endpoint.

Usage:
    from shared.utils.health import sync_health_check_with_timeout

    @sync_health_check_with_timeout(timeout=3.0, component="database")
    def check_database_health():
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))

    result = check_database_health()
    # HealthCheckResult(status=HEALTHY, component="database", latency_ms=1.8)
"""

from __future__ import annotations

import concurrent.futures
import functools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheckResult:
    status: HealthStatus
    component: str
    latency_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value}
        if self.latency_ms is not None:
            result["latency_ms"] = round(self.latency_ms, 2)
        if self.error:
            result["error"] = self.error
        if self.details:
            result["details"] = self.details
        return result


def sync_health_check_with_timeout(
    timeout: float = 5.0,
    component: str | None = None,
):
    """
    Wrap a blocking check so it returns a HealthCheckResult instead of raising.

    The check runs in a worker thread; if it does not finish within
    `timeout` seconds it is reported unhealthy.
    """

    def decorator(
        func: Callable[..., dict[str, Any] | None]
    ) -> Callable[..., HealthCheckResult]:
        comp_name = component or func.__name__.replace("check_", "").replace("_health", "")

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> HealthCheckResult:
            start_time = time.perf_counter()
            executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
            try:
                result = executor.submit(func, *args, **kwargs).result(timeout=timeout)
                return HealthCheckResult(
                    status=HealthStatus.HEALTHY,
                    component=comp_name,
                    latency_ms=(time.perf_counter() - start_time) * 1000,
                    details=result if isinstance(result, dict) else {},
                )
            except concurrent.futures.TimeoutError:
                logger.warning("Health check timeout", component=comp_name, timeout=timeout)
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=comp_name,
                    latency_ms=(time.perf_counter() - start_time) * 1000,
                    error=f"timeout after {timeout}s",
                )
            except Exception as e:
                logger.warning("Health check failed", component=comp_name, error=str(e))
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=comp_name,
                    latency_ms=(time.perf_counter() - start_time) * 1000,
                    error=str(e),
                )
            finally:
                executor.shutdown(wait=False)

        return wrapper
    return decorator


def aggregate_health_checks(results: list[HealthCheckResult]) -> dict[str, Any]:
    """
    Combine component results: "healthy" only when every component is.

    Returns:
        {"status": "healthy" | "degraded", "components": {name: {...}}}
    """
    components = {r.component: r.to_dict() for r in results}
    all_healthy = all(r.status == HealthStatus.HEALTHY for r in results)
    return {
        "status": HealthStatus.HEALTHY.value if all_healthy else HealthStatus.DEGRADED.value,
        "components": components,
    }
