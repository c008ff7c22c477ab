"""In-process metrics for the trust pack endpoint.

Three kinds of counters:
- upstream calls per endpoint (outcome, latency, status class)
- cache reads and writes per namespace (``pools``, ``vault_yield``)
- refresh status per dataset (last success, last error, record count)

The collector is passed into the feed client and the engine; ``get_metrics()``
hands out the process-wide instance when none is given.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

import structlog

logger = structlog.get_logger()

MAX_RECENT_ERRORS = 50
ERROR_RATE_WARNING = 0.1


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _ratio(part: int, whole: int, empty: float = 0.0) -> float:
    return part / whole if whole else empty


@dataclass
class UpstreamStats:
    """Call outcomes for one upstream endpoint."""
    endpoint: str
    call_count: int = 0
    success_count: int = 0
    timeout_count: int = 0
    rate_limit_count: int = 0
    server_error_count: int = 0
    latency_ms_total: float = 0.0
    last_call_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    @property
    def error_count(self) -> int:
        return self.call_count - self.success_count

    def as_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "call_count": self.call_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "timeout_count": self.timeout_count,
            "rate_limit_count": self.rate_limit_count,
            "server_error_count": self.server_error_count,
            "avg_latency_ms": round(_ratio(self.latency_ms_total, self.call_count), 2),
            "success_rate": round(_ratio(self.success_count, self.call_count, empty=1.0), 4),
            "last_call_at": _iso(self.last_call_at),
            "last_error": self.last_error,
            "last_error_at": _iso(self.last_error_at),
        }


@dataclass
class CacheStats:
    namespace: str
    hit_count: int = 0
    miss_count: int = 0
    set_count: int = 0
    stale_served_count: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "set_count": self.set_count,
            "stale_served_count": self.stale_served_count,
            "hit_rate": round(_ratio(self.hit_count, self.hit_count + self.miss_count), 4),
        }


@dataclass
class RefreshStatus:
    """Outcome of the latest refreshes of one dataset."""
    dataset: str
    stale_after_minutes: int = 30
    record_count: int = 0
    last_success_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def age_minutes(self, now: datetime) -> Optional[float]:
        if self.last_success_at is None:
            return None
        return (now - self.last_success_at).total_seconds() / 60

    def is_stale(self, now: datetime) -> bool:
        age = self.age_minutes(now)
        return age is None or age > self.stale_after_minutes

    def as_dict(self, now: datetime) -> Dict[str, Any]:
        age = self.age_minutes(now)
        return {
            "dataset": self.dataset,
            "record_count": self.record_count,
            "last_success_at": _iso(self.last_success_at),
            "last_attempt_at": _iso(self.last_attempt_at),
            "last_error": self.last_error,
            "last_error_at": _iso(self.last_error_at),
            "age_minutes": round(age, 2) if age is not None else None,
            "is_stale": self.is_stale(now),
            "stale_after_minutes": self.stale_after_minutes,
        }


@dataclass
class MetricsCollector:
    """Counters behind ``GET /api/v1/trust-pack``."""
    upstream: Dict[str, UpstreamStats] = field(default_factory=dict)
    caches: Dict[str, CacheStats] = field(default_factory=dict)
    refreshes: Dict[str, RefreshStatus] = field(default_factory=dict)
    recent_errors: Deque[Dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS)
    )
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    # ==================== Upstream ====================

    async def record_api_call(
        self,
        endpoint: str,
        latency_ms: float,
        success: bool,
        status_code: Optional[int] = None,
        error_message: Optional[str] = None,
        timed_out: bool = False,
    ) -> None:
        now = datetime.now(timezone.utc)
        async with self._lock:
            stats = self.upstream.setdefault(endpoint, UpstreamStats(endpoint))
            stats.call_count += 1
            stats.latency_ms_total += latency_ms
            stats.last_call_at = now

            if success:
                stats.success_count += 1
            else:
                stats.last_error = error_message
                stats.last_error_at = now
                if timed_out:
                    stats.timeout_count += 1
                elif status_code == 429:
                    stats.rate_limit_count += 1
                elif status_code is not None and status_code >= 500:
                    stats.server_error_count += 1
                self.recent_errors.append({
                    "timestamp": now.isoformat(),
                    "endpoint": endpoint,
                    "status_code": status_code,
                    "error": error_message,
                })

        if success:
            logger.debug("Upstream call ok", endpoint=endpoint, latency_ms=round(latency_ms, 2))
        else:
            logger.warning(
                "Upstream call failed",
                endpoint=endpoint,
                latency_ms=round(latency_ms, 2),
                status_code=status_code,
                timed_out=timed_out,
                error=(error_message or "")[:200],
            )

    def get_api_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: s.as_dict() for name, s in self.upstream.items()}

    def get_api_summary(self) -> Dict[str, Any]:
        calls = sum(s.call_count for s in self.upstream.values())
        errors = sum(s.error_count for s in self.upstream.values())
        return {
            "total_calls": calls,
            "total_errors": errors,
            "total_timeouts": sum(s.timeout_count for s in self.upstream.values()),
            "total_rate_limits": sum(s.rate_limit_count for s in self.upstream.values()),
            "error_rate": round(_ratio(errors, calls), 4),
        }

    # ==================== Caches ====================

    async def _bump_cache(self, namespace: str, counter: str) -> None:
        async with self._lock:
            stats = self.caches.setdefault(namespace, CacheStats(namespace))
            setattr(stats, counter, getattr(stats, counter) + 1)

    async def record_cache_hit(self, namespace: str) -> None:
        await self._bump_cache(namespace, "hit_count")

    async def record_cache_miss(self, namespace: str) -> None:
        await self._bump_cache(namespace, "miss_count")

    async def record_cache_set(self, namespace: str) -> None:
        await self._bump_cache(namespace, "set_count")

    async def record_stale_served(self, namespace: str) -> None:
        await self._bump_cache(namespace, "stale_served_count")

    def get_cache_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: s.as_dict() for name, s in self.caches.items()}

    def get_cache_summary(self) -> Dict[str, Any]:
        hits = sum(s.hit_count for s in self.caches.values())
        misses = sum(s.miss_count for s in self.caches.values())
        return {
            "total_hits": hits,
            "total_misses": misses,
            "overall_hit_rate": round(_ratio(hits, hits + misses), 4),
            "stale_served": sum(s.stale_served_count for s in self.caches.values()),
        }

    # ==================== Refreshes ====================

    def _refresh(self, dataset: str, stale_after_minutes: int) -> RefreshStatus:
        status = self.refreshes.setdefault(dataset, RefreshStatus(dataset))
        status.stale_after_minutes = stale_after_minutes
        return status

    async def record_refresh_success(
        self,
        dataset: str,
        record_count: int,
        stale_after_minutes: int = 30,
    ) -> None:
        now = datetime.now(timezone.utc)
        async with self._lock:
            status = self._refresh(dataset, stale_after_minutes)
            status.record_count = record_count
            status.last_success_at = now
            status.last_attempt_at = now
        logger.debug("Dataset refreshed", dataset=dataset, record_count=record_count)

    async def record_refresh_failure(
        self,
        dataset: str,
        error_message: str,
        stale_after_minutes: int = 30,
    ) -> None:
        now = datetime.now(timezone.utc)
        async with self._lock:
            status = self._refresh(dataset, stale_after_minutes)
            status.last_attempt_at = now
            status.last_error = error_message
            status.last_error_at = now
        logger.warning("Dataset refresh failed", dataset=dataset, error=error_message)

    def get_refresh_status(self) -> Dict[str, Dict[str, Any]]:
        now = datetime.now(timezone.utc)
        return {name: s.as_dict(now) for name, s in self.refreshes.items()}

    # ==================== Trust Pack ====================

    def overall_health(self) -> Dict[str, Any]:
        """healthy / degraded / critical from error rate, staleness and stale reads."""
        now = datetime.now(timezone.utc)
        issues = []

        error_rate = self.get_api_summary()["error_rate"]
        if error_rate > ERROR_RATE_WARNING:
            issues.append(f"Upstream error rate {error_rate:.0%}")

        stale = sorted(name for name, s in self.refreshes.items() if s.is_stale(now))
        if stale:
            issues.append(f"Stale datasets: {', '.join(stale)}")

        stale_served = self.get_cache_summary()["stale_served"]
        if stale_served:
            issues.append(f"Stale values served: {stale_served}")

        if not issues:
            verdict = "healthy"
        elif len(issues) < 3:
            verdict = "degraded"
        else:
            verdict = "critical"
        return {"status": verdict, "issues": issues, "issue_count": len(issues)}

    def get_trust_pack(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "generated_at": now.isoformat(),
            "uptime_seconds": round((now - self.started_at).total_seconds(), 1),
            "api_health": self.get_api_summary(),
            "api_endpoints": self.get_api_metrics(),
            "cache_health": self.get_cache_summary(),
            "cache_namespaces": self.get_cache_metrics(),
            "refresh": self.get_refresh_status(),
            "recent_errors": list(self.recent_errors),
            "overall_health": self.overall_health(),
        }

    async def reset(self) -> None:
        """Clear every counter (tests)."""
        async with self._lock:
            self.upstream.clear()
            self.caches.clear()
            self.refreshes.clear()
            self.recent_errors.clear()
            self.started_at = datetime.now(timezone.utc)


_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Process-wide collector, created on first use."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
