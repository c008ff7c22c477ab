"""Health check and observability endpoints."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from vault_yields import __version__
from vault_yields.api.deps import get_broadcaster, get_feed, get_scheduler
from vault_yields.core.config import get_settings
from vault_yields.core.metrics import get_metrics
from vault_yields.core.scheduler import YieldScheduler
from vault_yields.schemas.common import FeedStatus, HealthResponse, SchedulerStatus
from vault_yields.services.data import DefiLlamaClient
from vault_yields.services.delivery import YieldBroadcaster

router = APIRouter()


def _is_stale(feed: DefiLlamaClient, threshold_minutes: int) -> bool:
    if feed.last_success_at is None:
        return True
    return datetime.now(timezone.utc) - feed.last_success_at > timedelta(minutes=threshold_minutes)


@router.get("/health", response_model=HealthResponse)
async def health_check(
    feed: DefiLlamaClient = Depends(get_feed),
    broadcaster: YieldBroadcaster = Depends(get_broadcaster),
    scheduler: Optional[YieldScheduler] = Depends(get_scheduler),
) -> HealthResponse:
    """Service status, upstream feed freshness and scheduler state."""
    settings = get_settings()
    data_stale = _is_stale(feed, settings.stale_data_threshold_minutes)

    if not feed.has_data:
        status = "unhealthy"
    elif data_stale or feed.last_error:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        feed=FeedStatus(**feed.status()),
        data_stale=data_stale,
        subscribers=broadcaster.subscriber_count,
        scheduler=SchedulerStatus(**scheduler.status()) if scheduler is not None else None,
    )


@router.get("/trust-pack")
async def get_trust_pack(
    feed: DefiLlamaClient = Depends(get_feed),
) -> Dict[str, Any]:
    """Trust pack: upstream call metrics, cache hit rates and refresh status.

    Intended for observability dashboards and debugging feed issues.
    """
    settings = get_settings()
    trust_pack = get_metrics().get_trust_pack()

    trust_pack["feature_flags"] = {
        "enable_api_metrics": settings.enable_api_metrics,
        "enable_cache_metrics": settings.enable_cache_metrics,
    }
    trust_pack["staleness_config"] = {
        "threshold_minutes": settings.stale_data_threshold_minutes,
        "pool_cache_ttl_seconds": settings.pool_cache_ttl_seconds,
        "vault_yield_ttl_seconds": settings.vault_yield_ttl_seconds,
    }
    trust_pack["feed"] = feed.status()
    trust_pack["health"] = {
        "data_stale": _is_stale(feed, settings.stale_data_threshold_minutes),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }
    return trust_pack
