"""DefiLlama yields client with caching, timeouts and stale fallback.

API Reference: https://defillama.com/docs/api (yields section)
Endpoint: GET https://yields.llama.fi/pools

Behaviour:
- One cache entry holding the full pool universe, fresh for a configurable window
- A single in-flight fetch shared by all concurrent callers
- A hard deadline on each fetch (retries included)
- Exponential backoff with jitter between transient failures
- ``fetch_pools`` never raises; on failure it serves the last good list
"""

import asyncio
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
import structlog
from pydantic import ValidationError

from vault_yields.core.cache import Clock, MemoryCache
from vault_yields.core.config import Settings, get_settings
from vault_yields.core.metrics import MetricsCollector, get_metrics
from vault_yields.services.data.response_models import PoolsEnvelope, RawPool

logger = structlog.get_logger()

POOLS_CACHE_KEY = "all-pools"
POOLS_DATASET = "defillama_pools"

# Status codes worth retrying; anything else is a hard failure for this fetch
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class FeedError(Exception):
    """Upstream pool feed error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedTimeoutError(FeedError):
    """Fetch exceeded its deadline."""
    pass


def parse_pools(records: Sequence[Any]) -> Tuple[List[RawPool], int]:
    """Validate upstream records one by one.

    Returns the valid pools and the number of records dropped.
    """
    pools: List[RawPool] = []
    dropped = 0
    for record in records:
        try:
            pools.append(RawPool.model_validate(record))
        except ValidationError as e:
            dropped += 1
            logger.debug("Dropping malformed pool record", errors=e.error_count())
    return pools, dropped


class DefiLlamaClient:
    """Async client for the DefiLlama pool universe."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.time,
    ):
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics()
        self._transport = transport
        self.url = self._settings.defillama_pools_url
        self._cache: MemoryCache[Tuple[RawPool, ...]] = MemoryCache(
            ttl_seconds=self._settings.pool_cache_ttl_seconds,
            namespace="pools",
            clock=clock,
        )
        self._inflight: Optional[asyncio.Future] = None
        self.last_error: Optional[str] = None
        self.last_success_at: Optional[datetime] = None
        self.network_calls = 0

    @property
    def has_data(self) -> bool:
        return POOLS_CACHE_KEY in self._cache

    async def fetch_pools(self, force: bool = False) -> List[RawPool]:
        """Return the pool universe.

        Inside the freshness window the cached list is returned with no network
        call. Otherwise one refresh runs and every concurrent caller awaits it.

        Args:
            force: Skip the freshness check (used by the periodic refresh)

        Returns:
            Pools from the latest successful fetch, or an empty list if no
            fetch has ever succeeded.
        """
        if not force:
            fresh = self._cache.get_fresh(POOLS_CACHE_KEY)
            if fresh is not None:
                logger.debug("Returning cached DefiLlama pools", count=len(fresh))
                await self._record_cache(hit=True)
                return list(fresh)
            await self._record_cache(hit=False)

        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.ensure_future(self._refresh())
            self._inflight = inflight

        # Shielded so one caller's cancellation does not abort the shared fetch
        pools = await asyncio.shield(inflight)
        return list(pools)

    async def _refresh(self) -> Tuple[RawPool, ...]:
        """Fetch, store and return the pool list, or fall back to the cache."""
        settings = self._settings
        try:
            pools = await self._fetch_with_deadline()
        except FeedError as e:
            self.last_error = str(e)
            stale = self._cache.get_stale(POOLS_CACHE_KEY)
            logger.warning(
                "DefiLlama fetch failed, serving cached pools",
                error=str(e),
                status_code=e.status_code,
                cached_count=len(stale) if stale is not None else 0,
            )
            await self._metrics.record_refresh_failure(
                POOLS_DATASET,
                str(e),
                stale_after_minutes=settings.stale_data_threshold_minutes,
            )
            if stale is not None and settings.enable_cache_metrics:
                await self._metrics.record_stale_served("pools")
            return stale if stale is not None else ()

        snapshot = tuple(pools)
        self._cache.set(POOLS_CACHE_KEY, snapshot)
        self.last_error = None
        self.last_success_at = datetime.now(timezone.utc)
        if settings.enable_cache_metrics:
            await self._metrics.record_cache_set("pools")
        await self._metrics.record_refresh_success(
            POOLS_DATASET,
            len(snapshot),
            stale_after_minutes=settings.stale_data_threshold_minutes,
        )
        logger.info("Fetched pools from DefiLlama", count=len(snapshot))
        return snapshot

    async def _fetch_with_deadline(self) -> List[RawPool]:
        timeout = self._settings.feed_timeout_seconds
        try:
            return await asyncio.wait_for(self._request_pools(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._record_api_call(False, timeout * 1000, None, "deadline exceeded", timed_out=True)
            raise FeedTimeoutError(f"DefiLlama fetch exceeded {timeout}s deadline")

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with up to 25% jitter."""
        settings = self._settings
        delay = settings.feed_initial_backoff_seconds * (settings.feed_backoff_multiplier ** attempt)
        delay = min(delay, settings.feed_max_backoff_seconds)
        return delay + random.uniform(0, 0.25 * delay)

    async def _request_pools(self) -> List[RawPool]:
        """GET the pool universe with retries on transient failures.

        Raises:
            FeedError: On non-retryable status, malformed body, or retries exhausted
        """
        settings = self._settings
        timeout = httpx.Timeout(settings.feed_timeout_seconds)
        last_error: Optional[Exception] = None

        for attempt in range(settings.feed_max_retries + 1):
            start = time.monotonic()
            try:
                self.network_calls += 1
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.get(self.url, headers={"Accept": "application/json"})
                latency_ms = (time.monotonic() - start) * 1000

                if response.status_code != 200:
                    body = response.text[:200]
                    await self._record_api_call(False, latency_ms, response.status_code, body)
                    last_error = FeedError(
                        f"DefiLlama error {response.status_code}: {body}",
                        status_code=response.status_code,
                    )
                    if response.status_code not in RETRYABLE_STATUS:
                        raise last_error
                else:
                    pools, dropped = self._parse_response(response)
                    await self._record_api_call(True, latency_ms, 200, None)
                    if dropped:
                        logger.info("Skipped malformed pool records", dropped=dropped)
                    return pools

            except httpx.HTTPError as e:
                latency_ms = (time.monotonic() - start) * 1000
                await self._record_api_call(False, latency_ms, None, str(e))
                last_error = e

            if attempt < settings.feed_max_retries:
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Transient feed error, retrying",
                    attempt=attempt + 1,
                    backoff_seconds=round(backoff, 2),
                    error=str(last_error),
                )
                await asyncio.sleep(backoff)

        raise FeedError(
            f"Request failed after {settings.feed_max_retries + 1} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    def _parse_response(self, response: httpx.Response) -> Tuple[List[RawPool], int]:
        try:
            body = response.json()
        except ValueError as e:
            raise FeedError(f"DefiLlama returned invalid JSON: {e}", status_code=200)

        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            raise FeedError("DefiLlama response has no data array", status_code=200)

        envelope = PoolsEnvelope.model_validate(body)
        return parse_pools(envelope.data)

    async def _record_api_call(
        self,
        success: bool,
        latency_ms: float,
        status_code: Optional[int],
        error_message: Optional[str],
        timed_out: bool = False,
    ) -> None:
        if not self._settings.enable_api_metrics:
            return
        await self._metrics.record_api_call(
            endpoint="/pools",
            latency_ms=latency_ms,
            success=success,
            status_code=status_code,
            error_message=error_message,
            timed_out=timed_out,
        )

    async def _record_cache(self, hit: bool) -> None:
        if not self._settings.enable_cache_metrics:
            return
        if hit:
            await self._metrics.record_cache_hit("pools")
        else:
            await self._metrics.record_cache_miss("pools")

    def status(self) -> Dict[str, Any]:
        """Snapshot of feed state for health checks."""
        entry = self._cache.get_entry(POOLS_CACHE_KEY)
        now = self._cache.now()
        return {
            "has_data": entry is not None,
            "pool_count": len(entry.value) if entry is not None else 0,
            "cache_age_seconds": round(entry.age(now), 1) if entry is not None else None,
            "cache_fresh": entry.is_fresh(self._cache.ttl_seconds, now) if entry is not None else False,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_error": self.last_error,
        }
