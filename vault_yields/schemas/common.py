"""Common schemas used across the API."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(BaseModel):
    """Last run of one scheduled job."""
    success: Optional[bool] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None
    consecutive_failures: int = 0


class SchedulerStatus(BaseModel):
    """Scheduler status for health check."""
    running: bool
    next_refresh: Optional[str] = None
    next_broadcast: Optional[str] = None
    job_count: int = 0
    pool_refresh: Optional[JobStatus] = None
    yield_broadcast: Optional[JobStatus] = None


class FeedStatus(BaseModel):
    """Upstream pool feed status."""
    has_data: bool
    pool_count: int = 0
    cache_age_seconds: Optional[float] = None
    cache_fresh: bool = False
    last_success_at: Optional[str] = None
    last_error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    feed: FeedStatus
    data_stale: bool = False
    subscribers: int = 0
    scheduler: Optional[SchedulerStatus] = None


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    valid_chains: Optional[List[str]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
