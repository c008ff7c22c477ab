"""Request-scoped access to the services built in the app lifespan."""

from typing import Optional

from fastapi import Request

from vault_yields.core.scheduler import YieldScheduler
from vault_yields.services.data import DefiLlamaClient
from vault_yields.services.delivery import YieldBroadcaster
from vault_yields.services.engine import YieldEngine


def get_yield_engine(request: Request) -> YieldEngine:
    return request.app.state.engine


def get_feed(request: Request) -> DefiLlamaClient:
    return request.app.state.feed


def get_broadcaster(request: Request) -> YieldBroadcaster:
    return request.app.state.broadcaster


def get_scheduler(request: Request) -> Optional[YieldScheduler]:
    return getattr(request.app.state, "scheduler", None)
