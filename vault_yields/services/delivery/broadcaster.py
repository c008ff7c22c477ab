"""Websocket push of vault yields.

Subscribers get a ``yield_update`` message on connect and then on every
broadcast tick. A subscriber whose send fails is dropped; the others still
receive the message.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import structlog
from fastapi import WebSocket

from vault_yields.schemas.yields import VaultYieldResponse, YieldUpdateMessage
from vault_yields.services.engine import YieldEngine

logger = structlog.get_logger()


class YieldBroadcaster:
    """Holds connected subscribers and pushes yield updates to them."""

    def __init__(self, engine: YieldEngine):
        self.engine = engine
        self._subscribers: Set[WebSocket] = set()
        self.last_broadcast_at: Optional[datetime] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def build_message(self) -> Dict[str, Any]:
        yields = await self.engine.get_all_vault_yields()
        message = YieldUpdateMessage(
            timestamp=datetime.now(timezone.utc),
            data=[VaultYieldResponse.from_vault_yield(y) for y in yields],
        )
        return message.model_dump(mode="json")

    async def connect(self, websocket: WebSocket) -> bool:
        """Accept a subscriber and send it the current yields.

        Returns False if the initial send failed and the subscriber was dropped.
        """
        await websocket.accept()
        self._subscribers.add(websocket)
        logger.info("Subscriber connected", subscribers=self.subscriber_count)

        try:
            await websocket.send_json(await self.build_message())
        except Exception as e:
            logger.warning("Initial send failed", error=str(e))
            self.disconnect(websocket)
            return False
        return True

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._subscribers:
            self._subscribers.discard(websocket)
            logger.info("Subscriber disconnected", subscribers=self.subscriber_count)

    async def broadcast(self) -> int:
        """Send the current yields to every subscriber.

        Yields are computed once per tick regardless of subscriber count.

        Returns:
            Number of subscribers the message reached
        """
        if not self._subscribers:
            return 0

        message = await self.build_message()
        subscribers = list(self._subscribers)
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in subscribers),
            return_exceptions=True,
        )

        delivered = 0
        for ws, result in zip(subscribers, results):
            if isinstance(result, Exception):
                logger.warning("Dropping subscriber after failed send", error=str(result))
                self.disconnect(ws)
            else:
                delivered += 1

        self.last_broadcast_at = datetime.now(timezone.utc)
        logger.debug("Broadcast sent", delivered=delivered, dropped=len(subscribers) - delivered)
        return delivered

    async def close_all(self) -> None:
        """Close every subscriber socket on shutdown."""
        subscribers = list(self._subscribers)
        self._subscribers.clear()
        for ws in subscribers:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("Subscriber close failed", error=str(e))
        if subscribers:
            logger.info("Closed subscribers", count=len(subscribers))
