"""Push delivery of vault yields."""

from vault_yields.services.delivery.broadcaster import YieldBroadcaster

__all__ = ["YieldBroadcaster"]
