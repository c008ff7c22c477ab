"""Vault state tracker for realized (share-price) yield.

Holds the last two on-chain observations per vault. Observations arrive from
the external deposit/redeem event path; nothing here is scheduled.

Realized APY annualizes the share-price change between two observations:
    rate = (pps_now - pps_then) / pps_then
    apy  = rate / elapsed_seconds * SECONDS_PER_YEAR * 100
"""

import math
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional

import structlog

logger = structlog.get_logger()

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


@dataclass(frozen=True)
class VaultSnapshot:
    """One observation of a vault's on-chain totals, in base units."""
    total_assets: int
    total_shares: int
    observed_at: float  # unix epoch seconds
    decimals: int = 6

    @property
    def price_per_share(self) -> float:
        """Assets per share; 1.0 for an empty vault."""
        if self.total_shares <= 0:
            return 1.0
        return self.total_assets / self.total_shares

    @property
    def total_value(self) -> Decimal:
        """Total assets in asset units (USD for stablecoin vaults)."""
        return Decimal(self.total_assets) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class VaultHistory:
    """Latest observation and the one it replaced."""
    latest: VaultSnapshot
    previous: Optional[VaultSnapshot] = None


def annualized_yield(last_pps: float, current_pps: float, elapsed_seconds: float) -> float:
    """Annualized percentage yield between two share prices.

    Returns 0 when the interval is empty, the base price is not positive, or
    the result is not finite.
    """
    if elapsed_seconds <= 0 or last_pps <= 0:
        return 0.0
    rate = (current_pps - last_pps) / last_pps
    apy = (rate / elapsed_seconds) * SECONDS_PER_YEAR * 100
    if not math.isfinite(apy):
        return 0.0
    return apy


def realized_apy_from_history(history: Optional[VaultHistory]) -> float:
    """Realized APY between the two observations held in one history read."""
    if history is None or history.previous is None:
        return 0.0
    return annualized_yield(
        history.previous.price_per_share,
        history.latest.price_per_share,
        history.latest.observed_at - history.previous.observed_at,
    )


class VaultStateTracker:
    """Per-vault observation store.

    Each update swaps in a new immutable ``VaultHistory``, so a reader always
    sees a consistent latest/previous pair.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._histories: Dict[str, VaultHistory] = {}

    def update(
        self,
        vault_id: str,
        total_assets: int,
        total_shares: int,
        observed_at: Optional[float] = None,
        decimals: int = 6,
    ) -> VaultSnapshot:
        """Record a new on-chain observation for a vault."""
        if total_assets < 0 or total_shares < 0:
            raise ValueError("total_assets and total_shares must be non-negative")

        snapshot = VaultSnapshot(
            total_assets=int(total_assets),
            total_shares=int(total_shares),
            observed_at=self._clock() if observed_at is None else float(observed_at),
            decimals=decimals,
        )
        existing = self._histories.get(vault_id)
        self._histories[vault_id] = VaultHistory(
            latest=snapshot,
            previous=existing.latest if existing else None,
        )

        logger.info(
            "Updated vault state",
            vault_id=vault_id,
            total_assets=str(snapshot.total_assets),
            total_shares=str(snapshot.total_shares),
            price_per_share=snapshot.price_per_share,
        )
        return snapshot

    def get(self, vault_id: str) -> Optional[VaultSnapshot]:
        history = self._histories.get(vault_id)
        return history.latest if history else None

    def history(self, vault_id: str) -> Optional[VaultHistory]:
        return self._histories.get(vault_id)

    def realized_apy(
        self,
        vault_id: str,
        current_price_per_share: float,
        now: Optional[float] = None,
    ) -> float:
        """Annualized yield from the last observation to a current share price.

        Returns 0 when no observation exists yet or no time has passed.
        """
        last = self.get(vault_id)
        if last is None:
            return 0.0
        now = self._clock() if now is None else now
        return annualized_yield(last.price_per_share, current_price_per_share, now - last.observed_at)
