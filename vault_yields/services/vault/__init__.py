from vault_yields.services.vault.state_tracker import (
    SECONDS_PER_YEAR,
    VaultHistory,
    VaultSnapshot,
    VaultStateTracker,
    annualized_yield,
    realized_apy_from_history,
)

__all__ = [
    "SECONDS_PER_YEAR",
    "VaultHistory",
    "VaultSnapshot",
    "VaultStateTracker",
    "annualized_yield",
    "realized_apy_from_history",
]
