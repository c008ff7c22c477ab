"""Static chain, token and vault tables.

Chain filters use the display names DefiLlama reports in the ``chain`` field.
Token lists are matched against upper-cased pool symbols.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class AllocationPolicy(str, Enum):
    """How a vault turns ranked strategies into a selection.

    PRIMARY: multi-chain vault restricted to preferred protocols, backfilled
        from other protocols only when preferred slots stay empty
    COVERAGE: single-chain vault, greedy until the coverage target is reached
    """
    PRIMARY = "primary"
    COVERAGE = "coverage"


@dataclass(frozen=True)
class ChainConfig:
    """Pool filter parameters for one chain."""
    key: str
    chain_filter: str
    assets: Tuple[str, ...]


@dataclass(frozen=True)
class VaultConfig:
    """One vault served by the engine."""
    vault_id: str
    chain_key: str
    asset: str
    policy: AllocationPolicy
    chain_scope: Tuple[str, ...]
    decimals: int = 6


CHAIN_CONFIGS: Dict[str, ChainConfig] = {
    c.key: c
    for c in (
        ChainConfig("arbitrum", "Arbitrum", ("USDT0", "USDT", "USDC", "DAI")),
        ChainConfig("ethereum", "Ethereum", ("USDT", "USDC", "DAI", "USDE", "FRAX")),
        ChainConfig("base", "Base", ("USDC", "USDT", "DAI")),
        ChainConfig("plasma", "Plasma", ("USDC", "USDT")),
        ChainConfig("solana", "Solana", ("USDC", "USDT")),
        ChainConfig("bsc", "BSC", ("USDT", "USDC", "BUSD")),
    )
}

STABLECOINS: FrozenSet[str] = frozenset({
    "USDT", "USDC", "DAI", "USDT0", "USDS", "FRAX", "USDP",
    "GUSD", "SUSD", "USDE", "USD1", "LUSD", "USDM", "USDB",
    "FDUSD", "PYUSD", "CUSD", "USDX",
})

# Substring-matched: upstream symbols are free text and mislabel volatile LPs
EXCLUDED_TOKENS: Tuple[str, ...] = (
    "DAILYBET", "BTC", "ETH", "SOL", "BNB", "MATIC", "AVAX", "ARB",
    "OP", "LINK", "UNI", "AAVE", "CRV", "SUSHI", "COMP", "YFI",
    "MKR", "SNX", "BAL", "LDO", "RPL", "RETH", "WETH", "WBTC",
    "STETH", "WSTETH", "RNDR", "PEPE", "SHIB", "DOGE", "XRP",
)

# Bridged variants reported as e.g. USDC.E or USDCET
STABLECOIN_SUFFIXES: Tuple[str, ...] = (".E", "ET")

PREFERRED_PROTOCOLS: Tuple[str, ...] = (
    "aave-v3",
    "curve",
    "pendle",
    "fraxlend",
    "balancer",
    "uniswap-v3",
    "compound-v3",
    "ethena",
    "yearn",
)

EVM_CHAINS: Tuple[str, ...] = ("ethereum", "arbitrum", "base", "plasma")

VAULTS: Dict[str, VaultConfig] = {
    v.vault_id: v
    for v in (
        VaultConfig("ethereum-usdt", "ethereum", "USDT", AllocationPolicy.PRIMARY, EVM_CHAINS),
        VaultConfig("solana-usdc", "solana", "USDC", AllocationPolicy.COVERAGE, ("solana",)),
        VaultConfig("bsc-usdt", "bsc", "USDT", AllocationPolicy.COVERAGE, ("bsc",)),
        # Bridge entry points route deposits into the primary vault
        VaultConfig("arbitrum-bridge", "arbitrum", "USDT", AllocationPolicy.PRIMARY, EVM_CHAINS),
        VaultConfig("base-bridge", "base", "USDC", AllocationPolicy.PRIMARY, EVM_CHAINS),
        VaultConfig("plasma-bridge", "plasma", "USDT", AllocationPolicy.PRIMARY, EVM_CHAINS),
    )
}


def is_preferred_protocol(protocol: str) -> bool:
    """True when the protocol id contains one of the preferred protocol ids."""
    name = protocol.lower()
    return any(p in name for p in PREFERRED_PROTOCOLS)
