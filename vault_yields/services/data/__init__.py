# Data services module
from vault_yields.services.data.defillama_client import (
    DefiLlamaClient,
    FeedError,
    FeedTimeoutError,
    parse_pools,
)
from vault_yields.services.data.response_models import RawPool

__all__ = ["DefiLlamaClient", "FeedError", "FeedTimeoutError", "parse_pools", "RawPool"]
