# Core module
from vault_yields.core.config import get_settings, Settings
from vault_yields.core.cache import CacheEntry, MemoryCache
from vault_yields.core.metrics import MetricsCollector, get_metrics

__all__ = ["get_settings", "Settings", "CacheEntry", "MemoryCache", "MetricsCollector", "get_metrics"]
