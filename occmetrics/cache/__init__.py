# Metrics cache
from .models import CacheEntry
from .service import MetricsCache
from .sweeper import CacheSweeper


__all__ = ["CacheEntry", "CacheSweeper", "MetricsCache"]
