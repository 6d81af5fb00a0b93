"""
TTL cache with request coalescing for expensive upstream reads.
"""
from .core import CacheEntry, CacheSource, ConfigCategory
from .ttl_policies import (
    TTL_CONFIG,
    get_ttl_for_category,
    is_empty_for_category,
)
from .coalescer import RequestCoalescer
from .manager import CachedFetchCoordinator, get_fetch_coordinator

__all__ = [
    # Core types
    "CacheEntry",
    "CacheSource",
    "ConfigCategory",
    # TTL policies
    "TTL_CONFIG",
    "get_ttl_for_category",
    "is_empty_for_category",
    # Coalescing
    "RequestCoalescer",
    # Coordinator
    "CachedFetchCoordinator",
    "get_fetch_coordinator",
]
