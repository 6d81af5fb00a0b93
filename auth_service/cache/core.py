"""
Core cache data structures.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConfigCategory(Enum):
    """Categories of upstream configuration with different caching behaviors."""
    CLIENT_SECRET = "client_secret"               # Cognito app client secrets
    SERVICE_PARAMETER = "service_parameter"       # SSM-backed service config


class CacheSource(Enum):
    """How a get_or_fetch call was satisfied."""
    FRESH = "fresh"           # Within TTL, served from cache
    COALESCED = "coalesced"   # Joined a fetch already in flight
    UPSTREAM = "upstream"     # Started a new fetch


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value and the clock reading taken when it was fetched.

    Entries are replaced wholesale on refresh, never mutated.
    """
    value: Any
    fetched_at: float

    def age_seconds(self, now: float) -> float:
        """Seconds since the value was fetched."""
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        """Servable iff younger than the TTL."""
        return self.age_seconds(now) < ttl_seconds
