"""
TTL configuration by configuration category.
"""
from typing import Any, Dict

from .core import ConfigCategory


# TTL Configuration by category (in seconds)
TTL_CONFIG: Dict[ConfigCategory, Dict[str, Any]] = {
    ConfigCategory.CLIENT_SECRET: {
        "ttl": 300,               # 5 minutes
        "cache_falsy": True,      # An empty secret is still a value
    },
    ConfigCategory.SERVICE_PARAMETER: {
        "ttl": 300,               # 5 minutes
        "cache_falsy": False,     # Empty parameters are refetched every time
    },
}


def get_ttl_for_category(category: ConfigCategory) -> int:
    """
    Get the TTL in seconds for a configuration category.

    Args:
        category: The configuration category

    Returns:
        TTL in seconds
    """
    return TTL_CONFIG[category]["ttl"]


def is_empty_for_category(category: ConfigCategory, value: Any) -> bool:
    """
    Decide whether a fetched value counts as "no value" for this category.

    None is always empty. Falsy values (e.g. "") are empty unless the
    category caches them.
    """
    if value is None:
        return True
    if not TTL_CONFIG[category]["cache_falsy"]:
        return not value
    return False
