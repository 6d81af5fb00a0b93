"""
Auth service core: optimistic-locking entity updates and a coalescing
TTL cache for upstream configuration.
"""
