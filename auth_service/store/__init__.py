"""
Versioned stores: records with an integer version and compare-and-swap patches.
"""
from .base import INITIAL_VERSION, VERSION_ATTRIBUTE, VersionedStore
from .memory import InMemoryVersionedStore
from .sql import SqlVersionedStore
from .dynamodb import DynamoVersionedStore, create_dynamodb_resource

__all__ = [
    "INITIAL_VERSION",
    "VERSION_ATTRIBUTE",
    "VersionedStore",
    "InMemoryVersionedStore",
    "SqlVersionedStore",
    "DynamoVersionedStore",
    "create_dynamodb_resource",
]
