"""
Error types shared by the versioned update and the cached fetch layers.

Only VersionConflictError is ever retried (by versioned_update). Everything
else surfaces to the caller unmodified.
"""
import json
from typing import Any, Dict


def _format_key(key: Dict[str, Any]) -> str:
    return json.dumps(key, sort_keys=True, default=str)


class AuthServiceError(Exception):
    """Base class for errors raised by auth_service."""
    pass


# ============================================================================
# Versioned entity errors
# ============================================================================

class EntityNotFound(AuthServiceError):
    """Raised when the entity targeted by a versioned update does not exist."""

    def __init__(self, entity_name: str, key: Dict[str, Any]):
        self.entity_name = entity_name
        self.key = dict(key)
        super().__init__(f"{entity_name} not found with keys: {_format_key(key)}")


class EntityAlreadyExists(AuthServiceError):
    """Raised by a store when creating an entity whose key is already taken."""

    def __init__(self, entity_name: str, key: Dict[str, Any]):
        self.entity_name = entity_name
        self.key = dict(key)
        super().__init__(f"{entity_name} already exists with keys: {_format_key(key)}")


class VersionConflictError(AuthServiceError):
    """
    Raised by a store when a conditional patch finds a different version.

    Stores translate their backend-specific condition failure into this
    type at their boundary, so callers dispatch on the type alone.
    """

    def __init__(self, entity_name: str, key: Dict[str, Any], expected_version: int):
        self.entity_name = entity_name
        self.key = dict(key)
        self.expected_version = expected_version
        super().__init__(
            f"Version conflict on {entity_name} {_format_key(key)}: "
            f"expected version {expected_version}"
        )


class OptimisticLockExceeded(AuthServiceError):
    """Raised when every permitted update attempt hit a version conflict."""

    def __init__(self, entity_name: str, key: Dict[str, Any], max_retries: int):
        self.entity_name = entity_name
        self.key = dict(key)
        self.max_retries = max_retries
        super().__init__(
            f"Failed to update {entity_name} with keys {_format_key(key)} "
            f"after {max_retries} attempts due to concurrent modifications"
        )


# ============================================================================
# Domain errors
# ============================================================================

class DomainValidationError(AuthServiceError):
    """Base for validation errors raised from inside an update function."""
    pass


class UserAlreadyExistsError(DomainValidationError):
    """Raised when an email is already used by another user."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User with email already exists: {email}")


class UserNotFoundError(AuthServiceError):
    """Raised when a user cannot be found."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"User not found: {identifier}")


# ============================================================================
# Upstream / configuration errors
# ============================================================================

class UpstreamFetchError(AuthServiceError):
    """Raised by fetch functions when an upstream lookup fails."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class ConfigurationError(AuthServiceError):
    """Raised when a configuration value is requested but not bound."""
    pass
