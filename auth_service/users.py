"""
User repository - database operations for the user entity.

Every mutation of an existing user goes through versioned_update, so
concurrent writers never lose each other's changes.
"""
import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from config.settings import settings

from .db import SessionLocal
from .errors import EntityNotFound, UserAlreadyExistsError, UserNotFoundError
from .models import User as UserModel
from .schemas import CognitoUserEntry, CreateUser, User, UserUpdate
from .store import (
    DynamoVersionedStore,
    InMemoryVersionedStore,
    SqlVersionedStore,
    VersionedStore,
)
from .versioned_update import versioned_update

logger = logging.getLogger("users")

USER_ENTITY = "user"


class UserRepository:
    """
    User CRUD over any VersionedStore.

    Lookups by email rely on store.find_by("email", ...), which each backend
    serves from its own index.
    """

    def __init__(self, store: VersionedStore, max_retries: Optional[int] = None):
        self._store = store
        self._max_retries = max_retries

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """
        Get a user by their unique ID

        Returns:
            User if found, None otherwise
        """
        record = await self._store.get({"id": user_id})
        return User.model_validate(record) if record else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Get a user by their email address

        Returns:
            User if found, None otherwise
        """
        records = await self._store.find_by("email", email)
        return User.model_validate(records[0]) if records else None

    async def create(self, user_data: CreateUser) -> User:
        """
        Create a new user

        Raises:
            UserAlreadyExistsError: If a user with the same email already exists
        """
        if await self.get_by_email(user_data.email):
            raise UserAlreadyExistsError(user_data.email)

        item = user_data.model_dump()
        item["id"] = user_data.id or str(uuid.uuid4())
        record = await self._store.create(item)
        logger.info(f"Created user {record['id']}")
        return User.model_validate(record)

    async def update(self, user_id: str, updates: UserUpdate) -> User:
        """
        Update an existing user under optimistic locking

        Raises:
            UserNotFoundError: If the user doesn't exist
            UserAlreadyExistsError: If the email is changed to one already in use
        """
        changes = updates.model_dump(exclude_unset=True)

        async def apply(current: Dict[str, Any]) -> Dict[str, Any]:
            # Email uniqueness is checked against fresh data on every attempt
            new_email = changes.get("email")
            if new_email and new_email != current["email"]:
                if await self.get_by_email(new_email):
                    raise UserAlreadyExistsError(new_email)
            return changes

        return await self._versioned_update(user_id, apply)

    async def find_or_create(
        self,
        email: str,
        user_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[User, bool]:
        """
        Find a user by email, creating one if none exists

        Returns:
            (user, created) tuple
        """
        existing = await self.get_by_email(email)
        if existing:
            return existing, False

        user = await self.create(CreateUser(**{**(user_data or {}), "email": email}))
        return user, True

    async def delete(self, user_id: str) -> None:
        """Delete a user by ID"""
        await self._store.delete({"id": user_id})
        logger.info(f"Deleted user {user_id}")

    async def add_cognito_user(self, user_id: str, entry: CognitoUserEntry) -> User:
        """
        Track a Cognito user pool entry on the user

        An entry for the same user pool is never added twice; that case
        still goes through the versioned write with an empty change set.
        """

        def apply(current: Dict[str, Any]) -> Dict[str, Any]:
            cognito_users = current.get("cognito_users") or []
            if any(e["user_pool_id"] == entry.user_pool_id for e in cognito_users):
                return {}
            return {"cognito_users": [*cognito_users, entry.model_dump()]}

        return await self._versioned_update(user_id, apply)

    async def set_email_verified(self, user_id: str, verified: bool) -> User:
        """Set the email verified flag"""
        return await self._versioned_update(
            user_id, lambda _current: {"email_verified": verified}
        )

    async def _versioned_update(self, user_id: str, mutate_fn) -> User:
        try:
            record = await versioned_update(
                self._store,
                {"id": user_id},
                mutate_fn,
                max_retries=self._max_retries,
            )
        except EntityNotFound as exc:
            raise UserNotFoundError(user_id) from exc
        return User.model_validate(record)


# ===== COMPOSITION ROOT =====

def create_user_store(backend: Optional[str] = None) -> VersionedStore:
    """
    Build the user store for the configured backend.

    Args:
        backend: "dynamodb", "sql" or "memory" (default: settings.user_store_backend)
    """
    backend = backend or settings.user_store_backend
    if backend == "dynamodb":
        return DynamoVersionedStore(
            settings.main_table_name,
            USER_ENTITY,
            indexes={"email": settings.main_table_email_index},
        )
    if backend == "sql":
        return SqlVersionedStore(UserModel, SessionLocal, entity_name=USER_ENTITY)
    if backend == "memory":
        return InMemoryVersionedStore(USER_ENTITY)
    raise ValueError(f"Unknown user store backend: {backend}")


_user_repository: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get or create the process-wide user repository."""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository(create_user_store())
    return _user_repository
