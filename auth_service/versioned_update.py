"""
Versioned update with optimistic locking.

Works with any VersionedStore whose records carry an integer ``version``.
Each attempt reads the current record, asks the caller for a change set,
and writes it back with a conditional patch that only succeeds if nobody
else bumped the version in between. Conflicts are retried with freshly
read state; every other error is raised on first occurrence.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
)

from config.settings import settings

from .errors import EntityNotFound, OptimisticLockExceeded, VersionConflictError
from .store.base import VERSION_ATTRIBUTE, VersionedStore

logger = logging.getLogger("versioned_update")

Changes = Dict[str, Any]
MutateFn = Callable[[Dict[str, Any]], Union[Changes, Awaitable[Changes]]]


def _log_conflict(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Version conflict on attempt {retry_state.attempt_number}, retrying: {error}")


async def _attempt_update(
    store: VersionedStore,
    key: Dict[str, Any],
    mutate_fn: MutateFn,
) -> Dict[str, Any]:
    """One fetch + mutate + conditional patch cycle."""
    current = await store.get(key)
    if current is None:
        raise EntityNotFound(store.entity_name, key)

    changes = mutate_fn(current)
    if inspect.isawaitable(changes):
        changes = await changes

    current_version = current[VERSION_ATTRIBUTE]
    new_version = current_version + 1

    # An empty change set still bumps the version
    return await store.conditional_patch(
        key,
        {**(changes or {}), VERSION_ATTRIBUTE: new_version},
        expected_version=current_version,
    )


async def versioned_update(
    store: VersionedStore,
    key: Dict[str, Any],
    mutate_fn: MutateFn,
    max_retries: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Update a record under optimistic locking.

    Args:
        store: Store holding the record
        key: Record key, e.g. {"id": "123"}
        mutate_fn: Receives the current record, returns the attributes to change
                   (sync or async). Called once per attempt, always with the
                   state read at the start of that attempt.
        max_retries: Total attempts allowed, including the first
                     (default: settings.versioned_update_max_retries)

    Returns:
        The record as stored after the winning write

    Raises:
        EntityNotFound: If the record does not exist
        OptimisticLockExceeded: If every attempt hit a version conflict
        Exception: Errors from mutate_fn or the store propagate unchanged

    Example:
        updated = await versioned_update(
            user_store,
            {"id": user_id},
            lambda user: {"first_name": "NewName"},
        )
    """
    if max_retries is None:
        max_retries = settings.versioned_update_max_retries
    if max_retries < 1:
        raise ValueError(f"max_retries must be at least 1, got {max_retries}")

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            retry=retry_if_exception_type(VersionConflictError),
            before_sleep=_log_conflict,
        ):
            with attempt:
                updated = await _attempt_update(store, key, mutate_fn)
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        f"Updated {store.entity_name} {key} after "
                        f"{attempt.retry_state.attempt_number} attempts"
                    )
                return updated
    except RetryError as exc:
        logger.error(
            f"Giving up on {store.entity_name} {key}: "
            f"{max_retries} attempts all hit version conflicts"
        )
        raise OptimisticLockExceeded(store.entity_name, key, max_retries) from exc
