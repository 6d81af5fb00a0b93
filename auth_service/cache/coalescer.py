"""
Request coalescing to prevent duplicate upstream calls.

When multiple concurrent tasks ask for the same key, only one upstream
call is made and all requesters share its outcome.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable

logger = logging.getLogger("cache.coalescer")


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Every waiter may have been cancelled; the error was already logged in _run
    if not task.cancelled():
        task.exception()


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    task: "asyncio.Task[Any]"
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key registers a task wrapping the fetch, before
      it suspends for the first time
    - Subsequent requests for the same key await that task
    - When the fetch settles, every waiter receives the same result or error
    - The in-flight entry is removed before any waiter resumes

    No lock is needed: registration happens synchronously on the event loop,
    so no other task can run between "check" and "register".

    A waiter that gets cancelled stops waiting, but the shared fetch keeps
    running for the others.

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            cache_key="secret:pool:client",
            fetch_fn=lambda: describe_client(),
        )
    """

    def __init__(self):
        self._in_flight: Dict[Hashable, InFlightRequest] = {}

    async def get_or_fetch(
        self,
        cache_key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            cache_key: Unique key for this request
            fetch_fn: Coroutine function to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            Exception: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(cache_key)
        if in_flight is not None:
            # Join existing request
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {cache_key} "
                f"(waiters: {in_flight.waiter_count})"
            )
        else:
            # Start new request; registered before this task suspends
            task = asyncio.ensure_future(self._run(cache_key, fetch_fn))
            task.add_done_callback(_retrieve_exception)
            in_flight = InFlightRequest(task=task)
            self._in_flight[cache_key] = in_flight
            logger.debug(f"Initiating fetch for {cache_key}")

        return await asyncio.shield(in_flight.task)

    async def _run(
        self,
        cache_key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            return await fetch_fn()
        except Exception as e:
            logger.warning(f"Fetch failed for {cache_key}: {e}")
            raise
        finally:
            # Clean up our own entry only
            in_flight = self._in_flight.get(cache_key)
            if in_flight is not None and in_flight.task is asyncio.current_task():
                del self._in_flight[cache_key]

    def is_in_flight(self, cache_key: Hashable) -> bool:
        """True if a fetch for this key is currently running."""
        return cache_key in self._in_flight

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": [str(key) for key in self._in_flight],
        }
