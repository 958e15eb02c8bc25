"""Eventual-consistency wait protocol.

Objects and files are indexed asynchronously: creation returns an entity in
the pending state and the service later moves it, exactly once, to ready or
failed.  :class:`EntityWaiter` re-fetches a pending entity until it leaves
the pending state, using a fixed two-tier schedule:

  * iteration 0      -- fetch immediately
  * iterations 1..9  -- sleep 300ms before each fetch
  * iterations >= 10 -- sleep 1s before each fetch

The loop is driven by tenacity (result-based retry, custom wait, custom
sleep).  Fetch errors are never retried: the first one ends the wait.
The cancel event interrupts both sleeps and in-flight fetches.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_never

from operand.constants import POLL_FAST_DELAY, POLL_FAST_ITERATIONS, POLL_SLOW_DELAY
from operand.exceptions import WaitCancelledError

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """Tri-state view of an entity's asynchronous processing."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not LifecycleState.PENDING


class Waitable(Protocol):
    """Anything with a server-assigned id and a lifecycle state."""

    id: str

    @property
    def lifecycle_state(self) -> LifecycleState: ...


EntityT = TypeVar("EntityT", bound=Waitable)

SleepFunc = Callable[[float, "asyncio.Event | None"], Awaitable[None]]


@dataclass(frozen=True)
class BackoffSchedule:
    """Delay before each fetch of the wait loop.

    Usable directly as a tenacity wait strategy: after attempt *n* the next
    fetch is iteration *n*.
    """

    fast_delay: float = POLL_FAST_DELAY
    slow_delay: float = POLL_SLOW_DELAY
    fast_iterations: int = POLL_FAST_ITERATIONS

    def delay_for(self, iteration: int) -> float:
        if iteration <= 0:
            return 0.0
        if iteration < self.fast_iterations:
            return self.fast_delay
        return self.slow_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number)


def _raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise WaitCancelledError("Wait cancelled by caller")


async def cancellable_sleep(seconds: float, cancel: asyncio.Event | None = None) -> None:
    """Sleep for *seconds*, returning early with an error if *cancel* is set."""
    if cancel is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except TimeoutError:
        return
    raise WaitCancelledError("Wait cancelled by caller during backoff sleep")


def _is_pending(entity: Waitable) -> bool:
    return entity.lifecycle_state is LifecycleState.PENDING


class EntityWaiter(Generic[EntityT]):
    """Poll an entity through *fetch* until it is ready or failed.

    Usage::

        waiter = EntityWaiter(client.get_object)
        obj = await waiter.wait(obj)
        if obj.lifecycle_state is LifecycleState.FAILED:
            ...

    Args:
        fetch: Coroutine function returning the current entity for an id.
        schedule: Backoff schedule; defaults to the documented 300ms/1s tiers.
        sleep: Replacement for :func:`cancellable_sleep` (tests record delays).
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[EntityT]],
        *,
        schedule: BackoffSchedule | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._fetch = fetch
        self.schedule = schedule or BackoffSchedule()
        self._sleep = sleep or cancellable_sleep

    async def _fetch_or_cancel(self, entity_id: str, cancel: asyncio.Event | None) -> EntityT:
        """Run one fetch, abandoning it as soon as *cancel* is set."""
        if cancel is None:
            return await self._fetch(entity_id)

        fetch = asyncio.ensure_future(self._fetch(entity_id))
        stop = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({fetch, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            fetch.cancel()
            stop.cancel()
            raise
        stop.cancel()

        if cancel.is_set():
            fetch.cancel()
            await asyncio.gather(fetch, return_exceptions=True)
            raise WaitCancelledError("Wait cancelled by caller during fetch")
        return fetch.result()

    async def wait(self, entity: EntityT, cancel: asyncio.Event | None = None) -> EntityT:
        """Return the first fetched copy of *entity* that is no longer pending.

        An entity that is already ready or failed is returned as-is without
        any fetch; a failed entity is not an error.  *entity* itself is never
        modified: rebind your reference to the returned value.

        There is no internal deadline.  Bound the wait by setting *cancel*
        or by cancelling the task (e.g. ``asyncio.timeout``).

        Raises:
            WaitCancelledError: *cancel* was set before or during a fetch,
                or during a sleep.  An in-flight fetch is cancelled and its
                result discarded.
            OperandError: Propagated unchanged from the first failing fetch.
        """
        if not _is_pending(entity):
            return entity

        _raise_if_cancelled(cancel)

        async def _sleep(seconds: float) -> None:
            _raise_if_cancelled(cancel)
            await self._sleep(seconds, cancel)

        current = entity
        fetches = 0
        started = time.monotonic()

        async for attempt in AsyncRetrying(
            wait=self.schedule,
            retry=retry_if_result(_is_pending),
            stop=stop_never,
            sleep=_sleep,
            reraise=True,
        ):
            with attempt:
                current = await self._fetch_or_cancel(entity.id, cancel)
                fetches += 1
                logger.debug(
                    "Poll %d for %s: %s", fetches, entity.id, current.lifecycle_state.value
                )
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(current)

        elapsed = time.monotonic() - started
        if current.lifecycle_state is LifecycleState.FAILED:
            logger.warning(
                "%s finished indexing with an error after %d fetches (%.1fs)",
                entity.id,
                fetches,
                elapsed,
            )
        else:
            logger.info(
                "%s ready after %d fetches (%.1fs)", entity.id, fetches, elapsed
            )
        return current
