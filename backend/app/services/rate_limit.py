"""Per-key request governor for outbound calls.

Admissions are counted over a rolling window per key. A call that cannot be
admitted is retried with capped exponential backoff; once retries are
exhausted it is parked in a bounded FIFO queue that a single drain task per
key works through at the nominal request spacing (window / max_requests).

All state changes happen between awaits on one event loop, so no locks are
needed; the per-key ``processing`` flag keeps a single drain task alive.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Set, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

# Wait reported for a call arriving exactly at the reset time
TIE_WAIT_SECONDS = 0.001


class GovernorError(RuntimeError):
    """Base class for failures raised by the request governor."""


class QueueFullError(GovernorError):
    """Raised when a key's overflow queue cannot accept another call."""

    def __init__(self, key: str, queue_size: int) -> None:
        self.key = key
        self.queue_size = queue_size
        super().__init__(f"Overflow queue for '{key}' is full ({queue_size} pending)")


class RateLimitedError(GovernorError):
    """Raised by a wrapped operation when the upstream service throttled it."""

    def __init__(
        self,
        message: str = "Upstream rate limit reached",
        *,
        retry_after: float | None = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True when ``exc`` signals upstream throttling."""

    if isinstance(exc, RateLimitedError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


@dataclass(slots=True)
class GovernorConfig:
    max_requests: int = 3
    window_seconds: float = 30.0
    retry_after_seconds: float = 1.0
    max_retries: int = 3
    queue_size: int = 50

    def __post_init__(self) -> None:
        if self.max_requests <= 0 or self.window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        if self.retry_after_seconds < 0 or self.max_retries < 0 or self.queue_size < 0:
            raise ValueError(
                "retry_after_seconds, max_retries and queue_size must not be negative"
            )

    def backoff(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (0-based), never longer than a window."""

        return min(self.retry_after_seconds * (2**attempt), self.window_seconds)

    @property
    def drain_interval(self) -> float:
        """Spacing between queued executions."""

        return max(self.retry_after_seconds, self.window_seconds / self.max_requests)


@dataclass(slots=True)
class GovernorSnapshot:
    key: str
    in_window: int
    queued: int
    processing: bool
    max_requests: int
    window_seconds: float


@dataclass(slots=True)
class _QueuedCall:
    operation: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    enqueued_at: float


@dataclass(slots=True)
class _KeyState:
    timestamps: Deque[float] = field(default_factory=deque)
    queue: Deque[_QueuedCall] = field(default_factory=deque)
    processing: bool = False


class RequestGovernor:
    """Admission control for outbound calls, keyed by resource name.

    One instance is shared by every caller in the process; keys never share
    state. ``clock`` and ``sleep`` are injectable so tests can run on
    virtual time.
    """

    def __init__(
        self,
        config: GovernorConfig | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._config = config or GovernorConfig()
        self._clock = clock
        self._sleep = sleep
        self._states: Dict[str, _KeyState] = {}
        self._drain_tasks: Set["asyncio.Task[None]"] = set()
        logger.info(
            "RequestGovernor initialized",
            extra={
                "max_requests": self._config.max_requests,
                "window_seconds": self._config.window_seconds,
                "max_retries": self._config.max_retries,
                "queue_size": self._config.queue_size,
            },
        )

    @property
    def config(self) -> GovernorConfig:
        return self._config

    async def execute_with_rate_limit(
        self, key: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        """Run ``operation`` once the key's window admits it.

        Raises ``QueueFullError`` when the call would have to be queued and
        the queue is full. Errors other than rate-limit signals propagate on
        the first attempt; a queued call's outcome is delivered here too.
        """

        state = self._state_for(key)
        attempt = 0
        while True:
            wait = self._check_rate_limit(state)
            if wait > 0:
                if attempt >= self._config.max_retries:
                    logger.info(
                        "Rate limit window full after retries, queuing call",
                        extra={"key": key, "attempts": attempt, "reset_in_s": wait},
                    )
                    break
                delay = self._config.backoff(attempt)
                logger.debug(
                    "Rate limit window full, backing off",
                    extra={"key": key, "attempt": attempt + 1, "retry_after_s": delay},
                )
                await self._sleep(delay)
                attempt += 1
                continue

            try:
                result = await operation()
            except Exception as exc:
                if not is_rate_limit_error(exc):
                    raise
                if attempt >= self._config.max_retries:
                    logger.warning(
                        "Upstream rate limit persisted after retries, queuing call",
                        extra={"key": key, "attempts": attempt},
                    )
                    break
                delay = self._config.backoff(attempt)
                logger.warning(
                    "Upstream rate limit on %s attempt %s, retrying",
                    key,
                    attempt + 1,
                    extra={"key": key, "retry_after_s": delay},
                )
                await self._sleep(delay)
                attempt += 1
                continue
            else:
                self._start_drain(key, state)
                return result

        return await self._enqueue(key, state, operation)

    def snapshot(self, key: str) -> GovernorSnapshot:
        """Return the current accounting for ``key`` without admitting anything."""

        state = self._states.get(key)
        if state is None:
            state = _KeyState()
        else:
            self._purge(state, self._clock())
        return GovernorSnapshot(
            key=key,
            in_window=len(state.timestamps),
            queued=len(state.queue),
            processing=state.processing,
            max_requests=self._config.max_requests,
            window_seconds=self._config.window_seconds,
        )

    def keys(self) -> List[str]:
        return list(self._states)

    def reset(self, key: str) -> None:
        """Forget all state for an idle key."""

        state = self._states.get(key)
        if state is None:
            return
        if state.processing or state.queue:
            raise GovernorError(f"Cannot reset '{key}' while calls are queued")
        del self._states[key]

    async def aclose(self) -> None:
        """Stop drain tasks and cancel calls still waiting in queues."""

        tasks = list(self._drain_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        cancelled = 0
        for state in self._states.values():
            while state.queue:
                call = state.queue.popleft()
                if not call.future.done():
                    call.future.cancel()
                    cancelled += 1
            state.processing = False
        if cancelled:
            logger.warning("Cancelled queued calls on shutdown", extra={"count": cancelled})

    def _state_for(self, key: str) -> _KeyState:
        state = self._states.get(key)
        if state is None:
            state = _KeyState()
            self._states[key] = state
        return state

    def _purge(self, state: _KeyState, now: float) -> None:
        window = self._config.window_seconds
        while state.timestamps and state.timestamps[0] + window < now:
            state.timestamps.popleft()

    def _check_rate_limit(self, state: _KeyState) -> float:
        """Admit a request and return 0, or return seconds until a slot frees.

        An entry expires strictly after one window, so a call at exactly the
        reset time is still throttled.
        """

        now = self._clock()
        self._purge(state, now)
        if len(state.timestamps) < self._config.max_requests:
            state.timestamps.append(now)
            return 0.0
        reset_at = state.timestamps[0] + self._config.window_seconds
        return max(reset_at - now, TIE_WAIT_SECONDS)

    async def _enqueue(
        self, key: str, state: _KeyState, operation: Callable[[], Awaitable[T]]
    ) -> T:
        if len(state.queue) >= self._config.queue_size:
            logger.warning(
                "Overflow queue full, rejecting call",
                extra={"key": key, "queue_size": self._config.queue_size},
            )
            raise QueueFullError(key, self._config.queue_size)

        future: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        state.queue.append(_QueuedCall(operation, future, self._clock()))
        logger.debug("Call queued", extra={"key": key, "queued": len(state.queue)})
        self._start_drain(key, state)
        return await future

    def _start_drain(self, key: str, state: _KeyState) -> None:
        if state.processing or not state.queue:
            return
        state.processing = True
        task = asyncio.get_running_loop().create_task(
            self._process_queue(key, state), name=f"governor-drain:{key}"
        )
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def _process_queue(self, key: str, state: _KeyState) -> None:
        try:
            while state.queue:
                head = state.queue[0]
                if head.future.done():
                    # caller went away
                    state.queue.popleft()
                    continue

                await self._wait_for_admission(state)
                call = state.queue.popleft()
                if call.future.done():
                    continue

                await self._run_queued(key, call)
                if state.queue:
                    await self._sleep(self._config.drain_interval)
        finally:
            state.processing = False

    async def _wait_for_admission(self, state: _KeyState) -> None:
        while True:
            wait = self._check_rate_limit(state)
            if wait <= 0:
                return
            await self._sleep(wait)

    async def _run_queued(self, key: str, call: _QueuedCall) -> None:
        waited = self._clock() - call.enqueued_at
        try:
            result = await call.operation()
        except asyncio.CancelledError:
            if not call.future.done():
                call.future.cancel()
            raise
        except Exception as exc:
            logger.warning(
                "Queued call failed",
                extra={"key": key, "queued_for_s": waited, "error_type": type(exc).__name__},
            )
            if not call.future.done():
                call.future.set_exception(exc)
            return

        logger.debug("Queued call completed", extra={"key": key, "queued_for_s": waited})
        if not call.future.done():
            call.future.set_result(result)


__all__ = [
    "GovernorConfig",
    "GovernorError",
    "GovernorSnapshot",
    "QueueFullError",
    "RateLimitedError",
    "RequestGovernor",
    "is_rate_limit_error",
]
