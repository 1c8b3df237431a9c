"""Single-assignment Future used by the tool executor and the batch runner.

A Future settles exactly once: the first ``resolve``/``reject`` wins and every
later call is ignored. Waiting is cooperative (``await future.wait()``), so a
Future can be settled from any task running on the same event loop.

Usage:
    future = Future()
    future.resolve(42)
    future.resolve(7)          # ignored
    value = await future       # 42

    values = await Future.all([f1, f2])
    slots = await Future.all_settled([f1, f2, f3])
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from agent.errors import FutureNotSettledError, FutureRejection, FutureTimeoutError

logger = logging.getLogger(__name__)


class FutureState(Enum):
    """Lifecycle of a Future."""
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Future:
    """Settle-once value/error container with awaitable access."""

    def __init__(self):
        self._state = FutureState.PENDING
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Callable[["Future"], None]] = []
        self._waiters: List[asyncio.Future] = []

    @classmethod
    def resolved(cls, value: Any) -> "Future":
        future = cls()
        future.resolve(value)
        return future

    @classmethod
    def rejected(cls, error: Any) -> "Future":
        future = cls()
        future.reject(error)
        return future

    def __repr__(self) -> str:
        return f"<Future {self._state.value}>"

    def __await__(self):
        return self.wait().__await__()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is FutureState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state is FutureState.RESOLVED

    @property
    def is_rejected(self) -> bool:
        return self._state is FutureState.REJECTED

    @property
    def is_settled(self) -> bool:
        return self._state is not FutureState.PENDING

    def resolve(self, value: Any) -> bool:
        """Settle with a value. Returns False if the future was already settled."""
        return self._settle(FutureState.RESOLVED, value, None)

    def reject(self, error: Any) -> bool:
        """
        Settle with an error. Returns False if the future was already settled.

        Reasons that are not exceptions are wrapped in FutureRejection so that
        waiters always have something to raise.
        """
        if not isinstance(error, BaseException):
            error = FutureRejection(error)
        return self._settle(FutureState.REJECTED, None, error)

    def _settle(self, state: FutureState, value: Any, error: Optional[BaseException]) -> bool:
        if self._state is not FutureState.PENDING:
            return False

        self._state = state
        self._value = value
        self._error = error

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done() and not waiter.get_loop().is_closed():
                waiter.set_result(None)

        return True

    def _add_callback(self, callback: Callable[["Future"], None]) -> None:
        if self._state is FutureState.PENDING:
            self._callbacks.append(callback)
        else:
            callback(self)

    # =========================================================================
    # Access
    # =========================================================================

    def get_result(self) -> Any:
        """Return the value, re-raise the captured error, or fail if still pending."""
        if self._state is FutureState.RESOLVED:
            return self._value
        if self._state is FutureState.REJECTED:
            raise self._error
        raise FutureNotSettledError("Future has not been settled yet")

    async def wait(self, timeout: Optional[float] = None) -> Any:
        """
        Suspend until the future settles, then return its value or raise its error.

        Args:
            timeout: Seconds to wait. Only bounds the caller's patience, the
                     operation behind the future keeps running.

        Raises:
            FutureTimeoutError: If the future is still pending after ``timeout``.
        """
        if self._state is FutureState.PENDING:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await asyncio.wait_for(waiter, timeout)
            except asyncio.TimeoutError:
                raise FutureTimeoutError(f"Future not settled within {timeout}s") from None
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

        return self.get_result()

    def then(
        self,
        on_resolved: Optional[Callable[[Any], Any]],
        on_rejected: Optional[Callable[[BaseException], Any]] = None,
    ) -> "Future":
        """
        Register callbacks for when this future settles.

        Returns a new Future settled with the callback's return value, or
        rejected with whatever the callback raised.
        """
        derived = Future()

        def _propagate(source: "Future") -> None:
            try:
                if source.is_resolved:
                    derived.resolve(on_resolved(source._value) if on_resolved else source._value)
                elif on_rejected is not None:
                    derived.resolve(on_rejected(source._error))
                else:
                    derived.reject(source._error)
            except Exception as e:
                logger.debug("Future callback raised: %s", e)
                derived.reject(e)

        self._add_callback(_propagate)
        return derived

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> "Future":
        """Register an error callback; resolved values pass through unchanged."""
        return self.then(None, on_rejected)

    # =========================================================================
    # Combinators
    # =========================================================================

    @staticmethod
    def all(futures: Iterable["Future"]) -> "Future":
        """Resolve with every value in order, or reject with the first error."""
        futures = list(futures)
        combined = Future()
        if not futures:
            combined.resolve([])
            return combined

        values: List[Any] = [None] * len(futures)
        remaining = len(futures)

        def _watch(index: int, future: "Future") -> None:
            def _on_settle(source: "Future") -> None:
                nonlocal remaining
                if source.is_rejected:
                    combined.reject(source._error)
                    return
                values[index] = source._value
                remaining -= 1
                if remaining == 0:
                    combined.resolve(list(values))

            future._add_callback(_on_settle)

        for index, future in enumerate(futures):
            _watch(index, future)

        return combined

    @staticmethod
    def race(futures: Iterable["Future"]) -> "Future":
        """Settle with whichever future settles first, value or error."""
        combined = Future()

        def _on_settle(source: "Future") -> None:
            if source.is_resolved:
                combined.resolve(source._value)
            else:
                combined.reject(source._error)

        for future in futures:
            future._add_callback(_on_settle)

        return combined

    @staticmethod
    def all_settled(futures: Iterable["Future"]) -> "Future":
        """
        Always resolves once every future settles.

        Each slot holds the resolved value or the captured error object, in the
        order the futures were given.
        """
        futures = list(futures)
        combined = Future()
        if not futures:
            combined.resolve([])
            return combined

        slots: List[Any] = [None] * len(futures)
        remaining = len(futures)

        def _watch(index: int, future: "Future") -> None:
            def _on_settle(source: "Future") -> None:
                nonlocal remaining
                slots[index] = source._value if source.is_resolved else source._error
                remaining -= 1
                if remaining == 0:
                    combined.resolve(list(slots))

            future._add_callback(_on_settle)

        for index, future in enumerate(futures):
            _watch(index, future)

        return combined
