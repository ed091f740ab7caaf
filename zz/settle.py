"""Settle-once guard for pending asynchronous operations.

Each pending operation (thread start, turn, approval) owns one
:class:`Settleable`. The first ``resolve()`` or ``reject()`` wins; later calls
are reported as no-ops instead of raising ``InvalidStateError`` from the
underlying future.

Example:
    pending = Settleable()
    pending.resolve("thread-1")   # True
    pending.reject(RuntimeError())  # False - already settled
    await pending.future            # "thread-1"
"""

import asyncio
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class SettleState(Enum):
    """Lifecycle of a pending operation."""
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Settleable(Generic[T]):
    """Tri-state wrapper around an ``asyncio.Future``.

    The state is explicit so callers and tests can inspect it without
    reaching into the future.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Create a pending operation bound to ``loop`` (default: running loop)."""
        if loop is None:
            loop = asyncio.get_running_loop()
        self._future: "asyncio.Future[T]" = loop.create_future()
        self._state = SettleState.PENDING

    @classmethod
    def resolved(cls, value: T) -> "Settleable[T]":
        """Create an operation that is already resolved with ``value``."""
        settleable: Settleable[T] = cls()
        settleable.resolve(value)
        return settleable

    @property
    def state(self) -> SettleState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is SettleState.PENDING

    @property
    def future(self) -> "asyncio.Future[T]":
        """The future observed by callers."""
        return self._future

    def resolve(self, value: Any = None) -> bool:
        """Resolve the operation.

        Returns:
            True if this call settled the operation, False if it was
            already settled.
        """
        if self._state is not SettleState.PENDING:
            return False
        self._state = SettleState.RESOLVED
        if not self._future.done():
            self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Reject the operation with ``error``.

        Returns:
            True if this call settled the operation, False if it was
            already settled.
        """
        if self._state is not SettleState.PENDING:
            return False
        self._state = SettleState.REJECTED
        if not self._future.done():
            self._future.set_exception(error)
        return True
