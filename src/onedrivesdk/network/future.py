"""Listener-based asynchronous result handle."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from onedrivesdk.errors import InvalidStateError, TransferCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_worker_marker = threading.local()


def mark_worker_thread() -> None:
    """Flag the current thread as a TransferContext worker (executor initializer)."""
    _worker_marker.is_worker = True


def in_worker_thread() -> bool:
    return getattr(_worker_marker, "is_worker", False)


class FutureState(enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Future(Generic[T]):
    """
    Eventual result of an asynchronous operation.

    Notes:
        - Settles exactly once; a second set_result/set_exception raises
          InvalidStateError.
        - Listeners run in attachment order on the thread that settles the
          Future; a listener attached after settlement runs immediately on the
          attaching thread.
        - cancel() is cooperative: it settles the Future with
          TransferCancelledError, whoever produces the value sees done() and
          stops.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._state = FutureState.PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._listeners: list[Callable[["Future[T]"], Any]] = []

    @classmethod
    def succeeded(cls, value: T) -> "Future[T]":
        fut: Future[T] = cls()
        fut.set_result(value)
        return fut

    @classmethod
    def failed(cls, error: BaseException) -> "Future[T]":
        fut: Future[T] = cls()
        fut.set_exception(error)
        return fut

    @property
    def state(self) -> FutureState:
        return self._state

    def done(self) -> bool:
        return self._state is not FutureState.PENDING

    def cancelled(self) -> bool:
        return self._state is FutureState.FAILED and isinstance(self._error, TransferCancelledError)

    def add_listener(self, listener: Callable[["Future[T]"], Any]) -> None:
        with self._lock:
            if self._state is FutureState.PENDING:
                self._listeners.append(listener)
                return
        self._invoke(listener)

    def set_result(self, value: T) -> None:
        if not self.try_set_result(value):
            raise InvalidStateError("Future is already settled", details={"state": self._state.value})

    def set_exception(self, error: BaseException) -> None:
        if not self.try_set_exception(error):
            raise InvalidStateError("Future is already settled", details={"state": self._state.value})

    def try_set_result(self, value: T) -> bool:
        return self._settle(FutureState.SUCCEEDED, value, None)

    def try_set_exception(self, error: BaseException) -> bool:
        if not isinstance(error, BaseException):
            raise TypeError("error must be an exception instance")
        return self._settle(FutureState.FAILED, None, error)

    def cancel(self) -> bool:
        """Settle as cancelled. Returns False if the Future was already settled."""
        return self._settle(FutureState.FAILED, None, TransferCancelledError("Operation was cancelled"))

    def wait(self, timeout: Optional[float] = None) -> tuple[Optional[T], Optional[BaseException]]:
        """
        Block until settled and return (value, error); exactly one is meaningful.

        Raises:
            InvalidStateError: if called on a worker thread while still pending.
            TimeoutError: if `timeout` elapses first (the Future stays pending).
        """
        if not self.done():
            if in_worker_thread():
                raise InvalidStateError("Blocking wait on a transfer worker thread would deadlock")
            if not self._settled.wait(timeout):
                raise TimeoutError(f"Operation did not settle within {timeout} seconds")
        return self._value, self._error

    def result(self, timeout: Optional[float] = None) -> T:
        value, error = self.wait(timeout)
        if error is not None:
            raise error
        return value  # type: ignore[return-value]

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self.wait(timeout)[1]

    def _settle(self, state: FutureState, value: Optional[T], error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._state is not FutureState.PENDING:
                return False
            self._state = state
            self._value = value
            self._error = error
            listeners = self._listeners
            self._listeners = []
            self._settled.set()

        for listener in listeners:
            self._invoke(listener)
        return True

    def _invoke(self, listener: Callable[["Future[T]"], Any]) -> None:
        try:
            listener(self)
        except Exception:
            logger.exception("Future listener %r raised", listener)

    def __repr__(self) -> str:
        return f"<Future state={self._state.value}>"
