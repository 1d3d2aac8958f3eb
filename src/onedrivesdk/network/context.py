"""Process resources shared by transfers: worker pool, HTTP sessions, timers."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter

from onedrivesdk.config import ClientConfig
from onedrivesdk.errors import InvalidStateError

from .future import Future, mark_worker_thread

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransferContext:
    """
    Explicitly owned pool of workers and HTTP connections.

    Every request client, upload manager and download pipeline built on one
    context shares its threads and connection pools. The owner must call
    shutdown() (or use the context as a `with` block).

    Shutdown semantics:
        - new submit() calls return a Future failed with InvalidStateError;
        - pending call_later() timers are cancelled and their callbacks run
          immediately on the calling thread, so waiting transfers reach a
          terminal state;
        - with wait=True, in-flight tasks drain before the sessions close.
    """

    def __init__(
        self,
        session: Any,
        *,
        config: Optional[ClientConfig] = None,
        plain_session: Optional[Any] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._session = session
        self._plain_session = plain_session if plain_session is not None else requests.Session()
        for s in (self._session, self._plain_session):
            _mount_pool(s, self._config.max_workers)

        self._executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="onedrivesdk",
            initializer=mark_worker_thread,
        )
        self._lock = threading.Lock()
        self._timers: dict[object, tuple[threading.Timer, Callable[[], Any]]] = {}
        self._closed = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def session(self) -> Any:
        """Session that attaches the bearer token."""
        return self._session

    @property
    def plain_session(self) -> Any:
        """Session without credentials (upload URLs, pre-signed download URLs)."""
        return self._plain_session

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[..., T], *args: Any) -> Future[T]:
        """Run fn(*args) on a worker; the returned Future settles with its result."""
        future = self._try_submit(fn, args)
        if future is None:
            return Future.failed(InvalidStateError("TransferContext is shut down"))
        return future

    def call_later(self, delay: float, fn: Callable[[], Any]) -> None:
        """Run fn on a worker after `delay` seconds (right away if delay <= 0)."""
        if delay <= 0:
            self._dispatch(fn)
            return

        token = object()
        timer = threading.Timer(delay, self._fire, args=(token,))
        timer.daemon = True
        with self._lock:
            if not self._closed:
                self._timers[token] = (timer, fn)
                timer.start()
                return
        fn()

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._timers.values())
            self._timers.clear()

        logger.debug("Shutting down transfer context (pending timers=%d)", len(pending))
        for timer, fn in pending:
            timer.cancel()
            fn()

        self._executor.shutdown(wait=wait)
        for s in (self._session, self._plain_session):
            close = getattr(s, "close", None)
            if callable(close):
                close()

    def __enter__(self) -> "TransferContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    def _try_submit(self, fn: Callable[..., T], args: tuple[Any, ...]) -> Optional[Future[T]]:
        future: Future[T] = Future()
        with self._lock:
            if self._closed:
                return None
            self._executor.submit(self._run, future, fn, args)
        return future

    def _fire(self, token: object) -> None:
        with self._lock:
            entry = self._timers.pop(token, None)
        if entry is None:
            # Flushed by shutdown().
            return
        self._dispatch(entry[1])

    def _dispatch(self, fn: Callable[[], Any]) -> None:
        future = self._try_submit(fn, ())
        if future is None:
            fn()
            return
        future.add_listener(_log_failure)

    @staticmethod
    def _run(future: Future[T], fn: Callable[..., T], args: tuple[Any, ...]) -> None:
        if future.done():
            return
        try:
            value = fn(*args)
        except Exception as exc:
            future.try_set_exception(exc)
            return
        if not future.try_set_result(value):
            # Cancelled while running; nobody will consume the value.
            _discard(value)


def _mount_pool(session: Any, size: int) -> None:
    mount = getattr(session, "mount", None)
    if not callable(mount):
        return
    adapter = HTTPAdapter(pool_connections=size, pool_maxsize=size)
    mount("https://", adapter)
    mount("http://", adapter)


def _discard(value: Any) -> None:
    close = getattr(value, "close", None)
    if callable(close):
        close()


def _log_failure(future: Future[Any]) -> None:
    error = future.exception()
    if error is not None:
        logger.error("Scheduled callback failed: %r", error)
