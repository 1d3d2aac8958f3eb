import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from onedrivesdk.errors import InvalidStateError, NotFoundError, TransferCancelledError
from onedrivesdk.network.future import Future, FutureState, mark_worker_thread


class TestFutureSettlement(unittest.TestCase):
    def test_set_result(self) -> None:
        fut: Future[int] = Future()
        self.assertEqual(fut.state, FutureState.PENDING)
        self.assertFalse(fut.done())

        fut.set_result(42)
        self.assertTrue(fut.done())
        self.assertEqual(fut.state, FutureState.SUCCEEDED)
        self.assertEqual(fut.wait(), (42, None))
        self.assertEqual(fut.result(), 42)
        self.assertIsNone(fut.exception())

    def test_set_exception(self) -> None:
        err = NotFoundError("gone")
        fut: Future[int] = Future.failed(err)
        self.assertEqual(fut.state, FutureState.FAILED)
        value, error = fut.wait()
        self.assertIsNone(value)
        self.assertIs(error, err)
        with self.assertRaises(NotFoundError):
            fut.result()

    def test_double_settlement_raises(self) -> None:
        fut = Future.succeeded(1)
        with self.assertRaises(InvalidStateError):
            fut.set_result(2)
        with self.assertRaises(InvalidStateError):
            fut.set_exception(NotFoundError("x"))
        self.assertEqual(fut.result(), 1)

    def test_try_set_returns_false_after_settlement(self) -> None:
        fut: Future[int] = Future()
        self.assertTrue(fut.try_set_exception(NotFoundError("x")))
        self.assertFalse(fut.try_set_result(1))
        self.assertFalse(fut.try_set_exception(NotFoundError("y")))

    def test_set_exception_requires_exception(self) -> None:
        fut: Future[int] = Future()
        with self.assertRaises(TypeError):
            fut.try_set_exception("boom")  # type: ignore[arg-type]


class TestFutureListeners(unittest.TestCase):
    def test_listeners_run_in_attachment_order(self) -> None:
        fut: Future[str] = Future()
        calls: list[str] = []
        fut.add_listener(lambda f: calls.append("a:" + f.result()))
        fut.add_listener(lambda f: calls.append("b:" + f.result()))
        self.assertEqual(calls, [])

        fut.set_result("x")
        self.assertEqual(calls, ["a:x", "b:x"])

    def test_listener_after_settlement_runs_immediately(self) -> None:
        fut = Future.succeeded("done")
        calls: list[str] = []
        fut.add_listener(lambda f: calls.append(f.result()))
        self.assertEqual(calls, ["done"])

    def test_listener_runs_exactly_once(self) -> None:
        fut: Future[int] = Future()
        calls: list[int] = []
        fut.add_listener(lambda f: calls.append(1))
        fut.set_result(1)
        fut.try_set_result(2)
        self.assertEqual(calls, [1])

    def test_raising_listener_does_not_stop_others(self) -> None:
        fut: Future[int] = Future()
        calls: list[str] = []

        def bad(_: Future[int]) -> None:
            raise RuntimeError("listener bug")

        fut.add_listener(bad)
        fut.add_listener(lambda f: calls.append("ok"))
        with self.assertLogs("onedrivesdk.network.future", level="ERROR"):
            fut.set_result(1)
        self.assertEqual(calls, ["ok"])

    def test_settled_from_another_thread(self) -> None:
        fut: Future[int] = Future()
        seen: list[str] = []
        fut.add_listener(lambda f: seen.append(threading.current_thread().name))

        t = threading.Thread(target=fut.set_result, args=(5,), name="settler")
        t.start()
        self.assertEqual(fut.result(timeout=5), 5)
        t.join()
        self.assertEqual(seen, ["settler"])


class TestFutureCancelAndWait(unittest.TestCase):
    def test_cancel(self) -> None:
        fut: Future[int] = Future()
        self.assertTrue(fut.cancel())
        self.assertTrue(fut.cancelled())
        self.assertIsInstance(fut.exception(), TransferCancelledError)
        self.assertFalse(fut.cancel())

    def test_cancel_after_success_is_noop(self) -> None:
        fut = Future.succeeded(1)
        self.assertFalse(fut.cancel())
        self.assertFalse(fut.cancelled())

    def test_wait_timeout(self) -> None:
        fut: Future[int] = Future()
        with self.assertRaises(TimeoutError):
            fut.wait(timeout=0.01)
        self.assertFalse(fut.done())

    def test_wait_on_worker_thread_is_rejected(self) -> None:
        fut: Future[int] = Future()
        with ThreadPoolExecutor(max_workers=1, initializer=mark_worker_thread) as pool:
            error = pool.submit(lambda: _capture(fut.wait)).result(timeout=5)
        self.assertIsInstance(error, InvalidStateError)

    def test_wait_on_worker_thread_allowed_once_settled(self) -> None:
        fut = Future.succeeded(3)
        with ThreadPoolExecutor(max_workers=1, initializer=mark_worker_thread) as pool:
            value = pool.submit(fut.result).result(timeout=5)
        self.assertEqual(value, 3)


def _capture(fn):
    try:
        fn()
    except Exception as exc:
        return exc
    return None


if __name__ == "__main__":
    unittest.main()
