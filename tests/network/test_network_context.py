import threading
import unittest
from unittest.mock import Mock

from onedrivesdk.config import ClientConfig
from onedrivesdk.errors import InvalidStateError
from onedrivesdk.network.context import TransferContext
from onedrivesdk.network.future import Future


class TestTransferContext(unittest.TestCase):
    def setUp(self) -> None:
        self.session = Mock()
        self.plain = Mock()
        self.ctx = TransferContext(
            self.session,
            config=ClientConfig(max_workers=2),
            plain_session=self.plain,
        )

    def tearDown(self) -> None:
        self.ctx.shutdown()

    def test_sessions_get_sized_pools(self) -> None:
        prefixes = [c.args[0] for c in self.session.mount.call_args_list]
        self.assertEqual(sorted(prefixes), ["http://", "https://"])
        adapter = self.session.mount.call_args_list[0].args[1]
        self.assertEqual(adapter._pool_maxsize, 2)
        self.assertEqual(self.plain.mount.call_count, 2)

    def test_submit_runs_on_worker(self) -> None:
        fut = self.ctx.submit(lambda a, b: (a + b, threading.current_thread().name), 2, 3)
        value, name = fut.result(timeout=5)
        self.assertEqual(value, 5)
        self.assertTrue(name.startswith("onedrivesdk"))

    def test_submit_failure_settles_future(self) -> None:
        def boom() -> None:
            raise ValueError("bad")

        fut = self.ctx.submit(boom)
        self.assertIsInstance(fut.exception(timeout=5), ValueError)

    def test_call_later_runs_on_worker(self) -> None:
        done = threading.Event()
        self.ctx.call_later(0.01, done.set)
        self.assertTrue(done.wait(5))

    def test_call_later_without_delay(self) -> None:
        done = threading.Event()
        self.ctx.call_later(0, done.set)
        self.assertTrue(done.wait(5))

    def test_shutdown_rejects_new_work(self) -> None:
        self.ctx.shutdown()
        self.assertTrue(self.ctx.closed)
        fut = self.ctx.submit(lambda: 1)
        self.assertIsInstance(fut.exception(), InvalidStateError)

    def test_shutdown_closes_sessions_once(self) -> None:
        self.ctx.shutdown()
        self.ctx.shutdown()
        self.session.close.assert_called_once()
        self.plain.close.assert_called_once()

    def test_shutdown_flushes_pending_timers(self) -> None:
        calls: list[str] = []
        self.ctx.call_later(60.0, lambda: calls.append("flushed"))
        self.ctx.shutdown()
        self.assertEqual(calls, ["flushed"])

    def test_call_later_after_shutdown_runs_inline(self) -> None:
        self.ctx.shutdown()
        calls: list[int] = []
        self.ctx.call_later(5.0, lambda: calls.append(1))
        self.ctx.call_later(0, lambda: calls.append(2))
        self.assertEqual(calls, [1, 2])

    def test_shutdown_drains_in_flight_tasks(self) -> None:
        release = threading.Event()
        fut = self.ctx.submit(lambda: release.wait(5) and "finished")
        threading.Timer(0.05, release.set).start()
        self.ctx.shutdown(wait=True)
        self.assertEqual(fut.wait(), ("finished", None))

    def test_cancelled_task_result_is_discarded(self) -> None:
        started = threading.Event()
        release = threading.Event()
        resource = Mock()

        def task():
            started.set()
            release.wait(5)
            return resource

        fut: Future = self.ctx.submit(task)
        self.assertTrue(started.wait(5))
        fut.cancel()
        release.set()
        self.ctx.shutdown(wait=True)
        resource.close.assert_called_once()

    def test_context_manager_shuts_down(self) -> None:
        with TransferContext(Mock(), plain_session=Mock()) as ctx:
            self.assertFalse(ctx.closed)
        self.assertTrue(ctx.closed)


if __name__ == "__main__":
    unittest.main()
