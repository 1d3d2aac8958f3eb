import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import Mock

import requests

from onedrivesdk.config import ClientConfig
from onedrivesdk.errors import (
    InvalidArgumentError,
    InvalidDestinationError,
    LocalIOError,
    NetworkError,
    NotFoundError,
    ProtocolViolationError,
    TransferCancelledError,
)
from onedrivesdk.network import AsyncRequestClient, TransferContext
from onedrivesdk.pointer import IdPointer, PathPointer
from onedrivesdk.transfer.download import DownloadPipeline

DOWNLOAD_URL = "https://dl.example/presigned/abc"


def _json_response(status: int, payload) -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.content = json.dumps(payload).encode("utf-8")
    resp.headers = {"Content-Type": "application/json"}
    resp.url = "https://api.example/x"
    return resp


def _stream_response(status: int, blocks: list, error_body: bytes = b"") -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.headers = {}
    resp.url = DOWNLOAD_URL
    resp.content = error_body

    def iter_content(chunk_size):
        for block in blocks:
            if isinstance(block, Exception):
                raise block
            yield block

    resp.iter_content.side_effect = iter_content
    return resp


class DownloadTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session = Mock()
        self.plain = Mock()
        self.ctx = TransferContext(
            self.session,
            config=ClientConfig(base_url="https://api.example/v1.0", download_buffer_size=4),
            plain_session=self.plain,
        )
        self.pipeline = DownloadPipeline(AsyncRequestClient(self.ctx), self.ctx)
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self.ctx.shutdown()
        self._tmp.cleanup()


class TestDownloadDestination(DownloadTestCase):
    def test_file_destination_fails_before_network(self) -> None:
        target = self.tmp / "plain.txt"
        target.write_text("x", encoding="utf-8")

        with self.assertRaises(InvalidDestinationError):
            self.pipeline.download(IdPointer("X"), target)

        self.session.request.assert_not_called()
        self.plain.request.assert_not_called()

    def test_missing_destination_is_created(self) -> None:
        self.session.request.return_value = _stream_response(200, [b"data"])
        dest = self.tmp / "a" / "b"

        path = self.pipeline.download(IdPointer("X"), dest, "out.bin").result(timeout=5)

        self.assertTrue(dest.is_dir())
        self.assertEqual(path, dest / "out.bin")

    def test_new_name_must_be_plain(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            self.pipeline.download(IdPointer("X"), self.tmp, "../escape.bin")
        self.session.request.assert_not_called()

    def test_buffer_size_validation(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            DownloadPipeline(AsyncRequestClient(self.ctx), self.ctx, buffer_size=0)


class TestDownloadFlow(DownloadTestCase):
    def test_download_via_presigned_url(self) -> None:
        self.session.request.return_value = _json_response(
            200,
            {"name": "report.pdf", "@content.downloadUrl": DOWNLOAD_URL},
        )
        stream = _stream_response(200, [b"abcd", b"efgh", b"ij"])
        self.plain.request.return_value = stream

        path = self.pipeline.download(PathPointer(("Docs", "report.pdf")), self.tmp).result(timeout=5)

        self.assertEqual(path, self.tmp / "report.pdf")
        self.assertEqual(path.read_bytes(), b"abcdefghij")

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://api.example/v1.0/drive/root:/Docs/report.pdf"))
        self.assertEqual(kwargs["params"], {"select": "name,@content.downloadUrl"})

        args, kwargs = self.plain.request.call_args
        self.assertEqual(args, ("GET", DOWNLOAD_URL))
        self.assertTrue(kwargs["stream"])
        stream.iter_content.assert_called_once_with(chunk_size=4)
        stream.close.assert_called()

    def test_download_with_new_name_streams_content(self) -> None:
        self.session.request.return_value = _stream_response(200, [b"xyz"])

        path = self.pipeline.download(IdPointer("ITEM!1"), self.tmp, "renamed.bin").result(timeout=5)

        self.assertEqual(path.read_bytes(), b"xyz")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://api.example/v1.0/drive/items/ITEM!1/content"))
        self.assertTrue(kwargs["stream"])
        self.plain.request.assert_not_called()


class TestDownloadFailures(DownloadTestCase):
    def test_non_2xx_is_fatal_with_server_message(self) -> None:
        body = json.dumps({"error": {"code": "itemNotFound", "message": "Item does not exist"}})
        self.session.request.return_value = _stream_response(404, [], body.encode("utf-8"))

        error = self.pipeline.download(IdPointer("X"), self.tmp, "f.bin").exception(timeout=5)

        self.assertIsInstance(error, NotFoundError)
        self.assertEqual(error.code, "itemNotFound")
        self.assertEqual(error.server_message, "Item does not exist")
        self.assertFalse((self.tmp / "f.bin").exists())

    def test_metadata_error(self) -> None:
        self.session.request.return_value = _json_response(
            404, {"error": {"code": "itemNotFound", "message": "nope"}}
        )
        error = self.pipeline.download(IdPointer("X"), self.tmp).exception(timeout=5)
        self.assertIsInstance(error, NotFoundError)
        self.plain.request.assert_not_called()

    def test_folder_has_no_download_url(self) -> None:
        self.session.request.return_value = _json_response(200, {"name": "Docs", "folder": {}})
        error = self.pipeline.download(IdPointer("X"), self.tmp).exception(timeout=5)
        self.assertIsInstance(error, ProtocolViolationError)

    def test_remote_name_with_separator_is_rejected(self) -> None:
        self.session.request.return_value = _json_response(
            200,
            {"name": "../evil", "@content.downloadUrl": DOWNLOAD_URL},
        )
        error = self.pipeline.download(IdPointer("X"), self.tmp).exception(timeout=5)
        self.assertIsInstance(error, ProtocolViolationError)
        self.plain.request.assert_not_called()

    def test_existing_file_is_not_overwritten(self) -> None:
        (self.tmp / "f.bin").write_bytes(b"keep")
        stream = _stream_response(200, [b"new"])
        self.session.request.return_value = stream

        error = self.pipeline.download(IdPointer("X"), self.tmp, "f.bin").exception(timeout=5)

        self.assertIsInstance(error, LocalIOError)
        self.assertEqual((self.tmp / "f.bin").read_bytes(), b"keep")
        stream.close.assert_called()

    def test_interrupted_stream_leaves_partial_file(self) -> None:
        self.session.request.return_value = _stream_response(
            200,
            [b"abcd", requests.exceptions.ChunkedEncodingError("cut")],
        )

        error = self.pipeline.download(IdPointer("X"), self.tmp, "f.bin").exception(timeout=5)

        self.assertIsInstance(error, NetworkError)
        self.assertEqual(error.details["bytes_written"], 4)
        self.assertEqual((self.tmp / "f.bin").read_bytes(), b"abcd")

    def test_request_failure(self) -> None:
        self.session.request.side_effect = requests.exceptions.ConnectionError("down")
        error = self.pipeline.download(IdPointer("X"), self.tmp, "f.bin").exception(timeout=5)
        self.assertIsInstance(error, NetworkError)

    def test_cancel_stops_writing(self) -> None:
        first_written = threading.Event()
        release = threading.Event()

        def blocks():
            yield b"abcd"
            first_written.set()
            release.wait(5)
            yield b"efgh"

        stream = Mock()
        stream.status_code = 200
        stream.headers = {}
        stream.url = DOWNLOAD_URL
        stream.iter_content.side_effect = lambda chunk_size: blocks()
        self.session.request.return_value = stream

        fut = self.pipeline.download(IdPointer("X"), self.tmp, "f.bin")
        self.assertTrue(first_written.wait(5))
        fut.cancel()
        release.set()
        self.ctx.shutdown(wait=True)

        self.assertIsInstance(fut.exception(), TransferCancelledError)
        self.assertEqual((self.tmp / "f.bin").read_bytes(), b"abcd")
        stream.close.assert_called()


if __name__ == "__main__":
    unittest.main()
