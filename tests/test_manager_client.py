import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest import mock

import pytest

from coheredb.manager_client import DBManagerClient


class _StopLoop(Exception):
    pass


@pytest.fixture
def manager():
    received = []
    statuses = []

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", "0"))
            body = self.rfile.read(length)
            received.append((self.path, self.headers.get("Content-Type"), body))
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()

        def log_message(self, format, *args):
            pass

    httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    def configure(*codes):
        statuses[:] = list(codes)
        return f"127.0.0.1:{httpd.server_address[1]}", received

    yield configure
    httpd.shutdown()
    httpd.server_close()
    thread.join(timeout=5)


def test_registers_on_first_attempt(manager):
    addr, received = manager(200)
    ready = threading.Event()
    with mock.patch("time.sleep") as sleep:
        DBManagerClient(addr, "eu").register_with_manager("eu", "127.0.0.1:7000", ready)
    assert ready.is_set()
    assert sleep.call_count == 0
    path, content_type, body = received[0]
    assert path == "/register"
    assert content_type == "application/json"
    assert json.loads(body) == {"region": "eu", "grpc_addr": "127.0.0.1:7000"}


def test_payload_has_sorted_compact_keys(manager):
    addr, received = manager(200)
    ready = threading.Event()
    with mock.patch("time.sleep"):
        DBManagerClient(addr, "eu").register_with_manager("eu", "127.0.0.1:7000", ready)
    assert ready.is_set()
    assert len(received) == 1
    assert received[0][2] == b'{"grpc_addr":"127.0.0.1:7000","region":"eu"}'


def test_retries_with_growing_delay(manager):
    addr, received = manager(500, 503, 200)
    ready = threading.Event()
    with mock.patch("time.sleep") as sleep:
        DBManagerClient(addr, "us").register_with_manager("us", "127.0.0.1:7001", ready)
    assert [call.args[0] for call in sleep.call_args_list] == [1, 2]
    assert len(received) == 3
    assert ready.is_set()


def test_non_ok_success_status_is_retried(manager):
    addr, received = manager(201, 200)
    ready = threading.Event()
    with mock.patch("time.sleep") as sleep:
        DBManagerClient(addr, "us").register_with_manager("us", "127.0.0.1:7001", ready)
    assert ready.is_set()
    assert [call.args[0] for call in sleep.call_args_list] == [1]
    assert len(received) == 2


def test_unreachable_manager_keeps_retrying():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
    delays = []

    def fake_sleep(seconds):
        delays.append(seconds)
        if len(delays) == 2:
            raise _StopLoop

    ready = threading.Event()
    with mock.patch("time.sleep", side_effect=fake_sleep):
        with pytest.raises(_StopLoop):
            DBManagerClient(f"127.0.0.1:{port}", "ap").register_with_manager(
                "ap", "127.0.0.1:7002", ready
            )
    assert delays == [1, 2]
    assert not ready.is_set()