import json
import threading
import urllib.error
import urllib.request
import uuid
from datetime import datetime
from http import HTTPStatus

import pytest

from coheredb.manager import DBManager
from coheredb.manager_http import (
    ManagerHttpServer,
    handle_health,
    handle_register,
    handle_servers,
)

_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))


@pytest.fixture
def manager():
    mgr = DBManager()
    yield mgr
    for server_id in mgr.server_ids():
        mgr.remove_server(server_id)


@pytest.fixture
def base_url(manager):
    server = ManagerHttpServer(manager, "127.0.0.1:0")
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.port}"
    server.stop()
    thread.join(timeout=5)


def test_register_requires_post(manager):
    reply = handle_register(manager, "GET", b"")
    assert reply.status == HTTPStatus.METHOD_NOT_ALLOWED
    assert reply.body == "Method not allowed\n"
    assert manager.server_ids() == []


@pytest.mark.parametrize("body", [b"", b"{not json", b"[1, 2]", b'{"region": 5}'])
def test_register_rejects_bad_body(manager, body):
    reply = handle_register(manager, "POST", body)
    assert reply.status == HTTPStatus.BAD_REQUEST
    assert reply.body == "Invalid request body\n"


@pytest.mark.parametrize(
    "payload", [{}, {"region": "eu"}, {"grpc_addr": "127.0.0.1:7001"}, {"region": ""}]
)
def test_register_requires_fields(manager, payload):
    reply = handle_register(manager, "POST", json.dumps(payload).encode())
    assert reply.status == HTTPStatus.BAD_REQUEST
    assert reply.body == "Region and grpc_addr are required\n"
    assert manager.server_ids() == []


def test_register_adds_server(manager):
    body = json.dumps({"region": "eu", "grpc_addr": "127.0.0.1:7001"}).encode()
    reply = handle_register(manager, "POST", body)
    assert reply.status == HTTPStatus.OK
    assert reply.content_type == "application/json"
    data = json.loads(reply.body)
    assert data["success"] is True
    assert data["message"] == "Server registered successfully"
    assert str(uuid.UUID(data["server_uuid"])) == data["server_uuid"]
    assert manager.server_ids() == [data["server_uuid"]]


def test_register_twice_gives_distinct_ids(manager):
    body = json.dumps({"region": "eu", "grpc_addr": "127.0.0.1:7001"})
    first = json.loads(handle_register(manager, "POST", body).body)["server_uuid"]
    second = json.loads(handle_register(manager, "POST", body).body)["server_uuid"]
    assert first != second
    assert manager.server_ids() == sorted([first, second])


def test_health():
    reply = handle_health("GET")
    assert reply.status == HTTPStatus.OK
    data = json.loads(reply.body)
    assert data["status"] == "healthy"
    assert datetime.fromisoformat(data["time"]).tzinfo is not None
    assert handle_health("POST").status == HTTPStatus.METHOD_NOT_ALLOWED


def test_servers():
    reply = handle_servers("GET")
    assert reply.status == HTTPStatus.OK
    assert json.loads(reply.body)["status"] == "ok"
    assert handle_servers("DELETE").status == HTTPStatus.METHOD_NOT_ALLOWED


def test_live_health(base_url):
    with _OPENER.open(f"{base_url}/health", timeout=10) as response:
        assert response.status == 200
        assert json.loads(response.read())["status"] == "healthy"


def test_live_register(base_url, manager):
    request = urllib.request.Request(
        f"{base_url}/register",
        data=json.dumps({"region": "us", "grpc_addr": "127.0.0.1:7002"}).encode(),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with _OPENER.open(request, timeout=10) as response:
        data = json.loads(response.read())
    assert manager.server_ids() == [data["server_uuid"]]


def test_live_errors(base_url):
    with pytest.raises(urllib.error.HTTPError) as missing:
        _OPENER.open(f"{base_url}/nowhere", timeout=10)
    assert missing.value.code == 404
    with pytest.raises(urllib.error.HTTPError) as wrong_method:
        _OPENER.open(f"{base_url}/register", timeout=10)
    assert wrong_method.value.code == 405