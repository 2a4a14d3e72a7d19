import grpc
import pytest

from coheredb.database import Database
from coheredb.protocol import (
    DBServerStub,
    DeleteRequest,
    GetRequest,
    HealthCheckRequest,
    SetRequest,
)
from coheredb.server_rpc import DBServerService, GrpcServer


class _Aborted(Exception):
    pass


class _FakeContext:
    def __init__(self):
        self.code = None
        self.details = None

    def abort(self, code, details):
        self.code = code
        self.details = details
        raise _Aborted(details)


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "db")
    yield db
    db.close()


@pytest.fixture
def service(database):
    return DBServerService(database)


def test_set_then_get_returns_value(service):
    context = _FakeContext()
    assert service.set(SetRequest(key="alpha", value="one"), context).success is True
    assert service.get(GetRequest(key="alpha"), context).value == "one"


def test_get_missing_key_aborts_with_unknown(service):
    context = _FakeContext()
    with pytest.raises(_Aborted):
        service.get(GetRequest(key="nope"), context)
    assert context.code == grpc.StatusCode.UNKNOWN
    assert context.details == "failed to get key 'nope': key 'nope' not found"


def test_delete_removes_key(service, database):
    context = _FakeContext()
    service.set(SetRequest(key="gone", value="soon"), context)
    assert service.delete(DeleteRequest(key="gone"), context).success is True
    with pytest.raises(_Aborted):
        service.get(GetRequest(key="gone"), context)


def test_delete_missing_key_aborts(service):
    context = _FakeContext()
    with pytest.raises(_Aborted):
        service.delete(DeleteRequest(key="x"), context)
    assert context.code == grpc.StatusCode.UNKNOWN
    assert context.details == "failed to delete key 'x': key 'x' not found, cannot delete"


def test_set_on_closed_database_aborts(service, database):
    database.close()
    context = _FakeContext()
    with pytest.raises(_Aborted):
        service.set(SetRequest(key="k", value="v"), context)
    assert context.details.startswith("failed to set key 'k' with value 'v': ")


def test_health_check_reports_healthy(service):
    assert service.health_check(HealthCheckRequest(), _FakeContext()).healthy is True


@pytest.fixture
def running(database):
    server = GrpcServer(database, "127.0.0.1:0")
    server.start()
    channel = grpc.insecure_channel(f"127.0.0.1:{server.port}")
    yield DBServerStub(channel)
    channel.close()
    server.stop()


def test_round_trip_over_rpc(running):
    assert running.set(SetRequest(key="k", value="v"), timeout=5).success is True
    assert running.get(GetRequest(key="k"), timeout=5).value == "v"
    assert running.health_check(HealthCheckRequest(), timeout=5).healthy is True
    assert running.delete(DeleteRequest(key="k"), timeout=5).success is True


def test_missing_key_over_rpc_raises_rpc_error(running):
    with pytest.raises(grpc.RpcError) as info:
        running.get(GetRequest(key="absent"), timeout=5)
    assert info.value.code() == grpc.StatusCode.UNKNOWN
    assert "key 'absent' not found" in info.value.details()


def test_start_assigns_bound_port(database):
    server = GrpcServer(database, "127.0.0.1:0")
    server.start()
    try:
        assert server.port > 0
    finally:
        server.stop()