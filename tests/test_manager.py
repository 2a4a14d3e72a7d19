import pytest

from coheredb.database import Database, KeyNotFoundError
from coheredb.manager import DBManager, ManagerError
from coheredb.server_rpc import GrpcServer


@pytest.fixture
def db_servers(tmp_path):
    started = []
    for name in ("east", "west"):
        database = Database(tmp_path / name)
        server = GrpcServer(database, "127.0.0.1:0")
        server.start()
        started.append((database, server))
    yield started
    for database, server in started:
        server.stop()
        database.close()


@pytest.fixture
def manager(db_servers):
    mgr = DBManager()
    for index, (_, server) in enumerate(db_servers):
        assert mgr.add_server(f"node-{index}", "region", f"127.0.0.1:{server.port}")
    yield mgr
    for uuid in mgr.server_ids():
        mgr.remove_server(uuid)


def _holders(db_servers, key):
    holders = []
    for database, _ in db_servers:
        try:
            holders.append(database.get(key))
        except KeyNotFoundError:
            pass
    return holders


def test_empty_manager_has_no_servers():
    mgr = DBManager()
    assert mgr.server_ids() == []
    with pytest.raises(ManagerError, match="no available database servers"):
        mgr.get_key("k")
    with pytest.raises(ManagerError, match="no available database servers"):
        mgr.set_key("k", "v")
    with pytest.raises(ManagerError, match="no available database servers"):
        mgr.delete_key("k")


def test_add_duplicate_server_is_rejected():
    mgr = DBManager()
    assert mgr.add_server("a", "r", "127.0.0.1:1") is True
    assert mgr.add_server("a", "r", "127.0.0.1:2") is False
    assert mgr.server_ids() == ["a"]
    mgr.remove_server("a")


def test_remove_server():
    mgr = DBManager()
    mgr.add_server("a", "r", "127.0.0.1:1")
    mgr.add_server("b", "r", "127.0.0.1:2")
    assert mgr.remove_server("a") is True
    assert mgr.remove_server("a") is False
    assert mgr.server_ids() == ["b"]
    mgr.remove_server("b")


def test_set_get_roundtrip(manager):
    for index in range(10):
        assert manager.set_key(f"key-{index}", f"value-{index}") is True
    for index in range(10):
        assert manager.get_key(f"key-{index}") == f"value-{index}"


def test_each_key_lands_on_one_server(manager, db_servers):
    for index in range(10):
        manager.set_key(f"key-{index}", "v")
        assert _holders(db_servers, f"key-{index}") == [b"v"]


def test_delete_key(manager, db_servers):
    manager.set_key("gone", "soon")
    assert manager.delete_key("gone") is True
    assert _holders(db_servers, "gone") == []
    with pytest.raises(ManagerError):
        manager.get_key("gone")


def test_get_missing_key_raises(manager):
    with pytest.raises(ManagerError, match="not found"):
        manager.get_key("absent")


def test_health_check_keeps_live_servers(manager):
    before = manager.server_ids()
    manager.health_check_servers()
    assert manager.server_ids() == before


def test_health_check_drops_dead_server(manager, db_servers):
    db_servers[0][1].stop()
    manager.health_check_servers()
    assert manager.server_ids() == ["node-1"]
    assert manager.set_key("after", "check") is True
    assert manager.get_key("after") == "check"
    assert db_servers[1][0].get("after") == b"check"


def test_reconcile_servers_keeps_routing(manager):
    manager.reconcile_servers()
    manager.set_key("x", "y")
    assert manager.get_key("x") == "y"