"""Routing of keys across the registered database servers."""

import threading
from dataclasses import dataclass

import grpc

from .hashing import ConsistentHasher
from .protocol import (
    DBServerStub,
    DeleteRequest,
    GetRequest,
    HealthCheckRequest,
    SetRequest,
)

_HEALTH_TIMEOUT = 5.0


class ManagerError(Exception):
    """Raised when a request cannot be routed or a database server rejects it."""


@dataclass
class _DBServer:
    uuid: str
    region: str
    addr: str
    channel: grpc.Channel
    stub: DBServerStub


def _describe(exc: grpc.RpcError) -> str:
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None)
    if callable(code) and callable(details):
        return f"rpc error: code = {code().name} desc = {details()}"
    return str(exc)


class DBManager:
    """Keeps track of database servers and forwards each key to its owner."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._servers: dict[str, _DBServer] = {}
        self._hasher = ConsistentHasher()

    def add_server(self, uuid: str, region: str, addr: str) -> bool:
        """Register a server and open a channel to it; False if it cannot be added."""
        with self._lock:
            if uuid in self._servers:
                return False
            try:
                channel = grpc.insecure_channel(addr)
            except (ValueError, TypeError, RuntimeError):
                return False
            self._servers[uuid] = _DBServer(
                uuid=uuid,
                region=region,
                addr=addr,
                channel=channel,
                stub=DBServerStub(channel),
            )
            self._hasher.add_node(uuid)
            return True

    def remove_server(self, uuid: str) -> bool:
        """Unregister a server and close its channel; False if it was unknown."""
        with self._lock:
            server = self._servers.pop(uuid, None)
            if server is None:
                return False
            server.channel.close()
            self._hasher.remove_node(uuid)
            return True

    def health_check_servers(self) -> None:
        """Drop every server that fails a health check, then rebuild the ring."""
        with self._lock:
            snapshot = dict(self._servers)

        unresponsive = []
        for uuid, server in snapshot.items():
            try:
                server.stub.health_check(HealthCheckRequest(), timeout=_HEALTH_TIMEOUT)
            except grpc.RpcError:
                unresponsive.append(uuid)

        with self._lock:
            for uuid in unresponsive:
                server = self._servers.pop(uuid, None)
                if server is not None:
                    server.channel.close()

        self.reconcile_servers()

    def _route(self, key: str) -> _DBServer:
        with self._lock:
            uuid = self._hasher.get_node(key)
            if uuid is None:
                raise ManagerError("no available database servers")
            server = self._servers.get(uuid)
        if server is None:
            raise ManagerError(f"server not found: {uuid}")
        return server

    def get_key(self, key: str) -> str:
        """Fetch ``key`` from the server that owns it."""
        server = self._route(key)
        try:
            return server.stub.get(GetRequest(key=key)).value
        except grpc.RpcError as exc:
            raise ManagerError(_describe(exc)) from exc

    def set_key(self, key: str, value: str) -> bool:
        """Store ``key`` on the server that owns it."""
        server = self._route(key)
        try:
            server.stub.set(SetRequest(key=key, value=value))
        except grpc.RpcError as exc:
            raise ManagerError(_describe(exc)) from exc
        return True

    def delete_key(self, key: str) -> bool:
        """Remove ``key`` from the server that owns it."""
        server = self._route(key)
        try:
            server.stub.delete(DeleteRequest(key=key))
        except grpc.RpcError as exc:
            raise ManagerError(_describe(exc)) from exc
        return True

    def reconcile_servers(self) -> None:
        """Make the hash ring hold exactly the registered servers."""
        with self._lock:
            active = list(self._servers)
        self._hasher.reconcile(active)

    def server_ids(self) -> list[str]:
        """Return the identifiers of the registered servers, sorted."""
        with self._lock:
            return sorted(self._servers)