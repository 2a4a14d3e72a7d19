"""Messages, client stubs and service registration for the RPC layer."""

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import grpc

DB_SERVER_SERVICE = "db_server.DBServer"
DB_MANAGER_SERVICE = "db_manager.DBManager"

_M = TypeVar("_M", bound="_Message")


class _Message:
    """JSON wire encoding shared by all messages; missing fields take defaults."""

    def to_bytes(self) -> bytes:
        return json.dumps(
            dataclasses.asdict(self), separators=(",", ":"), sort_keys=True
        ).encode("utf-8")

    @classmethod
    def from_bytes(cls: type[_M], data: bytes) -> _M:
        try:
            payload = json.loads(data.decode("utf-8")) if data else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"malformed {cls.__name__} payload: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"malformed {cls.__name__} payload: expected an object")
        values: dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            if field.name not in payload:
                continue
            value = payload[field.name]
            if type(value) is not field.type:
                raise ValueError(
                    f"field '{field.name}' of {cls.__name__} must be {field.type.__name__}"
                )
            values[field.name] = value
        return cls(**values)


@dataclass(frozen=True)
class GetRequest(_Message):
    key: str = ""


@dataclass(frozen=True)
class GetResponse(_Message):
    value: str = ""


@dataclass(frozen=True)
class SetRequest(_Message):
    key: str = ""
    value: str = ""


@dataclass(frozen=True)
class SetResponse(_Message):
    success: bool = False


@dataclass(frozen=True)
class DeleteRequest(_Message):
    key: str = ""


@dataclass(frozen=True)
class DeleteResponse(_Message):
    success: bool = False


@dataclass(frozen=True)
class HealthCheckRequest(_Message):
    pass


@dataclass(frozen=True)
class HealthCheckResponse(_Message):
    healthy: bool = False


def _serialize(message: _Message) -> bytes:
    return message.to_bytes()


def _call(
    channel: grpc.Channel, service: str, method: str, response: type[_Message]
) -> Callable[..., Any]:
    return channel.unary_unary(
        f"/{service}/{method}",
        request_serializer=_serialize,
        response_deserializer=response.from_bytes,
    )


class DBServerStub:
    """Client for a single database server."""

    def __init__(self, channel: grpc.Channel) -> None:
        self._get = _call(channel, DB_SERVER_SERVICE, "Get", GetResponse)
        self._set = _call(channel, DB_SERVER_SERVICE, "Set", SetResponse)
        self._delete = _call(channel, DB_SERVER_SERVICE, "Delete", DeleteResponse)
        self._health = _call(channel, DB_SERVER_SERVICE, "HealthCheck", HealthCheckResponse)

    def get(self, request: GetRequest, timeout: float | None = None) -> GetResponse:
        return self._get(request, timeout=timeout)

    def set(self, request: SetRequest, timeout: float | None = None) -> SetResponse:
        return self._set(request, timeout=timeout)

    def delete(self, request: DeleteRequest, timeout: float | None = None) -> DeleteResponse:
        return self._delete(request, timeout=timeout)

    def health_check(
        self, request: HealthCheckRequest, timeout: float | None = None
    ) -> HealthCheckResponse:
        return self._health(request, timeout=timeout)


class DBManagerStub:
    """Client for the database manager."""

    def __init__(self, channel: grpc.Channel) -> None:
        self._get = _call(channel, DB_MANAGER_SERVICE, "Get", GetResponse)
        self._set = _call(channel, DB_MANAGER_SERVICE, "Set", SetResponse)
        self._delete = _call(channel, DB_MANAGER_SERVICE, "Delete", DeleteResponse)

    def get(self, request: GetRequest, timeout: float | None = None) -> GetResponse:
        return self._get(request, timeout=timeout)

    def set(self, request: SetRequest, timeout: float | None = None) -> SetResponse:
        return self._set(request, timeout=timeout)

    def delete(self, request: DeleteRequest, timeout: float | None = None) -> DeleteResponse:
        return self._delete(request, timeout=timeout)


def _handler(behaviour: Callable[..., Any], request: type[_Message]) -> grpc.RpcMethodHandler:
    return grpc.unary_unary_rpc_method_handler(
        behaviour,
        request_deserializer=request.from_bytes,
        response_serializer=_serialize,
    )


def add_db_server_servicer(servicer: Any, server: grpc.Server) -> None:
    """Expose ``servicer``'s get, set, delete and health_check on ``server``."""
    handlers = {
        "Get": _handler(servicer.get, GetRequest),
        "Set": _handler(servicer.set, SetRequest),
        "Delete": _handler(servicer.delete, DeleteRequest),
        "HealthCheck": _handler(servicer.health_check, HealthCheckRequest),
    }
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(DB_SERVER_SERVICE, handlers),)
    )


def add_db_manager_servicer(servicer: Any, server: grpc.Server) -> None:
    """Expose ``servicer``'s get, set and delete on ``server``."""
    handlers = {
        "Get": _handler(servicer.get, GetRequest),
        "Set": _handler(servicer.set, SetRequest),
        "Delete": _handler(servicer.delete, DeleteRequest),
    }
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(DB_MANAGER_SERVICE, handlers),)
    )