"""RPC service through which clients reach the database manager."""

import json
from concurrent import futures
from typing import Any, NoReturn

import grpc

from .config import logger
from .manager import DBManager, ManagerError
from .protocol import (
    DeleteRequest,
    DeleteResponse,
    GetRequest,
    GetResponse,
    SetRequest,
    SetResponse,
    add_db_manager_servicer,
)

_GRACE_SECONDS = 30.0
_MAX_WORKERS = 10


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _fail(context: Any, message: str) -> NoReturn:
    context.abort(grpc.StatusCode.UNKNOWN, message)
    raise RuntimeError(message)


class DBManagerService:
    """Forwards get, set and delete calls to the manager."""

    def __init__(self, manager: DBManager) -> None:
        self.manager = manager

    def get(self, request: GetRequest, context: Any) -> GetResponse:
        """Return the value stored under the requested key."""
        try:
            value = self.manager.get_key(request.key)
        except ManagerError as exc:
            _fail(context, f"failed to get key {_quote(request.key)}: {exc}")
        return GetResponse(value=value)

    def set(self, request: SetRequest, context: Any) -> SetResponse:
        """Store the requested key-value pair."""
        try:
            success = self.manager.set_key(request.key, request.value)
        except ManagerError as exc:
            _fail(context, f"failed to set key {_quote(request.key)}: {exc}")
        if not success:
            _fail(context, f"failed to set key {_quote(request.key)}: operation unsuccessful")
        return SetResponse(success=success)

    def delete(self, request: DeleteRequest, context: Any) -> DeleteResponse:
        """Remove the requested key."""
        try:
            success = self.manager.delete_key(request.key)
        except ManagerError as exc:
            _fail(context, f"failed to delete key {_quote(request.key)}: {exc}")
        if not success:
            _fail(
                context, f"failed to delete key {_quote(request.key)}: operation unsuccessful"
            )
        return DeleteResponse(success=success)


class ManagerGrpcServer:
    """Serves DBManagerService on a TCP address."""

    def __init__(self, addr: str, manager: DBManager) -> None:
        self.addr = addr
        self.port: int | None = None
        self.service = DBManagerService(manager)
        self._server = grpc.server(futures.ThreadPoolExecutor(max_workers=_MAX_WORKERS))
        add_db_manager_servicer(self.service, self._server)

    def start(self) -> None:
        """Bind the address and begin serving in the background."""
        try:
            port = self._server.add_insecure_port(self.addr)
        except RuntimeError as exc:
            logger.critical("Failed to start gRPC listener: %s", exc)
            raise OSError(f"failed to listen on {self.addr}: {exc}") from exc
        if not port:
            logger.critical("Failed to start gRPC listener on %s", self.addr)
            raise OSError(f"failed to listen on {self.addr}")
        self.port = port
        self._server.start()
        logger.info("gRPC server listening on %s", self.addr)

    def wait(self) -> None:
        """Block until the server has stopped."""
        self._server.wait_for_termination()

    def stop(self) -> None:
        """Stop accepting calls and let running ones finish."""
        logger.info("Shutting down gRPC server...")
        self._server.stop(grace=_GRACE_SECONDS).wait()