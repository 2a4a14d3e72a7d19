"""RPC service exposing a single database server's storage."""

from concurrent import futures
from typing import Any, NoReturn

import grpc

from .config import logger
from .database import Database, DatabaseError
from .protocol import (
    DeleteRequest,
    DeleteResponse,
    GetRequest,
    GetResponse,
    HealthCheckRequest,
    HealthCheckResponse,
    SetRequest,
    SetResponse,
    add_db_server_servicer,
)

_GRACE_SECONDS = 30.0
_MAX_WORKERS = 10


def _fail(context: Any, message: str) -> NoReturn:
    context.abort(grpc.StatusCode.UNKNOWN, message)
    raise RuntimeError(message)


class DBServerService:
    """Answers get, set, delete and health checks from a local database."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def get(self, request: GetRequest, context: Any) -> GetResponse:
        """Return the value stored under the requested key."""
        try:
            value = self.database.get(request.key)
        except DatabaseError as exc:
            _fail(context, f"failed to get key '{request.key}': {exc}")
        return GetResponse(value=value.decode("utf-8", errors="replace"))

    def set(self, request: SetRequest, context: Any) -> SetResponse:
        """Store the requested key-value pair."""
        try:
            self.database.set(request.key, request.value)
        except DatabaseError as exc:
            _fail(
                context,
                f"failed to set key '{request.key}' with value '{request.value}': {exc}",
            )
        return SetResponse(success=True)

    def delete(self, request: DeleteRequest, context: Any) -> DeleteResponse:
        """Remove the requested key."""
        try:
            self.database.delete(request.key)
        except DatabaseError as exc:
            _fail(context, f"failed to delete key '{request.key}': {exc}")
        return DeleteResponse(success=True)

    def health_check(self, request: HealthCheckRequest, context: Any) -> HealthCheckResponse:
        """Report the server as healthy."""
        return HealthCheckResponse(healthy=True)


class GrpcServer:
    """Serves DBServerService on a TCP address."""

    def __init__(self, database: Database, addr: str) -> None:
        self.addr = addr
        self.port: int | None = None
        self.service = DBServerService(database)
        self._server = grpc.server(futures.ThreadPoolExecutor(max_workers=_MAX_WORKERS))
        add_db_server_servicer(self.service, self._server)

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