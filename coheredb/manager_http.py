"""HTTP endpoints through which database servers join the manager."""

import json
import threading
import uuid as uuidlib
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import urlsplit

from .config import logger
from .manager import DBManager

_JSON = "application/json"
_TEXT = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class HttpReply:
    """Status, body and content type of an HTTP answer."""

    status: HTTPStatus
    body: str
    content_type: str = _JSON


def _error(status: HTTPStatus, message: str) -> HttpReply:
    return HttpReply(status, message + "\n", _TEXT)


def _json(status: HTTPStatus, payload: dict[str, Any]) -> HttpReply:
    return HttpReply(status, json.dumps(payload, separators=(",", ":")) + "\n", _JSON)


def _parse_registration(body: bytes | str) -> tuple[str, str]:
    payload = json.loads(body)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("registration must be a JSON object")
    fields = []
    for name in ("region", "grpc_addr"):
        value = payload.get(name)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ValueError(f"field '{name}' must be a string")
        fields.append(value)
    return fields[0], fields[1]


def handle_register(manager: DBManager, method: str, body: bytes | str) -> HttpReply:
    """Register the database server described by a JSON body."""
    if method != "POST":
        return _error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
    try:
        region, grpc_addr = _parse_registration(body)
    except ValueError as exc:
        logger.error("Failed to decode registration request: %s", exc)
        return _error(HTTPStatus.BAD_REQUEST, "Invalid request body")
    if not region or not grpc_addr:
        return _error(HTTPStatus.BAD_REQUEST, "Region and grpc_addr are required")

    server_uuid = str(uuidlib.uuid4())
    if not manager.add_server(server_uuid, region, grpc_addr):
        logger.error("Failed to add server %s", server_uuid)
        return _json(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            {"success": False, "message": "Failed to register server"},
        )

    logger.info(
        "Successfully registered server %s from region %s at %s",
        server_uuid,
        region,
        grpc_addr,
    )
    return _json(
        HTTPStatus.OK,
        {
            "success": True,
            "server_uuid": server_uuid,
            "message": "Server registered successfully",
        },
    )


def _now_rfc3339() -> str:
    stamp = datetime.now().astimezone().isoformat(timespec="seconds")
    return stamp[: -len("+00:00")] + "Z" if stamp.endswith("+00:00") else stamp


def handle_health(method: str) -> HttpReply:
    """Report that the manager is up, with the current time."""
    if method != "GET":
        return _error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
    return _json(HTTPStatus.OK, {"status": "healthy", "time": _now_rfc3339()})


def handle_servers(method: str) -> HttpReply:
    """Answer the server-list endpoint."""
    if method != "GET":
        return _error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
    return _json(
        HTTPStatus.OK,
        {"message": "Server list endpoint - implementation pending", "status": "ok"},
    )


def _make_handler(manager: DBManager) -> type[BaseHTTPRequestHandler]:
    routes: dict[str, Callable[[str, bytes], HttpReply]] = {
        "/register": lambda method, body: handle_register(manager, method, body),
        "/health": lambda method, body: handle_health(method),
        "/servers": lambda method, body: handle_servers(method),
    }

    class _Handler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length", "0") or "0")
            body = self.rfile.read(length) if length > 0 else b""
            route = routes.get(urlsplit(self.path).path)
            if route is None:
                reply = _error(HTTPStatus.NOT_FOUND, "404 page not found")
            else:
                reply = route(self.command, body)
            data = reply.body.encode("utf-8")
            self.send_response(reply.status)
            self.send_header("Content-Type", reply.content_type)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _dispatch

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return _Handler


def _split_addr(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    if not port.isdigit():
        raise ValueError(f"invalid address {addr!r}")
    return host.strip("[]"), int(port)


class ManagerHttpServer:
    """Serves /register, /health and /servers over HTTP."""

    def __init__(self, manager: DBManager, addr: str) -> None:
        self.addr = addr
        self._httpd = ThreadingHTTPServer(_split_addr(addr), _make_handler(manager))
        self._httpd.daemon_threads = True
        self._started = threading.Event()

    @property
    def port(self) -> int:
        """The TCP port the server is bound to."""
        return self._httpd.server_address[1]

    def start(self) -> None:
        """Serve requests until stop is called."""
        logger.info("Starting HTTP server on %s", self.addr)
        self._started.set()
        self._httpd.serve_forever()

    def stop(self) -> None:
        """Stop serving and release the socket."""
        logger.info("Shutting down HTTP server...")
        if self._started.is_set():
            self._httpd.shutdown()
        self._httpd.server_close()