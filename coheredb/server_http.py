"""HTTP front end for a single database server."""

import json
import threading
from collections.abc import Callable, Mapping, Sequence
from email.message import Message
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

from .config import logger
from .database import Database, DatabaseError, KeyNotFoundError

Form = Mapping[str, str | Sequence[str]]
Reply = tuple[HTTPStatus, str]

_JSON = "application/json"
_TEXT = "text/plain; charset=utf-8"
_FORM_METHODS = {"POST", "PUT", "PATCH"}


def _field(form: Form, name: str) -> str:
    value = form.get(name, "")
    if isinstance(value, str):
        return value
    return value[0] if value else ""


def _error(message: str) -> str:
    return f'{{"error": "{message}"}}\n'


def handle_get(database: Database, form: Form) -> Reply:
    """Look up the form's key and answer with its value."""
    key = _field(form, "key")
    try:
        value = database.get(key)
    except KeyNotFoundError:
        logger.error("[GET] Key %s not found", key)
        return HTTPStatus.NOT_FOUND, _error(f"Key '{key}' not found")
    except DatabaseError as exc:
        logger.error("[GET] Error retrieving key %s: %s", key, exc)
        return HTTPStatus.INTERNAL_SERVER_ERROR, _error(f"Failed to get key '{key}': {exc}")
    logger.info("[GET] Successfully retrieved key %s", key)
    text = value.decode("utf-8", errors="replace")
    return HTTPStatus.OK, "{" + json.dumps(text, ensure_ascii=False) + "}"


def handle_set(database: Database, form: Form) -> Reply:
    """Store the form's key and value."""
    key = _field(form, "key")
    value = _field(form, "value")
    try:
        database.set(key, value)
    except DatabaseError as exc:
        logger.error("[SET] Error setting key %s: %s", key, exc)
        return HTTPStatus.INTERNAL_SERVER_ERROR, _error(f"Failed to set key '{key}': {exc}")
    logger.info("[SET] Successfully set key %s", key)
    return HTTPStatus.OK, f'{{"message": "Key \'{key}\' set successfully"}}'


def handle_delete(database: Database, form: Form) -> Reply:
    """Remove the form's key."""
    key = _field(form, "key")
    try:
        database.delete(key)
    except KeyNotFoundError:
        logger.error("[DELETE] Key %s not found", key)
        return HTTPStatus.NOT_FOUND, _error(f"Key '{key}' not found")
    except DatabaseError as exc:
        logger.error("[DELETE] Error deleting key %s: %s", key, exc)
        return HTTPStatus.INTERNAL_SERVER_ERROR, _error(f"Failed to delete key '{key}': {exc}")
    logger.info("[DELETE] Successfully deleted key %s", key)
    return HTTPStatus.OK, f'{{"message": "Key \'{key}\' deleted successfully"}}'


_ROUTES: dict[str, Callable[[Database, Form], Reply]] = {
    "/get": handle_get,
    "/set": handle_set,
    "/delete": handle_delete,
}


def _media_type(content_type: str) -> str:
    message = Message()
    message["Content-Type"] = content_type
    return message.get_content_type()


def _make_handler(database: Database) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        def _read_form(self) -> dict[str, list[str]]:
            query = parse_qs(urlsplit(self.path).query, keep_blank_values=True, errors="strict")
            body: dict[str, list[str]] = {}
            content_type = self.headers.get("Content-Type", "")
            if (
                self.command in _FORM_METHODS
                and _media_type(content_type) == "application/x-www-form-urlencoded"
            ):
                length = int(self.headers.get("Content-Length", "0") or "0")
                raw = self.rfile.read(length).decode("utf-8")
                body = parse_qs(raw, keep_blank_values=True, errors="strict")
            merged: dict[str, list[str]] = {}
            for source in (body, query):
                for name, values in source.items():
                    merged.setdefault(name, []).extend(values)
            return merged

        def _reply(self, status: HTTPStatus, body: str, content_type: str) -> None:
            data = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _dispatch(self) -> None:
            route = _ROUTES.get(urlsplit(self.path).path)
            if route is None:
                self._reply(HTTPStatus.NOT_FOUND, "404 page not found\n", _TEXT)
                return
            try:
                form = self._read_form()
            except ValueError as exc:
                logger.error("Error parsing form data")
                status, body = (
                    HTTPStatus.INTERNAL_SERVER_ERROR,
                    _error(f"Failed to forward request: {exc}"),
                )
            else:
                status, body = route(database, form)
            self._reply(status, body, _JSON if status == HTTPStatus.OK else _TEXT)

        do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _dispatch

        def log_message(self, format: str, *args: object) -> None:
            logger.debug(format, *args)

    return _Handler


def _split_addr(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    if not port.isdigit():
        raise ValueError(f"invalid address {addr!r}")
    return host.strip("[]"), int(port)


class HttpServer:
    """Serves /get, /set and /delete over HTTP."""

    def __init__(self, database: Database, addr: str) -> None:
        self.addr = addr
        self._httpd = ThreadingHTTPServer(_split_addr(addr), _make_handler(database))
        self._httpd.daemon_threads = True
        self._started = threading.Event()

    @property
    def port(self) -> int:
        """The TCP port the server is bound to."""
        return self._httpd.server_address[1]

    def start(self) -> None:
        """Serve requests until shutdown is called."""
        logger.info("Starting HTTP server on %s", self.addr)
        self._started.set()
        self._httpd.serve_forever()

    def shutdown(self) -> None:
        """Stop serving and release the socket."""
        logger.info("Shutting down HTTP server...")
        if self._started.is_set():
            self._httpd.shutdown()
        self._httpd.server_close()
        logger.info("HTTP server shut down successfully")