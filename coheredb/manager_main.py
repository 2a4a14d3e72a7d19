"""Command that runs the database manager."""

import argparse
import signal
import sys
import threading
import tomllib
from collections.abc import Callable, Sequence
from typing import Any

from .config import load_toml_config, logger, setup_logging
from .manager import DBManager
from .manager_http import ManagerHttpServer
from .manager_rpc import ManagerGrpcServer

DEFAULT_CONFIG = "config/manager.toml"
HEALTH_CHECK_INTERVAL = 30.0
_POLL_SECONDS = 0.5


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="coheredb-manager", description="Run the cohereDB manager."
    )
    parser.add_argument(
        "-config", "--config", default=DEFAULT_CONFIG, help="Path to the config file"
    )
    return parser.parse_args(argv)


def _setting(config: dict[str, Any], name: str) -> str:
    section = config.get("manager", {})
    if not isinstance(section, dict):
        return ""
    value = section.get(name, "")
    return value if isinstance(value, str) else str(value)


def _install_stop_handlers(stop: threading.Event) -> Callable[[], None]:
    if threading.current_thread() is not threading.main_thread():
        return lambda: None
    previous = {
        signum: signal.signal(signum, lambda *_: stop.set())
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    return restore


def _health_loop(manager: DBManager, stop: threading.Event) -> None:
    while not stop.wait(HEALTH_CHECK_INTERVAL):
        logger.debug("Running health check on registered servers")
        try:
            manager.health_check_servers()
        except Exception:
            logger.exception("Health check failed")


def _serve_http(
    service: ManagerHttpServer, stop: threading.Event, failures: list[BaseException]
) -> None:
    try:
        service.start()
    except Exception as exc:
        logger.critical("HTTP server failed: %s", exc)
        failures.append(exc)
        stop.set()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the manager's RPC and HTTP servers until interrupted."""
    args = _parse_args(argv)
    setup_logging()
    logger.info("cohereDB manager starting...")

    try:
        config = load_toml_config(args.config)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.critical("Failed to load config file: %s", exc)
        return 1

    grpc_addr = _setting(config, "grpc_addr")
    http_addr = _setting(config, "http_addr")

    manager = DBManager()
    grpc_service = ManagerGrpcServer(grpc_addr, manager)
    try:
        http_service = ManagerHttpServer(manager, http_addr)
    except (OSError, ValueError) as exc:
        logger.critical("HTTP server failed: %s", exc)
        return 1

    stop = threading.Event()
    failures: list[BaseException] = []
    restore = _install_stop_handlers(stop)
    try:
        threading.Thread(target=_health_loop, args=(manager, stop), daemon=True).start()

        logger.info("Starting gRPC server on %s", grpc_addr)
        try:
            grpc_service.start()
        except OSError as exc:
            logger.critical("gRPC server failed: %s", exc)
            http_service.stop()
            return 1

        http_thread = threading.Thread(
            target=_serve_http, args=(http_service, stop, failures), daemon=True
        )
        http_thread.start()

        while not stop.wait(_POLL_SECONDS):
            pass
        logger.info("Shutting down servers...")

        grpc_service.stop()
        http_service.stop()
        http_thread.join()
    finally:
        stop.set()
        restore()

    if failures:
        return 1
    logger.info("Servers stopped successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())