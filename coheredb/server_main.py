"""Command that runs a single database server."""

import argparse
import signal
import sys
import threading
import tomllib
from collections.abc import Callable, Sequence
from typing import Any

from .config import load_toml_config, logger, setup_logging
from .database import Database, DatabaseError
from .manager_client import DBManagerClient
from .server_rpc import GrpcServer

DEFAULT_CONFIG = "config.toml"
DATA_DIR_TEMPLATE = "../../data/db_{region}"
_POLL_SECONDS = 0.5


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="coheredb-server", description="Run a cohereDB database server."
    )
    parser.add_argument(
        "-config", "--config", default=DEFAULT_CONFIG, help="Path to the config file"
    )
    parser.add_argument(
        "-register",
        "--register",
        action="store_true",
        help="Indicates if registration should happen",
    )
    return parser.parse_args(argv)


def _setting(config: dict[str, Any], name: str) -> str:
    section = config.get("server", {})
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


def _serve(
    database: Database, register: bool, region: str, grpc_addr: str, manager_addr: str
) -> int:
    grpc_service = GrpcServer(database, grpc_addr)
    stop = threading.Event()
    restore = _install_stop_handlers(stop)
    try:
        if register:
            ready = threading.Event()
            client = DBManagerClient(manager_addr, region)
            threading.Thread(
                target=client.register_with_manager,
                args=(region, grpc_addr, ready),
                daemon=True,
            ).start()
            logger.info("Waiting for registration with db_manager...")
            while not ready.wait(_POLL_SECONDS):
                if stop.is_set():
                    logger.info("Shutting down before registration completed.")
                    return 0
            logger.info("Registration successful. Starting servers...")

        logger.info("Starting gRPC server on %s", grpc_addr)
        try:
            grpc_service.start()
        except OSError as exc:
            logger.critical("gRPC server failed: %s", exc)
            return 1

        while not stop.wait(_POLL_SECONDS):
            pass
        logger.info("Shutting down servers...")
        grpc_service.stop()
    finally:
        restore()

    logger.info("Servers stopped successfully.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run a database server until interrupted, optionally joining a manager first."""
    args = _parse_args(argv)
    setup_logging()
    logger.info("cohereDB server starting...")

    try:
        config = load_toml_config(args.config)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.critical("Failed to load config file: %s", exc)
        return 1

    region = _setting(config, "region")
    grpc_addr = _setting(config, "grpc_addr")
    manager_addr = _setting(config, "manager_addr")

    try:
        database = Database(DATA_DIR_TEMPLATE.format(region=region))
    except DatabaseError as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        return _serve(database, args.register, region, grpc_addr, manager_addr)
    finally:
        try:
            database.close()
        except DatabaseError as exc:
            logger.error("Failed to close database: %s", exc)


if __name__ == "__main__":
    sys.exit(main())