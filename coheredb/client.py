"""Command-line client for storing, reading and deleting keys through the manager."""

import argparse
import sys
from collections.abc import Sequence

import grpc

from .protocol import DBManagerStub, DeleteRequest, GetRequest, SetRequest

DEFAULT_ADDR = "127.0.0.1:9090"
REQUEST_TIMEOUT = 10.0

_USAGE = (
    "Usage:",
    "  Set: ./client -op=set -key=mykey -value=myvalue",
    "  Get: ./client -op=get -key=mykey",
    "  Delete: ./client -op=delete -key=mykey",
)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="coheredb-client", description="Talk to the cohereDB manager."
    )
    parser.add_argument("-addr", "--addr", default=DEFAULT_ADDR, help="DB Manager address")
    parser.add_argument("-op", "--op", default="", help="Operation: get, set, delete")
    parser.add_argument("-key", "--key", default="", help="Key")
    parser.add_argument("-value", "--value", default="", help="Value (for set operation)")
    return parser.parse_args(argv)


def _describe(exc: grpc.RpcError) -> str:
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None)
    if callable(code) and callable(details):
        return f"rpc error: code = {code().name} desc = {details()}"
    return str(exc)


def _run(stub: DBManagerStub, op: str, key: str, value: str) -> int:
    if op == "set":
        if not value:
            print("Value is required for set operation")
            return 1
        try:
            response = stub.set(SetRequest(key=key, value=value), timeout=REQUEST_TIMEOUT)
        except grpc.RpcError as exc:
            print(f"Set operation failed: {_describe(exc)}")
            return 1
        if response.success:
            print(f"Successfully set key '{key}' = '{value}'")
        else:
            print(f"Failed to set key '{key}'")
        return 0

    if op == "get":
        try:
            response = stub.get(GetRequest(key=key), timeout=REQUEST_TIMEOUT)
        except grpc.RpcError as exc:
            print(f"Get operation failed: {_describe(exc)}")
            return 1
        print(f"Key '{key}' = '{response.value}'")
        return 0

    if op == "delete":
        try:
            response = stub.delete(DeleteRequest(key=key), timeout=REQUEST_TIMEOUT)
        except grpc.RpcError as exc:
            print(f"Delete operation failed: {_describe(exc)}")
            return 1
        if response.success:
            print(f"Successfully deleted key '{key}'")
        else:
            print(f"Failed to delete key '{key}'")
        return 0

    print(f"Unknown operation: {op}")
    print("Supported operations: get, set, delete")
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Run one get, set or delete against the manager and report the outcome."""
    args = _parse_args(argv)
    if not args.op or not args.key:
        for line in _USAGE:
            print(line)
        return 1

    try:
        channel = grpc.insecure_channel(args.addr)
    except (ValueError, TypeError, RuntimeError) as exc:
        print(f"Failed to connect to DB Manager: {exc}")
        return 1
    with channel:
        return _run(DBManagerStub(channel), args.op, args.key, args.value)


if __name__ == "__main__":
    sys.exit(main())