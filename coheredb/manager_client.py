"""Registration of a database server with the manager."""

import http.client
import json
import time
import urllib.error
import urllib.request
from http import HTTPStatus
from typing import Protocol

from .config import logger

_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))


class _Signal(Protocol):
    def set(self) -> None: ...


class DBManagerClient:
    """Talks to the manager's HTTP registration endpoint."""

    def __init__(self, manager_addr: str, region: str) -> None:
        self.manager_addr = manager_addr
        self.region = region

    def _post(self, url: str, payload: bytes) -> bool:
        request = urllib.request.Request(
            url,
            data=payload,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with _OPENER.open(request) as response:
                return response.status == HTTPStatus.OK
        except (urllib.error.URLError, http.client.HTTPException, OSError):
            return False

    def register_with_manager(
        self, region: str, grpc_addr: str, ready: _Signal | None = None
    ) -> None:
        """Register until the manager accepts, waiting longer after each failure.

        ``ready`` (for example a threading.Event) is set once registration succeeds.
        """
        payload = json.dumps(
            {"grpc_addr": grpc_addr, "region": region}, separators=(",", ":")
        ).encode("utf-8")
        url = f"http://{self.manager_addr}/register"
        retries = 0
        while True:
            if self._post(url, payload):
                logger.info("Successfully registered with db_manager (%s)", self.manager_addr)
                if ready is not None:
                    ready.set()
                return
            logger.warning(
                "Failed to register with db_manager (%s), retrying... (%d)",
                self.manager_addr,
                retries + 1,
            )
            retries += 1
            time.sleep(retries)