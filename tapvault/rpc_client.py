"""Minimal JSON-RPC client used to read the current chain height.

Only the read path needed to derive a lock height lives here. Broadcasting and
confirmation polling are left to the caller's own tooling.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with an RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NodeRPCClient:
    """Thin JSON-RPC client for a Bitcoin Core compatible node."""

    def __init__(self, config: RPCConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._url = config.base_url

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "1.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self._url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                auth=(self.config.user, self.config.password),
                timeout=30,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure your node is reachable and TAPVAULT_RPC_* "
                "variables (or ~/.tapvault.yaml) point to the right host and port."
            ) from exc
        self._raise_for_status(response)
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if result.get("error"):
            error = result["error"]
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        # Core reports JSON-RPC errors as HTTP 500 with a JSON body
        if response.status_code == 500:
            return
        if response.status_code == 401:
            raise RPCTransportError(
                "Unauthorized (401). Ensure TAPVAULT_RPC_USER/TAPVAULT_RPC_PASSWORD contain valid credentials.",
                status_code=response.status_code,
            )
        if not response.ok:
            logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
            raise RPCTransportError(
                f"RPC server returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

    def getblockcount(self) -> int:
        return int(self.call("getblockcount"))

    def get_best_height(self) -> int:
        """Return the current best chain height."""

        return self.getblockcount()
