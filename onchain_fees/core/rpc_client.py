"""EVM JSON-RPC client for one provider endpoint."""

import itertools
import json
from typing import Any, Dict, List, Optional
import requests
import structlog

from onchain_fees.core.errors import (
    RateLimitError,
    RpcError,
    SimulationRevertError,
    TransientNetworkError,
)

logger = structlog.get_logger(__name__)

# JSON-RPC error codes with a fixed meaning across providers
EXECUTION_REVERTED_CODE = 3
LIMIT_EXCEEDED_CODE = -32005

RATE_LIMIT_MARKERS = ("429", "too many request", "rate limit")


def is_rate_limit_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


class RpcClient:
    """
    JSON-RPC 2.0 client bound to a single endpoint URL.

    Does no retrying of its own: failures are translated into the error
    taxonomy and handed to RetryExecutor, which rotates endpoints.
    """

    _ids = itertools.count(1)

    def __init__(self, url: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'onchain-fees/1.0.0'
        })

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Make one JSON-RPC request and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransientNetworkError(f"{method} request to {self.url} timed out: {e}", url=self.url)
        except requests.ConnectionError as e:
            raise TransientNetworkError(f"{method} connection to {self.url} failed: {e}", url=self.url)

        if response.status_code == 429:
            raise RateLimitError(f"HTTP 429 Too Many Requests from {self.url}", code=429, url=self.url)

        try:
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            raise RpcError(f"{method} HTTP error from {self.url}: {e}", code=response.status_code, url=self.url)
        except (json.JSONDecodeError, ValueError) as e:
            raise RpcError(f"{method} returned invalid JSON from {self.url}: {e}", url=self.url)

        error = data.get('error') if isinstance(data, dict) else None
        if error is not None:
            raise self._translate_error(method, error)

        return data.get('result')

    def _translate_error(self, method: str, error: Dict[str, Any]) -> RpcError:
        code = error.get('code')
        message = str(error.get('message', 'Unknown RPC error'))
        text = f"{method} RPC error {code}: {message}"

        if code == EXECUTION_REVERTED_CODE or 'revert' in message.lower():
            return SimulationRevertError(text, code=code, url=self.url)
        if code == LIMIT_EXCEEDED_CODE or is_rate_limit_message(message):
            return RateLimitError(text, code=code, url=self.url)
        return RpcError(text, code=code, url=self.url)

    def eth_call(self, to: str, data: str, from_: Optional[str] = None, block: str = "latest") -> str:
        """
        Execute a read-only call against the current state.

        Used both for view functions and for simulating state-mutating
        functions; nothing is ever signed or broadcast.
        """
        tx = {"to": to, "data": data}
        if from_:
            tx["from"] = from_
        return self.call("eth_call", [tx, block])

    def block_number(self) -> int:
        return int(self.call("eth_blockNumber"), 16)

    def close(self):
        """Close the HTTP session."""
        self.session.close()
        logger.debug("RPC client session closed", url=self.url)
