"""Bounded retry across the endpoint pool with exponential backoff."""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar
import structlog

from onchain_fees.core.endpoint_registry import EndpointRegistry
from onchain_fees.core.errors import RateLimitError, RetryExhaustedError, SimulationRevertError
from onchain_fees.core.rpc_client import RpcClient, is_rate_limit_message
from onchain_fees.models.blockchain import Attempt, Endpoint

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TIMEOUT_MARKERS = ("timeout", "timed out")


def classify_error(error: BaseException) -> str:
    """Map an operation failure to an attempt outcome."""
    if isinstance(error, SimulationRevertError):
        return "reverted"
    message = str(error)
    if isinstance(error, RateLimitError) or is_rate_limit_message(message):
        return "rate_limited"
    if any(marker in message.lower() for marker in TIMEOUT_MARKERS):
        return "transient"
    return "error"


class RetryExecutor:
    """
    Runs a caller-supplied read operation reliably across the endpoint pool.

    Each attempt asks the registry for the best endpoint, so a failing or
    rate-limited provider is rotated out on the next attempt. Backoff sleeps
    only block the calling thread.
    """

    def __init__(self,
                 registry: EndpointRegistry,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 deadline: Optional[float] = None,
                 client_factory: Optional[Callable[[Endpoint], Any]] = None,
                 rpc_timeout: float = 15.0,
                 sleep: Callable[[float], None] = time.sleep,
                 timer: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.deadline = deadline
        self._client_factory = client_factory or (lambda endpoint: RpcClient(endpoint.url, timeout=rpc_timeout))
        self._sleep = sleep
        self._timer = timer
        self._clients: Dict[str, Any] = {}
        self._clients_lock = threading.Lock()

    def client_for(self, endpoint: Endpoint) -> Any:
        """Return the (cached) client bound to an endpoint."""
        with self._clients_lock:
            client = self._clients.get(endpoint.url)
            if client is None:
                client = self._client_factory(endpoint)
                self._clients[endpoint.url] = client
            return client

    def execute_with_retry(self,
                           operation: Callable[[Any], T],
                           max_attempts: Optional[int] = None,
                           base_delay: Optional[float] = None,
                           operation_name: str = "RPC operation",
                           deadline: Optional[float] = None) -> T:
        """
        Execute `operation(client)` with endpoint rotation and backoff.

        Args:
            operation: Callable receiving an RPC client
            max_attempts: Attempts before giving up (default from constructor)
            base_delay: Seconds slept after the first failure, doubled each time
            operation_name: Label used in logs and the exhaustion error
            deadline: Upper bound in seconds on the whole loop, backoff included

        Raises:
            RetryExhaustedError: Every attempt failed
            SimulationRevertError: The call reverted; retrying cannot help
        """
        max_attempts = max_attempts if max_attempts is not None else self.max_attempts
        base_delay = base_delay if base_delay is not None else self.base_delay
        deadline = deadline if deadline is not None else self.deadline

        started = self._timer()
        history: List[Attempt] = []
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            endpoint = self.registry.select_endpoint()
            logger.debug("RPC attempt", operation=operation_name, attempt=attempt,
                         max_attempts=max_attempts, url=endpoint.url)

            try:
                result = operation(self.client_for(endpoint))
            except SimulationRevertError as e:
                # The provider answered; the revert is a property of chain state.
                self.registry.mark_success(endpoint)
                history.append(Attempt(endpoint.url, attempt, "reverted", str(e)))
                logger.info("Call reverted", operation=operation_name, url=endpoint.url, error=str(e))
                raise
            except Exception as e:
                last_error = e
                outcome = classify_error(e)
                history.append(Attempt(endpoint.url, attempt, outcome, str(e)))
                self.registry.mark_error(endpoint, is_rate_limit=outcome == "rate_limited")
                logger.warning("RPC attempt failed",
                               operation=operation_name,
                               attempt=attempt,
                               url=endpoint.url,
                               outcome=outcome,
                               error=str(e))
            else:
                self.registry.mark_success(endpoint)
                history.append(Attempt(endpoint.url, attempt, "success"))
                if attempt > 1:
                    logger.info("RPC recovery successful", operation=operation_name,
                                attempt=attempt, url=endpoint.url)
                return result

            if attempt < max_attempts:
                delay = base_delay * (2 ** (attempt - 1))
                if deadline is not None and (self._timer() - started) + delay > deadline:
                    logger.warning("Retry deadline reached", operation=operation_name,
                                   attempts=attempt, deadline_seconds=deadline)
                    raise RetryExhaustedError(operation_name, attempt, last_error, history)
                self._sleep(delay)

        logger.error("RPC operation exhausted", operation=operation_name,
                     attempts=max_attempts, last_error=str(last_error))
        raise RetryExhaustedError(operation_name, max_attempts, last_error, history)

    def close(self):
        """Close every cached client that supports it."""
        with self._clients_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            close = getattr(client, "close", None)
            if close is not None:
                close()
