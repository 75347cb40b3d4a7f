"""
Ranked registry of JSON-RPC endpoints with health tracking.

Endpoint state machine (derived from the counters, see EndpointState):

    HEALTHY (0 errors) --error--> DEGRADED (1-4) --5th error--> UNUSABLE (>=5)
    UNUSABLE --global reset--> HEALTHY
    any --rate-limit signal--> RATE_LIMITED --cooldown elapsed + reset_tick--> DEGRADED

Counters are mutated only through mark_success(), mark_error(), reset_tick()
and the global reset inside select_endpoint(). Every access holds one lock.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import structlog

from onchain_fees.core.errors import ConfigurationError
from onchain_fees.models.blockchain import MAX_ERROR_COUNT, Endpoint

logger = structlog.get_logger(__name__)

DEFAULT_RATE_LIMIT_COOLDOWN = 60.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


EndpointEntry = Union[Endpoint, str, Tuple[str, int]]


class EndpointRegistry:
    """
    Holds the static endpoint list and its mutable health state.

    Built once at process start and injected into RetryExecutor and
    RateLimitResetScheduler. Never persisted; a restart starts fresh.
    """

    def __init__(self,
                 endpoints: Sequence[EndpointEntry],
                 rate_limit_cooldown: float = DEFAULT_RATE_LIMIT_COOLDOWN,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            endpoints: Endpoints, bare URLs (priority = position, 1-based)
                or (url, priority) pairs
            rate_limit_cooldown: Seconds a rate-limited endpoint sits out
            clock: Returns the current time; injectable for tests
        """
        self._endpoints = self._build(endpoints)
        if not self._endpoints:
            raise ConfigurationError("No RPC endpoints configured")

        self.rate_limit_cooldown = timedelta(seconds=rate_limit_cooldown)
        self._clock = clock
        self._lock = threading.Lock()

        logger.info("Endpoint registry initialized",
                    endpoints=[e.url for e in self._endpoints],
                    cooldown_seconds=rate_limit_cooldown)

    @staticmethod
    def _build(entries: Iterable[EndpointEntry]) -> List[Endpoint]:
        endpoints = []
        seen = set()
        for position, entry in enumerate(entries, start=1):
            if isinstance(entry, Endpoint):
                endpoint = entry
            elif isinstance(entry, str):
                endpoint = Endpoint(url=entry, priority=position)
            else:
                url, priority = entry
                endpoint = Endpoint(url=url, priority=priority)

            if not endpoint.url:
                raise ConfigurationError("RPC endpoint URL must not be empty")
            if endpoint.url in seen:
                raise ConfigurationError(f"Duplicate RPC endpoint: {endpoint.url}")
            seen.add(endpoint.url)
            endpoints.append(endpoint)
        return endpoints

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    def get(self, url: str) -> Optional[Endpoint]:
        for endpoint in self._endpoints:
            if endpoint.url == url:
                return endpoint
        return None

    def _is_selectable(self, endpoint: Endpoint, now: datetime) -> bool:
        if endpoint.rate_limited:
            if endpoint.rate_limit_reset_time is None or now < endpoint.rate_limit_reset_time:
                return False
        return endpoint.error_count < MAX_ERROR_COUNT

    def _available(self, now: datetime) -> List[Endpoint]:
        candidates = [e for e in self._endpoints if self._is_selectable(e, now)]
        return sorted(candidates, key=lambda e: (e.priority, e.error_count))

    def available_endpoints(self) -> List[Endpoint]:
        """Currently selectable endpoints, best first. Has no side effects."""
        with self._lock:
            return self._available(self._clock())

    def select_endpoint(self) -> Endpoint:
        """
        Pick the best usable endpoint.

        When nothing is usable every endpoint is reset and the highest
        priority one is returned, so the pool can never lock itself out.
        """
        with self._lock:
            available = self._available(self._clock())
            if available:
                return available[0]

            logger.warning("No RPC endpoints available, resetting all error counts",
                           total_endpoints=len(self._endpoints))
            for endpoint in self._endpoints:
                endpoint.error_count = 0
                endpoint.rate_limited = False
                endpoint.rate_limit_reset_time = None
            return min(self._endpoints, key=lambda e: e.priority)

    def mark_success(self, endpoint: Endpoint) -> None:
        with self._lock:
            endpoint.error_count = max(0, endpoint.error_count - 1)
            endpoint.rate_limited = False
            endpoint.rate_limit_reset_time = None

    def mark_error(self, endpoint: Endpoint, is_rate_limit: bool = False) -> None:
        with self._lock:
            now = self._clock()
            endpoint.error_count += 1
            endpoint.last_error_time = now

            if is_rate_limit:
                endpoint.rate_limited = True
                endpoint.rate_limit_reset_time = now + self.rate_limit_cooldown
                logger.warning("Rate limit detected",
                               url=endpoint.url,
                               cooldown_until=endpoint.rate_limit_reset_time.isoformat())
            error_count = endpoint.error_count

        if error_count == MAX_ERROR_COUNT:
            logger.warning("Endpoint excluded after repeated errors",
                           url=endpoint.url, error_count=error_count)

    def reset_tick(self) -> List[str]:
        """
        Rehabilitate endpoints whose rate-limit cooldown has elapsed.

        Removes one error per endpoint rather than clearing the counter, so a
        provider that keeps throttling does not flap straight back to healthy.

        Returns:
            URLs of the endpoints that were released
        """
        released = []
        with self._lock:
            now = self._clock()
            for endpoint in self._endpoints:
                if (endpoint.rate_limited and endpoint.rate_limit_reset_time is not None
                        and now >= endpoint.rate_limit_reset_time):
                    endpoint.rate_limited = False
                    endpoint.rate_limit_reset_time = None
                    endpoint.error_count = max(0, endpoint.error_count - 1)
                    released.append(endpoint.url)

        for url in released:
            logger.info("Resetting rate limit", url=url)
        return released

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of every endpoint's health for diagnostics."""
        with self._lock:
            now = self._clock()
            return {
                "endpoints": [e.to_dict() for e in self._endpoints],
                "available_endpoints": len(self._available(now)),
                "total_endpoints": len(self._endpoints),
            }
