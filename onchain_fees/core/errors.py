"""Error taxonomy for RPC access, fee resolution and pricing."""

from typing import List, Optional


class OnChainFeesError(Exception):
    """Base class for all errors raised by this package."""
    pass


class ConfigurationError(OnChainFeesError):
    """Invalid static configuration (e.g. no RPC endpoints). Fatal at startup."""
    pass


class RpcError(OnChainFeesError):
    """JSON-RPC level error returned by a provider."""

    def __init__(self, message: str, code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.url = url


class TransientNetworkError(RpcError):
    """Timeout or refused connection. Retried with backoff and rotation."""
    pass


class RateLimitError(RpcError):
    """HTTP 429 or provider rate-limit message. Retried, endpoint cooled down."""
    pass


class SimulationRevertError(RpcError):
    """The simulated call reverted. Endpoint-independent, never retried."""
    pass


class RetryExhaustedError(OnChainFeesError):
    """All attempts of one retry loop failed."""

    def __init__(self, operation_name: str, attempts: int, last_error: Optional[BaseException],
                 history: Optional[List] = None):
        self.operation_name = operation_name
        self.attempts = attempts
        self.last_error = last_error
        self.history = history or []
        last_message = str(last_error) if last_error is not None else "no attempt completed"
        super().__init__(
            f"{operation_name} failed after {attempts} attempts. Last error: {last_message}"
        )


class PriceFetchError(OnChainFeesError):
    """Price feed request failed. Never escapes PriceOracleCache.get_price()."""
    pass


class PositionNotFoundError(OnChainFeesError):
    """The position id was never minted or has been burned."""

    def __init__(self, position_id: str, reason: Optional[str] = None):
        self.position_id = position_id
        message = f"Position {position_id} does not exist"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FeeResolutionError(OnChainFeesError):
    """No fee strategy produced a result."""
    pass
