"""Chain-side data structures: RPC endpoints, retry attempts, positions, prices."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

# An endpoint with this many unrecovered errors is never selected.
MAX_ERROR_COUNT = 5

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class EndpointState(str, Enum):
    """Health state of a single RPC endpoint."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNUSABLE = "unusable"
    RATE_LIMITED = "rate_limited"


@dataclass
class Endpoint:
    """One JSON-RPC provider URL with its mutable health counters."""
    url: str
    priority: int
    error_count: int = 0
    rate_limited: bool = False
    rate_limit_reset_time: Optional[datetime] = None
    last_error_time: Optional[datetime] = None

    @property
    def state(self) -> EndpointState:
        if self.rate_limited:
            return EndpointState.RATE_LIMITED
        if self.error_count >= MAX_ERROR_COUNT:
            return EndpointState.UNUSABLE
        if self.error_count > 0:
            return EndpointState.DEGRADED
        return EndpointState.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "priority": self.priority,
            "error_count": self.error_count,
            "rate_limited": self.rate_limited,
            "rate_limit_reset_time": (
                self.rate_limit_reset_time.isoformat() if self.rate_limit_reset_time else None
            ),
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "state": self.state.value,
        }


@dataclass
class Attempt:
    """Outcome of one try inside a retry loop. Never persisted."""
    endpoint_url: str
    attempt_number: int
    outcome: str
    error: Optional[str] = None


@dataclass
class PositionInfo:
    """Decoded NonfungiblePositionManager.positions(tokenId) record."""
    nonce: int
    operator: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int

    def is_empty(self) -> bool:
        """No liquidity and nothing owed: there is nothing to collect."""
        return self.liquidity == 0 and self.tokens_owed0 == 0 and self.tokens_owed1 == 0

    def exists(self) -> bool:
        """False for the all-zero record some managers return for unminted ids."""
        return not (self.token0 == ZERO_ADDRESS and self.token1 == ZERO_ADDRESS)


@dataclass
class PriceEntry:
    """Last successfully fetched USD price for a token symbol."""
    symbol: str
    price_usd: float
    fetched_at: datetime
    rejected_moves: int = 0
