"""Data models and configuration."""

from onchain_fees.models.config import FeeReaderConfig
from onchain_fees.models.blockchain import Attempt, Endpoint, EndpointState, PositionInfo, PriceEntry
from onchain_fees.models.schemas import FeeQuote, FeeSource

__all__ = [
    "FeeReaderConfig",
    "Attempt",
    "Endpoint",
    "EndpointState",
    "PositionInfo",
    "PriceEntry",
    "FeeQuote",
    "FeeSource",
]
