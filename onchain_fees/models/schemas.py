"""Pydantic schemas returned to callers of the fee reader."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class FeeSource(str, Enum):
    """How a fee quote was obtained."""
    SIMULATE = "simulate"
    FALLBACK_READ = "fallbackRead"
    ZERO_SHORT_CIRCUIT = "zeroShortCircuit"


class FeeQuote(BaseModel):
    """Unclaimed fees of one liquidity position. Produced per request, never cached."""
    position_id: str = Field(..., alias="positionId", description="Position NFT token id")
    token0_raw: str = Field(..., alias="token0Raw", description="Raw token0 amount as integer string")
    token1_raw: str = Field(..., alias="token1Raw", description="Raw token1 amount as integer string")
    usd_value: Optional[float] = Field(None, alias="usdValue", description="Total USD value, null if pricing failed")
    source_method: FeeSource = Field(..., alias="sourceMethod", description="Method that produced the amounts")
    token0_price: Optional[float] = Field(None, alias="token0Price", description="token0 USD price used")
    token1_price: Optional[float] = Field(None, alias="token1Price", description="token1 USD price used")

    class Config:
        populate_by_name = True

    @property
    def is_authoritative(self) -> bool:
        """False when amounts come from the lagging tokensOwed counters."""
        return self.source_method != FeeSource.FALLBACK_READ

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
