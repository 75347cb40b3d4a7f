"""Conversion of raw on-chain token amounts to USD."""

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Dict, Optional, Union

RawAmount = Union[int, str]


@dataclass(frozen=True)
class UsdBreakdown:
    """USD value of a token0/token1 amount pair."""
    token0_usd: float
    token1_usd: float
    total_usd: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def to_token_units(raw: RawAmount, decimals: int) -> Decimal:
    """Shift a raw integer amount by `decimals` without float rounding."""
    if isinstance(raw, bool):
        raise ValueError(f"Invalid raw token amount: {raw!r}")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()):
            raise ValueError(f"Invalid raw token amount: {raw!r}")
        value = int(text)

    if value < 0:
        raise ValueError(f"Raw token amount must not be negative: {raw!r}")
    # String construction is exact; arithmetic would round to context precision.
    return Decimal(f"{value}E-{decimals}")


def to_usd(token0_raw: RawAmount,
           token1_raw: RawAmount,
           price0: float,
           price1: float,
           decimals: int = 18,
           decimals1: Optional[int] = None) -> UsdBreakdown:
    """
    Compute `(raw / 10**decimals) * price` for both tokens and their sum.

    `decimals` applies to both tokens unless `decimals1` is given for token1.
    Pure function: no I/O, no caching.
    """
    token1_decimals = decimals if decimals1 is None else decimals1

    token0_usd = to_token_units(token0_raw, decimals) * Decimal(str(price0))
    token1_usd = to_token_units(token1_raw, token1_decimals) * Decimal(str(price1))

    return UsdBreakdown(
        token0_usd=float(token0_usd),
        token1_usd=float(token1_usd),
        total_usd=float(token0_usd + token1_usd),
    )
