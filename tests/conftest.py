"""Pytest configuration and fixtures for fee reader tests."""

import logging
import pytest
import structlog
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

import onchain_fees.utils.logging as fee_logging
from onchain_fees.core.endpoint_registry import EndpointRegistry
from onchain_fees.core.errors import SimulationRevertError
from onchain_fees.core.position_reader import (
    BALANCE_OF_SIGNATURE,
    COLLECT_SIGNATURE,
    DECIMALS_SIGNATURE,
    OWNER_OF_SIGNATURE,
    POSITIONS_OUTPUT_TYPES,
    POSITIONS_SIGNATURE,
)

POSITION_MANAGER = "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1"
WETH = "0x4200000000000000000000000000000000000006"
KILT = "0x5d0dd05bb095fdd6af4865a1adf97c39c85ad2d8"
OWNER = "0x1111111111111111111111111111111111111111"


def selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


def encode_hex(types, values) -> str:
    return "0x" + encode(types, values).hex()


# ============================================================================
# CLOCK FIXTURES
# ============================================================================

class FakeClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant until advanced."""
    return FakeClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def sleep():
    """Records backoff sleeps instead of waiting."""
    return Mock()


# ============================================================================
# REGISTRY FIXTURES
# ============================================================================

@pytest.fixture
def registry(clock):
    """Three endpoints A, B, C with priorities 1, 2, 3 and a 60s cooldown."""
    return EndpointRegistry(
        [("https://a.example", 1), ("https://b.example", 2), ("https://c.example", 3)],
        rate_limit_cooldown=60,
        clock=clock,
    )


# ============================================================================
# CHAIN FIXTURES
# ============================================================================

class FakeChainClient:
    """
    In-memory stand-in for RpcClient answering the position manager and
    ERC-20 calls by function selector.
    """

    def __init__(self, position=None, owner=OWNER, collect=(0, 0), balance=0, decimals=18):
        self.position = position
        self.owner = owner
        self.collect = collect
        self.balance = balance
        self.decimals = decimals
        self.calls = []

    def count(self, signature: str) -> int:
        return sum(1 for call in self.calls if call["data"].startswith(selector(signature)))

    def eth_call(self, to, data, from_=None, block="latest"):
        self.calls.append({"to": to, "data": data, "from": from_})

        if data.startswith(selector(POSITIONS_SIGNATURE)):
            if isinstance(self.position, Exception):
                raise self.position
            return encode_hex(POSITIONS_OUTPUT_TYPES, self.position)
        if data.startswith(selector(OWNER_OF_SIGNATURE)):
            return encode_hex(["address"], [self.owner])
        if data.startswith(selector(COLLECT_SIGNATURE)):
            if isinstance(self.collect, Exception):
                raise self.collect
            return encode_hex(["uint256", "uint256"], list(self.collect))
        if data.startswith(selector(BALANCE_OF_SIGNATURE)):
            return encode_hex(["uint256"], [self.balance])
        if data.startswith(selector(DECIMALS_SIGNATURE)):
            return encode_hex(["uint8"], [self.decimals])
        raise AssertionError(f"Unexpected call data {data[:10]}")


def position_tuple(liquidity=0, owed0=0, owed1=0, token0=WETH, token1=KILT):
    """positions() output values in ABI order."""
    return [0, "0x0000000000000000000000000000000000000000", token0, token1, 3000,
            -887220, 887220, liquidity, 0, 0, owed0, owed1]


@pytest.fixture
def fake_chain():
    """Chain client holding an active position with some fees owed."""
    return FakeChainClient(
        position=position_tuple(liquidity=10 ** 18, owed0=5 * 10 ** 15, owed1=7 * 10 ** 18),
        collect=(12 * 10 ** 15, 30 * 10 ** 18),
    )


@pytest.fixture
def revert_error():
    return SimulationRevertError("eth_call RPC error 3: execution reverted: Not approved", code=3)


@pytest.fixture
def chain_factory():
    """Builds FakeChainClient instances with custom chain state."""
    return FakeChainClient


@pytest.fixture
def make_position():
    """Builds positions() output values."""
    return position_tuple


@pytest.fixture
def addresses():
    return {"manager": POSITION_MANAGER, "weth": WETH, "kilt": KILT, "owner": OWNER}


# ============================================================================
# LOGGING FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def restore_logging():
    """Undo setup_logging() so handlers never outlive the test that made them."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in fee_logging._installed:
        root.removeHandler(handler)
        handler.close()
    fee_logging._installed.clear()
    root.setLevel(level)
    structlog.reset_defaults()
