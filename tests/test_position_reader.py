"""
Tests for ABI encoding and position manager reads
"""

import pytest
from eth_abi import decode
from eth_utils import to_checksum_address

from onchain_fees.core.errors import RpcError
from onchain_fees.core.position_reader import (
    UINT128_MAX,
    PositionReader,
    decode_result,
    encode_call,
    parse_position_id,
)


@pytest.fixture
def reader(addresses):
    return PositionReader(addresses["manager"].lower())


class TestEncoding:
    """Test calldata and result helpers."""

    def test_selectors(self):
        assert encode_call("decimals()") == "0x313ce567"
        assert encode_call("positions(uint256)", ["uint256"], [1]).startswith("0x99fbab88")
        assert encode_call("ownerOf(uint256)", ["uint256"], [1]).startswith("0x6352211e")

    def test_arguments_are_abi_encoded(self):
        data = encode_call("positions(uint256)", ["uint256"], [1234])

        assert len(data) == 2 + 8 + 64
        assert int(data[10:], 16) == 1234

    @pytest.mark.parametrize("result", ["", "0x", None])
    def test_empty_result_raises(self, result):
        with pytest.raises(RpcError, match="no data"):
            decode_result(["uint256"], result)

    def test_decode_without_prefix(self):
        assert decode_result(["uint256"], "0" * 63 + "7") == (7,)


class TestParsePositionId:

    @pytest.mark.parametrize("value,expected", [
        (1234, 1234),
        ("1234", 1234),
        (" 42 ", 42),
        (0, 0),
    ])
    def test_valid(self, value, expected):
        assert parse_position_id(value) == expected

    @pytest.mark.parametrize("value", ["-1", -1, "12a", "", "1.0", True, None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_position_id(value)


class TestPositionReader:
    """Test reads against an in-memory chain."""

    def test_manager_address_checksummed(self, reader, addresses):
        assert reader.position_manager == addresses["manager"]

    def test_get_position(self, reader, chain_factory, make_position, addresses):
        chain = chain_factory(position=make_position(liquidity=10 ** 18, owed0=5, owed1=6))

        position = reader.get_position(chain, 1234)

        assert position.token0 == addresses["weth"]
        assert position.token1 == to_checksum_address(addresses["kilt"])
        assert position.fee == 3000
        assert position.tick_lower == -887220
        assert position.tick_upper == 887220
        assert position.liquidity == 10 ** 18
        assert (position.tokens_owed0, position.tokens_owed1) == (5, 6)
        assert position.exists()
        assert not position.is_empty()
        assert chain.calls[0]["to"] == addresses["manager"]

    def test_empty_position_record(self, reader, chain_factory, make_position):
        zero = "0x0000000000000000000000000000000000000000"
        chain = chain_factory(position=make_position(token0=zero, token1=zero))

        position = reader.get_position(chain, 99999999)

        assert not position.exists()
        assert position.is_empty()

    def test_get_owner(self, reader, chain_factory, addresses):
        chain = chain_factory(owner=addresses["owner"])

        assert reader.get_owner(chain, 1) == addresses["owner"]

    def test_simulate_collect_from_owner_with_max_amounts(self, reader, chain_factory, addresses):
        chain = chain_factory(collect=(111, 222))

        amounts = reader.simulate_collect(chain, 1234, addresses["owner"])

        assert amounts == (111, 222)
        request = chain.calls[0]
        assert request["from"] == addresses["owner"]
        (params,) = decode(["(uint256,address,uint128,uint128)"], bytes.fromhex(request["data"][10:]))
        assert params[0] == 1234
        assert params[1].lower() == addresses["owner"]
        assert params[2] == params[3] == UINT128_MAX

    def test_token_balance_and_decimals(self, reader, chain_factory, addresses):
        chain = chain_factory(balance=25 * 10 ** 17, decimals=6)

        assert reader.get_token_balance(chain, addresses["kilt"], addresses["owner"]) == 25 * 10 ** 17
        assert reader.get_decimals(chain, addresses["kilt"]) == 6
        assert chain.calls[0]["to"] == to_checksum_address(addresses["kilt"])
