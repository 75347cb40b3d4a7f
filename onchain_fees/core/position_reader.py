"""
ABI-level reads against the NonfungiblePositionManager and ERC-20 tokens.

Every method takes an RPC client as its first argument so it can be handed
to RetryExecutor as the operation body:

    executor.execute_with_retry(lambda client: reader.get_position(client, 1234))
"""

from typing import Any, Sequence, Tuple
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from onchain_fees.core.errors import RpcError
from onchain_fees.models.blockchain import PositionInfo

UINT128_MAX = 2 ** 128 - 1

POSITIONS_SIGNATURE = "positions(uint256)"
POSITIONS_OUTPUT_TYPES = [
    "uint96",   # nonce
    "address",  # operator
    "address",  # token0
    "address",  # token1
    "uint24",   # fee
    "int24",    # tickLower
    "int24",    # tickUpper
    "uint128",  # liquidity
    "uint256",  # feeGrowthInside0LastX128
    "uint256",  # feeGrowthInside1LastX128
    "uint128",  # tokensOwed0
    "uint128",  # tokensOwed1
]
OWNER_OF_SIGNATURE = "ownerOf(uint256)"
COLLECT_SIGNATURE = "collect((uint256,address,uint128,uint128))"
BALANCE_OF_SIGNATURE = "balanceOf(address)"
DECIMALS_SIGNATURE = "decimals()"


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> str:
    """Build calldata: 4-byte selector followed by ABI-encoded arguments."""
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + encode(list(arg_types), list(args))).hex()


def decode_result(types: Sequence[str], result: str) -> Tuple[Any, ...]:
    """Decode hex eth_call output."""
    if not result or result == "0x":
        raise RpcError("eth_call returned no data (is the address a contract?)")
    body = result[2:] if result.startswith("0x") else result
    return decode(list(types), bytes.fromhex(body))


def parse_position_id(position_id: Any) -> int:
    """Validate a position id given as int or decimal string."""
    if isinstance(position_id, bool):
        raise ValueError(f"Invalid position id: {position_id!r}")
    if isinstance(position_id, int):
        value = position_id
    else:
        text = str(position_id).strip()
        if not (text.isascii() and text.isdigit()):
            raise ValueError(f"Invalid position id: {position_id!r}")
        value = int(text)
    if value < 0:
        raise ValueError(f"Invalid position id: {position_id!r}")
    return value


class PositionReader:
    """Encodes, executes and decodes the contract reads used for fee accounting."""

    def __init__(self, position_manager: str):
        self.position_manager = to_checksum_address(position_manager)

    def get_position(self, client, position_id: int) -> PositionInfo:
        data = encode_call(POSITIONS_SIGNATURE, ["uint256"], [position_id])
        values = decode_result(POSITIONS_OUTPUT_TYPES, client.eth_call(self.position_manager, data))
        (nonce, operator, token0, token1, fee, tick_lower, tick_upper, liquidity,
         fee_growth0, fee_growth1, owed0, owed1) = values

        return PositionInfo(
            nonce=nonce,
            operator=to_checksum_address(operator),
            token0=to_checksum_address(token0),
            token1=to_checksum_address(token1),
            fee=fee,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            liquidity=liquidity,
            fee_growth_inside0_last_x128=fee_growth0,
            fee_growth_inside1_last_x128=fee_growth1,
            tokens_owed0=owed0,
            tokens_owed1=owed1,
        )

    def get_owner(self, client, position_id: int) -> str:
        data = encode_call(OWNER_OF_SIGNATURE, ["uint256"], [position_id])
        (owner,) = decode_result(["address"], client.eth_call(self.position_manager, data))
        return to_checksum_address(owner)

    def simulate_collect(self, client, position_id: int, recipient: str) -> Tuple[int, int]:
        """
        Simulate collect() with maximal amounts, sent from the owner.

        Mirrors how the Uniswap interface reports pending fees. The call is
        an eth_call: nothing is signed or broadcast.
        """
        recipient = to_checksum_address(recipient)
        data = encode_call(
            COLLECT_SIGNATURE,
            ["(uint256,address,uint128,uint128)"],
            [(position_id, recipient, UINT128_MAX, UINT128_MAX)],
        )
        amount0, amount1 = decode_result(
            ["uint256", "uint256"],
            client.eth_call(self.position_manager, data, from_=recipient),
        )
        return amount0, amount1

    def get_token_balance(self, client, token: str, owner: str) -> int:
        data = encode_call(BALANCE_OF_SIGNATURE, ["address"], [to_checksum_address(owner)])
        (balance,) = decode_result(["uint256"], client.eth_call(to_checksum_address(token), data))
        return balance

    def get_decimals(self, client, token: str) -> int:
        data = encode_call(DECIMALS_SIGNATURE)
        (decimals,) = decode_result(["uint8"], client.eth_call(to_checksum_address(token), data))
        return decimals
