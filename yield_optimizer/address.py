"""Address helpers.

- Deterministic address allocation for components deployed on a :py:class:`yield_optimizer.ledger.Ledger`

- Token ordering as Uniswap v2 wants it
"""

from typing import Tuple

from eth_typing import HexAddress
from web3 import Web3

#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def create_address(deployer: HexAddress, nonce: int) -> HexAddress:
    """Derive the address of a component the deployer creates.

    Same idea as CREATE: the address depends only on the deployer and its nonce,
    so replaying the same deployments yields the same addresses.

    :param deployer: Address creating the component
    :param nonce: How many components this deployer has created before
    :return: Checksummed address
    """
    assert nonce >= 0
    raw = Web3.solidity_keccak(["address", "uint256"], [Web3.to_checksum_address(deployer), nonce])
    return Web3.to_checksum_address(Web3.to_hex(raw)[-40:])


def account_from_label(label: str) -> HexAddress:
    """Make a stable externally owned account address for a human readable label.

    Used in tests and simulation scripts:

    .. code-block:: python

        operator = account_from_label("operator")
    """
    raw = Web3.keccak(text=label)
    return Web3.to_checksum_address(Web3.to_hex(raw)[-40:])


def sort_tokens(token_a: HexAddress, token_b: HexAddress) -> Tuple[HexAddress, HexAddress]:
    """Put lower address first, as Uniswap wants."""
    assert token_a != token_b, f"Received bad token pair {token_a}:{token_b}"
    (token_0, token_1) = (token_a, token_b) if int(token_a, 16) < int(token_b, 16) else (token_b, token_a)
    assert token_0 != ZERO_ADDRESS
    return token_0, token_1
