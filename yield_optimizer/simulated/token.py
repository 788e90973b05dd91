"""In-memory ERC-20 token.

Deploy tokens to be used within your test suite or simulation:

.. code-block:: python

    wmatic = ledger.deploy(SimulatedToken(ledger, "Wrapped Matic", "WMATIC", owner=deployer), deployer)
    wmatic.mint(user, 10 * 10**18, sender=deployer)
    assert wmatic.convert_to_decimals(wmatic.balance_of(user)) == Decimal(10)
"""

import logging
from decimal import Decimal

from eth_typing import HexAddress

from yield_optimizer.address import ZERO_ADDRESS
from yield_optimizer.errors import TransferFailed
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint

logger = logging.getLogger(__name__)


class SimulatedToken(LedgerComponent):
    """ERC-20 with owner minting."""

    state_attributes = ("balances", "allowances", "total_supply")

    def __init__(self, ledger: Ledger, name: str, symbol: str, decimals: int = 18, owner: HexAddress | None = None):
        super().__init__(ledger, owner)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.balances: dict[HexAddress, int] = {}
        self.allowances: dict[tuple[HexAddress, HexAddress], int] = {}
        self.total_supply = 0

    def __repr__(self):
        return f"<{self.symbol} at {self.address}>"

    def balance_of(self, account: HexAddress) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: HexAddress, spender: HexAddress) -> int:
        return self.allowances.get((owner, spender), 0)

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to decimals.

        Example:

        .. code-block:: python

            # 18 decimals token
            assert token.convert_to_decimals(1) == Decimal("0.000000000000000001")
        """
        return Decimal(raw_amount) / Decimal(10**self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal) -> int:
        """Convert decimalised token amount to raw uint256."""
        return int(decimal_amount * 10**self.decimals)

    @entrypoint
    def transfer(self, to: HexAddress, amount: int, *, sender: HexAddress) -> bool:
        self._transfer(sender, to, amount)
        return True

    @entrypoint
    def transfer_from(self, owner: HexAddress, to: HexAddress, amount: int, *, sender: HexAddress) -> bool:
        allowed = self.allowance(owner, sender)
        if allowed < amount:
            raise TransferFailed(f"{self.symbol}: allowance {allowed} of {sender} from {owner} too low for {amount}")
        self.allowances[(owner, sender)] = allowed - amount
        self._transfer(owner, to, amount)
        return True

    @entrypoint
    def approve(self, spender: HexAddress, amount: int, *, sender: HexAddress) -> bool:
        assert amount >= 0
        self.allowances[(sender, spender)] = amount
        return True

    @entrypoint(only_owner=True)
    def mint(self, to: HexAddress, amount: int, *, sender: HexAddress):
        self._mint(to, amount)

    @entrypoint
    def burn(self, amount: int, *, sender: HexAddress):
        self._burn(sender, amount)

    def _transfer(self, source: HexAddress, to: HexAddress, amount: int):
        assert amount >= 0, f"Negative transfer {amount}"
        balance = self.balance_of(source)
        if balance < amount:
            raise TransferFailed(f"{self.symbol}: transfer amount {amount} exceeds balance {balance} of {source}")
        self.balances[source] = balance - amount
        self.balances[to] = self.balance_of(to) + amount

    def _mint(self, to: HexAddress, amount: int):
        assert amount >= 0
        self.balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def _burn(self, account: HexAddress, amount: int):
        balance = self.balance_of(account)
        if balance < amount:
            raise TransferFailed(f"{self.symbol}: burn amount {amount} exceeds balance {balance} of {account}")
        self.balances[account] = balance - amount
        self.total_supply -= amount


def create_token(ledger: Ledger, deployer: HexAddress, name: str, symbol: str, supply: int = 0, decimals: int = 18) -> SimulatedToken:
    """Deploy a new token and mint the initial supply to the deployer."""
    assert deployer != ZERO_ADDRESS
    token = ledger.deploy(SimulatedToken(ledger, name, symbol, decimals, owner=deployer), deployer)
    if supply:
        token.mint(deployer, supply, sender=deployer)
    logger.debug("Created token %s, supply %d", token, supply)
    return token
