"""In-memory Beefy like auto-compounding vault.

- The vault is its own share token

- Yield shows up as a rising price per share, call :py:meth:`SimulatedVault.accrue`
  to simulate the vault strategy compounding
"""

import logging

from eth_typing import HexAddress

from yield_optimizer.errors import InsufficientBalance, ZeroAmount
from yield_optimizer.interfaces import PRICE_PER_SHARE_UNIT
from yield_optimizer.ledger import Ledger, entrypoint
from yield_optimizer.simulated.token import SimulatedToken

logger = logging.getLogger(__name__)


class SimulatedVault(SimulatedToken):
    """Single asset vault issuing shares."""

    def __init__(self, ledger: Ledger, want: SimulatedToken, owner: HexAddress | None = None):
        super().__init__(ledger, f"Moo {want.symbol}", f"moo{want.symbol}", want.decimals, owner=owner)
        self.want = want.address

    def balance(self) -> int:
        """Total amount of the want token managed by the vault."""
        return self.ledger.get(self.want).balance_of(self.address)

    def price_per_share(self) -> int:
        """Known as ``getPricePerFullShare()`` in Beefy."""
        if self.total_supply == 0:
            return PRICE_PER_SHARE_UNIT
        return self.balance() * PRICE_PER_SHARE_UNIT // self.total_supply

    @entrypoint
    def deposit(self, amount: int, *, sender: HexAddress) -> int:
        """Deposit want tokens.

        :return: Shares minted
        """
        if amount == 0:
            raise ZeroAmount("Cannot deposit 0")
        pool = self.balance()
        if self.total_supply == 0:
            shares = amount
        else:
            shares = amount * self.total_supply // pool
        if shares == 0:
            raise ZeroAmount(f"{self}: deposit {amount} too small for a share")
        self.ledger.get(self.want).transfer_from(sender, self.address, amount, sender=self.address)
        self._mint(sender, shares)
        self.emit("VaultDeposit", account=sender, amount=amount, shares=shares)
        return shares

    @entrypoint
    def withdraw(self, shares: int, *, sender: HexAddress) -> int:
        """Redeem shares.

        :return: Want tokens paid out
        """
        if shares == 0:
            raise ZeroAmount("Cannot withdraw 0 shares")
        if self.balance_of(sender) < shares:
            raise InsufficientBalance(f"{self}: {sender} has {self.balance_of(sender)} shares, cannot redeem {shares}")
        amount = self.balance() * shares // self.total_supply
        self._burn(sender, shares)
        self.ledger.get(self.want).transfer(sender, amount, sender=self.address)
        self.emit("VaultWithdraw", account=sender, amount=amount, shares=shares)
        return amount

    @entrypoint
    def accrue(self, amount: int, *, sender: HexAddress):
        """Simulate the vault strategy compounding: add want tokens without minting shares."""
        if amount == 0:
            raise ZeroAmount("Cannot accrue 0")
        self.ledger.get(self.want).transfer_from(sender, self.address, amount, sender=self.address)
        logger.debug("%s accrued %d, price per share now %d", self, amount, self.price_per_share())
