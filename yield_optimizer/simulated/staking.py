"""In-memory Synthetix StakingRewards like pool.

- Rewards accrue per block, shared pro rata by stake

- The pool must hold enough reward tokens to pay out claims,
  fund it by minting or transferring reward tokens to the pool address
"""

import logging

from eth_typing import HexAddress

from yield_optimizer.errors import InsufficientBalance, ZeroAmount
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint

logger = logging.getLogger(__name__)

#: Fixed point precision of reward per token accounting
PRECISION = 10**18


class SimulatedStakingPool(LedgerComponent):
    """Liquidity token staking pool paying a reward token.

    :param reward_rate:
        Reward tokens emitted per block, shared by all stakers

    :param auto_claim_on_withdraw:
        Pay out pending rewards on every withdraw.
        Some pools do this, most do not.
    """

    state_attributes = (
        "reward_rate",
        "balances",
        "total_supply",
        "reward_per_token_stored",
        "last_update_block",
        "user_reward_per_token_paid",
        "rewards",
    )

    def __init__(
        self,
        ledger: Ledger,
        staking_token: HexAddress,
        rewards_token: HexAddress,
        reward_rate: int,
        auto_claim_on_withdraw: bool = False,
        owner: HexAddress | None = None,
    ):
        super().__init__(ledger, owner)
        assert reward_rate >= 0
        self.staking_token = staking_token
        self.rewards_token = rewards_token
        self.auto_claim_on_withdraw = auto_claim_on_withdraw
        self.reward_rate = reward_rate
        self.balances: dict[HexAddress, int] = {}
        self.total_supply = 0
        self.reward_per_token_stored = 0
        self.last_update_block = ledger.block_number
        self.user_reward_per_token_paid: dict[HexAddress, int] = {}
        self.rewards: dict[HexAddress, int] = {}

    def balance_of(self, account: HexAddress) -> int:
        return self.balances.get(account, 0)

    def reward_per_token(self) -> int:
        if self.total_supply == 0:
            return self.reward_per_token_stored
        elapsed = self.ledger.block_number - self.last_update_block
        return self.reward_per_token_stored + elapsed * self.reward_rate * PRECISION // self.total_supply

    def pending_reward(self, account: HexAddress) -> int:
        """Claimable reward, known as ``earned()`` in StakingRewards."""
        paid = self.user_reward_per_token_paid.get(account, 0)
        return self.balance_of(account) * (self.reward_per_token() - paid) // PRECISION + self.rewards.get(account, 0)

    def _update_reward(self, account: HexAddress | None):
        self.reward_per_token_stored = self.reward_per_token()
        self.last_update_block = self.ledger.block_number
        if account is not None:
            self.rewards[account] = self.pending_reward(account)
            self.user_reward_per_token_paid[account] = self.reward_per_token_stored

    @entrypoint(only_owner=True)
    def set_reward_rate(self, reward_rate: int, *, sender: HexAddress):
        assert reward_rate >= 0
        self._update_reward(None)
        self.reward_rate = reward_rate

    @entrypoint
    def stake(self, amount: int, *, sender: HexAddress):
        if amount == 0:
            raise ZeroAmount("Cannot stake 0")
        self._update_reward(sender)
        self.total_supply += amount
        self.balances[sender] = self.balance_of(sender) + amount
        self.ledger.get(self.staking_token).transfer_from(sender, self.address, amount, sender=self.address)
        self.emit("PoolStaked", account=sender, amount=amount)

    @entrypoint
    def withdraw(self, amount: int, *, sender: HexAddress):
        if amount == 0:
            raise ZeroAmount("Cannot withdraw 0")
        self._update_reward(sender)
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(f"{self}: {sender} has {balance} staked, cannot withdraw {amount}")
        self.total_supply -= amount
        self.balances[sender] = balance - amount
        self.ledger.get(self.staking_token).transfer(sender, amount, sender=self.address)
        self.emit("PoolWithdrawn", account=sender, amount=amount)
        if self.auto_claim_on_withdraw:
            self._claim(sender)

    @entrypoint
    def claim(self, *, sender: HexAddress) -> int:
        """Pay out pending reward, known as ``getReward()`` in StakingRewards.

        :return: Amount of reward tokens paid
        """
        return self._claim(sender)

    def _claim(self, account: HexAddress) -> int:
        self._update_reward(account)
        reward = self.rewards.get(account, 0)
        if reward > 0:
            self.rewards[account] = 0
            self.ledger.get(self.rewards_token).transfer(account, reward, sender=self.address)
            self.emit("PoolRewardPaid", account=account, amount=reward)
        return reward
