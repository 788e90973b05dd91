"""Per depositor optimizers.

Each depositor gets one optimizer per strategy, created by
:py:meth:`yield_optimizer.registry.StrategyRegistry.create_optimizer`.
The optimizer does not keep a balance of its own: the staked amount
is always read from the staking pool or vault.

- :py:class:`StakingOptimizer` stakes liquidity tokens in a staking pool and
  zaps the reward token back to liquidity tokens on harvest

- :py:class:`VaultOptimizer` deposits liquidity tokens in an auto-compounding vault
  and realizes the vault yield on harvest

A fee collector is an optimizer owned by the treasury. It receives the fee share
of every harvest of the same strategy through :py:meth:`Optimizer.collect_fee`.

Example:

.. code-block:: python

    optimizer = strategy_registry.create_optimizer(0, sender=user)

    lp_token.approve(optimizer.address, amount, sender=user)
    optimizer.stake(amount, sender=user)

    ledger.mine(100)
    optimizer.harvest(sender=user)

    optimizer.exit_avalanche(sender=user)
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from eth_typing import HexAddress

from yield_optimizer.amm import BPS
from yield_optimizer.config import ProtocolConfig, WithdrawFeePolicy
from yield_optimizer.errors import InsufficientBalance, ProtectedToken, Unauthorized, ZeroAmount
from yield_optimizer.interfaces import PRICE_PER_SHARE_UNIT, FungibleToken, StakingPool, Vault
from yield_optimizer.ledger import Ledger, LedgerComponent, entrypoint
from yield_optimizer.strategy import Strategy, StrategyKind
from yield_optimizer.zap import Zap

if TYPE_CHECKING:
    from yield_optimizer.registry import StrategyRegistry

logger = logging.getLogger(__name__)


class Optimizer(LedgerComponent, ABC):
    """Stake, harvest and compound one liquidity token for one owner.

    All mutating operations are owner only,
    except :py:meth:`collect_fee` which other optimizers of the same strategy call.

    :param registry:
        Strategy registry that created this optimizer

    :param strategy_id:
        Strategy this optimizer is bound to

    :param is_fee_collector:
        Owned by the treasury and receives the fee share of the strategy
    """

    state_attributes = ("retired",)

    def __init__(
        self,
        ledger: Ledger,
        registry: HexAddress,
        strategy_id: int,
        owner: HexAddress,
        is_fee_collector: bool = False,
    ):
        super().__init__(ledger, owner)
        self.registry = registry
        self.strategy_id = strategy_id
        self.is_fee_collector = is_fee_collector

        #: Fee collector no longer takes fees, set by the treasury on retirement
        self.retired = False

    def __repr__(self):
        kind = "FeeCollector" if self.is_fee_collector else self.__class__.__name__
        return f"<{kind} strategy:{self.strategy_id} owner:{self.owner} at {self.address}>"

    def get_registry(self) -> "StrategyRegistry":
        return self.ledger.get(self.registry)

    def get_strategy(self) -> Strategy:
        return self.get_registry().get_strategy(self.strategy_id)

    def get_config(self) -> ProtocolConfig:
        return self.get_registry().config

    def get_token(self, address: HexAddress) -> FungibleToken:
        return self.ledger.get(address)

    def get_staking_token(self) -> FungibleToken:
        return self.get_token(self.get_strategy().staking_token)

    def get_zap(self) -> Zap:
        return self.ledger.get(self.get_strategy().zap)

    @abstractmethod
    def staked(self) -> int:
        """Liquidity tokens attributed to this optimizer in the yield source."""

    @abstractmethod
    def get_pending_rewards(self) -> int:
        """Reward waiting for :py:meth:`harvest`, without changing any state."""

    @abstractmethod
    def get_protected_tokens(self) -> set[HexAddress]:
        """Tokens :py:meth:`recover_erc20` must not touch."""

    @abstractmethod
    def _deposit(self, amount: int):
        """Put liquidity tokens this optimizer holds into the yield source."""

    @abstractmethod
    def _redeem(self, amount: int) -> int:
        """Take liquidity tokens out of the yield source into this optimizer.

        :return: Liquidity tokens received
        """

    @abstractmethod
    def _harvest(self) -> int:
        """Realize pending reward, pay fee and dividend, compound the rest.

        :return: Liquidity tokens compounded
        """

    @entrypoint(only_owner=True)
    def stake(self, amount: int, *, sender: HexAddress):
        """Pull liquidity tokens from the owner and stake them.

        The owner must have approved this optimizer for ``amount``.
        """
        self._stake_from(sender, amount)

    @entrypoint(only_owner=True)
    def withdraw(self, amount: int, *, sender: HexAddress) -> int:
        """Unstake and send liquidity tokens to the owner.

        What the withdrawal costs depends on :py:class:`yield_optimizer.config.WithdrawFeePolicy`.

        :return: Liquidity tokens sent to the owner

        :raise InsufficientBalance: If more than :py:meth:`staked` is asked
        """
        return self._withdraw(amount)

    @entrypoint(only_owner=True)
    def harvest(self, *, sender: HexAddress) -> int:
        """Claim and compound pending reward.

        A harvest with nothing to claim changes nothing.
        Reward too small to zap stays in the optimizer for the next harvest.

        :return: Liquidity tokens compounded
        """
        return self._harvest()

    @entrypoint(only_owner=True)
    def exit_avalanche(self, *, sender: HexAddress) -> int:
        """Harvest, then withdraw everything, as one operation.

        Reward token and pair token dust left in the optimizer goes to the owner too.

        :return: Liquidity tokens sent to the owner
        """
        return self._exit()

    @entrypoint(only_owner=True)
    def zap(self, token: HexAddress, amount: int, *, sender: HexAddress) -> int:
        """Convert any token to the strategy liquidity token and send it to the owner.

        :return: Liquidity tokens sent to the owner
        """
        liquidity = self._zap_from(sender, token, amount)
        self.get_staking_token().transfer(self.owner, liquidity, sender=self.address)
        return liquidity

    @entrypoint(only_owner=True)
    def zap_and_stake(self, token: HexAddress, amount: int, *, sender: HexAddress) -> int:
        """Convert any token to the strategy liquidity token and stake it.

        :return: Liquidity tokens staked
        """
        liquidity = self._zap_from(sender, token, amount)
        self._deposit(liquidity)
        self.emit("Staked", account=sender, amount=liquidity)
        return liquidity

    @entrypoint(only_owner=True)
    def recover_erc20(self, token: HexAddress, *, sender: HexAddress) -> int:
        """Sweep a token sent here by accident to the owner.

        :return: Amount swept

        :raise ProtectedToken: For the staking, reward or vault share token
        """
        if token in self.get_protected_tokens():
            raise ProtectedToken(f"{self}: cannot recover {token}")
        erc20 = self.get_token(token)
        amount = erc20.balance_of(self.address)
        if amount > 0:
            erc20.transfer(self.owner, amount, sender=self.address)
        self.emit("Recovered", token=token, amount=amount)
        return amount

    @entrypoint
    def collect_fee(self, amount: int, *, sender: HexAddress):
        """Receive the fee share of another optimizer of the same strategy.

        Only fee collectors take fees, and only from optimizers of their own strategy.
        The sender must have approved this fee collector for ``amount`` liquidity tokens.
        """
        if not self.is_fee_collector or self.retired:
            raise Unauthorized(f"{self} does not collect fees")
        if sender == self.address or not self.get_registry().is_optimizer(sender, self.strategy_id):
            raise Unauthorized(f"{sender} is not an optimizer of strategy {self.strategy_id}")
        if amount == 0:
            raise ZeroAmount("Cannot collect 0 fee")
        self.get_staking_token().transfer_from(sender, self.address, amount, sender=self.address)
        self._deposit(amount)
        self.emit("FeeCollected", optimizer=sender, amount=amount)
        logger.debug("%s collected %d fee from %s", self, amount, sender)

    @entrypoint(only_owner=True)
    def retire(self, *, sender: HexAddress):
        """Stop taking fees. Fee shares of the strategy are compounded from now on."""
        assert self.is_fee_collector, f"{self} is not a fee collector"
        self.retired = True

    def _stake_from(self, account: HexAddress, amount: int):
        if amount == 0:
            raise ZeroAmount("Cannot stake 0")
        self.get_staking_token().transfer_from(account, self.address, amount, sender=self.address)
        self._deposit(amount)
        self.emit("Staked", account=account, amount=amount)
        logger.info("%s staked %d", self, amount)

    def _withdraw(self, amount: int) -> int:
        if amount == 0:
            raise ZeroAmount("Cannot withdraw 0")
        staked = self.staked()
        if amount > staked:
            raise InsufficientBalance(f"{self}: {staked} staked, cannot withdraw {amount}")

        config = self.get_config()
        policy = WithdrawFeePolicy.harvest_only if self.is_fee_collector else config.withdraw_fee_policy
        takes_fee = not self._is_fee_exempt()
        if policy == WithdrawFeePolicy.harvest_before_withdraw:
            self._harvest()

        received = self._redeem(amount)
        fee = 0
        if policy == WithdrawFeePolicy.every_withdraw and takes_fee:
            fee = received * config.withdraw_fee_bps // BPS
            if fee > 0:
                self._pay_fee(fee)

        self.get_staking_token().transfer(self.owner, received - fee, sender=self.address)
        self.emit("Withdrawn", account=self.owner, amount=received - fee, fee=fee)
        logger.info("%s withdrew %d, withdraw fee %d", self, received - fee, fee)
        return received - fee

    def _withdraw_all(self) -> int:
        staked = self.staked()
        return self._withdraw(staked) if staked > 0 else 0

    def _is_fee_exempt(self) -> bool:
        """Fee collectors do not pay fees, and retired fee collectors do not take them."""
        if self.is_fee_collector:
            return True
        fee_collector: Optimizer = self.ledger.get(self.get_strategy().fee_collector)
        return fee_collector.retired

    def _split(self, amount: int) -> tuple[int, int, int]:
        fee, dividend, remainder = self.get_config().split(amount)
        if self._is_fee_exempt():
            return 0, dividend, remainder + fee
        return fee, dividend, remainder

    def _pay_fee(self, liquidity: int):
        strategy = self.get_strategy()
        fee_collector: Optimizer = self.ledger.get(strategy.fee_collector)
        self.get_staking_token().approve(fee_collector.address, liquidity, sender=self.address)
        fee_collector.collect_fee(liquidity, sender=self.address)

    def _pay_dividend(self, token: HexAddress, amount: int):
        recipient = self.get_config().dividend_recipient
        assert recipient is not None, "Dividend share without a recipient"
        self.get_token(token).transfer(recipient, amount, sender=self.address)

    def _zap_into_liquidity(self, token: HexAddress, amount: int) -> int:
        """Zap tokens this optimizer holds, liquidity tokens stay here."""
        strategy = self.get_strategy()
        zap = self.get_zap()
        self.get_token(token).approve(zap.address, amount, sender=self.address)
        return zap.zap(token, strategy.token_a, strategy.token_b, amount, sender=self.address)

    def _zap_from(self, account: HexAddress, token: HexAddress, amount: int) -> int:
        if amount == 0:
            raise ZeroAmount("Cannot zap 0")
        self.get_token(token).transfer_from(account, self.address, amount, sender=self.address)
        return self._zap_into_liquidity(token, amount)

    def _exit(self) -> int:
        self._harvest()
        withdrawn = self._withdraw_all()
        # Reward the yield source paid out on withdrawal is harvested before leaving
        if self._harvest() > 0:
            withdrawn += self._withdraw_all()
        self._sweep_dust()
        logger.info("%s exited with %d", self, withdrawn)
        return withdrawn

    def _sweep_dust(self):
        """Send reward too small to harvest and zap leftovers of the pair tokens to the owner."""
        strategy = self.get_strategy()
        for address in sorted({strategy.reward_token, strategy.token_a, strategy.token_b} - {strategy.staking_token}):
            token = self.get_token(address)
            dust = token.balance_of(self.address)
            if dust > 0:
                token.transfer(self.owner, dust, sender=self.address)
                logger.debug("%s swept %d dust of %s to %s", self, dust, address, self.owner)


class StakingOptimizer(Optimizer):
    """Optimizer for a staking pool paying a separate reward token.

    Also called ``UniV2Optimizer``.
    """

    def get_staking_pool(self) -> StakingPool:
        return self.ledger.get(self.get_strategy().staking_pool)

    def staked(self) -> int:
        return self.get_staking_pool().balance_of(self.address)

    def get_pending_rewards(self) -> int:
        return self.get_staking_pool().pending_reward(self.address)

    def get_protected_tokens(self) -> set[HexAddress]:
        strategy = self.get_strategy()
        return {strategy.staking_token, strategy.reward_token}

    def _deposit(self, amount: int):
        pool = self.get_staking_pool()
        self.get_staking_token().approve(pool.address, amount, sender=self.address)
        pool.stake(amount, sender=self.address)

    def _redeem(self, amount: int) -> int:
        self.get_staking_pool().withdraw(amount, sender=self.address)
        return amount

    def _harvest(self) -> int:
        strategy = self.get_strategy()
        claimed = self.get_staking_pool().claim(sender=self.address)

        # Balance, not the claim: withdrawals of auto-claiming pools and deferred harvests leave reward here too
        reward = self.get_token(strategy.reward_token).balance_of(self.address)
        if reward == 0:
            logger.debug("%s: nothing to harvest", self)
            return 0

        fee, dividend, remainder = self._split(reward)
        zapped = fee + remainder
        if zapped > 0 and self.get_zap().estimate_zap(strategy.reward_token, strategy.token_a, strategy.token_b, zapped) == 0:
            logger.info("%s: %d reward (%d claimed now) too small to zap, left for the next harvest", self, reward, claimed)
            return 0

        if dividend > 0:
            self._pay_dividend(strategy.reward_token, dividend)

        # Fee and remainder go through one zap, the fee collector gets its pro rata share of the liquidity
        liquidity = self._zap_into_liquidity(strategy.reward_token, zapped) if zapped > 0 else 0
        fee_liquidity = liquidity * fee // zapped if zapped > 0 else 0
        compounded = liquidity - fee_liquidity

        if fee_liquidity > 0:
            self._pay_fee(fee_liquidity)

        if compounded > 0:
            self._deposit(compounded)

        self.emit("Harvested", reward=reward, fee=fee_liquidity, dividend=dividend, compounded=compounded)
        logger.info("%s harvested %d reward: fee %d liquidity, dividend %d, compounded %d liquidity", self, reward, fee_liquidity, dividend, compounded)
        return compounded


class VaultOptimizer(Optimizer):
    """Optimizer for an auto-compounding vault.

    Also called ``BeefyOptimizer``.

    The vault compounds on its own, so the yield of this optimizer is
    the vault value above :py:attr:`checkpoint`.
    Harvest redeems that yield in liquidity tokens, pays fee and dividend from it,
    and deposits the rest back.
    """

    state_attributes = Optimizer.state_attributes + ("checkpoint",)

    def __init__(
        self,
        ledger: Ledger,
        registry: HexAddress,
        strategy_id: int,
        owner: HexAddress,
        is_fee_collector: bool = False,
    ):
        super().__init__(ledger, registry, strategy_id, owner, is_fee_collector)

        #: Staked value after the last stake, withdraw or harvest
        self.checkpoint = 0

    def get_vault(self) -> Vault:
        return self.ledger.get(self.get_strategy().vault)

    def get_shares(self) -> int:
        return self.get_vault().balance_of(self.address)

    def staked(self) -> int:
        vault = self.get_vault()
        return vault.balance_of(self.address) * vault.price_per_share() // PRICE_PER_SHARE_UNIT

    def get_pending_rewards(self) -> int:
        return max(0, self.staked() - self.checkpoint)

    def get_protected_tokens(self) -> set[HexAddress]:
        strategy = self.get_strategy()
        return {strategy.staking_token, strategy.reward_token, strategy.vault}

    @entrypoint(only_owner=True)
    def withdraw_all(self, *, sender: HexAddress) -> int:
        """Same as :py:meth:`exit_avalanche`."""
        return self._exit()

    def _deposit(self, amount: int):
        vault = self.get_vault()
        self.get_staking_token().approve(vault.address, amount, sender=self.address)
        vault.deposit(amount, sender=self.address)
        self.checkpoint += amount

    def _redeem(self, amount: int) -> int:
        vault = self.get_vault()
        shares = self.get_shares()
        if amount < self.staked():
            # Round up so the vault pays out at least the asked amount
            price = vault.price_per_share()
            shares = min(shares, -(-amount * PRICE_PER_SHARE_UNIT // price))
        received = vault.withdraw(shares, sender=self.address)
        self.checkpoint = max(0, self.checkpoint - received)
        return received

    def _redeposits(self, amount: int) -> bool:
        """Depositing ``amount`` back into the vault still mints a share."""
        vault = self.get_vault()
        # Two wei of slack, the yield redeem and the fee deposit both round in favor of the vault
        return (amount - 2) * vault.total_supply >= vault.balance()

    def _harvest(self) -> int:
        strategy = self.get_strategy()
        vault_yield = self.get_pending_rewards()
        if vault_yield == 0:
            logger.debug("%s: nothing to harvest", self)
            return 0

        fee, _, remainder = self._split(vault_yield)
        if any(amount > 0 and not self._redeposits(amount) for amount in (fee, remainder)):
            logger.debug("%s: %d vault yield too small to redeposit, left in the vault", self, vault_yield)
            return 0

        realized = self._redeem(vault_yield)
        fee, dividend, remainder = self._split(realized)
        if fee > 0 and not self._redeposits(fee):
            fee, remainder = 0, remainder + fee

        if fee > 0:
            self._pay_fee(fee)

        if dividend > 0:
            self._pay_dividend(strategy.staking_token, dividend)

        if remainder > 0:
            self._deposit(remainder)

        self.checkpoint = self.staked()
        self.emit("Harvested", reward=realized, fee=fee, dividend=dividend, compounded=remainder)
        logger.info("%s realized %d vault yield: fee %d, dividend %d, compounded %d", self, realized, fee, dividend, remainder)
        return remainder


#: Which optimizer class serves which kind of strategy
OPTIMIZER_CLASSES: dict[StrategyKind, type[Optimizer]] = {
    StrategyKind.staking_pool: StakingOptimizer,
    StrategyKind.vault: VaultOptimizer,
}
