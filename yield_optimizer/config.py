"""Protocol fee configuration.

- Fee and dividend rates applied to harvested rewards

- When withdrawals are charged, see :py:class:`WithdrawFeePolicy`

Configuration can be read from environment variables:

.. code-block:: shell

    export YIELD_OPTIMIZER_FEE_BPS=300
    export YIELD_OPTIMIZER_DIVIDEND_BPS=200
    export YIELD_OPTIMIZER_DIVIDEND_RECIPIENT=0x...
    export YIELD_OPTIMIZER_WITHDRAW_FEE_POLICY=harvest_before_withdraw
"""

import enum
import os
from dataclasses import dataclass

from eth_typing import HexAddress
from eth_utils import is_checksum_address
from web3 import Web3

from yield_optimizer.amm import BPS

#: Prefix of all environment variables read by :py:meth:`ProtocolConfig.from_env`
ENV_PREFIX = "YIELD_OPTIMIZER_"


class WithdrawFeePolicy(enum.Enum):
    """When a withdrawal pays into the FeeCollector.

    - Harvest only: fees are taken from harvested rewards only, withdrawals are free
    - Harvest before withdraw: every withdrawal first harvests pending reward, so its fee share is collected
    - Every withdraw: a flat cut of the withdrawn liquidity tokens goes to the FeeCollector
    """

    #: Withdrawals are fee free, fees come from harvests only.
    #:
    #: Stake followed by withdraw is a lossless round trip.
    harvest_only = "harvest_only"

    #: Pending reward is harvested before each withdrawal
    harvest_before_withdraw = "harvest_before_withdraw"

    #: :py:attr:`ProtocolConfig.withdraw_fee_bps` of every withdrawal goes to the FeeCollector
    every_withdraw = "every_withdraw"


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    """Fee parameters shared by every optimizer of a strategy registry."""

    #: Share of harvested reward routed to the strategy FeeCollector
    fee_bps: int = 300

    #: Share of harvested reward paid to the dividend recipient
    dividend_bps: int = 200

    #: Who receives the dividend share.
    #:
    #: If not set, the dividend share is compounded with the rest.
    dividend_recipient: HexAddress | None = None

    #: See :py:class:`WithdrawFeePolicy`
    withdraw_fee_policy: WithdrawFeePolicy = WithdrawFeePolicy.harvest_only

    #: Flat withdrawal fee for :py:attr:`WithdrawFeePolicy.every_withdraw`
    withdraw_fee_bps: int = 0

    def __post_init__(self):
        for name in ("fee_bps", "dividend_bps", "withdraw_fee_bps"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{name} must be an int, got {value!r}")
            if not (0 <= value <= BPS):
                raise ValueError(f"{name} must be in [0, {BPS}]: {value}")
        if self.fee_bps + self.dividend_bps > BPS:
            raise ValueError(f"fee_bps + dividend_bps must not exceed {BPS}, got {self.fee_bps + self.dividend_bps}")
        assert isinstance(self.withdraw_fee_policy, WithdrawFeePolicy), f"Got {self.withdraw_fee_policy}"
        if self.dividend_recipient is not None:
            assert is_checksum_address(self.dividend_recipient), f"Dividend recipient must be a checksummed address: {self.dividend_recipient}"

    def split(self, amount: int) -> tuple[int, int, int]:
        """Split a harvested amount.

        :return: (fee share, dividend share, compounded remainder)
        """
        assert amount >= 0
        fee = amount * self.fee_bps // BPS
        if self.dividend_recipient is not None:
            dividend = amount * self.dividend_bps // BPS
        else:
            dividend = 0
        return fee, dividend, amount - fee - dividend

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ProtocolConfig":
        """Read the configuration from ``YIELD_OPTIMIZER_*`` environment variables.

        Unset variables fall back to the defaults.

        :param environ: Use this mapping instead of ``os.environ``
        """
        if environ is None:
            environ = os.environ
        defaults = cls()

        def read_int(name: str, default: int) -> int:
            value = environ.get(f"{ENV_PREFIX}{name}")
            return int(value) if value else default

        recipient = environ.get(f"{ENV_PREFIX}DIVIDEND_RECIPIENT")
        policy = environ.get(f"{ENV_PREFIX}WITHDRAW_FEE_POLICY")
        return cls(
            fee_bps=read_int("FEE_BPS", defaults.fee_bps),
            dividend_bps=read_int("DIVIDEND_BPS", defaults.dividend_bps),
            dividend_recipient=Web3.to_checksum_address(recipient) if recipient else None,
            withdraw_fee_policy=WithdrawFeePolicy(policy) if policy else defaults.withdraw_fee_policy,
            withdraw_fee_bps=read_int("WITHDRAW_FEE_BPS", defaults.withdraw_fee_bps),
        )
