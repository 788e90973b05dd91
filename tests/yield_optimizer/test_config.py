"""Protocol fee configuration."""

import pytest

from yield_optimizer.address import account_from_label
from yield_optimizer.config import ProtocolConfig, WithdrawFeePolicy


def test_defaults():
    """3% fee, 2% dividend, free withdrawals."""
    config = ProtocolConfig()
    assert config.fee_bps == 300
    assert config.dividend_bps == 200
    assert config.dividend_recipient is None
    assert config.withdraw_fee_policy == WithdrawFeePolicy.harvest_only
    assert config.withdraw_fee_bps == 0


def test_split():
    config = ProtocolConfig(dividend_recipient=account_from_label("dividend"))
    assert config.split(10**18) == (3 * 10**16, 2 * 10**16, 95 * 10**16)
    assert config.split(0) == (0, 0, 0)

    # Rounding dust stays in the remainder
    fee, dividend, remainder = config.split(99)
    assert (fee, dividend, remainder) == (2, 1, 96)


def test_split_without_recipient():
    """No recipient, the dividend share is compounded."""
    assert ProtocolConfig().split(10**18) == (3 * 10**16, 0, 97 * 10**16)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fee_bps": -1},
        {"fee_bps": 10_001},
        {"dividend_bps": 10_001},
        {"withdraw_fee_bps": 20_000},
        {"fee_bps": 6_000, "dividend_bps": 5_000},
    ],
)
def test_bad_rates(kwargs):
    with pytest.raises(ValueError):
        ProtocolConfig(**kwargs)


def test_rate_not_int():
    with pytest.raises(TypeError):
        ProtocolConfig(fee_bps=3.0)


def test_frozen():
    config = ProtocolConfig()
    with pytest.raises(AttributeError):
        config.fee_bps = 0


def test_from_env():
    recipient = account_from_label("dividend")
    config = ProtocolConfig.from_env(
        {
            "YIELD_OPTIMIZER_FEE_BPS": "100",
            "YIELD_OPTIMIZER_DIVIDEND_BPS": "50",
            "YIELD_OPTIMIZER_DIVIDEND_RECIPIENT": recipient.lower(),
            "YIELD_OPTIMIZER_WITHDRAW_FEE_POLICY": "every_withdraw",
            "YIELD_OPTIMIZER_WITHDRAW_FEE_BPS": "10",
        }
    )
    assert config.fee_bps == 100
    assert config.dividend_bps == 50
    assert config.dividend_recipient == recipient
    assert config.withdraw_fee_policy == WithdrawFeePolicy.every_withdraw
    assert config.withdraw_fee_bps == 10


def test_from_env_defaults():
    """Empty and missing variables use the defaults."""
    assert ProtocolConfig.from_env({"YIELD_OPTIMIZER_FEE_BPS": ""}) == ProtocolConfig()


def test_from_env_bad_policy():
    with pytest.raises(ValueError):
        ProtocolConfig.from_env({"YIELD_OPTIMIZER_WITHDRAW_FEE_POLICY": "sometimes"})
