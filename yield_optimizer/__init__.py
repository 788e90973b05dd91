"""Yield optimizer and fee distribution ledger.

- Optimizers stake Uniswap v2 liquidity tokens in staking pools or vaults,
  harvest and compound the rewards

- Zaps turn single assets into liquidity positions and back

- The treasury registers strategies, collects fees and retires fee collectors
"""
