"""Deterministic in-memory stand-ins for the external protocols.

Tokens, a Uniswap v2 like AMM, a StakingRewards like pool and a Beefy like vault.
Used by the test suite and by simulation scripts.
"""
