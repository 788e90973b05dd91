"""Error taxonomy.

- Every error aborts the whole operation: :py:meth:`yield_optimizer.ledger.Ledger.transaction`
  rolls back all state touched by the failed call

- Nothing is retried internally, resubmit the operation if needed
"""


class LedgerError(Exception):
    """Base class for all operation failures."""


class Unauthorized(LedgerError):
    """Caller is not allowed to perform this operation."""


class InsufficientBalance(LedgerError):
    """Tried to withdraw more than is staked."""


class InvalidStrategy(LedgerError):
    """Strategy id does not exist."""


class ZeroAmount(LedgerError):
    """Zero amount passed to an operation that moves tokens."""


class DuplicateZap(LedgerError):
    """There is already a Zap for this router."""


class ZapNotFound(LedgerError):
    """Router has no registered Zap."""


class UnknownFeeCollector(LedgerError):
    """Address is not a FeeCollector owned by the treasury."""


class AlreadyRetired(LedgerError):
    """FeeCollector has been retired already."""


class InvalidRetirement(LedgerError):
    """Retirement source and destination are the same FeeCollector."""


class SlippageExceeded(LedgerError):
    """Swap output was below the minimum accepted amount."""


class InsufficientLiquidity(LedgerError):
    """Not enough liquidity tokens or pool reserves for the operation."""


class PairNotFound(LedgerError):
    """Router does not have a pair for the requested route."""


class TransferFailed(LedgerError):
    """ERC-20 transfer reverted: balance or allowance too low."""


class ProtectedToken(LedgerError):
    """Token cannot be swept out by recovery."""


class ReentrantCall(LedgerError):
    """Mutating call re-entered an instance while another call was in flight."""
