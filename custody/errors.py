"""
Custody error taxonomy.

Every failure in the ledger is fail-fast: the error is raised where it is
detected and the Host discards all state written by the operation.
"""


class CustodyError(Exception):
    """Base class for every ledger failure."""
    pass


class AuthorizationError(CustodyError):
    """Missing role, failed authorization proof, or wrong caller identity."""
    pass


class ValidationError(CustodyError):
    """Argument rejected before any state is touched (non-positive amount, fee over cap)."""
    pass


class StateError(CustodyError):
    """Operation not allowed in the current state (paused, owner not set)."""
    pass


class AlreadyExistsError(StateError):
    """A wallet (or contract address) is already registered for this identifier."""
    pass


class InsufficientFundsError(CustodyError):
    """Amount exceeds a tracked pool or the live token balance."""
    pass


class NoFundsError(InsufficientFundsError):
    """Nothing left in the pools to sweep."""
    pass


class ArithmeticOverflowError(CustodyError, OverflowError):
    """Checked i128 arithmetic overflowed while composing amounts."""
    pass


class NotFundedError(CustodyError):
    """Vault balance does not cover the payment being recorded."""
    pass
