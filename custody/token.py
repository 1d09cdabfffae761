"""
Token collaborator.

The ledger core only consumes the three calls in `Token`; LedgerToken is a
minimal in-process implementation (a Stellar-asset-style USDC) the Host can
run for tests and local simulation.
"""

import logging
from enum import Enum
from typing import Protocol

from .errors import AuthorizationError, InsufficientFundsError, StateError, ValidationError
from .host import Contract, InvocationContext, entrypoint
from .limits import LIMITS, checked_add

logger = logging.getLogger("custody.token")


class Token(Protocol):
    address: str

    def balance(self, account: str) -> int: ...

    def transfer(self, ctx: InvocationContext, from_: str, to: str, amount: int) -> None: ...

    def approve(self, ctx: InvocationContext, from_: str, spender: str,
                amount: int, expiration_ledger: int) -> None: ...


class TokenKey(Enum):
    ADMIN = "admin"
    DECIMALS = "decimals"
    BALANCE = "balance"
    ALLOWANCE = "allowance"


class LedgerToken(Contract):
    """Fungible token with issuer-controlled minting."""

    def construct(self, admin: str, decimals: int = 7) -> None:
        self.storage.set(TokenKey.ADMIN, admin)
        self.storage.set(TokenKey.DECIMALS, decimals)

    # ---------------- views ----------------

    def balance(self, account: str) -> int:
        return self.storage.get((TokenKey.BALANCE, account), 0)

    def allowance(self, from_: str, spender: str) -> int:
        amount, expiration = self.storage.get((TokenKey.ALLOWANCE, from_, spender), (0, 0))
        if expiration < self.host.ledger_sequence:
            return 0
        return amount

    def decimals(self) -> int:
        return self.storage.get(TokenKey.DECIMALS)

    # ---------------- entry points ----------------

    @entrypoint
    def mint(self, ctx: InvocationContext, caller: str, to: str, amount: int) -> None:
        if caller != self.storage.get(TokenKey.ADMIN):
            raise AuthorizationError("Only token admin")
        ctx.require_auth(caller)
        if amount < 0:
            raise ValidationError("Negative amount")

        self.storage.set((TokenKey.BALANCE, to), checked_add(self.balance(to), amount))
        self.publish("mint", caller, to, amount=amount)

    @entrypoint
    def transfer(self, ctx: InvocationContext, from_: str, to: str, amount: int) -> None:
        ctx.require_auth(from_)
        self._move(from_, to, amount)
        self.publish("transfer", from_, to, amount=amount)

    @entrypoint
    def approve(self, ctx: InvocationContext, from_: str, spender: str,
                amount: int, expiration_ledger: int) -> None:
        ctx.require_auth(from_)
        if amount < 0:
            raise ValidationError("Negative amount")
        if amount > 0 and expiration_ledger < self.host.ledger_sequence:
            raise StateError("Expiration ledger is in the past")
        if expiration_ledger > self.host.ledger_sequence + LIMITS.MAX_ALLOWANCE_LEDGERS:
            raise ValidationError("Expiration ledger exceeds the maximum allowance lifetime")

        self.storage.set((TokenKey.ALLOWANCE, from_, spender), (amount, expiration_ledger))
        self.publish("approve", from_, spender, amount=amount, expiration_ledger=expiration_ledger)

    @entrypoint
    def transfer_from(self, ctx: InvocationContext, spender: str, from_: str,
                      to: str, amount: int) -> None:
        ctx.require_auth(spender)
        allowed = self.allowance(from_, spender)
        if allowed < amount:
            raise InsufficientFundsError("Allowance is not sufficient to spend")

        _, expiration = self.storage.get((TokenKey.ALLOWANCE, from_, spender))
        self.storage.set((TokenKey.ALLOWANCE, from_, spender), (allowed - amount, expiration))
        self._move(from_, to, amount)
        self.publish("transfer", from_, to, amount=amount)

    def _move(self, from_: str, to: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Negative amount")
        balance = self.balance(from_)
        if balance < amount:
            raise InsufficientFundsError("Balance is not sufficient to spend")
        self.storage.set((TokenKey.BALANCE, from_), balance - amount)
        self.storage.set((TokenKey.BALANCE, to), checked_add(self.balance(to), amount))


# ============================================================
# HELPERS
# ============================================================

def get_token_balance(token: Token, account: str) -> int:
    return token.balance(account)


def transfer_token(ctx: InvocationContext, token: Token, from_: str, to: str, amount: int) -> None:
    token.transfer(ctx, from_, to, amount)
    logger.debug(f"Transferred {amount} from {from_} to {to}")


def has_sufficient_balance(token: Token, account: str, required_amount: int) -> bool:
    return token.balance(account) >= required_amount


def approve_token(ctx: InvocationContext, token: Token, from_: str, spender: str,
                  amount: int, expiration_ledger: int) -> None:
    token.approve(ctx, from_, spender, amount, expiration_ledger)
