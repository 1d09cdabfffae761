"""
Vault - Payment & Fee Ledger

Records incoming payments and fees against tokens that actually arrived:
- process_payment (OPERATOR): book payment + current fee, only if funded
- refund_payment (ADMIN): return principal (and optionally current fee)
- withdraw_vault_funds (TREASURER): sweep both pools to a destination
- config (ADMIN): fee (capped at MAX_FEE), min deposit, pause, roles

Invariant after every successful call:
    token.balance(vault) >= available_payments + available_fees

It is enforced by the funding check in process_payment, not re-asserted
after each mutation; verify_vault_accounting() is advisory only.

Known gaps, preserved deliberately:
- payment_id is published but never deduplicated (a replay double-counts)
- refund_fee refunds the CURRENT fee, not the fee booked at processing
"""

import logging
from enum import Enum
from typing import Union

from .access_control import AccessControl
from .errors import (
    InsufficientFundsError, NoFundsError, NotFundedError, StateError, ValidationError,
)
from .host import Contract, InvocationContext, entrypoint
from .limits import LIMITS, ROLE_MAP, Role, checked_add, checked_sub
from .token import Token

logger = logging.getLogger("custody.vault")

TOPIC = "VAULT"


class VaultKey(Enum):
    ADMIN = "admin"
    TOKEN = "token"
    FEE_AMOUNT = "fee_amount"
    MIN_DEPOSIT = "min_deposit"
    AVAILABLE_PAYMENTS = "available_payments"
    TOTAL_PAYMENTS = "total_payments"
    AVAILABLE_FEES = "available_fees"
    TOTAL_FEES = "total_fees"
    PAUSED = "paused"


def _as_role(role: Union[Role, str]) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return ROLE_MAP[role]
    except KeyError:
        raise ValidationError(f"Unknown role: {role}") from None


def _check_fee(fee: int) -> None:
    if fee < 0:
        raise ValidationError("Fee must not be negative")
    if fee > LIMITS.MAX_FEE:
        raise ValidationError("Fee exceeds maximum")


class Vault(Contract):
    """
    Custodial ledger holding pooled funds.

    available_* are consumable pools (debited by refunds and sweeps).
    total_* are audit counters and only ever grow.
    """

    def construct(self, admin: str, token: str, fee_amount: int, min_deposit: int) -> None:
        _check_fee(fee_amount)

        s = self.storage
        s.set(VaultKey.ADMIN, admin)
        s.set(VaultKey.TOKEN, token)
        s.set(VaultKey.FEE_AMOUNT, fee_amount)
        s.set(VaultKey.MIN_DEPOSIT, min_deposit)
        s.set(VaultKey.AVAILABLE_PAYMENTS, 0)
        s.set(VaultKey.TOTAL_PAYMENTS, 0)
        s.set(VaultKey.AVAILABLE_FEES, 0)
        s.set(VaultKey.TOTAL_FEES, 0)
        s.set(VaultKey.PAUSED, False)

        self.roles.grant_role(admin, Role.ADMIN)

    @property
    def roles(self) -> AccessControl:
        return AccessControl(self, TOPIC)

    @property
    def token(self) -> Token:
        return self.host.contract_at(self.storage.get(VaultKey.TOKEN))

    def _authorize(self, ctx: InvocationContext, caller: str, role: Role) -> None:
        self.roles.require_role(caller, role)
        ctx.require_auth(caller)

    def _get(self, key: VaultKey) -> int:
        return self.storage.get(key, 0)

    # ============================================================
    # PAYMENTS
    # ============================================================

    @entrypoint
    def process_payment(self, ctx: InvocationContext, caller: str, user_wallet: str,
                        payment_amount: int, payment_id: bytes) -> None:
        """Book a payment whose principal + fee already sit in the vault."""
        self._authorize(ctx, caller, Role.OPERATOR)

        if self.is_paused():
            raise StateError("Contract is paused")
        if payment_amount <= 0:
            raise ValidationError("Payment amount must be > 0")

        fee_amount = self.get_fee_amount()
        expected_total = checked_add(payment_amount, fee_amount)

        available_payments = self._get(VaultKey.AVAILABLE_PAYMENTS)
        available_fees = self._get(VaultKey.AVAILABLE_FEES)
        required_balance = checked_add(available_payments, available_fees, expected_total)
        vault_balance = self.token.balance(self.address)
        if vault_balance < required_balance:
            raise NotFundedError(
                f"Payment not funded: balance {vault_balance} < required {required_balance}"
            )

        s = self.storage
        s.set(VaultKey.AVAILABLE_PAYMENTS, checked_add(available_payments, payment_amount))
        s.set(VaultKey.TOTAL_PAYMENTS, checked_add(self._get(VaultKey.TOTAL_PAYMENTS), payment_amount))
        s.set(VaultKey.AVAILABLE_FEES, checked_add(available_fees, fee_amount))
        s.set(VaultKey.TOTAL_FEES, checked_add(self._get(VaultKey.TOTAL_FEES), fee_amount))

        self.publish(
            TOPIC, "payment",
            user_wallet=user_wallet,
            payment_id=payment_id,
            payment_amount=payment_amount,
            fee_amount=fee_amount,
        )
        logger.info(
            f"Payment processed: {payment_amount} + fee {fee_amount} from {user_wallet} "
            f"(id=0x{bytes(payment_id).hex()[:16]}...)"
        )

    @entrypoint
    def refund_payment(self, ctx: InvocationContext, caller: str, user_wallet: str,
                       payment_amount: int, refund_fee: bool, payment_id: bytes) -> None:
        """Return principal to the user's wallet, plus the current fee if refund_fee."""
        self._authorize(ctx, caller, Role.ADMIN)

        if payment_amount <= 0:
            raise ValidationError("Payment amount must be > 0")

        available_payments = self._get(VaultKey.AVAILABLE_PAYMENTS)
        if available_payments < payment_amount:
            raise InsufficientFundsError("Insufficient available payments")

        refund_amount = payment_amount
        available_fees = self._get(VaultKey.AVAILABLE_FEES)
        fee_amount = self.get_fee_amount()

        if refund_fee:
            if available_fees < fee_amount:
                raise InsufficientFundsError("Insufficient available fees for refund")
            refund_amount = checked_add(refund_amount, fee_amount)
            available_fees = checked_sub(available_fees, fee_amount)

        s = self.storage
        s.set(VaultKey.AVAILABLE_PAYMENTS, checked_sub(available_payments, payment_amount))
        s.set(VaultKey.AVAILABLE_FEES, available_fees)

        self.token.transfer(ctx, self.address, user_wallet, refund_amount)

        self.publish(
            TOPIC, "refund",
            user_wallet=user_wallet,
            payment_id=payment_id,
            refund_amount=refund_amount,
            fee_refunded=refund_fee,
        )
        logger.info(f"Refunded {refund_amount} to {user_wallet} (fee refunded: {refund_fee})")

    @entrypoint
    def withdraw_vault_funds(self, ctx: InvocationContext, caller: str, to: str) -> int:
        """Sweep both pools to `to`. Returns the amount swept."""
        self._authorize(ctx, caller, Role.TREASURER)

        total_withdrawal = checked_add(
            self._get(VaultKey.AVAILABLE_PAYMENTS),
            self._get(VaultKey.AVAILABLE_FEES),
        )
        if total_withdrawal <= 0:
            raise NoFundsError("No funds available for withdrawal")

        self.storage.set(VaultKey.AVAILABLE_PAYMENTS, 0)
        self.storage.set(VaultKey.AVAILABLE_FEES, 0)

        self.token.transfer(ctx, self.address, to, total_withdrawal)

        self.publish(TOPIC, "withdrawal", to=to, amount=total_withdrawal)
        logger.info(f"Vault funds withdrawn: {total_withdrawal} → {to}")
        return total_withdrawal

    # ============================================================
    # CONFIG (admin only)
    # ============================================================

    @entrypoint
    def set_fee(self, ctx: InvocationContext, caller: str, new_fee: int) -> None:
        self._authorize(ctx, caller, Role.ADMIN)
        _check_fee(new_fee)

        old_fee = self._get(VaultKey.FEE_AMOUNT)
        self.storage.set(VaultKey.FEE_AMOUNT, new_fee)
        self.publish(TOPIC, "config", old_fee=old_fee, new_fee=new_fee)
        logger.info(f"Fee updated: {old_fee} → {new_fee}")

    @entrypoint
    def set_min_deposit(self, ctx: InvocationContext, caller: str, new_min_deposit: int) -> None:
        self._authorize(ctx, caller, Role.ADMIN)

        old_min_deposit = self._get(VaultKey.MIN_DEPOSIT)
        self.storage.set(VaultKey.MIN_DEPOSIT, new_min_deposit)
        self.publish(
            TOPIC, "config",
            old_min_deposit=old_min_deposit,
            new_min_deposit=new_min_deposit,
        )
        logger.info(f"Min deposit updated: {old_min_deposit} → {new_min_deposit}")

    @entrypoint
    def pause(self, ctx: InvocationContext, caller: str) -> None:
        self._authorize(ctx, caller, Role.ADMIN)
        self.storage.set(VaultKey.PAUSED, True)
        self.publish(TOPIC, "paused", paused=True)
        logger.warning("Vault paused")

    @entrypoint
    def unpause(self, ctx: InvocationContext, caller: str) -> None:
        self._authorize(ctx, caller, Role.ADMIN)
        self.storage.set(VaultKey.PAUSED, False)
        self.publish(TOPIC, "paused", paused=False)
        logger.info("Vault unpaused")

    @entrypoint
    def grant_role(self, ctx: InvocationContext, caller: str, account: str, role) -> None:
        self._authorize(ctx, caller, Role.ADMIN)
        self.roles.grant_role(account, _as_role(role))

    @entrypoint
    def revoke_role(self, ctx: InvocationContext, caller: str, account: str, role) -> None:
        self._authorize(ctx, caller, Role.ADMIN)
        self.roles.revoke_role(account, _as_role(role))

    # ============================================================
    # VIEWS
    # ============================================================

    def has_role(self, account: str, role) -> bool:
        return self.roles.has_role(account, _as_role(role))

    def get_admin(self) -> str:
        return self.storage.get(VaultKey.ADMIN)

    def get_fee_amount(self) -> int:
        return self._get(VaultKey.FEE_AMOUNT)

    def get_min_deposit(self) -> int:
        return self._get(VaultKey.MIN_DEPOSIT)

    def get_available_withdrawal(self) -> tuple[int, int, int]:
        """(available_payments, available_fees, total)"""
        payments = self._get(VaultKey.AVAILABLE_PAYMENTS)
        fees = self._get(VaultKey.AVAILABLE_FEES)
        return payments, fees, payments + fees

    def get_totals(self) -> tuple[int, int]:
        """(total_payments, total_fees) - lifetime audit counters."""
        return self._get(VaultKey.TOTAL_PAYMENTS), self._get(VaultKey.TOTAL_FEES)

    def is_paused(self) -> bool:
        return self.storage.get(VaultKey.PAUSED, False)

    def verify_vault_accounting(self) -> bool:
        _, _, required = self.get_available_withdrawal()
        return self.token.balance(self.address) >= required
