"""
UserWallet - per-user custodial relay.

Holds a user's funds and forwards principal + fee to the Vault. There is no
internal ledger: the wallet's balance is whatever the token reports for the
wallet's address.

Who can do what:
- backend: withdraw, set_owner, transfer_to_vault
- owner (optional): withdraw, emergency_withdraw
- vault: transfer_to_vault
"""

import logging
from enum import Enum
from typing import Optional

from .errors import AuthorizationError, InsufficientFundsError, StateError, ValidationError
from .host import Contract, InvocationContext, entrypoint
from .limits import checked_add
from .token import Token

logger = logging.getLogger("custody.user_wallet")

TOPIC = "WALLET"


class WalletKey(Enum):
    BACKEND = "backend"
    OWNER = "owner"
    VAULT = "vault"
    TOKEN = "token"


class UserWallet(Contract):

    def construct(self, backend: str, vault: str, token: str, owner: Optional[str] = None) -> None:
        self.storage.set(WalletKey.BACKEND, backend)
        self.storage.set(WalletKey.VAULT, vault)
        self.storage.set(WalletKey.TOKEN, token)
        if owner is not None:
            self.storage.set(WalletKey.OWNER, owner)

    @property
    def token(self) -> Token:
        return self.host.contract_at(self.storage.get(WalletKey.TOKEN))

    # ---------------- entry points ----------------

    @entrypoint
    def withdraw(self, ctx: InvocationContext, caller: str, amount: int, recipient: str) -> None:
        owner = self.get_owner()
        if caller != self.get_backend() and (owner is None or caller != owner):
            raise AuthorizationError("Not authorized")
        ctx.require_auth(caller)

        if amount <= 0:
            raise ValidationError("Amount must be > 0")
        if self.get_balance() < amount:
            raise InsufficientFundsError("Insufficient balance")

        self.token.transfer(ctx, self.address, recipient, amount)
        self.publish(TOPIC, "withdraw", recipient=recipient, amount=amount)
        logger.info(f"Wallet {self.address} withdrew {amount} → {recipient}")

    @entrypoint
    def set_owner(self, ctx: InvocationContext, caller: str, new_owner: str) -> None:
        if caller != self.get_backend():
            raise AuthorizationError("Only backend")
        ctx.require_auth(caller)

        old_owner = self.get_owner()
        self.storage.set(WalletKey.OWNER, new_owner)
        self.publish(TOPIC, "owner_upd", old_owner=old_owner, new_owner=new_owner)
        logger.info(f"Wallet {self.address} owner: {old_owner} → {new_owner}")

    @entrypoint
    def emergency_withdraw(self, ctx: InvocationContext, caller: str) -> int:
        """Owner pulls the full balance out. Returns the amount swept."""
        owner = self.get_owner()
        if owner is None:
            raise StateError("Owner not set")
        if caller != owner:
            raise AuthorizationError("Only owner")
        ctx.require_auth(caller)

        balance = self.get_balance()
        if balance <= 0:
            raise StateError("No balance to withdraw")

        self.token.transfer(ctx, self.address, owner, balance)
        self.publish(TOPIC, "emerg_wd", amount=balance)
        logger.warning(f"Emergency withdrawal from {self.address}: {balance} → {owner}")
        return balance

    @entrypoint
    def transfer_to_vault(self, ctx: InvocationContext, caller: str, payment_amount: int) -> int:
        """
        Move payment + the vault's CURRENT fee into the vault.

        Must run before Vault.process_payment for the same payment, otherwise
        the vault's funding check rejects it. The fee is read live, so an
        admin fee change in between makes the two disagree.

        Returns the total transferred.
        """
        if payment_amount <= 0:
            raise ValidationError("Payment amount must be > 0")

        vault_address = self.get_vault()
        if caller != self.get_backend() and caller != vault_address:
            raise AuthorizationError("Not authorized")
        ctx.require_auth(caller)

        fee_amount = self.host.contract_at(vault_address).get_fee_amount()
        if fee_amount < 0:
            raise ValidationError("Invalid fee")

        total_amount = checked_add(payment_amount, fee_amount)
        if self.get_balance() < total_amount:
            raise InsufficientFundsError("Insufficient balance")

        self.token.transfer(ctx, self.address, vault_address, total_amount)
        self.publish(
            TOPIC, "to_vault",
            vault=vault_address,
            payment_amount=payment_amount,
            fee_amount=fee_amount,
            total_amount=total_amount,
        )
        logger.info(f"Wallet {self.address} sent {total_amount} ({payment_amount} + fee {fee_amount}) to vault")
        return total_amount

    # ---------------- views ----------------

    def get_balance(self) -> int:
        return self.token.balance(self.address)

    def get_backend(self) -> str:
        return self.storage.get(WalletKey.BACKEND)

    def get_owner(self) -> Optional[str]:
        return self.storage.get(WalletKey.OWNER)

    def get_vault(self) -> str:
        return self.storage.get(WalletKey.VAULT)
