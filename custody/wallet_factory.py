"""
WalletFactory - deterministic per-user UserWallet provisioning.

One user id = one wallet = one address. The address is fixed before the
wallet exists:

    user_id_hash = sha256(user_id)
    wallet       = keccak256(0xff ++ factory ++ user_id_hash ++ template_id)[12:]

so the backend can show a deposit address and start accepting funds before
create_wallet() ever runs. A second create_wallet() for the same user id is
a hard failure, never a silent return of the existing wallet.
"""

import hashlib
import logging
from enum import Enum
from typing import Optional

from .errors import AlreadyExistsError, AuthorizationError, StateError
from .host import Contract, InvocationContext, compute_create2_address, entrypoint

logger = logging.getLogger("custody.wallet_factory")

TOPIC = "FACTORY"


class FactoryKey(Enum):
    ADMIN = "admin"
    BACKEND = "backend"
    VAULT = "vault"
    TOKEN = "token"
    USER_WALLET = "user_wallet"
    ALL_WALLETS = "all_wallets"
    TOTAL_WALLETS = "total_wallets"
    PAUSED = "paused"
    WALLET_TEMPLATE = "wallet_template"


def hash_user_id(user_id: str) -> bytes:
    """Canonical one-way identifier of a user (32 bytes)."""
    return hashlib.sha256(user_id.encode("utf-8")).digest()


def compute_wallet_address(factory: str, template_id: bytes, user_id: str) -> str:
    """Off-chain prediction of the wallet address create_wallet() will return."""
    return compute_create2_address(factory, hash_user_id(user_id), template_id)


class WalletFactory(Contract):

    def construct(self, admin: str, backend: str, vault: str, token: str,
                  wallet_template_id: bytes) -> None:
        s = self.storage
        s.set(FactoryKey.ADMIN, admin)
        s.set(FactoryKey.BACKEND, backend)
        s.set(FactoryKey.VAULT, vault)
        s.set(FactoryKey.TOKEN, token)
        s.set(FactoryKey.WALLET_TEMPLATE, wallet_template_id)
        s.set(FactoryKey.TOTAL_WALLETS, 0)
        s.set(FactoryKey.PAUSED, False)
        s.set(FactoryKey.ALL_WALLETS, [])

    def _require_admin(self, ctx: InvocationContext, caller: str) -> None:
        if caller != self.get_admin():
            raise AuthorizationError("Only admin")
        ctx.require_auth(caller)

    # ============================================================
    # PROVISIONING
    # ============================================================

    @entrypoint
    def create_wallet(self, ctx: InvocationContext, caller: str, user_id: str) -> str:
        backend = self.get_backend()
        if caller != backend:
            raise AuthorizationError("Only backend")
        ctx.require_auth(caller)

        if self.is_paused():
            raise StateError("Factory is paused")

        user_id_hash = hash_user_id(user_id)
        wallet_key = (FactoryKey.USER_WALLET, user_id_hash)
        if self.storage.has(wallet_key):
            raise AlreadyExistsError("Wallet already exists")

        wallet = self.host.deploy_from_template(
            self.address,
            self.storage.get(FactoryKey.WALLET_TEMPLATE),
            user_id_hash,
            backend,
            self.get_vault(),
            self.storage.get(FactoryKey.TOKEN),
            None,
        )

        s = self.storage
        s.set(wallet_key, wallet.address)
        s.set(FactoryKey.ALL_WALLETS, s.get(FactoryKey.ALL_WALLETS, []) + [wallet.address])
        s.set(FactoryKey.TOTAL_WALLETS, s.get(FactoryKey.TOTAL_WALLETS, 0) + 1)

        self.publish(TOPIC, "wallet_created", user_id_hash=user_id_hash, wallet=wallet.address)
        logger.info(f"Wallet created: {wallet.address} (user hash 0x{user_id_hash.hex()[:16]}...)")
        return wallet.address

    def get_wallet(self, user_id: str) -> Optional[str]:
        return self.storage.get((FactoryKey.USER_WALLET, hash_user_id(user_id)))

    def has_wallet(self, user_id: str) -> bool:
        return self.storage.has((FactoryKey.USER_WALLET, hash_user_id(user_id)))

    def predict_wallet_address(self, user_id: str) -> str:
        return compute_wallet_address(
            self.address, self.storage.get(FactoryKey.WALLET_TEMPLATE), user_id,
        )

    # ============================================================
    # ADMIN
    # ============================================================

    @entrypoint
    def update_backend(self, ctx: InvocationContext, caller: str, new_backend: str) -> None:
        self._require_admin(ctx, caller)

        old_backend = self.get_backend()
        self.storage.set(FactoryKey.BACKEND, new_backend)
        self.publish(TOPIC, "backend_upd", old_backend=old_backend, new_backend=new_backend)
        logger.info(f"Factory backend: {old_backend} → {new_backend}")

    @entrypoint
    def update_vault(self, ctx: InvocationContext, caller: str, new_vault: str) -> None:
        self._require_admin(ctx, caller)

        old_vault = self.get_vault()
        self.storage.set(FactoryKey.VAULT, new_vault)
        self.publish(TOPIC, "vault_upd", old_vault=old_vault, new_vault=new_vault)
        logger.info(f"Factory vault: {old_vault} → {new_vault}")

    @entrypoint
    def pause(self, ctx: InvocationContext, caller: str) -> None:
        self._require_admin(ctx, caller)
        self.storage.set(FactoryKey.PAUSED, True)
        self.publish(TOPIC, "paused", paused=True)
        logger.warning("Factory paused")

    @entrypoint
    def unpause(self, ctx: InvocationContext, caller: str) -> None:
        self._require_admin(ctx, caller)
        self.storage.set(FactoryKey.PAUSED, False)
        self.publish(TOPIC, "paused", paused=False)
        logger.info("Factory unpaused")

    # ============================================================
    # VIEWS
    # ============================================================

    def get_total_wallets(self) -> int:
        return self.storage.get(FactoryKey.TOTAL_WALLETS, 0)

    def get_all_wallets(self) -> list[str]:
        return list(self.storage.get(FactoryKey.ALL_WALLETS, []))

    def get_admin(self) -> str:
        return self.storage.get(FactoryKey.ADMIN)

    def get_backend(self) -> str:
        return self.storage.get(FactoryKey.BACKEND)

    def get_vault(self) -> str:
        return self.storage.get(FactoryKey.VAULT)

    def is_paused(self) -> bool:
        return self.storage.get(FactoryKey.PAUSED, False)
