"""
AccessControl - per-account role registry.

Roles live in the owning contract's storage as a frozenset per account.
Pure data + checks: no token calls, no authorization proofs. Callers pair
every require_role() with ctx.require_auth() on the same account.
"""

import logging

from .errors import AuthorizationError
from .host import Contract
from .limits import Role

logger = logging.getLogger("custody.access_control")

ROLES_KEY = "roles"
TOPIC = "role"


class AccessControl:
    """Role registry bound to one contract's storage and audit log."""

    def __init__(self, contract: Contract, namespace: str):
        self._contract = contract
        self._namespace = namespace

    def _roles(self, account: str) -> frozenset:
        return self._contract.storage.get((ROLES_KEY, account), frozenset())

    def grant_role(self, account: str, role: Role) -> None:
        """Idempotent: re-granting a held role writes nothing and emits nothing."""
        roles = self._roles(account)
        if role in roles:
            return

        self._contract.storage.set((ROLES_KEY, account), roles | {role})
        self._contract.publish(self._namespace, TOPIC, account=account, role=role.value, granted=True)
        logger.info(f"Granted {role.value} to {account}")

    def revoke_role(self, account: str, role: Role) -> None:
        """Emits a revocation record even when the role was never held."""
        roles = self._roles(account)
        if role in roles:
            self._contract.storage.set((ROLES_KEY, account), roles - {role})

        self._contract.publish(self._namespace, TOPIC, account=account, role=role.value, granted=False)
        logger.info(f"Revoked {role.value} from {account}")

    def has_role(self, account: str, role: Role) -> bool:
        return role in self._roles(account)

    def require_role(self, account: str, role: Role) -> None:
        if not self.has_role(account, role):
            logger.warning(f"{account} lacks required role {role.value}")
            raise AuthorizationError("Missing required role")

    def roles_of(self, account: str) -> frozenset:
        return self._roles(account)
