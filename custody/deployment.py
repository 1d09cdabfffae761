"""
System wiring - deploy token, vault, wallet template and factory on a Host.

Usage:
    host = Host()
    system = deploy_system(host, load_settings(), admin=admin, backend=backend.address,
                           operator=ops.address, treasurer=treasury.address)
    wallet = host.invoke(system.factory, "create_wallet", backend.address, "user-42",
                         signers=[backend])
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .auth import Signer
from .config import CustodySettings
from .host import Host
from .limits import Role
from .token import LedgerToken
from .user_wallet import UserWallet
from .vault import Vault
from .wallet_factory import WalletFactory

logger = logging.getLogger("custody.deployment")


@dataclass
class CustodySystem:
    host: Host
    token: LedgerToken
    vault: Vault
    factory: WalletFactory
    wallet_template_id: bytes


def deploy_system(host: Host, settings: CustodySettings, admin: Signer, backend: str,
                  operator: Optional[str] = None, treasurer: Optional[str] = None,
                  token_admin: Optional[str] = None) -> CustodySystem:
    """
    Deploy every component and grant the initial roles.

    The admin signer authorizes the role grants; the token issuer defaults
    to the admin.
    """
    token = host.deploy(LedgerToken, token_admin or admin.address, settings.token_decimals)
    vault = host.deploy(Vault, admin.address, token.address, settings.fee_amount, settings.min_deposit)
    template_id = host.register_template(UserWallet)
    factory = host.deploy(WalletFactory, admin.address, backend, vault.address, token.address, template_id)

    if operator:
        host.invoke(vault, "grant_role", admin.address, operator, Role.OPERATOR, signers=[admin])
    if treasurer:
        host.invoke(vault, "grant_role", admin.address, treasurer, Role.TREASURER, signers=[admin])

    logger.info(
        f"Custody system deployed: token={token.address} vault={vault.address} "
        f"factory={factory.address} fee={settings.fee_amount}"
    )
    return CustodySystem(
        host=host,
        token=token,
        vault=vault,
        factory=factory,
        wallet_template_id=template_id,
    )
