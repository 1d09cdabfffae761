"""Shared fixtures: a local Host with a fully deployed custody system."""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from custody.auth import Signer
from custody.config import load_settings
from custody.deployment import deploy_system
from custody.host import Host

FEE = 500_000
MIN_DEPOSIT = 1_000_000
FUNDING = 100_000_000
PAYMENT_ID = bytes.fromhex("ab" * 32)


@pytest.fixture
def host():
    return Host(host_id="test")


@pytest.fixture
def admin():
    return Signer.generate()


@pytest.fixture
def backend():
    return Signer.generate()


@pytest.fixture
def operator():
    return Signer.generate()


@pytest.fixture
def treasurer():
    return Signer.generate()


@pytest.fixture
def owner():
    return Signer.generate()


@pytest.fixture
def outsider():
    return Signer.generate()


@pytest.fixture
def settings():
    return load_settings(environ={
        "CUSTODY_FEE_AMOUNT": str(FEE),
        "CUSTODY_MIN_DEPOSIT": str(MIN_DEPOSIT),
    })


@pytest.fixture
def system(host, settings, admin, backend, operator, treasurer):
    return deploy_system(
        host, settings,
        admin=admin,
        backend=backend.address,
        operator=operator.address,
        treasurer=treasurer.address,
    )


@pytest.fixture
def vault(system):
    return system.vault


@pytest.fixture
def token(system):
    return system.token


@pytest.fixture
def factory(system):
    return system.factory


@pytest.fixture
def wallet(host, system, admin, backend):
    """A factory-created wallet holding FUNDING tokens."""
    address = host.invoke(system.factory, "create_wallet", backend.address, "user-1", signers=[backend])
    host.invoke(system.token, "mint", admin.address, address, FUNDING, signers=[admin])
    return host.contract_at(address)


@pytest.fixture
def processed(host, vault, wallet, backend, operator):
    """State after transfer_to_vault(50_000_000) + process_payment(50_000_000)."""
    host.invoke(wallet, "transfer_to_vault", backend.address, 50_000_000, signers=[backend])
    host.invoke(vault, "process_payment", operator.address, wallet.address, 50_000_000, PAYMENT_ID,
                signers=[operator])
    return wallet
