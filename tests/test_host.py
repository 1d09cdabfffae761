"""
Host Runtime Tests

Tests for:
- all-or-nothing commit (storage, token balances, audit records, deploys)
- authorization proofs: signer binding, invocation binding, nonce replay
- CREATE2-style address derivation and template deployment
- injected storage port
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_utils import is_checksum_address, keccak

from custody.auth import Signer, invocation_message, verify_signature
from custody.errors import AlreadyExistsError, AuthorizationError, StateError, ValidationError
from custody.host import (
    Contract, Host, InstanceStorage, compute_create2_address, entrypoint, template_id_for,
)
from custody.token import LedgerToken
from custody.user_wallet import UserWallet


class Flaky(Contract):
    """Writes state, moves tokens, then fails."""

    def construct(self, token: str) -> None:
        self.storage.set("token", token)
        self.storage.set("counter", 0)

    @entrypoint
    def bump(self, ctx, fail: bool) -> int:
        self.storage.set("counter", self.storage.get("counter") + 1)
        self.publish("FLAKY", "bump")
        if fail:
            raise StateError("boom")
        return self.storage.get("counter")

    @entrypoint
    def pay_then_fail(self, ctx, to: str, amount: int) -> None:
        token = self.host.contract_at(self.storage.get("token"))
        token.transfer(ctx, self.address, to, amount)
        self.publish("FLAKY", "paid")
        raise StateError("boom after transfer")


class Broken(Contract):
    def construct(self) -> None:
        self.storage.set("half", True)
        raise StateError("constructor failed")


class CountingStorage(InstanceStorage):
    writes = 0

    def set(self, key, value) -> None:
        CountingStorage.writes += 1
        super().set(key, value)


@pytest.fixture
def issuer():
    return Signer.generate()


@pytest.fixture
def ledger_token(host, issuer):
    return host.deploy(LedgerToken, issuer.address)


@pytest.fixture
def flaky(host, ledger_token):
    return host.deploy(Flaky, ledger_token.address)


class TestAtomicCommit:
    """Any failure discards every change made by the invocation"""

    def test_success_commits(self, host, flaky):
        assert host.invoke(flaky, "bump", False) == 1
        assert len(host.events(flaky.address, "FLAKY")) == 1

    def test_failure_rolls_back_storage_and_events(self, host, flaky):
        host.invoke(flaky, "bump", False)
        with pytest.raises(StateError):
            host.invoke(flaky, "bump", True)

        assert flaky.storage.get("counter") == 1
        assert len(host.events(flaky.address, "FLAKY")) == 1

    def test_nested_transfer_rolled_back(self, host, ledger_token, flaky, issuer, outsider):
        host.invoke(ledger_token, "mint", issuer.address, flaky.address, 100, signers=[issuer])
        events_before = len(host.events())

        with pytest.raises(StateError):
            host.invoke(flaky, "pay_then_fail", outsider.address, 60)

        assert ledger_token.balance(flaky.address) == 100
        assert ledger_token.balance(outsider.address) == 0
        assert len(host.events()) == events_before

    def test_failed_constructor_leaves_nothing(self, host):
        with pytest.raises(StateError):
            host.deploy(Broken)
        assert host.depth == 0
        assert all(not isinstance(c, Broken) for c in host._contracts.values())

    def test_rolled_back_nonce_can_be_reused(self, host, ledger_token, issuer, outsider):
        # Mint to a negative amount fails after the proof was consumed
        nonce = host.next_nonce(issuer.address)
        with pytest.raises(ValidationError):
            host.invoke(ledger_token, "mint", issuer.address, outsider.address, -1, signers=[issuer])
        assert host.next_nonce(issuer.address) == nonce


class TestAuthorization:
    """Proofs are bound to signer, invocation and nonce"""

    def test_signature_recovers_signer(self, outsider):
        proof = outsider.authorize("h", "0xC", "m", [1, b"\x01"], 7)
        message = invocation_message("h", "0xC", "m", [1, b"\x01"], 7)
        assert verify_signature(message, proof.signature) == outsider.address

    def test_tampered_args_do_not_verify(self, outsider):
        proof = outsider.authorize("h", "0xC", "m", [1], 1)
        message = invocation_message("h", "0xC", "m", [2], 1)
        assert verify_signature(message, proof.signature) != outsider.address

    def test_garbage_signature(self):
        assert verify_signature("anything", b"\x00" * 3) is None

    def test_replayed_context_rejected(self, host, vault, admin):
        ctx = host.context(vault, "pause", admin.address, signers=[admin])
        vault.pause(ctx, admin.address)
        host.invoke(vault, "unpause", admin.address, signers=[admin])

        with pytest.raises(AuthorizationError):
            vault.pause(ctx, admin.address)
        assert not vault.is_paused()

    def test_context_bound_to_method(self, host, vault, admin):
        ctx = host.context(vault, "pause", admin.address, signers=[admin])
        with pytest.raises(AuthorizationError):
            vault.unpause(ctx, admin.address)

    def test_context_bound_to_args(self, host, vault, admin):
        ctx = host.context(vault, "set_fee", admin.address, 1, signers=[admin])
        with pytest.raises(AuthorizationError):
            vault.set_fee(ctx, admin.address, 2)
        assert vault.get_fee_amount() != 2

    def test_context_bound_to_host(self, host, vault, admin):
        other = Host(host_id="other")
        ctx = other.context(vault, "pause", admin.address, signers=[admin])
        with pytest.raises(AuthorizationError):
            vault.pause(ctx, admin.address)

    def test_proof_from_other_host_id_rejected(self, host, vault, admin):
        ctx = host.context(vault, "pause", admin.address)
        ctx.proofs.append(admin.authorize("elsewhere", vault.address, "pause", [admin.address], 1))
        with pytest.raises(AuthorizationError):
            vault.pause(ctx, admin.address)

    def test_keyword_arguments_bind_like_positionals(self, host, vault, admin):
        ctx = host.context(vault, "set_fee", admin.address, 7, signers=[admin])
        vault.set_fee(ctx, caller=admin.address, new_fee=7)
        assert vault.get_fee_amount() == 7

    def test_invoke_rejects_views(self, host, vault):
        with pytest.raises(AttributeError):
            host.invoke(vault, "get_fee_amount")

    def test_concurrent_invokes_by_one_signer(self, host, ledger_token, issuer, outsider):
        # Each call signs with its own nonce even when threads race
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [
                pool.submit(host.invoke, ledger_token, "mint", issuer.address, outsider.address, 1,
                            signers=[issuer])
                for _ in range(16)
            ]
            for future in futures:
                future.result()

        assert ledger_token.balance(outsider.address) == 16
        assert host.next_nonce(issuer.address) == 17

    def test_signer_from_key(self):
        key = "0x" + "11" * 32
        assert Signer.from_key(key).address == Signer.from_key(key).address
        assert is_checksum_address(Signer.from_key(key).address)


class TestDeployment:
    """Template registry and deterministic addresses"""

    def test_create2_formula(self):
        deployer = "0x" + "00" * 20
        salt = b"\x00" * 32
        template = keccak(b"template")
        expected = "0x" + keccak(b"\xff" + bytes(20) + salt + template).hex()[-40:]
        assert compute_create2_address(deployer, salt, template).lower() == expected

    def test_rejects_short_salt(self):
        with pytest.raises(ValueError):
            compute_create2_address("0x" + "00" * 20, b"short", keccak(b"t"))

    def test_deploy_from_template(self, host, vault, token, backend):
        template_id = host.register_template(UserWallet)
        salt = keccak(b"salt")
        with host.atomic(backend.address):
            wallet = host.deploy_from_template(backend.address, template_id, salt,
                                               backend.address, vault.address, token.address, None)
        assert wallet.address == compute_create2_address(backend.address, salt, template_id)

        with pytest.raises(AlreadyExistsError):
            with host.atomic(backend.address):
                host.deploy_from_template(backend.address, template_id, salt,
                                          backend.address, vault.address, token.address, None)

    def test_unknown_template(self, host, backend):
        with pytest.raises(StateError):
            host.deploy_from_template(backend.address, b"\x01" * 32, b"\x02" * 32)

    def test_template_id(self):
        assert template_id_for(UserWallet) == keccak(text="custody.user_wallet.UserWallet")

    def test_fresh_addresses_differ(self, host, issuer):
        a = host.deploy(LedgerToken, issuer.address)
        b = host.deploy(LedgerToken, issuer.address)
        assert a.address != b.address
        assert is_checksum_address(a.address)

    def test_missing_contract(self, host):
        with pytest.raises(StateError):
            host.contract_at("0x" + "12" * 20)


class TestStoragePort:
    """Contracts only touch storage through the injected port"""

    def test_custom_storage_factory(self, issuer):
        CountingStorage.writes = 0
        host = Host(storage_factory=CountingStorage)
        token = host.deploy(LedgerToken, issuer.address)
        assert CountingStorage.writes >= 2
        assert isinstance(host.storage_of(token.address), CountingStorage)

    def test_snapshot_is_isolated(self):
        storage = InstanceStorage()
        storage.set("k", [1])
        snap = storage.snapshot()
        storage.get("k").append(2)
        storage.restore(snap)
        assert storage.get("k") == [1]
        assert len(storage) == 1
