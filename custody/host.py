"""
Host - In-Process Ledger Runtime

Stands in for the hosting ledger the contracts run on:
- Isolated key-value storage per contract address (injected Storage port)
- Serialized, all-or-nothing execution of every entry point
- Caller-bound authorization proofs (custody.auth) with per-account nonces
- Append-only audit records (events)
- Deterministic CREATE2-style deployment from registered templates

Design:
- Outermost entry point snapshots every storage + the audit log length;
  any exception restores the snapshot and re-raises unchanged
- Nested calls (wallet → vault fee lookup, vault → token transfer) share
  the outer frame, so a failure anywhere aborts the whole operation
- A contract calling a collaborator is authorized as itself (call stack)
- RLock serializes entry points if one Host is shared across threads
"""

import copy
import functools
import inspect
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Sequence

from eth_utils import keccak, to_checksum_address

from .auth import AuthProof, Signer, invocation_message, verify_signature
from .errors import AlreadyExistsError, AuthorizationError, StateError

logger = logging.getLogger("custody.host")


# ============================================================
# STORAGE PORT
# ============================================================

class Storage(Protocol):
    """Key-value store scoped to one contract."""

    def get(self, key, default=None) -> Any: ...

    def set(self, key, value) -> None: ...

    def has(self, key) -> bool: ...

    def delete(self, key) -> None: ...

    def snapshot(self) -> Any: ...

    def restore(self, snapshot) -> None: ...


class InstanceStorage:
    """Dict-backed Storage. Snapshots are deep copies."""

    def __init__(self):
        self._data: dict = {}

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value) -> None:
        self._data[key] = value

    def has(self, key) -> bool:
        return key in self._data

    def delete(self, key) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict:
        return copy.deepcopy(self._data)

    def restore(self, snapshot: dict) -> None:
        self._data = copy.deepcopy(snapshot)

    def __len__(self) -> int:
        return len(self._data)


# ============================================================
# AUDIT RECORDS
# ============================================================

@dataclass(frozen=True)
class AuditRecord:
    """One topic-tagged event. Consumed by observers only."""
    sequence: int
    contract: str
    topics: tuple
    data: dict


# ============================================================
# INVOCATION CONTEXT
# ============================================================

@dataclass
class InvocationContext:
    """
    Explicit execution context passed through every entry point.

    contract/method/args describe the ROOT invocation the proofs were
    signed over; nested calls reuse the same context.
    """
    host: "Host"
    contract: str
    method: str
    args: tuple
    proofs: list[AuthProof] = field(default_factory=list)
    verified: set = field(default_factory=set)

    def require_auth(self, account: str) -> None:
        self.host.require_auth(self, account)


def entrypoint(fn: Callable) -> Callable:
    """
    Mark a contract method as a state-changing entry point.

    The wrapped method runs inside Host.atomic(); at the root of the call
    tree the context must describe exactly this method and these args.
    """
    signature = inspect.signature(fn)

    @functools.wraps(fn)
    def wrapper(self, ctx: InvocationContext, *args, **kwargs):
        bound = signature.bind(self, ctx, *args, **kwargs)
        bound.apply_defaults()
        call_args = tuple(bound.arguments.values())[2:]
        host = self.host
        with host.atomic(self.address):
            if host.depth == 1:
                host.bind_root(ctx, self.address, fn.__name__, call_args)
            return fn(self, ctx, *call_args)

    wrapper.__entrypoint__ = True
    return wrapper


def is_entrypoint(obj) -> bool:
    return callable(obj) and getattr(obj, "__entrypoint__", False)


# ============================================================
# CONTRACT BASE
# ============================================================

class Contract:
    """Base for everything the Host deploys. Subclasses implement construct()."""

    def __init__(self, host: "Host", address: str):
        self.host = host
        self.address = address

    @property
    def storage(self) -> Storage:
        return self.host.storage_of(self.address)

    def construct(self, *args) -> None:
        pass

    def publish(self, *topics, **data) -> AuditRecord:
        return self.host.publish(self.address, topics, data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


# ============================================================
# ADDRESS DERIVATION
# ============================================================

def compute_create2_address(deployer: str, salt: bytes, template_id: bytes) -> str:
    """
    Predict where a template instance will live.

    Formula: keccak256(0xff ++ deployer ++ salt ++ template_id)[12:]
    """
    if len(salt) != 32 or len(template_id) != 32:
        raise ValueError("salt and template_id must be 32 bytes")
    preimage = (
        bytes.fromhex("ff")
        + bytes.fromhex(deployer[2:])
        + salt
        + template_id
    )
    raw = keccak(preimage)
    return to_checksum_address("0x" + raw.hex()[-40:])


def template_id_for(cls: type) -> bytes:
    """Stable 32-byte identifier of a contract class."""
    return keccak(text=f"{cls.__module__}.{cls.__qualname__}")


# ============================================================
# HOST
# ============================================================

class Host:
    """
    Runs contracts with ledger semantics.

    Usage:
        host = Host()
        token = host.deploy(LedgerToken, issuer.address)
        host.invoke(token, "mint", issuer.address, user, 100, signers=[issuer])
    """

    def __init__(self, host_id: str = "local",
                 storage_factory: Callable[[], Storage] = InstanceStorage):
        self.host_id = host_id
        self._storage_factory = storage_factory
        self._lock = threading.RLock()

        self._contracts: dict[str, Contract] = {}
        self._storages: dict[str, Storage] = {}
        self._templates: dict[bytes, type] = {}
        self._nonces: dict[str, int] = {}
        self._events: list[AuditRecord] = []
        self._deploy_counter: int = 0
        self._call_stack: list[str] = []
        self.ledger_sequence: int = 1

    # ---------------- execution ----------------

    @property
    def depth(self) -> int:
        return len(self._call_stack)

    @property
    def current_contract(self) -> Optional[str]:
        return self._call_stack[-1] if self._call_stack else None

    def _invoker(self) -> Optional[str]:
        """Contract that directly called the currently executing one."""
        return self._call_stack[-2] if len(self._call_stack) >= 2 else None

    @contextmanager
    def atomic(self, address: str):
        """All-or-nothing frame. Only the outermost frame snapshots."""
        with self._lock:
            snapshot = self._snapshot() if not self._call_stack else None
            self._call_stack.append(address)
            try:
                yield
            except Exception as e:
                if snapshot is not None:
                    self._restore(snapshot)
                    logger.debug(f"Rolled back invocation on {address}: {type(e).__name__}: {e}")
                raise
            finally:
                self._call_stack.pop()

    def _snapshot(self) -> dict:
        return {
            "storages": {addr: s.snapshot() for addr, s in self._storages.items()},
            "contracts": dict(self._contracts),
            "nonces": dict(self._nonces),
            "events": len(self._events),
            "deploy_counter": self._deploy_counter,
        }

    def _restore(self, snapshot: dict) -> None:
        saved = snapshot["storages"]
        for addr in list(self._storages):
            if addr in saved:
                self._storages[addr].restore(saved[addr])
            else:
                del self._storages[addr]
        self._contracts = snapshot["contracts"]
        self._nonces = snapshot["nonces"]
        del self._events[snapshot["events"]:]
        self._deploy_counter = snapshot["deploy_counter"]

    def bind_root(self, ctx: InvocationContext, address: str, method: str, args: tuple) -> None:
        """Reject a context that was built for a different invocation."""
        if ctx.host is not self:
            raise AuthorizationError("Context belongs to another host")
        if ctx.contract != address or ctx.method != method or tuple(ctx.args) != tuple(args):
            raise AuthorizationError(
                f"Context describes {ctx.method} on {ctx.contract}, not {method} on {address}"
            )
        # A reused context must present its proofs (and nonces) again
        ctx.verified.clear()

    def context(self, contract: Contract, method: str, *args,
                signers: Sequence[Signer] = ()) -> InvocationContext:
        """
        Build a root context and sign it with each signer's next nonce.

        Nonces are reserved only when the call commits, so a context built
        here must be dispatched before another call by the same signer.
        Threads sharing a Host should go through invoke().
        """
        with self._lock:
            ctx = InvocationContext(host=self, contract=contract.address, method=method, args=tuple(args))
            for signer in signers:
                nonce = self.next_nonce(signer.address)
                ctx.proofs.append(signer.authorize(self.host_id, contract.address, method, args, nonce))
            return ctx

    def invoke(self, contract: Contract, method: str, *args, signers: Sequence[Signer] = ()):
        """Sign and dispatch one entry-point call (a 'transaction') under the host lock."""
        fn = getattr(contract, method, None)
        if not is_entrypoint(fn):
            raise AttributeError(f"{type(contract).__name__}.{method} is not an entry point")
        with self._lock:
            ctx = self.context(contract, method, *args, signers=signers)
            return fn(ctx, *args)

    # ---------------- authorization ----------------

    def next_nonce(self, account: str) -> int:
        return self._nonces.get(account, 0) + 1

    def require_auth(self, ctx: InvocationContext, account: str) -> None:
        """
        Fail closed unless `account` authorized this invocation.

        A contract is implicitly authorized for calls it makes directly.
        Otherwise a proof signed over the root invocation must recover to
        `account` and carry an unused nonce.
        """
        if self._invoker() == account:
            return
        if account in ctx.verified:
            return

        for proof in ctx.proofs:
            if proof.signer != account:
                continue
            message = invocation_message(self.host_id, ctx.contract, ctx.method, ctx.args, proof.nonce)
            if verify_signature(message, proof.signature) != account:
                continue
            if proof.nonce <= self._nonces.get(account, 0):
                logger.warning(f"Replayed authorization from {account} (nonce {proof.nonce})")
                raise AuthorizationError("Authorization proof already used")
            self._nonces[account] = proof.nonce
            ctx.verified.add(account)
            return

        logger.warning(f"Missing authorization from {account} for {ctx.method} on {ctx.contract}")
        raise AuthorizationError(f"Missing authorization for {account}")

    # ---------------- storage & events ----------------

    def storage_of(self, address: str) -> Storage:
        try:
            return self._storages[address]
        except KeyError:
            raise StateError(f"No contract at {address}") from None

    def publish(self, contract: str, topics: tuple, data: dict) -> AuditRecord:
        record = AuditRecord(
            sequence=len(self._events) + 1,
            contract=contract,
            topics=tuple(topics),
            data=dict(data),
        )
        self._events.append(record)
        return record

    def events(self, contract: Optional[str] = None, *topics) -> list[AuditRecord]:
        """Audit records, optionally filtered by contract and topic prefix."""
        return [
            e for e in self._events
            if (contract is None or e.contract == contract)
            and e.topics[:len(topics)] == tuple(topics)
        ]

    # ---------------- deployment ----------------

    def contract_at(self, address: str) -> Contract:
        try:
            return self._contracts[address]
        except KeyError:
            raise StateError(f"No contract at {address}") from None

    def has_contract(self, address: str) -> bool:
        return address in self._contracts

    def register_template(self, cls: type) -> bytes:
        template_id = template_id_for(cls)
        self._templates[template_id] = cls
        logger.info(f"Registered template {cls.__name__}: 0x{template_id.hex()}")
        return template_id

    def deploy(self, cls: type, *args) -> Contract:
        """Deploy at a fresh host-assigned address."""
        with self._lock:
            self._deploy_counter += 1
            seed = f"{self.host_id}:{self._deploy_counter}".encode()
            address = to_checksum_address("0x" + keccak(seed).hex()[-40:])
            return self._instantiate(cls, address, args)

    def deploy_from_template(self, deployer: str, template_id: bytes, salt: bytes, *args) -> Contract:
        """Deploy a registered template at its CREATE2-style address."""
        cls = self._templates.get(template_id)
        if cls is None:
            raise StateError(f"Unknown template 0x{template_id.hex()}")
        address = compute_create2_address(deployer, salt, template_id)
        if address in self._contracts:
            raise AlreadyExistsError(f"Contract already deployed at {address}")
        return self._instantiate(cls, address, args)

    def _instantiate(self, cls: type, address: str, args: tuple) -> Contract:
        self._storages[address] = self._storage_factory()
        instance = cls(self, address)
        try:
            with self.atomic(address):
                instance.construct(*args)
        except Exception:
            # Top-level deploys have no outer snapshot covering the new storage
            if not self._call_stack:
                self._storages.pop(address, None)
            raise
        self._contracts[address] = instance
        logger.info(f"Deployed {cls.__name__} at {address}")
        return instance
