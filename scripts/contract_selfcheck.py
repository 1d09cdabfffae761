#!/usr/bin/env python3
"""
Contract Pre-Deploy Self-Check
==============================
Systematic verification of all Vault, UserWallet and WalletFactory entry
points, guards, parameters and expected behavior before deployment.

Usage:
    python scripts/contract_selfcheck.py              # Print verification matrix
    python scripts/contract_selfcheck.py --verbose     # Include edge cases & notes
    python scripts/contract_selfcheck.py --json        # Output as JSON

This is NOT a test runner. It is a pre-deployment checklist that enumerates
every entry point, its access control, parameter constraints, state changes,
and edge cases. find_uncovered() cross-checks the checklist against the
contract classes so a new entry point cannot ship unlisted.
"""

import json
import sys
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from custody.host import is_entrypoint
from custody.limits import LIMITS, I128_MAX
from custody.user_wallet import UserWallet
from custody.vault import Vault
from custody.wallet_factory import WalletFactory

# ── Types ──────────────────────────────────────────────────────

class Caller(Enum):
    ANYONE = "anyone"
    ADMIN = "ADMIN role"
    OPERATOR = "OPERATOR role"
    TREASURER = "TREASURER role"
    FACTORY_ADMIN = "factory admin"
    BACKEND = "backend"
    OWNER = "owner"
    BACKEND_OR_OWNER = "backend or owner"
    BACKEND_OR_VAULT = "backend or vault"

class Severity(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def tag(self) -> str:
        return "[!]" if self is Severity.CRITICAL else f"[{self.value[0]}]"

@dataclass
class FunctionCheck:
    name: str
    contract: str  # "Vault", "UserWallet" or "WalletFactory"
    caller: Caller
    guards: list[str]
    requires: list[str]
    state_changes: list[str]
    events: list[str]
    edge_cases: list[str] = field(default_factory=list)
    severity: Severity = Severity.HIGH
    notes: str = ""


# ── Vault ──────────────────────────────────────────────────────

VAULT_CHECKS: list[FunctionCheck] = [
    FunctionCheck(
        name="process_payment",
        contract="Vault",
        caller=Caller.OPERATOR,
        guards=["require_role(OPERATOR)", "require_auth(caller)"],
        requires=[
            "not paused",
            "payment_amount > 0",
            "balance(vault) >= available_payments + available_fees + payment_amount + fee",
        ],
        state_changes=[
            "available_payments += payment_amount, total_payments += payment_amount",
            "available_fees += fee_amount, total_fees += fee_amount",
        ],
        events=["VAULT/payment(user_wallet, payment_id, payment_amount, fee_amount)"],
        edge_cases=[
            "payment_id is NOT deduplicated --same id twice double-counts if funded twice",
            "Unfunded call fails with NotFundedError, pools untouched",
            "Fee read at processing time may differ from the fee the wallet sent",
        ],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="refund_payment",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=[
            "payment_amount > 0",
            "available_payments >= payment_amount",
            "refund_fee → available_fees >= CURRENT fee_amount",
        ],
        state_changes=[
            "available_payments -= payment_amount",
            "refund_fee → available_fees -= fee_amount",
            "token.transfer(vault → user_wallet, refund_amount)",
        ],
        events=["VAULT/refund(user_wallet, payment_id, refund_amount, fee_refunded)"],
        edge_cases=[
            "Uses the current fee, not the fee booked at processing",
            "total_* counters are never decreased by refunds",
        ],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="withdraw_vault_funds",
        contract="Vault",
        caller=Caller.TREASURER,
        guards=["require_role(TREASURER)", "require_auth(caller)"],
        requires=["available_payments + available_fees > 0"],
        state_changes=[
            "available_payments = 0, available_fees = 0",
            "token.transfer(vault → to, sum)",
        ],
        events=["VAULT/withdrawal(to, amount)"],
        edge_cases=["Unrecorded surplus tokens stay in the vault"],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="set_fee",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=[f"0 <= new_fee <= MAX_FEE ({LIMITS.MAX_FEE})"],
        state_changes=["fee_amount = new_fee"],
        events=["VAULT/config(old_fee, new_fee)"],
        edge_cases=["Changes the fee of in-flight payments (staleness)"],
    ),
    FunctionCheck(
        name="set_min_deposit",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=[],
        state_changes=["min_deposit = new_min_deposit"],
        events=["VAULT/config(old_min_deposit, new_min_deposit)"],
        severity=Severity.LOW,
    ),
    FunctionCheck(
        name="pause",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=[],
        state_changes=["paused = True"],
        events=["VAULT/paused(True)"],
        edge_cases=["Only process_payment honours the flag; refunds and sweeps still run"],
        severity=Severity.MEDIUM,
    ),
    FunctionCheck(
        name="unpause",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=[],
        state_changes=["paused = False"],
        events=["VAULT/paused(False)"],
        severity=Severity.MEDIUM,
    ),
    FunctionCheck(
        name="grant_role",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=["role in {ADMIN, OPERATOR, TREASR}"],
        state_changes=["roles[account] |= {role}"],
        events=["VAULT/role(account, role, granted=True) --only when newly granted"],
        edge_cases=["Idempotent: re-grant writes and emits nothing"],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="revoke_role",
        contract="Vault",
        caller=Caller.ADMIN,
        guards=["require_role(ADMIN)", "require_auth(caller)"],
        requires=["role in {ADMIN, OPERATOR, TREASR}"],
        state_changes=["roles[account] -= {role}"],
        events=["VAULT/role(account, role, granted=False) --always"],
        edge_cases=[
            "Emits even if the role was never held",
            "Admin can revoke its own ADMIN role --vault config then frozen",
        ],
        severity=Severity.CRITICAL,
    ),
]


# ── UserWallet ─────────────────────────────────────────────────

WALLET_CHECKS: list[FunctionCheck] = [
    FunctionCheck(
        name="withdraw",
        contract="UserWallet",
        caller=Caller.BACKEND_OR_OWNER,
        guards=["caller in {backend, owner}", "require_auth(caller)"],
        requires=["amount > 0", "balance >= amount"],
        state_changes=["token.transfer(wallet → recipient, amount)"],
        events=["WALLET/withdraw(recipient, amount)"],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="set_owner",
        contract="UserWallet",
        caller=Caller.BACKEND,
        guards=["caller == backend", "require_auth(caller)"],
        requires=[],
        state_changes=["owner = new_owner"],
        events=["WALLET/owner_upd(old_owner, new_owner)"],
        edge_cases=["Backend can replace an existing owner"],
        severity=Severity.HIGH,
    ),
    FunctionCheck(
        name="emergency_withdraw",
        contract="UserWallet",
        caller=Caller.OWNER,
        guards=["owner set", "caller == owner", "require_auth(caller)"],
        requires=["balance > 0"],
        state_changes=["token.transfer(wallet → owner, balance)"],
        events=["WALLET/emerg_wd(amount)"],
        severity=Severity.HIGH,
    ),
    FunctionCheck(
        name="transfer_to_vault",
        contract="UserWallet",
        caller=Caller.BACKEND_OR_VAULT,
        guards=["caller in {backend, vault}", "require_auth(caller)"],
        requires=[
            "payment_amount > 0",
            "vault fee >= 0",
            f"payment_amount + fee <= I128_MAX ({I128_MAX})",
            "balance >= payment_amount + fee",
        ],
        state_changes=["token.transfer(wallet → vault, payment_amount + fee)"],
        events=["WALLET/to_vault(vault, payment_amount, fee_amount, total_amount)"],
        edge_cases=["Must precede Vault.process_payment for the same payment"],
        severity=Severity.CRITICAL,
    ),
]


# ── WalletFactory ──────────────────────────────────────────────

FACTORY_CHECKS: list[FunctionCheck] = [
    FunctionCheck(
        name="create_wallet",
        contract="WalletFactory",
        caller=Caller.BACKEND,
        guards=["caller == backend", "require_auth(caller)"],
        requires=["not paused", "sha256(user_id) not registered"],
        state_changes=[
            "deploy UserWallet at CREATE2(factory, sha256(user_id), template)",
            "user_wallet[hash] = wallet, all_wallets.append(wallet), total_wallets += 1",
        ],
        events=["FACTORY/wallet_created(user_id_hash, wallet)"],
        edge_cases=[
            "Second call for the same user id fails (AlreadyExistsError)",
            "Address is predictable before creation",
        ],
        severity=Severity.CRITICAL,
    ),
    FunctionCheck(
        name="update_backend",
        contract="WalletFactory",
        caller=Caller.FACTORY_ADMIN,
        guards=["caller == admin", "require_auth(caller)"],
        requires=[],
        state_changes=["backend = new_backend"],
        events=["FACTORY/backend_upd(old_backend, new_backend)"],
        edge_cases=["Existing wallets keep the backend they were created with"],
    ),
    FunctionCheck(
        name="update_vault",
        contract="WalletFactory",
        caller=Caller.FACTORY_ADMIN,
        guards=["caller == admin", "require_auth(caller)"],
        requires=[],
        state_changes=["vault = new_vault"],
        events=["FACTORY/vault_upd(old_vault, new_vault)"],
        edge_cases=["Existing wallets keep forwarding to the old vault"],
    ),
    FunctionCheck(
        name="pause",
        contract="WalletFactory",
        caller=Caller.FACTORY_ADMIN,
        guards=["caller == admin", "require_auth(caller)"],
        requires=[],
        state_changes=["paused = True"],
        events=["FACTORY/paused(True)"],
        severity=Severity.MEDIUM,
    ),
    FunctionCheck(
        name="unpause",
        contract="WalletFactory",
        caller=Caller.FACTORY_ADMIN,
        guards=["caller == admin", "require_auth(caller)"],
        requires=[],
        state_changes=["paused = False"],
        events=["FACTORY/paused(False)"],
        severity=Severity.MEDIUM,
    ),
]


VIEW_FUNCTIONS = [
    ("Vault", "has_role(account, role)", "bool"),
    ("Vault", "get_admin()", "address"),
    ("Vault", "get_fee_amount()", "current fee"),
    ("Vault", "get_min_deposit()", "min deposit"),
    ("Vault", "get_available_withdrawal()", "(payments, fees, total)"),
    ("Vault", "get_totals()", "(total_payments, total_fees)"),
    ("Vault", "is_paused()", "bool"),
    ("Vault", "verify_vault_accounting()", "balance >= pools (advisory)"),
    ("UserWallet", "get_balance()", "token balance of wallet"),
    ("UserWallet", "get_backend() / get_owner() / get_vault()", "addresses"),
    ("WalletFactory", "get_wallet(user_id)", "address or None"),
    ("WalletFactory", "has_wallet(user_id)", "bool"),
    ("WalletFactory", "predict_wallet_address(user_id)", "address before creation"),
    ("WalletFactory", "get_total_wallets() / get_all_wallets()", "count / roster"),
]

CONSTANTS = [
    ("MAX_FEE", str(LIMITS.MAX_FEE), "Fee cap in smallest token units"),
    ("TOKEN_DECIMALS", str(LIMITS.TOKEN_DECIMALS), "USDC decimals"),
    ("I128_MAX", "2**127 - 1", "Checked arithmetic bound"),
]

SECURITY_PROPERTIES = [
    "balance(vault) >= available_payments + available_fees after every successful call",
    "available_payments and available_fees never go negative",
    "total_payments and total_fees never decrease",
    "Every privileged call checks role/identity BEFORE mutating, paired with require_auth",
    "Authorization proofs are bound to contract + method + args + nonce (no replay)",
    "Any failure rolls back every storage write and audit record of the call",
    "Exactly one wallet per sha256(user_id); duplicates are hard failures",
]


CONTRACT_CLASSES = {
    "Vault": Vault,
    "UserWallet": UserWallet,
    "WalletFactory": WalletFactory,
}


def all_checks() -> list[FunctionCheck]:
    return VAULT_CHECKS + WALLET_CHECKS + FACTORY_CHECKS


def find_uncovered() -> list[str]:
    """Entry points present on the contract classes but missing from the checklist."""
    listed = {(c.contract, c.name) for c in all_checks()}
    missing = []
    for contract_name, cls in CONTRACT_CLASSES.items():
        for attr in dir(cls):
            if is_entrypoint(getattr(cls, attr)) and (contract_name, attr) not in listed:
                missing.append(f"{contract_name}.{attr}")
    return missing


DETAIL_SECTIONS = (
    ("Guards", "guards", "#"),
    ("Requires", "requires", "*"),
    ("State changes", "state_changes", "->"),
    ("Events", "events", ">>"),
    ("Edge cases", "edge_cases", "!"),
)


def describe(check: FunctionCheck, verbose: bool = False) -> list[str]:
    """Matrix row for one entry point, plus its detail block when verbose."""
    lines = [
        f"  {check.contract + '.' + check.name:<38} {check.caller.value:<18} "
        f"{check.severity.tag} {check.severity.value}"
    ]
    if not verbose:
        return lines

    for label, attr, bullet in DETAIL_SECTIONS:
        items = getattr(check, attr)
        if items:
            lines.append(f"      {label}: {bullet} " + f" {bullet} ".join(items))
    if check.notes:
        lines.append(f"      Note: {check.notes}")
    return lines


def render_matrix(checks: list[FunctionCheck], verbose: bool = False) -> str:
    rule = "=" * 90
    body = [line for c in checks for line in describe(c, verbose)]
    header = f"  {'Entry point':<38} {'Caller':<18} Severity"
    return "\n".join([rule, header, rule, *body, rule])


def to_json() -> dict:
    def rows(checks):
        out = []
        for c in checks:
            item = asdict(c)
            item["caller"] = c.caller.value
            item["severity"] = c.severity.value
            out.append(item)
        return out

    return {
        "vault": rows(VAULT_CHECKS),
        "user_wallet": rows(WALLET_CHECKS),
        "wallet_factory": rows(FACTORY_CHECKS),
        "view_functions": [
            {"contract": v[0], "name": v[1], "description": v[2]}
            for v in VIEW_FUNCTIONS
        ],
        "constants": [
            {"name": c[0], "value": c[1], "description": c[2]}
            for c in CONSTANTS
        ],
        "security_properties": SECURITY_PROPERTIES,
        "uncovered": find_uncovered(),
    }


def main() -> int:
    verbose = "--verbose" in sys.argv or "-v" in sys.argv

    if "--json" in sys.argv:
        print(json.dumps(to_json(), indent=2))
        return 0

    print()
    print("=" * 64)
    print("   CUSTODY LEDGER -- CONTRACT PRE-DEPLOY SELF-CHECK")
    print("=" * 64)

    for title, checks in (
        ("Vault (payment & fee ledger)", VAULT_CHECKS),
        ("UserWallet (custodial relay)", WALLET_CHECKS),
        ("WalletFactory (deterministic provisioning)", FACTORY_CHECKS),
    ):
        print()
        print("-" * 55)
        print(f"  {title}")
        print("-" * 55)
        print(render_matrix(checks, verbose))

    print()
    print("-" * 55)
    print("  View Functions (no state change)")
    print("-" * 55)
    for contract, name, desc in VIEW_FUNCTIONS:
        print(f"  {contract:<16} {name:<44} {desc}")

    print()
    print("-" * 55)
    print("  Constants Verification")
    print("-" * 55)
    for name, value, desc in CONSTANTS:
        print(f"  {name:<20} {value:<20} {desc}")

    print()
    print("-" * 55)
    print("  Critical Security Properties")
    print("-" * 55)
    for i, prop in enumerate(SECURITY_PROPERTIES, 1):
        print(f"  [{i:2d}] + {prop}")

    missing = find_uncovered()
    print(f"\n  Summary: {len(all_checks())} entry points checked")
    for sev in Severity:
        count = sum(1 for c in all_checks() if c.severity == sev)
        if count:
            print(f"  {sev.tag} {sev.value}: {count}")

    if missing:
        print(f"\n  UNLISTED ENTRY POINTS: {', '.join(missing)}")
        print("  Status: NOT READY")
        return 1

    print("\n  Status: READY FOR MANUAL REVIEW")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
