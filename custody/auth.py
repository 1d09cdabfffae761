"""
Invocation Signature Authorization.

Every privileged ledger call must carry proof that the acting account
approved THIS exact invocation. Uses EIP-191 personal_sign (same scheme
MetaMask and every wallet supports), so a backend key, a hardware wallet
or a browser wallet can all authorize calls.

Flow:
  1. Client: build the canonical invocation message
     "custody:{host}:{contract}:{method}:{args}:{nonce}"
  2. Client: sign it with the account key → AuthProof
  3. Host: recover signer from signature, compare with the required account
  4. Host: consume nonce (strictly increasing per account) → no replay

No sessions. No API keys. The signature IS the authorization.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

logger = logging.getLogger("custody.auth")


@dataclass(frozen=True)
class AuthProof:
    """Signed approval of one invocation by one account."""
    signer: str         # Checksummed address claimed by the proof
    nonce: int          # Must be greater than the signer's last used nonce
    signature: bytes    # 65-byte EIP-191 signature


def _encode_arg(value):
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode_arg(v) for v in value]
    return value


def canonical_args(args: Sequence) -> str:
    """Deterministic JSON rendering of invocation arguments."""
    return json.dumps([_encode_arg(a) for a in args], separators=(",", ":"), sort_keys=True)


def invocation_message(host_id: str, contract: str, method: str,
                       args: Sequence, nonce: int) -> str:
    """The exact text an account signs to authorize one invocation."""
    return f"custody:{host_id}:{contract}:{method}:{canonical_args(args)}:{nonce}"


def verify_signature(message: str, signature: bytes) -> Optional[str]:
    """
    Recover the signer address from an EIP-191 personal_sign signature.

    Returns:
        The checksummed address of the signer, or None if the signature
        is malformed.
    """
    try:
        msg = encode_defunct(text=message)
        return Account.recover_message(msg, signature=signature)
    except Exception as e:
        logger.warning(f"Signature recovery failed: {e}")
        return None


class Signer:
    """
    An externally owned account able to authorize invocations.

    Usage:
        admin = Signer.generate()
        proof = admin.authorize(host.host_id, vault.address, "pause", [admin.address], 1)
    """

    def __init__(self, account):
        self._account = account

    @classmethod
    def generate(cls) -> "Signer":
        return cls(Account.create())

    @classmethod
    def from_key(cls, private_key: str) -> "Signer":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return to_checksum_address(self._account.address)

    def authorize(self, host_id: str, contract: str, method: str,
                  args: Sequence, nonce: int) -> AuthProof:
        message = invocation_message(host_id, contract, method, args, nonce)
        signed = self._account.sign_message(encode_defunct(text=message))
        return AuthProof(signer=self.address, nonce=nonce, signature=bytes(signed.signature))

    def __repr__(self) -> str:
        return f"Signer({self.address})"
