"""
Settings - environment-driven configuration.

Reads CUSTODY_* variables (optionally from a .env file via python-dotenv).
Every value has a default so a bare checkout runs the local simulation.

    CUSTODY_FEE_AMOUNT=500000          # 0.05 USDC per payment (7 decimals)
    CUSTODY_MIN_DEPOSIT=1000000
    CUSTODY_TOKEN_DECIMALS=7
    CUSTODY_LOG_LEVEL=INFO
    CUSTODY_HOST_ID=local
    CUSTODY_FACTORY_ADDRESS=0x...      # for off-chain wallet prediction
    CUSTODY_WALLET_TEMPLATE_ID=0x...
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ValidationError
from .limits import LIMITS

logger = logging.getLogger("custody.config")

DEFAULTS = {
    "CUSTODY_FEE_AMOUNT": "500000",
    "CUSTODY_MIN_DEPOSIT": "1000000",
    "CUSTODY_TOKEN_DECIMALS": str(LIMITS.TOKEN_DECIMALS),
    "CUSTODY_LOG_LEVEL": "INFO",
    "CUSTODY_HOST_ID": "local",
    "CUSTODY_FACTORY_ADDRESS": "",
    "CUSTODY_WALLET_TEMPLATE_ID": "",
}


@dataclass(frozen=True)
class CustodySettings:
    fee_amount: int
    min_deposit: int
    token_decimals: int
    log_level: str
    host_id: str
    factory_address: str = ""
    wallet_template_id: bytes = b""


def _int_setting(env: dict, name: str) -> int:
    raw = env.get(name) or DEFAULTS[name]
    try:
        return int(raw.replace("_", ""))
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


def _template_setting(env: dict) -> bytes:
    raw = env.get("CUSTODY_WALLET_TEMPLATE_ID") or ""
    if not raw:
        return b""
    try:
        value = bytes.fromhex(raw.removeprefix("0x"))
    except ValueError:
        raise ValidationError(f"CUSTODY_WALLET_TEMPLATE_ID is not hex: {raw!r}") from None
    if len(value) != 32:
        raise ValidationError("CUSTODY_WALLET_TEMPLATE_ID must be 32 bytes")
    return value


def load_settings(env_file: Optional[Path] = None, environ: Optional[dict] = None) -> CustodySettings:
    """
    Build settings from the process environment.

    Args:
        env_file: .env to load first (existing variables win)
        environ: explicit mapping instead of os.environ (tests)
    """
    if environ is None:
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()
        environ = dict(os.environ)

    fee_amount = _int_setting(environ, "CUSTODY_FEE_AMOUNT")
    if fee_amount > LIMITS.MAX_FEE:
        raise ValidationError(f"CUSTODY_FEE_AMOUNT {fee_amount} exceeds MAX_FEE {LIMITS.MAX_FEE}")
    if fee_amount < 0:
        raise ValidationError("CUSTODY_FEE_AMOUNT must not be negative")

    settings = CustodySettings(
        fee_amount=fee_amount,
        min_deposit=_int_setting(environ, "CUSTODY_MIN_DEPOSIT"),
        token_decimals=_int_setting(environ, "CUSTODY_TOKEN_DECIMALS"),
        log_level=(environ.get("CUSTODY_LOG_LEVEL") or DEFAULTS["CUSTODY_LOG_LEVEL"]).upper(),
        host_id=environ.get("CUSTODY_HOST_ID") or DEFAULTS["CUSTODY_HOST_ID"],
        factory_address=environ.get("CUSTODY_FACTORY_ADDRESS") or "",
        wallet_template_id=_template_setting(environ),
    )
    logger.debug(f"Loaded settings: fee={settings.fee_amount} min_deposit={settings.min_deposit}")
    return settings
