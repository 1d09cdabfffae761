"""
Predict UserWallet addresses before they exist.

create_wallet() deploys each wallet at a CREATE2-style address derived from
(factory, sha256(user_id), template_id), so the backend can hand out deposit
addresses ahead of provisioning.

Usage:
    python scripts/predict_wallets.py user-1 user-2
    python scripts/predict_wallets.py --factory 0xAbC... --template 0x1234... user-1
    python scripts/predict_wallets.py --json user-1

Defaults for --factory / --template come from CUSTODY_FACTORY_ADDRESS and
CUSTODY_WALLET_TEMPLATE_ID (.env is loaded).
"""

import sys
import json
import logging
import argparse
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from eth_utils import is_address, to_checksum_address

from custody.config import load_settings
from custody.errors import ValidationError
from custody.wallet_factory import compute_wallet_address, hash_user_id

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("custody.predict_wallets")


def predict(factory: str, template_id: bytes, user_ids: list[str]) -> list[dict]:
    return [
        {
            "user_id": user_id,
            "user_id_hash": "0x" + hash_user_id(user_id).hex(),
            "wallet": compute_wallet_address(factory, template_id, user_id),
        }
        for user_id in user_ids
    ]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Predict deterministic UserWallet addresses",
    )
    parser.add_argument("user_ids", nargs="+", help="User identifiers")
    parser.add_argument("--factory", default=None, help="WalletFactory address")
    parser.add_argument("--template", default=None, help="Wallet template id (32-byte hex)")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(ROOT / ".env")
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    factory = args.factory or settings.factory_address
    if not factory or not is_address(factory):
        logger.error("Factory address missing or invalid (use --factory or CUSTODY_FACTORY_ADDRESS)")
        return 1

    if args.template:
        try:
            template_id = bytes.fromhex(args.template.removeprefix("0x"))
        except ValueError:
            logger.error(f"Template id is not hex: {args.template}")
            return 1
    else:
        template_id = settings.wallet_template_id
    if len(template_id) != 32:
        logger.error("Template id must be 32 bytes (use --template or CUSTODY_WALLET_TEMPLATE_ID)")
        return 1

    rows = predict(to_checksum_address(factory), template_id, args.user_ids)

    if args.json:
        print(json.dumps(rows, indent=2))
        return 0

    print(f"  {'User ID':<24} {'Wallet'}")
    print("  " + "-" * 68)
    for row in rows:
        print(f"  {row['user_id']:<24} {row['wallet']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
