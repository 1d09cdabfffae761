"""
Settings Tests
"""

import pytest

from custody.config import load_settings
from custody.errors import ValidationError
from custody.limits import LIMITS


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings(environ={})
        assert settings.fee_amount == 500_000
        assert settings.min_deposit == 1_000_000
        assert settings.token_decimals == LIMITS.TOKEN_DECIMALS
        assert settings.log_level == "INFO"
        assert settings.host_id == "local"
        assert settings.factory_address == ""
        assert settings.wallet_template_id == b""

    def test_overrides(self):
        settings = load_settings(environ={
            "CUSTODY_FEE_AMOUNT": "1_000_000",
            "CUSTODY_MIN_DEPOSIT": "0",
            "CUSTODY_LOG_LEVEL": "debug",
            "CUSTODY_HOST_ID": "staging",
            "CUSTODY_WALLET_TEMPLATE_ID": "0x" + "ab" * 32,
        })
        assert settings.fee_amount == 1_000_000
        assert settings.min_deposit == 0
        assert settings.log_level == "DEBUG"
        assert settings.host_id == "staging"
        assert settings.wallet_template_id == bytes.fromhex("ab" * 32)

    def test_fee_at_cap_allowed(self):
        assert load_settings(environ={"CUSTODY_FEE_AMOUNT": str(LIMITS.MAX_FEE)}).fee_amount == LIMITS.MAX_FEE

    @pytest.mark.parametrize("env", [
        {"CUSTODY_FEE_AMOUNT": str(LIMITS.MAX_FEE + 1)},
        {"CUSTODY_FEE_AMOUNT": "-1"},
        {"CUSTODY_MIN_DEPOSIT": "lots"},
        {"CUSTODY_WALLET_TEMPLATE_ID": "0xzz"},
        {"CUSTODY_WALLET_TEMPLATE_ID": "0x" + "ab" * 31},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ValidationError):
            load_settings(environ=env)

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CUSTODY_HOST_ID", "")
        monkeypatch.delenv("CUSTODY_HOST_ID")
        env_file = tmp_path / ".env"
        env_file.write_text("CUSTODY_HOST_ID=from-file\n")

        assert load_settings(env_file=env_file).host_id == "from-file"
