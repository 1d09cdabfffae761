"""
Operator Script Tests

scripts/ is not a package; modules are loaded from their file paths.
"""

import importlib.util
import json
from pathlib import Path

import pytest

from custody.wallet_factory import compute_wallet_address

SCRIPTS = Path(__file__).resolve().parent.parent / "scripts"
FACTORY = "0x" + "12" * 20
TEMPLATE = "0x" + "34" * 32


def load_script(name: str):
    spec = importlib.util.spec_from_file_location(name, SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="module")
def selfcheck():
    return load_script("contract_selfcheck")


@pytest.fixture(scope="module")
def predict_wallets():
    return load_script("predict_wallets")


class TestContractSelfcheck:
    """The checklist must cover every entry point"""

    def test_no_uncovered_entrypoints(self, selfcheck):
        assert selfcheck.find_uncovered() == [], "Every entry point needs a checklist row"

    def test_json_report(self, selfcheck):
        report = selfcheck.to_json()
        json.dumps(report)
        assert report["uncovered"] == []
        assert {row["name"] for row in report["vault"]} >= {"process_payment", "refund_payment"}
        assert {row["name"] for row in report["wallet_factory"]} >= {"create_wallet"}

    def test_matrix_lists_every_entry_point(self, selfcheck):
        matrix = selfcheck.render_matrix(selfcheck.all_checks())
        for check in selfcheck.all_checks():
            assert f"{check.contract}.{check.name}" in matrix

    def test_verbose_row_shows_guards(self, selfcheck):
        [set_fee] = [c for c in selfcheck.VAULT_CHECKS if c.name == "set_fee"]
        lines = selfcheck.describe(set_fee, verbose=True)
        assert lines[0].split()[:2] == ["Vault.set_fee", "ADMIN"]
        assert "[!]" not in lines[0] and set_fee.severity.tag in lines[0]
        assert any(line.strip().startswith("Guards: # require_role(ADMIN)") for line in lines)
        assert any("0 <= new_fee" in line for line in lines)


class TestPredictWallets:

    def test_predict_matches_factory_formula(self, predict_wallets):
        [row] = predict_wallets.predict(FACTORY, bytes.fromhex(TEMPLATE[2:]), ["user-1"])
        assert row["wallet"] == compute_wallet_address(FACTORY, bytes.fromhex(TEMPLATE[2:]), "user-1")
        assert row["user_id"] == "user-1"

    def test_predict_matches_deployed_wallet(self, predict_wallets, host, factory, backend, system):
        [row] = predict_wallets.predict(factory.address, system.wallet_template_id, ["user-77"])
        created = host.invoke(factory, "create_wallet", backend.address, "user-77", signers=[backend])
        assert row["wallet"] == created

    def test_main_json(self, predict_wallets, capsys):
        code = predict_wallets.main(["--factory", FACTORY, "--template", TEMPLATE, "--json", "a", "b"])
        assert code == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["user_id"] for r in rows] == ["a", "b"]

    def test_main_table(self, predict_wallets, capsys):
        assert predict_wallets.main(["--factory", FACTORY, "--template", TEMPLATE, "a"]) == 0
        assert "a" in capsys.readouterr().out

    @pytest.mark.parametrize("argv", [
        ["--factory", "not-an-address", "--template", TEMPLATE, "a"],
        ["--factory", FACTORY, "--template", "0x1234", "a"],
        ["--factory", FACTORY, "--template", "nothex", "a"],
    ])
    def test_main_rejects_bad_input(self, predict_wallets, argv):
        assert predict_wallets.main(argv) == 1
