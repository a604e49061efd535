from __future__ import annotations

from pathlib import Path

import azure_vm_inventory.main as main_module
from azure_vm_inventory.errors import AuthenticationError, ConfigurationError


class DummyRunner:
    outcome = None
    instances = []

    def __init__(self, settings):
        self.settings = settings
        self.report_path = Path(settings.out_dir) / "inventory_run_report.json"
        self.client = self
        self.closed = False
        DummyRunner.instances.append(self)

    def execute(self):
        if isinstance(DummyRunner.outcome, Exception):
            raise DummyRunner.outcome
        return {
            "summary": {
                "subscriptions_ok": 1,
                "subscriptions_targeted": 1,
                "rows_arm": 3,
                "rows_classic": 0,
                "duration_sec": 0.1,
            }
        }

    def close(self):
        self.closed = True


def _configure(monkeypatch, tmp_path, outcome=None):
    monkeypatch.setenv("AZURE_TENANT_ID", "t")
    monkeypatch.setenv("AZURE_CLIENT_ID", "c")
    monkeypatch.setenv("AZURE_CLIENT_SECRET", "s")
    monkeypatch.setattr(main_module, "InventoryRunner", DummyRunner)
    monkeypatch.setattr(main_module, "setup_logging", lambda level: None)
    DummyRunner.outcome = outcome
    DummyRunner.instances = []
    return ["--env-file", str(tmp_path / "missing.env"), "--out-dir", str(tmp_path)]


def test_cli_overrides_settings(monkeypatch, tmp_path):
    argv = _configure(monkeypatch, tmp_path)
    argv += ["--subscription", "Prod", "--subscription", "sub-2", "--format", "xlsx", "--nic-slots", "20", "--no-classic"]

    assert main_module.main(argv) == 0

    settings = DummyRunner.instances[0].settings
    assert settings.subscriptions == ["Prod", "sub-2"]
    assert settings.output_format == "xlsx"
    assert settings.nic_slots == 8
    assert settings.include_classic is False
    assert settings.out_dir == tmp_path
    assert DummyRunner.instances[0].closed is True


def test_missing_credentials_exit_code(monkeypatch, tmp_path):
    argv = _configure(monkeypatch, tmp_path)
    monkeypatch.delenv("AZURE_CLIENT_SECRET")

    assert main_module.main(argv) == 2
    assert DummyRunner.instances == []


def test_inventory_failure_exit_code(monkeypatch, tmp_path):
    argv = _configure(monkeypatch, tmp_path, outcome=AuthenticationError("Azure auth failed (401)"))

    assert main_module.main(argv) == 1
    assert DummyRunner.instances[0].closed is True


def test_configuration_error_exit_code(monkeypatch, tmp_path):
    argv = _configure(monkeypatch, tmp_path, outcome=ConfigurationError("unknown subscription"))

    assert main_module.main(argv) == 2
