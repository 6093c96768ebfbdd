"""
Tests for CLI commands.

Uses click's CliRunner with configuration and collaborators patched in.
"""

import pytest
from click.testing import CliRunner

from sheetsync.core import cli as cli_module
from sheetsync.exceptions import LedgerAPIError
from sheetsync.services.runtime import SyncRuntime

from conftest import FakeExtractor

runner = CliRunner()

SHEETS_YAML = """\
sheets:
  - id: balances
    spreadsheetId: sheet
    cron: "15 * * * *"
    source:
      type: balances
    transform:
      columns:
        - label: Account
          value: accountName
"""


@pytest.fixture
def env(monkeypatch, tmp_path):
    config_path = tmp_path / "sheets.yml"
    config_path.write_text(SHEETS_YAML, encoding="utf-8")
    monkeypatch.setenv("ACTUAL_SERVER_URL", "http://ledger.test")
    monkeypatch.setenv("ACTUAL_API_KEY", "key")
    monkeypatch.setenv("ACTUAL_SYNC_ID", "sync-1")
    monkeypatch.setenv("SHEETS_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("SCHEDULE_TIMEZONE", "UTC")
    monkeypatch.delenv("BACKUP_SYNC_ID", raising=False)
    return config_path


def patch_runtime(monkeypatch, extractor, sink):
    class StubRuntime:
        @staticmethod
        def from_config(config):
            return SyncRuntime.from_config(config, extractor=extractor, sink=sink)

    monkeypatch.setattr(cli_module, "SyncRuntime", StubRuntime)


def test_help():
    result = runner.invoke(cli_module.cli, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "run", "validate"):
        assert command in result.output


def test_validate(env):
    result = runner.invoke(cli_module.cli, ["validate"])
    assert result.exit_code == 0, result.output
    assert "Schedule global: '0 3 * * *'" in result.output
    assert "Schedule sheet:balances" in result.output
    assert "Total sheets: 1" in result.output


def test_validate_without_sheets(env):
    env.unlink()
    result = runner.invoke(cli_module.cli, ["validate"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_validate_missing_env(env, monkeypatch):
    monkeypatch.delenv("ACTUAL_API_KEY")
    result = runner.invoke(cli_module.cli, ["validate"])
    assert result.exit_code == 1
    assert "ACTUAL_API_KEY" in result.output


def test_run_once(env, monkeypatch, memory_sink):
    extractor = FakeExtractor(records={"balances": [{"accountName": "Checking"}]})
    patch_runtime(monkeypatch, extractor, memory_sink)

    result = runner.invoke(cli_module.cli, ["run"])

    assert result.exit_code == 0, result.output
    assert "balances: 1 rows" in result.output
    assert memory_sink.grid("sheet", "Sheet1") == [["Account"], ["Checking"]]


def test_run_failure_exits_nonzero(env, monkeypatch, memory_sink):
    extractor = FakeExtractor(failures={"balances": LedgerAPIError("ledger down")})
    patch_runtime(monkeypatch, extractor, memory_sink)

    result = runner.invoke(cli_module.cli, ["run"])

    assert result.exit_code == 1
    assert "balances: ledger down" in result.output


def test_run_unknown_unit(env, monkeypatch, memory_sink):
    patch_runtime(monkeypatch, FakeExtractor(), memory_sink)
    result = runner.invoke(cli_module.cli, ["run", "--unit", "nope"])
    assert result.exit_code == 1
    assert "nope" in result.output
