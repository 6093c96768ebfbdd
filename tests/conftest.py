"""
Shared fixtures: an in-memory sink, a scripted extractor and unit builders.
"""

from typing import Any, Dict, List, Optional

import pytest

from sheetsync.connectors.base import BaseSink, RecordExtractor
from sheetsync.exceptions import SheetsAPIError
from sheetsync.models.config import AppConfig, AppSettings, LedgerTarget, SyncUnit


class FakeExtractor(RecordExtractor):
    """Returns canned records per unit id, or raises a canned error."""

    def __init__(self, records: Optional[Dict[str, List[dict]]] = None, failures: Optional[Dict[str, Exception]] = None):
        self.records = records or {}
        self.failures = failures or {}
        self.calls: List[str] = []

    def extract(self, unit: SyncUnit) -> List[dict]:
        self.calls.append(unit.id)
        if unit.id in self.failures:
            raise self.failures[unit.id]
        return [dict(record) for record in self.records.get(unit.id, [])]


class MemorySink(BaseSink):
    """Keeps grids in a dict keyed by (spreadsheet id, tab)."""

    def __init__(self, grids: Optional[Dict[tuple, List[List[Any]]]] = None, fail_read: bool = False):
        super().__init__(enabled=True)
        self.grids = grids or {}
        self.fail_read = fail_read
        self.operations: List[str] = []

    def is_connected(self) -> bool:
        return True

    def grid(self, spreadsheet_id: str, tab: str) -> List[List[Any]]:
        return self.grids.get((spreadsheet_id, tab), [])

    def read_current_grid(self, target):
        self.operations.append("read")
        if self.fail_read:
            raise SheetsAPIError("read failed")
        return [list(row) for row in self.grids.get((target.spreadsheet_id, target.tab), [])]

    def _replace(self, target, header, rows):
        self.operations.append("replace")
        self.grids[(target.spreadsheet_id, target.tab)] = [list(header)] + [list(row) for row in rows]

    def _append(self, target, rows):
        self.operations.append("append")
        self.grids.setdefault((target.spreadsheet_id, target.tab), []).extend(list(row) for row in rows)

    def _write_grid(self, target, values):
        self.operations.append("write")
        self.grids[(target.spreadsheet_id, target.tab)] = [list(row) for row in values]


def build_unit(unit_id: str = "balances", **overrides: Any) -> SyncUnit:
    data = {
        "id": unit_id,
        "spreadsheetId": "spreadsheet-1",
        "tab": unit_id.title(),
        "source": {"type": "balances"},
        "transform": {
            "columns": [
                {"label": "Account", "value": "accountName"},
                {"label": "Balance", "value": "balance"},
            ]
        },
    }
    data.update(overrides)
    return SyncUnit.model_validate(data)


@pytest.fixture
def make_unit():
    return build_unit


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        ledger_server_url="http://ledger.test",
        ledger_api_key="test-key",
        sync_targets=[LedgerTarget(sync_id="sync-1"), LedgerTarget(budget_id="budget-2", sync_id="sync-2")],
        global_cron=None,
        once=True,
    )


@pytest.fixture
def app_config(settings, make_unit) -> AppConfig:
    return AppConfig(settings=settings, units=[make_unit("balances"), make_unit("summary")])


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor(records={
        "balances": [
            {"accountName": "Checking", "balance": 1200},
            {"accountName": "Savings", "balance": 5000},
        ],
        "summary": [{"accountName": "Total", "balance": 6200}],
    })
