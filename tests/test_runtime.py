"""
Tests for runtime wiring of triggers to the orchestrator.
"""

import asyncio

import pytest

from sheetsync.exceptions import BatchSyncError, ConfigurationError, UnitNotFoundError
from sheetsync.models.config import AppConfig
from sheetsync.services.runtime import SyncRuntime

from conftest import FakeExtractor


@pytest.fixture
def live_config(settings, make_unit):
    live_settings = settings.model_copy(update={"once": False, "global_cron": "0 3 * * *", "event_debounce_ms": 10})
    units = [
        make_unit("balances", cron="*/15 * * * *"),
        make_unit("tx", events={"entities": ["transaction"]}),
    ]
    return AppConfig(settings=live_settings, units=units)


@pytest.mark.asyncio
async def test_start_registers_schedules(live_config, fake_extractor, memory_sink):
    runtime = SyncRuntime.from_config(live_config, extractor=fake_extractor, sink=memory_sink)
    await runtime.start()
    try:
        assert runtime.started
        for _ in range(5):
            await asyncio.sleep(0)
        assert set(runtime.scheduler.next_fire_times) == {"global", "sheet:balances"}
        assert runtime.event_stream.enabled is False
    finally:
        await runtime.stop()
    assert not runtime.scheduler.running


@pytest.mark.asyncio
async def test_once_mode_skips_triggers(app_config, fake_extractor, memory_sink):
    runtime = SyncRuntime.from_config(app_config, extractor=fake_extractor, sink=memory_sink)
    await runtime.start()
    try:
        assert not runtime.scheduler.running
    finally:
        await runtime.stop()


@pytest.mark.asyncio
async def test_event_runs_subscribed_unit(live_config, memory_sink):
    extractor = FakeExtractor(records={"tx": [{"accountName": "Checking", "balance": 1}]})
    runtime = SyncRuntime.from_config(live_config, extractor=extractor, sink=memory_sink)
    await runtime.start()
    try:
        assert runtime.debouncer.handle_event({"entity": "transaction", "type": "transaction.created"}) == ["tx"]
        for _ in range(100):
            if runtime.orchestrator.get_status().get_unit("tx").last_success_at:
                break
            await asyncio.sleep(0.01)
    finally:
        await runtime.stop()

    assert extractor.calls == ["tx"]
    assert runtime.debouncer.pending() == {}


@pytest.mark.asyncio
async def test_stop_cancels_pending_debounce(live_config, fake_extractor, memory_sink):
    runtime = SyncRuntime.from_config(live_config, extractor=fake_extractor, sink=memory_sink)
    await runtime.start()
    runtime.debouncer.default_debounce_ms = 10_000
    runtime.debouncer.handle_event({"entity": "transaction", "type": "transaction.updated"})
    assert "tx" in runtime.debouncer.pending()

    await runtime.stop()
    assert runtime.debouncer.pending() == {}
    assert fake_extractor.calls == []


@pytest.mark.asyncio
async def test_run_once(app_config, memory_sink):
    extractor = FakeExtractor(failures={"summary": RuntimeError("broken")})
    runtime = SyncRuntime.from_config(app_config, extractor=extractor, sink=memory_sink)

    await runtime.run_once("balances")
    with pytest.raises(UnitNotFoundError):
        await runtime.run_once("missing")
    with pytest.raises(BatchSyncError):
        await runtime.run_once()


def test_disabled_sheets_have_no_sink(app_config, fake_extractor):
    config = app_config.model_copy(update={"settings": app_config.settings.model_copy(update={"sheets_enabled": False})})
    runtime = SyncRuntime.from_config(config, extractor=fake_extractor)
    assert runtime.orchestrator.sink is None


def test_unknown_sheets_mode(app_config, fake_extractor):
    config = app_config.model_copy(update={"settings": app_config.settings.model_copy(update={"sheets_mode": "oauth"})})
    with pytest.raises(ConfigurationError, match="SHEETS_MODE"):
        SyncRuntime.from_config(config, extractor=fake_extractor)
