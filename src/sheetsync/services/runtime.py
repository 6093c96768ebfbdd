"""
Runtime wiring: builds the orchestrator and its trigger sources from
configuration and owns their lifecycle.
"""

import logging
from typing import Optional

from ..connectors import SINK_REGISTRY, LedgerExtractor
from ..connectors.base import BaseSink, RecordExtractor
from ..engine.sync import SyncOrchestrator
from ..exceptions import ConfigurationError
from ..models.config import AppConfig
from .event_stream import EventStreamSubscriber
from .events import EventDebouncer
from .scheduler import CronScheduler

logger = logging.getLogger(__name__)

GLOBAL_JOB_ID = "global"


class SyncRuntime:
    """Orchestrator plus schedule and event triggers."""

    def __init__(
        self,
        config: AppConfig,
        orchestrator: SyncOrchestrator,
        scheduler: Optional[CronScheduler] = None,
        debouncer: Optional[EventDebouncer] = None,
        event_stream: Optional[EventStreamSubscriber] = None
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.scheduler = scheduler or CronScheduler(timezone=config.settings.schedule_timezone)
        self.debouncer = debouncer or EventDebouncer(
            config.units,
            dispatch=lambda unit_id: orchestrator.request_run(unit_id, "event"),
            default_debounce_ms=config.settings.event_debounce_ms,
        )
        self.event_stream = event_stream or EventStreamSubscriber(
            url=config.settings.events_url,
            token=config.settings.events_token,
            enabled=config.settings.events_enabled,
            on_event=self.debouncer.handle_event,
        )
        self.started = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        extractor: Optional[RecordExtractor] = None,
        sink: Optional[BaseSink] = None
    ) -> "SyncRuntime":
        """
        Build a runtime from loaded configuration.

        Raises:
            ConfigurationError: If no units are defined or the sink mode is unknown
        """
        settings = config.settings
        if not config.units:
            raise ConfigurationError("No sheets configured; define at least one entry in the sheet config")

        if sink is None and settings.sheets_enabled:
            sink_class = SINK_REGISTRY.get(settings.sheets_mode)
            if sink_class is None:
                raise ConfigurationError(f"Unsupported SHEETS_MODE: {settings.sheets_mode}")
            sink = sink_class(service_account_path=settings.service_account_path)
        elif not settings.sheets_enabled:
            logger.info("Google Sheets uploads disabled (ENABLE_SHEETS=false)")
            sink = None

        orchestrator = SyncOrchestrator(
            config.units,
            extractor=extractor or LedgerExtractor(settings),
            sink=sink,
            warnings=config.warnings,
            global_cron=settings.global_cron,
        )
        return cls(config, orchestrator)

    async def start(self) -> None:
        """Start the run dispatcher and, outside one-shot mode, the schedule and event triggers."""
        if self.started:
            return
        self.orchestrator.start()

        if not self.config.settings.once:
            if self.config.settings.global_cron:
                self.scheduler.add_job(
                    GLOBAL_JOB_ID,
                    self.config.settings.global_cron,
                    lambda: self.orchestrator.request_run_all("schedule"),
                )
            for unit in self.config.units:
                if unit.cron:
                    self.scheduler.add_job(
                        f"sheet:{unit.id}",
                        unit.cron,
                        lambda unit_id=unit.id: self.orchestrator.request_run(unit_id, "schedule"),
                    )
            self.scheduler.start()
            self.event_stream.start()

        self.started = True
        logger.info(f"Runtime started with {len(self.config.units)} sheets")

    async def stop(self) -> None:
        """Stop triggers and the dispatcher; in-flight runs are left to finish."""
        await self.scheduler.stop()
        self.debouncer.cancel_all()
        await self.event_stream.stop()
        await self.orchestrator.stop()
        self.started = False
        logger.info("Runtime stopped")

    async def run_once(self, unit_id: Optional[str] = None) -> None:
        """
        Run one unit, or every unit, and wait for completion.

        Raises:
            UnitNotFoundError: If unit_id is unknown
            BatchSyncError: If any unit failed during a full run
        """
        if unit_id:
            await self.orchestrator.trigger_unit(unit_id)
        else:
            await self.orchestrator.trigger_all()
