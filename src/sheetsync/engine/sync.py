"""
Sync orchestrator: runs units through extract, transform and load while
keeping per-unit run state.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from ..exceptions import BatchSyncError, UnitNotFoundError
from ..models.config import SyncUnit
from ..models.state import RunError, StatusSnapshot, SyncUnitRunState, UnitStatus
from ..models.sync import RunRequest, TransformResult
from .transforms import RowTransformer

if TYPE_CHECKING:
    from ..connectors.base import BaseSink, RecordExtractor

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Owns the run state of every unit and serializes execution per unit.

    All methods are meant to be called from a single event loop. The
    running flag is checked and set without an await in between, so a
    schedule fire and a debounce fire for the same unit cannot both enter
    the run body.
    """

    def __init__(
        self,
        units: Iterable[SyncUnit],
        extractor: "RecordExtractor",
        sink: Optional["BaseSink"] = None,
        transformer: Optional[RowTransformer] = None,
        warnings: Optional[List[str]] = None,
        global_cron: Optional[str] = None
    ):
        self.units: Dict[str, SyncUnit] = {unit.id: unit for unit in units}
        self.extractor = extractor
        self.sink = sink
        self.transformer = transformer or RowTransformer()
        self.warnings = list(warnings or [])
        self.global_cron = global_cron
        self._states: Dict[str, SyncUnitRunState] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._inflight: set = set()

    def _state_for(self, unit_id: str) -> SyncUnitRunState:
        state = self._states.get(unit_id)
        if state is None:
            state = SyncUnitRunState()
            self._states[unit_id] = state
        return state

    def get_unit(self, unit_id: str) -> SyncUnit:
        unit = self.units.get(unit_id)
        if unit is None:
            raise UnitNotFoundError(f"Sheet {unit_id} not found")
        return unit

    async def run_unit(self, unit: SyncUnit) -> Optional[TransformResult]:
        """
        Extract, transform and load one unit.

        Returns:
            The transform result, or None when the unit was already running

        Raises:
            Whatever the extract, transform or load stage raised; the error
            is recorded in the unit's run state first
        """
        state = self._state_for(unit.id)
        if state.running:
            logger.warning(f"Sheet {unit.id} is already running; skipping")
            return None

        state.running = True
        state.last_run_at = _now()
        state.last_error = None

        try:
            logger.info(f"Running sheet {unit.id} ({unit.source.type} -> {unit.tab}, mode={unit.mode.value})")
            records = await asyncio.to_thread(self.extractor.extract, unit)
            logger.info(f"Extracted {len(records)} records for sheet {unit.id}")

            context = {"sheetId": unit.id, "sheetTitle": unit.title}
            result = self.transformer.transform(unit.transform, records, context)

            if self.sink is None:
                logger.info(f"Sheets uploads disabled; skipping load for sheet {unit.id}")
            else:
                await asyncio.to_thread(
                    self.sink.load,
                    unit.target,
                    unit.mode,
                    result.header,
                    result.rows,
                    unit.key_columns,
                )

            state.last_success_at = _now()
            state.row_count = len(result.rows)
            logger.info(f"Sheet {unit.id} completed with {state.row_count} rows")
            return result

        except Exception as e:
            state.last_error = RunError(message=str(e), timestamp=_now())
            logger.error(f"Sheet {unit.id} failed: {e}")
            raise

        finally:
            state.running = False

    async def run_all(self, units: Optional[Iterable[SyncUnit]] = None) -> None:
        """
        Run units one after another, isolating failures.

        Raises:
            BatchSyncError: If at least one unit failed
        """
        failures: List[Tuple[str, Exception]] = []
        for unit in list(units if units is not None else self.units.values()):
            try:
                await self.run_unit(unit)
            except Exception as e:
                failures.append((unit.id, e))

        if failures:
            raise BatchSyncError(failures)

    async def trigger_unit(self, unit_id: str) -> Optional[TransformResult]:
        return await self.run_unit(self.get_unit(unit_id))

    async def trigger_all(self) -> None:
        await self.run_all()

    def get_status(self) -> StatusSnapshot:
        units = []
        for unit in self.units.values():
            state = self._state_for(unit.id)
            units.append(UnitStatus(
                id=unit.id,
                title=unit.title,
                spreadsheet_id=unit.spreadsheet_id,
                tab=unit.tab,
                mode=unit.mode,
                **state.model_dump(),
            ))

        return StatusSnapshot(
            warnings=self.warnings,
            schedule={"global_cron": self.global_cron},
            sink=self.sink.get_status() if self.sink is not None else {"enabled": False},
            units=units,
        )

    # Run-request channel used by schedule and event triggers

    def request_run(self, unit_id: Optional[str], triggered_by: str = "manual") -> None:
        """Queue a run without waiting for it. A unit_id of None queues every unit."""
        if self._queue is None:
            raise RuntimeError("Orchestrator has not been started")
        self._queue.put_nowait(RunRequest(unit_id=unit_id, triggered_by=triggered_by))

    def request_run_all(self, triggered_by: str = "schedule") -> None:
        self.request_run(None, triggered_by)

    def start(self) -> None:
        if self._dispatcher is not None:
            return
        self._queue = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self._dispatch())
        logger.info("Orchestrator dispatcher started")

    async def stop(self) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.cancel()
        try:
            await self._dispatcher
        except asyncio.CancelledError:
            pass
        self._dispatcher = None
        self._queue = None
        if self._inflight:
            # Let runs already past the queue finish so their state is recorded
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Orchestrator dispatcher stopped")

    async def _dispatch(self) -> None:
        while True:
            request: RunRequest = await self._queue.get()
            logger.debug(f"Run requested by {request.triggered_by}: {request.unit_id or 'all'}")
            if request.unit_id is None:
                coro = self.run_all()
            elif request.unit_id in self.units:
                coro = self.run_unit(self.units[request.unit_id])
            else:
                logger.warning(f"Ignoring run request for unknown sheet {request.unit_id}")
                continue
            task = asyncio.create_task(self._run_detached(coro, request))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _run_detached(self, coro, request: RunRequest) -> None:
        try:
            await coro
        except Exception as e:
            # Already recorded in run state
            logger.error(f"Run triggered by {request.triggered_by} failed: {e}")
