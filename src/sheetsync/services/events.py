"""
Event-driven triggers: subscription matching and per-unit debounce timers.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..models.config import EventSubscription, SyncUnit
from ..models.sync import LedgerEvent

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 5000


def matches_subscription(subscription: Optional[EventSubscription], event: LedgerEvent) -> bool:
    """
    Whether an event passes a unit's subscription filter.

    An absent subscription, or one listing neither entities nor types,
    never matches.
    """
    if subscription is None or subscription.is_empty:
        return False
    if subscription.entities and event.entity not in subscription.entities:
        return False
    if subscription.types and event.type not in subscription.types:
        return False
    return True


class EventDebouncer:
    """
    Coalesces bursts of matching events into one run per unit.

    Each unit has at most one pending timer; a new matching event cancels
    and replaces it. Must be used from the event loop thread.
    """

    def __init__(
        self,
        units: Iterable[SyncUnit],
        dispatch: Callable[[str], None],
        default_debounce_ms: float = DEFAULT_DEBOUNCE_MS
    ):
        """
        Args:
            units: Units that may subscribe to events
            dispatch: Called with a unit id when its timer expires
            default_debounce_ms: Used when a unit sets no debounce of its own
        """
        self.units = [unit for unit in units if unit.events is not None]
        self.dispatch = dispatch
        self.default_debounce_ms = default_debounce_ms
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def debounce_seconds(self, unit: SyncUnit) -> float:
        debounce_ms = unit.events.debounce_ms if unit.events else None
        if debounce_ms is None:
            debounce_ms = self.default_debounce_ms
        return max(0.0, debounce_ms) / 1000.0

    def handle_event(self, event: Union[LedgerEvent, Mapping[str, Any]]) -> List[str]:
        """
        Arm timers for every unit the event matches.

        Returns:
            Ids of the matched units
        """
        if not isinstance(event, LedgerEvent):
            try:
                event = LedgerEvent.model_validate(event)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed event: {e}")
                return []

        matched = []
        for unit in self.units:
            if matches_subscription(unit.events, event):
                self.schedule(unit, event)
                matched.append(unit.id)

        if not matched:
            logger.debug(f"Event ignored (no sheet subscriptions matched): {event.entity}/{event.type}")
        return matched

    def schedule(self, unit: SyncUnit, event: Optional[LedgerEvent] = None) -> None:
        loop = asyncio.get_running_loop()
        previous = self._timers.pop(unit.id, None)
        if previous is not None:
            previous.cancel()

        delay = self.debounce_seconds(unit)
        self._timers[unit.id] = loop.call_later(delay, self._fire, unit.id)
        event_type = event.type if event else None
        logger.info(f"Queuing sheet {unit.id} from event stream in {delay:.3f}s (event={event_type})")

    def _fire(self, unit_id: str) -> None:
        self._timers.pop(unit_id, None)
        try:
            self.dispatch(unit_id)
        except Exception as e:
            logger.error(f"Event-triggered dispatch for sheet {unit_id} failed: {e}")

    def pending(self) -> Dict[str, float]:
        """Loop time at which each pending timer fires, by unit id."""
        return {unit_id: handle.when() for unit_id, handle in self._timers.items()}

    def cancel_all(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
