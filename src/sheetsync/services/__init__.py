"""
Trigger services: cron scheduling, event debounce and runtime wiring.
"""

from .cron import CronParseError, next_fire_time
from .events import EventDebouncer, matches_subscription
from .event_stream import EventStreamSubscriber
from .runtime import SyncRuntime
from .scheduler import CronScheduler

__all__ = [
    "CronParseError",
    "next_fire_time",
    "EventDebouncer",
    "matches_subscription",
    "EventStreamSubscriber",
    "SyncRuntime",
    "CronScheduler",
]
