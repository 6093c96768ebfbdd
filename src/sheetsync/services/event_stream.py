"""
WebSocket client for the ledger change-event stream.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5.0


class EventStreamSubscriber:
    """Reads JSON events from a websocket and reconnects until stopped."""

    def __init__(
        self,
        url: Optional[str],
        on_event: Callable[[Any], Any],
        token: Optional[str] = None,
        enabled: bool = True,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS
    ):
        self.url = url
        self.on_event = on_event
        self.token = token
        self.enabled = enabled and bool(url)
        self.reconnect_delay = reconnect_delay
        self.connected = False
        # Created in start() so it belongs to the running loop
        self._stopping: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if not self.enabled:
            logger.info("Event subscriber disabled")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self.connected = False

    def handle_message(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.warning(f"Failed to parse event payload: {e}")
            return
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring non-object event payload: {type(payload).__name__}")
            return
        self.on_event(payload)

    async def _run(self) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None

        while not self._stopping.is_set():
            try:
                async with aiohttp.ClientSession(headers=headers) as session:
                    async with session.ws_connect(self.url, heartbeat=30) as ws:
                        self.connected = True
                        logger.info(f"Connected to events stream at {self.url}")
                        async for msg in ws:
                            if msg.type == aiohttp.WSMsgType.TEXT:
                                self.handle_message(msg.data)
                            elif msg.type == aiohttp.WSMsgType.ERROR:
                                logger.error(f"Event stream error: {ws.exception()}")
                                break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Event stream error: {e}")
            except Exception as e:
                logger.exception(f"Unexpected event stream failure: {e}")
            finally:
                self.connected = False

            if self._stopping.is_set():
                break
            logger.warning(f"Event stream closed; retrying in {self.reconnect_delay:.0f}s")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.reconnect_delay)
            except asyncio.TimeoutError:
                pass
