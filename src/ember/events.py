"""In-process event emitter.

Listeners are plain callables. A listener that returns an awaitable is
scheduled on the running loop; failures are logged and never reach the
emitter's caller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventListener = Callable[[Any], Any]
Unsubscribe = Callable[[], None]

MEMORY_CREATED = "memory:created"


class EventEmitter:
    """Named events with subscribe/unsubscribe."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, listener: EventListener) -> Unsubscribe:
        """Subscribe to an event.

        Args:
            event: Event name (e.g. ``memory:created``)
            listener: Callable invoked with the event payload

        Returns:
            Function that removes the listener when called
        """
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: str, payload: Any) -> None:
        """Deliver a payload to every listener of an event."""
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(payload)
            except Exception as e:
                logger.warning("Listener for '%s' failed: %s", event, e)
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def _schedule(self, event: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Dropping async listener for '%s': no running event loop", event)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(self._run_listener(event, awaitable))
        # Hold a reference so the task is not garbage collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_listener(self, event: str, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.warning("Async listener for '%s' failed: %s", event, e)

    async def drain(self) -> None:
        """Wait for all scheduled async listeners to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
