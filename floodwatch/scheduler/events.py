"""
events.py — Connectivity event channel.

The host environment (a browser bridge, a network probe, or the
``/connectivity`` endpoint) publishes ONLINE / OFFLINE transitions;
every subscribed scheduler receives them on its own asyncio.Queue and
consumes them in a task it owns.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)


class ConnectivityEvent(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityMonitor:
    """
    Fan-out of connectivity events to subscriber queues.

    Usage:
        monitor = ConnectivityMonitor()
        queue = monitor.subscribe()
        monitor.publish(ConnectivityEvent.OFFLINE)
        event = await queue.get()
        monitor.unsubscribe(queue)
    """

    def __init__(self, online: bool = True):
        self._subscribers: List[asyncio.Queue] = []
        self.online = online

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: ConnectivityEvent) -> int:
        """Deliver to every subscriber; returns the number reached."""
        event = ConnectivityEvent(event)
        self.online = event == ConnectivityEvent.ONLINE
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        logger.info("Connectivity %s → %d subscribers", event.value, len(self._subscribers))
        return len(self._subscribers)
