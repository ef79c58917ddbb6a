"""
refresh_scheduler.py — Per-zone refresh lifecycle and published state.

State machine
=============

        start()                       success
    ┌──────────┐  cache hit  ┌────────┐ ─────────► ┌──────┐
    │   cold   │ ──────────► │ cached │            │ live │
    └────┬─────┘             └───┬────┘            └──┬───┘
         │      success          │  offline           │ offline
         └───────────────────────┼────────────────────┘
                                 ▼
                        ┌─────────────────┐  online → previous state
                        │  stale_offline  │  + silent refresh
                        └─────────────────┘

    • A failed refresh keeps the published value and sets ``error``.
    • Full refresh every FULL_REFRESH_INTERVAL_S (silent), warnings-only
      refresh every WARNINGS_REFRESH_INTERVAL_S. Pollers skip the network
      while offline; a manual ``refresh()`` is always attempted.
    • After stop() no completion mutates state or fires a callback.

Ordering
========
Every full refresh takes the next epoch number. A completion is applied
only when its epoch is newer than the last applied one, so a slow call
can never overwrite a result from a call that started after it. A
warnings-only refresh is applied only when no full refresh landed while
it was in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from floodwatch.core.cache import CacheStore
from floodwatch.core.config import Settings, get_settings
from floodwatch.core.logging_config import set_refresh_context
from floodwatch.ingestion.adapters import weather_description, weather_icon
from floodwatch.ingestion.models import WeatherWarning, utcnow
from floodwatch.risk.aggregator import UnifiedAggregator
from floodwatch.risk.models import (
    CacheEntry,
    UnifiedWeatherResult,
    WaterLevelEstimate,
    ZoneRisk,
)
from floodwatch.scheduler.events import ConnectivityEvent, ConnectivityMonitor

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    COLD = "cold"
    CACHED = "cached"
    LIVE = "live"
    STALE_OFFLINE = "stale_offline"


@dataclass
class PublishedState:
    """What the presentation layer sees for one zone."""
    zone_id: str
    weather: Optional[UnifiedWeatherResult] = None
    water_level: Optional[WaterLevelEstimate] = None
    zone_risks: List[ZoneRisk] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    offline: bool = False
    state: SchedulerState = SchedulerState.COLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zoneId": self.zone_id,
            "weather": self.weather.to_dict() if self.weather else None,
            "waterLevel": self.water_level.to_dict() if self.water_level else None,
            "zoneRisks": [r.to_dict() for r in self.zone_risks],
            "loading": self.loading,
            "error": self.error,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "isOffline": self.offline,
            "state": self.state.value,
        }


UpdateCallback = Callable[[PublishedState], Any]
ErrorCallback = Callable[[Exception], Any]


class RefreshScheduler:
    """
    Owns the published weather / water-level / zone-risk state of one zone.

    Usage:
        scheduler = RefreshScheduler("jalukbari", aggregator, store, monitor)
        await scheduler.start()
        print(scheduler.snapshot.to_dict())
        await scheduler.stop()
    """

    def __init__(
        self,
        zone_id: str,
        aggregator: UnifiedAggregator,
        cache_store: CacheStore,
        monitor: ConnectivityMonitor,
        settings: Optional[Settings] = None,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.zone_id = zone_id
        self.aggregator = aggregator
        self.cache_store = cache_store
        self.monitor = monitor
        self.settings = settings or get_settings()
        self.on_update = on_update
        self.on_error = on_error
        self._clock = clock or utcnow

        self._state = PublishedState(zone_id=zone_id)
        self._state_before_offline = SchedulerState.COLD
        self._alive = False
        self._epoch = 0
        self._applied_epoch = 0
        self._loud_in_flight = 0
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: Set[asyncio.Task] = set()

    # ── Presentation interface ──

    @property
    def snapshot(self) -> PublishedState:
        return replace(self._state, zone_risks=list(self._state.zone_risks))

    @property
    def state(self) -> SchedulerState:
        return self._state.state

    @property
    def is_running(self) -> bool:
        return self._alive

    def active_warnings(self, now: Optional[datetime] = None) -> List[WeatherWarning]:
        """Published warnings that have not expired."""
        if self._state.weather is None:
            return []
        now = now or self._clock()
        return [w for w in self._state.weather.warnings if w.is_active(now)]

    def current_icon(self) -> str:
        if self._state.weather is None:
            return "cloud"
        return weather_icon(self._state.weather.current.weather_code)

    def current_description(self, language: str = "en") -> str:
        code = self._state.weather.current.weather_code if self._state.weather else None
        return weather_description(code, language)

    # ── Lifecycle ──

    async def start(self) -> None:
        if self._alive:
            return
        self._alive = True
        set_refresh_context(zone_id=self.zone_id)

        await self._restore()
        if not self._alive:
            return

        self._queue = self.monitor.subscribe()
        if not self.monitor.online:
            self._go_offline()

        self._spawn(self._initial_refresh())
        self._spawn(self._poll(self.settings.FULL_REFRESH_INTERVAL_S, self._poll_full))
        self._spawn(self._poll(self.settings.WARNINGS_REFRESH_INTERVAL_S, self.refresh_warnings))
        self._spawn(self._consume_events())

        logger.info(
            "Scheduler started for %s in state %s", self.zone_id, self.state.value,
            extra={"zone_id": self.zone_id, "state": self.state.value},
        )

    async def stop(self) -> None:
        if not self._alive:
            return
        self._alive = False

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._queue is not None:
            self.monitor.unsubscribe(self._queue)
            self._queue = None

        logger.info("Scheduler stopped for %s", self.zone_id, extra={"zone_id": self.zone_id})

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── Restore ──

    async def _restore(self) -> None:
        """Load the last-known-good entry, or synthesize cold defaults."""
        raw = await self.cache_store.get(self.zone_id)
        if not self._alive:
            return

        entry = CacheEntry.try_from_dict(raw)
        if raw and entry is None:
            logger.warning(
                "Discarding undecodable cache entry for %s", self.zone_id,
                extra={"zone_id": self.zone_id},
            )

        if entry is not None:
            self._state.weather = entry.weather
            self._state.water_level = entry.water_level
            self._state.zone_risks = list(entry.zone_risks)
            self._state.last_updated = entry.captured_at
            self._state.state = SchedulerState.CACHED
            return

        defaults = self.aggregator.fallback_result(self.zone_id, self._clock())
        self._state.weather = defaults
        self._state.water_level = self.aggregator.water_level_for(self.zone_id, defaults)
        self._state.zone_risks = self.aggregator.calculate_zone_risks(defaults)
        self._state.last_updated = None
        self._state.state = SchedulerState.COLD

    # ── Refresh ──

    async def refresh(self, silent: bool = False) -> bool:
        """
        Run a full aggregation and publish it. Returns True when the result
        was applied; False when it failed, was superseded, or the scheduler
        stopped meanwhile.
        """
        if not self._alive:
            return False

        self._epoch += 1
        epoch = self._epoch
        set_refresh_context(zone_id=self.zone_id, epoch=epoch)

        if not silent:
            self._loud_in_flight += 1
            self._state.loading = True

        try:
            result = await self.aggregator.aggregate(self.zone_id)
            if not self._alive:
                return False
            if epoch <= self._applied_epoch:
                logger.info(
                    "Discarding superseded refresh #%d for %s", epoch, self.zone_id,
                    extra={"zone_id": self.zone_id, "epoch": epoch},
                )
                return False

            water_level = self.aggregator.water_level_for(self.zone_id, result)
            zone_risks = self.aggregator.calculate_zone_risks(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._alive:
                self._fail(e)
            return False
        finally:
            if not silent:
                self._loud_in_flight -= 1
                if self._alive:
                    self._state.loading = self._loud_in_flight > 0

        self._applied_epoch = epoch
        now = self._clock()
        self._state.weather = result
        self._state.water_level = water_level
        self._state.zone_risks = zone_risks
        self._state.last_updated = now
        self._state.error = None
        if self._state.offline:
            self._state_before_offline = SchedulerState.LIVE
        else:
            self._state.state = SchedulerState.LIVE

        await self._persist(now)
        if self._alive:
            self._notify_update()
        return True

    async def refresh_warnings(self) -> bool:
        """Warnings-only refresh; re-scores weather risk and zone risks."""
        if not self._alive or self._state.weather is None:
            return False

        applied_before = self._applied_epoch
        previous = self._state.weather
        try:
            updated = await self.aggregator.refresh_warnings(previous)
            if not self._alive or updated is previous:
                return False
            if self._applied_epoch != applied_before or self._state.weather is not previous:
                return False
            zone_risks = self.aggregator.calculate_zone_risks(updated)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Warnings refresh failed for %s: %s", self.zone_id, e,
                extra={"zone_id": self.zone_id},
            )
            return False

        now = self._clock()
        self._state.weather = updated
        self._state.zone_risks = zone_risks
        self._state.last_updated = now

        await self._persist(now)
        if self._alive:
            self._notify_update()
        return True

    async def _persist(self, now: datetime) -> None:
        if self._state.weather is None or self._state.water_level is None:
            return
        entry = CacheEntry(
            zone_id=self.zone_id,
            weather=self._state.weather,
            water_level=self._state.water_level,
            zone_risks=list(self._state.zone_risks),
            captured_at=now,
        )
        if not await self.cache_store.set(self.zone_id, entry.to_dict()):
            logger.warning("Cache write failed for %s", self.zone_id, extra={"zone_id": self.zone_id})

    def _fail(self, error: Exception) -> None:
        logger.error(
            "Refresh failed for %s: %s", self.zone_id, error,
            extra={"zone_id": self.zone_id},
        )
        self._state.error = str(error) or type(error).__name__
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            logger.warning("on_error callback raised: %s", e, extra={"zone_id": self.zone_id})

    def _notify_update(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.snapshot)
        except Exception as e:
            logger.warning("on_update callback raised: %s", e, extra={"zone_id": self.zone_id})

    # ── Timers ──

    async def _initial_refresh(self) -> None:
        await asyncio.sleep(self.settings.STARTUP_DELAY_S)
        if self._alive and not self._state.offline:
            await self.refresh(silent=False)

    async def _poll_full(self) -> bool:
        return await self.refresh(silent=True)

    async def _poll(self, interval_s: float, action: Callable[[], Any]) -> None:
        while self._alive:
            await asyncio.sleep(interval_s)
            if not self._alive:
                return
            if self._state.offline:
                logger.debug("Offline, skipping %s poll", action.__name__, extra={"zone_id": self.zone_id})
                continue
            await action()

    # ── Connectivity ──

    async def _consume_events(self) -> None:
        while self._alive and self._queue is not None:
            event = await self._queue.get()
            if not self._alive:
                return
            if event == ConnectivityEvent.OFFLINE:
                self._go_offline()
            elif event == ConnectivityEvent.ONLINE:
                self._go_online()

    def _go_offline(self) -> None:
        if self._state.offline:
            return
        self._state_before_offline = self._state.state
        self._state.offline = True
        self._state.state = SchedulerState.STALE_OFFLINE
        logger.info("%s went offline", self.zone_id, extra={"zone_id": self.zone_id, "state": "stale_offline"})
        self._notify_update()

    def _go_online(self) -> None:
        if not self._state.offline:
            return
        self._state.offline = False
        self._state.state = self._state_before_offline
        logger.info(
            "%s back online, refreshing", self.zone_id,
            extra={"zone_id": self.zone_id, "state": self.state.value},
        )
        self._notify_update()
        self._spawn(self.refresh(silent=True))
