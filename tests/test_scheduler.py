"""
Tests for the per-zone refresh scheduler and the connectivity channel.

Covers:
    • cold → live and cached → live transitions
    • Undecodable cache entries
    • Failed refresh keeps the published value
    • Epoch ordering of overlapping refreshes
    • No mutation after stop()
    • Offline / online events and poller gating
    • Warnings-only refresh
    • Presentation helpers and guarded callbacks
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from floodwatch.ingestion.models import WeatherSnapshot
from floodwatch.risk.aggregator import UnifiedAggregator
from floodwatch.risk.models import CacheEntry, RiskTier, UnifiedWeatherResult
from floodwatch.scheduler.events import ConnectivityEvent, ConnectivityMonitor
from floodwatch.scheduler.refresh_scheduler import RefreshScheduler, SchedulerState

from conftest import NOW, MemoryCacheStore, healthy_routes, make_aggregator


class ScriptedAggregator(UnifiedAggregator):
    """aggregate() plays back (delay, outcome) steps; default is a fallback result."""

    script: List[Tuple[float, Any]]
    calls: int

    async def aggregate(self, zone_id: str) -> UnifiedWeatherResult:
        self.calls += 1
        delay, outcome = self.script.pop(0) if self.script else (0.0, None)
        await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or self.fallback_result(zone_id)


def scripted(*steps: Tuple[float, Any], **overrides: Any) -> ScriptedAggregator:
    overrides.setdefault("STARTUP_DELAY_S", 60.0)
    agg = make_aggregator({}, aggregator_cls=ScriptedAggregator, **overrides)
    agg.script = list(steps)
    agg.calls = 0
    return agg


def result_with(rain: float, source: str = "test") -> UnifiedWeatherResult:
    return UnifiedWeatherResult(
        current=WeatherSnapshot(rain_intensity=rain, source=source, timestamp=NOW),
        forecast=[],
        warnings=[],
        zone_id="jalukbari",
        risk_level=RiskTier.LOW,
        updated_at=NOW,
    )


def cached_entry(aggregator: UnifiedAggregator) -> dict:
    weather = result_with(1.0, source="cache")
    return CacheEntry(
        zone_id="jalukbari",
        weather=weather,
        water_level=aggregator.water_level_for("jalukbari", weather),
        zone_risks=aggregator.calculate_zone_risks(weather),
        captured_at=NOW - timedelta(hours=1),
    ).to_dict()


def make_scheduler(
    aggregator: UnifiedAggregator,
    store: Optional[MemoryCacheStore] = None,
    monitor: Optional[ConnectivityMonitor] = None,
    **callbacks: Any,
) -> RefreshScheduler:
    return RefreshScheduler(
        "jalukbari",
        aggregator,
        store if store is not None else MemoryCacheStore(),
        monitor or ConnectivityMonitor(),
        aggregator.settings,
        clock=lambda: NOW,
        **callbacks,
    )


async def until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ═══════════════════════════════════════════════════════════════════════════
# Connectivity channel
# ═══════════════════════════════════════════════════════════════════════════

class TestConnectivityMonitor:
    def test_fan_out(self):
        async def run():
            monitor = ConnectivityMonitor()
            a, b = monitor.subscribe(), monitor.subscribe()
            reached = monitor.publish(ConnectivityEvent.OFFLINE)
            return reached, await a.get(), await b.get(), monitor.online

        reached, first, second, online = asyncio.run(run())
        assert reached == 2
        assert first == second == ConnectivityEvent.OFFLINE
        assert online is False

    def test_unsubscribe(self):
        async def run():
            monitor = ConnectivityMonitor()
            queue = monitor.subscribe()
            monitor.unsubscribe(queue)
            monitor.unsubscribe(queue)
            return monitor.publish("online"), queue.qsize()

        assert asyncio.run(run()) == (0, 0)


# ═══════════════════════════════════════════════════════════════════════════
# Start / restore
# ═══════════════════════════════════════════════════════════════════════════

class TestStart:
    def test_cold_start_then_live(self):
        async def run():
            agg = make_aggregator(healthy_routes(), STARTUP_DELAY_S=0.0)
            store = MemoryCacheStore()
            updates = []
            scheduler = make_scheduler(agg, store, on_update=updates.append)
            await scheduler.start()
            cold = scheduler.snapshot
            await until(lambda: scheduler.state == SchedulerState.LIVE)
            live = scheduler.snapshot
            await scheduler.stop()
            await agg.close()
            return cold, live, store, updates

        cold, live, store, updates = asyncio.run(run())
        assert cold.state == SchedulerState.COLD
        assert cold.weather.is_fallback is True
        assert len(cold.zone_risks) == 6
        assert cold.last_updated is None

        assert live.state == SchedulerState.LIVE
        assert live.weather.current.source == "open-meteo"
        assert live.loading is False
        assert live.error is None
        assert live.last_updated == NOW
        assert set(store.data["jalukbari"]) == {"zoneId", "weather", "waterLevel", "risks", "timestamp"}
        assert updates and updates[-1].state == SchedulerState.LIVE

    def test_restores_cache(self):
        async def run():
            agg = scripted()
            entry = cached_entry(agg)
            scheduler = make_scheduler(agg, MemoryCacheStore({"jalukbari": entry}))
            await scheduler.start()
            snap = scheduler.snapshot
            await scheduler.stop()
            return entry, snap, agg.calls

        entry, snap, calls = asyncio.run(run())
        assert snap.state == SchedulerState.CACHED
        assert snap.weather.to_dict() == entry["weather"]
        assert [r.to_dict() for r in snap.zone_risks] == entry["risks"]
        assert snap.last_updated == NOW - timedelta(hours=1)
        assert calls == 0

    def test_undecodable_cache_starts_cold(self):
        async def run():
            agg = scripted()
            scheduler = make_scheduler(agg, MemoryCacheStore({"jalukbari": {"zoneId": "jalukbari"}}))
            await scheduler.start()
            state = scheduler.state
            await scheduler.stop()
            return state

        assert asyncio.run(run()) == SchedulerState.COLD

    def test_start_while_offline(self):
        async def run():
            agg = scripted(STARTUP_DELAY_S=0.0)
            scheduler = make_scheduler(agg, monitor=ConnectivityMonitor(online=False))
            await scheduler.start()
            await asyncio.sleep(0.05)
            snap = scheduler.snapshot
            await scheduler.stop()
            return snap, agg.calls

        snap, calls = asyncio.run(run())
        assert snap.state == SchedulerState.STALE_OFFLINE
        assert snap.offline is True
        assert calls == 0

    def test_stop_unsubscribes(self):
        async def run():
            monitor = ConnectivityMonitor()
            scheduler = make_scheduler(scripted(), monitor=monitor)
            await scheduler.start()
            during = monitor.subscriber_count
            await scheduler.stop()
            return during, monitor.subscriber_count, scheduler.is_running

        assert asyncio.run(run()) == (1, 0, False)


# ═══════════════════════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:
    def test_failure_keeps_published_value(self):
        errors = []

        async def run():
            agg = scripted((0.0, RuntimeError("provider exploded")))
            entry = cached_entry(agg)
            scheduler = make_scheduler(agg, MemoryCacheStore({"jalukbari": entry}), on_error=errors.append)
            await scheduler.start()
            applied = await scheduler.refresh()
            snap = scheduler.snapshot
            await scheduler.stop()
            return entry, applied, snap

        entry, applied, snap = asyncio.run(run())
        assert applied is False
        assert snap.error == "provider exploded"
        assert snap.state == SchedulerState.CACHED
        assert snap.weather.to_dict() == entry["weather"]
        assert snap.loading is False
        assert len(errors) == 1

    def test_success_clears_error(self):
        async def run():
            agg = scripted((0.0, RuntimeError("boom")), (0.0, result_with(3.0)))
            scheduler = make_scheduler(agg)
            await scheduler.start()
            await scheduler.refresh()
            await scheduler.refresh()
            snap = scheduler.snapshot
            await scheduler.stop()
            return snap

        snap = asyncio.run(run())
        assert snap.error is None
        assert snap.state == SchedulerState.LIVE
        assert snap.weather.current.rain_intensity == 3.0

    def test_newer_refresh_wins(self):
        async def run():
            agg = scripted((0.2, result_with(1.0, "slow")), (0.0, result_with(9.0, "fast")))
            scheduler = make_scheduler(agg)
            await scheduler.start()
            slow = asyncio.ensure_future(scheduler.refresh(silent=True))
            await asyncio.sleep(0.01)
            fast = await scheduler.refresh(silent=True)
            slow_applied = await slow
            snap = scheduler.snapshot
            await scheduler.stop()
            return fast, slow_applied, snap

        fast, slow_applied, snap = asyncio.run(run())
        assert fast is True
        assert slow_applied is False
        assert snap.weather.current.source == "fast"

    def test_no_mutation_after_stop(self):
        updates = []

        async def run():
            agg = scripted((0.2, result_with(7.0, "late")))
            store = MemoryCacheStore()
            scheduler = make_scheduler(agg, store, on_update=updates.append)
            await scheduler.start()
            pending = asyncio.ensure_future(scheduler.refresh())
            await asyncio.sleep(0.01)
            await scheduler.stop()
            applied = await pending
            return applied, scheduler.snapshot, store.writes

        applied, snap, writes = asyncio.run(run())
        assert applied is False
        assert snap.weather.current.source == "fallback"
        assert writes == 0
        assert updates == []

    def test_refresh_before_start_is_ignored(self):
        agg = scripted()
        scheduler = make_scheduler(agg)
        assert asyncio.run(scheduler.refresh()) is False
        assert agg.calls == 0

    def test_loading_only_for_loud_refresh(self):
        async def run():
            agg = scripted((0.1, None), (0.1, None))
            scheduler = make_scheduler(agg)
            await scheduler.start()

            loud = asyncio.ensure_future(scheduler.refresh())
            await asyncio.sleep(0.01)
            during_loud = scheduler.snapshot.loading
            await loud

            quiet = asyncio.ensure_future(scheduler.refresh(silent=True))
            await asyncio.sleep(0.01)
            during_quiet = scheduler.snapshot.loading
            await quiet

            after = scheduler.snapshot.loading
            await scheduler.stop()
            return during_loud, during_quiet, after

        assert asyncio.run(run()) == (True, False, False)

    def test_callback_errors_are_contained(self):
        def explode(_):
            raise ValueError("listener bug")

        async def run():
            agg = scripted()
            scheduler = make_scheduler(agg, on_update=explode)
            await scheduler.start()
            applied = await scheduler.refresh()
            state = scheduler.state
            await scheduler.stop()
            return applied, state

        assert asyncio.run(run()) == (True, SchedulerState.LIVE)


# ═══════════════════════════════════════════════════════════════════════════
# Connectivity
# ═══════════════════════════════════════════════════════════════════════════

class TestConnectivity:
    def test_offline_then_online(self):
        async def run():
            agg = scripted()
            monitor = ConnectivityMonitor()
            scheduler = make_scheduler(agg, MemoryCacheStore({"jalukbari": cached_entry(agg)}), monitor)
            await scheduler.start()

            monitor.publish(ConnectivityEvent.OFFLINE)
            await until(lambda: scheduler.state == SchedulerState.STALE_OFFLINE)
            offline = scheduler.snapshot

            monitor.publish(ConnectivityEvent.ONLINE)
            await until(lambda: scheduler.state == SchedulerState.LIVE)
            online = scheduler.snapshot

            await scheduler.stop()
            return offline, online, agg.calls

        offline, online, calls = asyncio.run(run())
        assert offline.offline is True
        assert offline.weather.current.source == "cache"
        assert online.offline is False
        assert calls == 1

    def test_pollers_skip_while_offline(self):
        async def run():
            agg = scripted(FULL_REFRESH_INTERVAL_S=0.02)
            monitor = ConnectivityMonitor()
            scheduler = make_scheduler(agg, monitor=monitor)
            await scheduler.start()
            await until(lambda: agg.calls >= 1)

            monitor.publish(ConnectivityEvent.OFFLINE)
            await until(lambda: scheduler.snapshot.offline)
            await asyncio.sleep(0.03)
            before = agg.calls
            await asyncio.sleep(0.1)
            during_offline = agg.calls - before

            monitor.publish(ConnectivityEvent.ONLINE)
            await until(lambda: agg.calls > before + 1)
            await scheduler.stop()
            return during_offline

        assert asyncio.run(run()) == 0

    def test_manual_refresh_while_offline(self):
        async def run():
            agg = scripted()
            monitor = ConnectivityMonitor(online=False)
            scheduler = make_scheduler(agg, monitor=monitor)
            await scheduler.start()
            applied = await scheduler.refresh()
            offline_state = scheduler.state

            monitor.publish(ConnectivityEvent.ONLINE)
            await until(lambda: not scheduler.snapshot.offline)
            restored = scheduler.state
            await scheduler.stop()
            return applied, offline_state, restored

        applied, offline_state, restored = asyncio.run(run())
        assert applied is True
        assert offline_state == SchedulerState.STALE_OFFLINE
        assert restored == SchedulerState.LIVE


# ═══════════════════════════════════════════════════════════════════════════
# Warnings & presentation helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestWarningsRefresh:
    def test_updates_warnings_and_risks(self):
        async def run():
            agg = make_aggregator(healthy_routes(), STARTUP_DELAY_S=60.0)
            store = MemoryCacheStore()
            scheduler = make_scheduler(agg, store)
            await scheduler.start()
            icon = scheduler.current_icon()
            applied = await scheduler.refresh_warnings()
            snap = scheduler.snapshot
            active_now = scheduler.active_warnings(NOW)
            active_later = scheduler.active_warnings(NOW + timedelta(hours=5))
            await scheduler.stop()
            await agg.close()
            return icon, applied, snap, active_now, active_later, store.writes

        icon, applied, snap, active_now, active_later, writes = asyncio.run(run())
        assert icon == "cloud"
        assert applied is True
        assert len(snap.weather.warnings) == 2
        # fallback rain 2.5 → +1, high → +3, medium → +1
        assert snap.weather.risk_level == RiskTier.MEDIUM
        assert all(r.weather_risk == RiskTier.MEDIUM for r in snap.zone_risks)
        assert len(active_now) == 2
        assert active_later == []
        assert writes == 1

    def test_icon_follows_live_conditions(self):
        async def run():
            agg = make_aggregator(healthy_routes(), STARTUP_DELAY_S=60.0)
            scheduler = make_scheduler(agg)
            await scheduler.start()
            await scheduler.refresh()
            icon = scheduler.current_icon()
            await scheduler.stop()
            await agg.close()
            return icon

        assert asyncio.run(run()) == "cloud-rain"

    def test_published_state_serialises(self):
        async def run():
            scheduler = make_scheduler(scripted())
            await scheduler.start()
            d = scheduler.snapshot.to_dict()
            await scheduler.stop()
            return d

        d = asyncio.run(run())
        assert d["state"] == "cold"
        assert d["isOffline"] is False
        assert len(d["zoneRisks"]) == 6
        assert d["weather"]["isFallback"] is True
