"""Eviction service: tick evicts only sessions idle past the grace period; loop start/stop."""
import asyncio

from mapplanner.core.services.eviction_service import EvictionService
from mapplanner.core.sessions.registry import SessionRegistry


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_run_tick_evicts_idle_sessions_only():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    idle = registry.create("m1")
    joined = registry.create("m2")
    joined.add_peer("c1")
    svc = EvictionService(registry, interval=1, grace=60, clock=clock)

    clock.now = 30
    assert svc.run_tick() == []
    clock.now = 61
    assert svc.run_tick() == [idle.id]
    assert idle.id not in registry
    assert joined.id in registry


def test_loop_runs_and_stops():
    async def main():
        clock = FakeClock()
        registry = SessionRegistry(clock=clock)
        registry.create("m1")
        svc = EvictionService(registry, interval=0.01, grace=5, clock=clock)
        await svc.start()
        assert svc.running
        clock.now = 10
        for _ in range(100):
            if len(registry) == 0:
                break
            await asyncio.sleep(0.01)
        await svc.stop()
        assert not svc.running
        assert len(registry) == 0
    asyncio.run(main())
