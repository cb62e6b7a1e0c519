"""Unit tests for SessionRegistry: create, get, idle eviction, teardown."""
import asyncio
import itertools
import threading

import pytest

from mapplanner.core.sessions.errors import ResourceExhausted, SessionNotFound
from mapplanner.core.sessions.registry import SessionRegistry


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_and_get():
    registry = SessionRegistry()
    session = registry.create("m1")
    assert session.map_id == "m1"
    assert len(session.features) == 0
    assert session.peers == set()
    assert registry.get(session.id) is session
    assert session.id in registry
    assert len(registry) == 1


def test_get_unknown_raises():
    registry = SessionRegistry()
    with pytest.raises(SessionNotFound):
        registry.get("nope")


def test_created_at_is_fixed():
    registry = SessionRegistry()
    session = registry.create("m1")
    created = session.created_at
    assert session.to_dict()["createdAt"] == created.isoformat()


def test_id_collisions_retry_then_exhaust():
    ids = itertools.chain(["s1", "s1", "s2"], itertools.repeat("s2"))
    registry = SessionRegistry(id_factory=lambda: next(ids))
    assert registry.create("m").id == "s1"
    assert registry.create("m").id == "s2"
    with pytest.raises(ResourceExhausted):
        registry.create("m")


def test_evicted_ids_are_not_reissued():
    clock = FakeClock()
    ids = iter(["s1", "s1", "s2"])
    registry = SessionRegistry(id_factory=lambda: next(ids), clock=clock)
    registry.create("m")
    clock.now += 10
    assert registry.evict_idle(clock.now, 5) == ["s1"]
    assert registry.create("m").id == "s2"


def test_max_sessions():
    registry = SessionRegistry(max_sessions=2)
    registry.create("a")
    registry.create("b")
    with pytest.raises(ResourceExhausted, match="limit"):
        registry.create("c")


def test_evict_idle_respects_grace_and_peers():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    idle = registry.create("m1")
    busy = registry.create("m2")
    busy.add_peer("conn-1")

    clock.now += 59
    assert registry.evict_idle(clock.now, 60) == []

    clock.now += 1
    assert registry.evict_idle(clock.now, 60) == [idle.id]
    assert idle.evicted is True
    with pytest.raises(SessionNotFound):
        registry.get(idle.id)

    # A session with a peer is never evicted however old it is
    clock.now += 10_000
    assert registry.evict_idle(clock.now, 60) == []
    assert registry.get(busy.id) is busy


def test_grace_restarts_when_last_peer_leaves():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    session = registry.create("m1")
    session.add_peer("c1")
    clock.now += 500
    session.discard_peer("c1", clock.now)
    clock.now += 30
    assert registry.evict_idle(clock.now, 60) == []
    clock.now += 30
    assert registry.evict_idle(clock.now, 60) == [session.id]


def test_close_drops_everything():
    registry = SessionRegistry()
    s = registry.create("m1")
    registry.close()
    assert len(registry) == 0
    assert s.evicted is True
    with pytest.raises(ResourceExhausted):
        registry.create("m2")


def test_concurrent_creates_get_unique_ids():
    registry = SessionRegistry()
    created = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            s = registry.create("m")
            with lock:
                created.append(s.id)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(created) == 400
    assert len(set(created)) == 400
    assert len(registry) == 400


def test_session_created_off_loop_is_usable_on_loop():
    registry = SessionRegistry()
    created = []
    t = threading.Thread(target=lambda: created.append(registry.create("m")))
    t.start()
    t.join()

    async def main():
        async with created[0].lock:
            return created[0].id

    assert asyncio.run(main()) == created[0].id


def test_list_sessions_and_idle_for():
    clock = FakeClock()
    registry = SessionRegistry(clock=clock)
    a = registry.create("m1")
    b = registry.create("m2")
    assert {s.id for s in registry.list_sessions()} == {a.id, b.id}

    b.add_peer("c1")
    clock.now += 42
    assert a.idle_for(clock.now) == 42
    assert b.idle_for(clock.now) == 0.0
