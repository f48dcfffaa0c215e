"""Tests for the single-writer state manager and the sync scheduler."""
import threading
import time
from datetime import datetime, timezone
from unittest import mock

import pytest
import requests

from control import lifecycle
from control.errors import ValidationError
from control.sync_engine import FixedUsageAccrual, SyncEngine, UpstreamUsageAccrual
from control.sync_scheduler import SyncScheduler


def test_apply_persists_new_snapshot(manager, store) -> None:
    state = manager.apply(lifecycle.create_user, "alice")

    assert state.users[0].username == "alice"
    assert store.load_state() == state
    assert manager.current() == state


def test_apply_skips_save_for_noop(manager, store) -> None:
    manager.current()
    with mock.patch.object(store, "save_state", wraps=store.save_state) as save:
        manager.apply(lifecycle.delete_user, "nobody")
    save.assert_not_called()


def test_failed_operation_leaves_state_untouched(manager) -> None:
    before = manager.current()
    with pytest.raises(ValidationError):
        manager.apply(lifecycle.create_user, "")
    assert manager.current() == before


def test_apply_always_reads_latest_snapshot(manager) -> None:
    manager.apply(lifecycle.create_user, "alice")
    manager.apply(lifecycle.create_user, "bob")

    assert [u.username for u in manager.current().users] == ["alice", "bob"]


def test_concurrent_writers_do_not_lose_updates(manager) -> None:
    manager.current()

    def worker(prefix):
        for i in range(5):
            manager.apply(lifecycle.create_user, f"{prefix}-{i}")

    threads = [threading.Thread(target=worker, args=(p,)) for p in ("a", "b", "c")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(manager.current().users) == 15


def test_sync_tick_keeps_concurrent_admin_edit(manager) -> None:
    server_id = manager.current().servers[0].id
    engine = SyncEngine(FixedUsageAccrual(1.0))

    manager.apply(lifecycle.upsert_server, server_id, name="Renamed")
    state = manager.apply(engine.run_tick)

    server = state.get_server(server_id)
    assert server.name == "Renamed"
    assert server.used_capacity_gb == 125.5


# ============================================================================
# SCHEDULER
# ============================================================================

def test_scheduler_tick_updates_state(manager) -> None:
    scheduler = SyncScheduler(manager, SyncEngine(FixedUsageAccrual(0.5)), interval_seconds=60)
    before = manager.current()

    state = scheduler.tick()

    assert state.servers[0].used_capacity_gb == before.servers[0].used_capacity_gb + 0.5
    assert scheduler.last_tick_at == state.last_sync_time
    assert scheduler.last_error is None
    assert manager.current() == state


def test_scheduler_start_is_idempotent_and_stop_writes_nothing(manager, store) -> None:
    scheduler = SyncScheduler(manager, SyncEngine(FixedUsageAccrual(0.0)), interval_seconds=3600)
    manager.current()

    scheduler.start()
    first_thread = scheduler._thread
    scheduler.start()
    assert scheduler._thread is first_thread
    assert scheduler.running

    with mock.patch.object(store, "save_state", wraps=store.save_state) as save:
        scheduler.stop()
    save.assert_not_called()
    assert not scheduler.running

    # stopping twice is harmless
    scheduler.stop()


def test_scheduler_runs_ticks_in_background(manager) -> None:
    scheduler = SyncScheduler(manager, SyncEngine(FixedUsageAccrual(0.1)), interval_seconds=0.05)
    start_used = manager.current().servers[0].used_capacity_gb

    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while scheduler.last_tick_at is None and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        scheduler.stop()

    assert scheduler.last_tick_at is not None
    assert manager.current().servers[0].used_capacity_gb > start_used


def test_scheduler_survives_tick_errors(manager) -> None:
    engine = mock.Mock()
    engine.run_tick.side_effect = RuntimeError("boom")
    scheduler = SyncScheduler(manager, engine, interval_seconds=0.05)

    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while scheduler.last_error is None and time.monotonic() < deadline:
            time.sleep(0.02)
        assert scheduler.running
    finally:
        scheduler.stop()

    assert "boom" in scheduler.last_error


def test_restarted_scheduler_continues_from_persisted_state(manager, store) -> None:
    engine = SyncEngine(FixedUsageAccrual(1.0))
    SyncScheduler(manager, engine).tick()
    first = store.load_state()

    # a fresh scheduler (new process) picks up the same snapshot
    state = SyncScheduler(manager, engine).tick()
    assert state.servers[0].used_capacity_gb == first.servers[0].used_capacity_gb + 1.0
    assert state.last_day_settlement == first.last_day_settlement


def test_apply_returns_what_a_reload_yields(manager, store) -> None:
    fine = datetime(2026, 5, 6, 7, 8, 9, 995280, tzinfo=timezone.utc)

    state = manager.apply(lifecycle.create_user, "alice", now=fine)

    assert state.users[0].joined_at == fine.replace(microsecond=995000)
    assert store.load_state() == state


def test_slow_upstream_metering_does_not_block_writers(manager) -> None:
    manager.apply(lifecycle.upsert_server, "srv-default-1", sync_url="https://sub.example.com/u/1")

    metering_started = threading.Event()
    release_metering = threading.Event()

    def slow_get(url, timeout=None):
        metering_started.set()
        release_metering.wait(5)
        response = mock.Mock()
        response.status_code = 200
        response.headers = {"subscription-userinfo": "upload=0; download=0"}
        return response

    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = slow_get
    scheduler = SyncScheduler(manager, SyncEngine(UpstreamUsageAccrual(session=session)))

    ticker = threading.Thread(target=scheduler.tick)
    ticker.start()
    try:
        assert metering_started.wait(5)
        started = time.monotonic()
        manager.apply(lifecycle.create_user, "dave")
        waited = time.monotonic() - started
    finally:
        release_metering.set()
        ticker.join(5)

    assert waited < 1.0
    # the tick re-read the latest snapshot, so the concurrent write survived
    assert [u.username for u in manager.current().users] == ["dave"]
    assert scheduler.last_tick_at is not None


def test_stop_timeout_keeps_in_flight_thread_registered(manager) -> None:
    tick_started = threading.Event()
    release_tick = threading.Event()

    def blocking_measure(state):
        tick_started.set()
        release_tick.wait(5)
        return {}

    engine = mock.Mock()
    engine.measure.side_effect = blocking_measure
    engine.run_tick.side_effect = lambda state, **kwargs: state
    scheduler = SyncScheduler(manager, engine, interval_seconds=0.01)

    scheduler.start()
    try:
        assert tick_started.wait(5)
        in_flight = scheduler._thread

        scheduler.stop(timeout=0.05)
        assert scheduler.running
        assert scheduler._thread is in_flight

        # no second loop while the old tick is still running
        scheduler.start()
        assert scheduler._thread is in_flight
    finally:
        release_tick.set()

    in_flight.join(5)
    scheduler.stop()
    assert not scheduler.running
    assert scheduler._thread is None
