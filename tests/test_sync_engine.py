"""Tests for the synchronization engine and accrual strategies."""
import random
from dataclasses import replace
from datetime import timedelta
from unittest import mock

import pytest
import requests

from control import lifecycle
from control.errors import ValidationError
from control.models import ServerNode, ServerStatus
from control.sync_engine import (
    BYTES_PER_GB,
    FixedUsageAccrual,
    RandomUsageAccrual,
    SyncEngine,
    UpstreamUsageAccrual,
    parse_subscription_userinfo,
)

from conftest import T0


def _state_with(empty_state, *servers, settled=T0):
    return replace(empty_state, servers=tuple(servers), last_day_settlement=settled)


def _server(**overrides):
    fields = dict(
        id="srv-1",
        name="Node",
        config_link="vless://x",
        total_capacity_gb=10.0,
        used_capacity_gb=0.0,
        total_days=30,
        days_remaining=30,
        status=ServerStatus.ACTIVE,
    )
    fields.update(overrides)
    return ServerNode(**fields)


# ============================================================================
# TICK SEMANTICS
# ============================================================================

def test_capacity_exhaustion_clamps_and_enters_maintenance(empty_state) -> None:
    state = _state_with(empty_state, _server(used_capacity_gb=9.95))
    engine = SyncEngine(FixedUsageAccrual(0.1))

    result = engine.run_tick(state, now=T0 + timedelta(minutes=10))
    server = result.get_server("srv-1")

    assert server.used_capacity_gb == 10.0
    assert server.status == ServerStatus.MAINTENANCE


def test_expiry_takes_server_offline_and_stays_put(empty_state) -> None:
    state = _state_with(empty_state, _server(days_remaining=1), settled=T0 - timedelta(hours=25))
    engine = SyncEngine(FixedUsageAccrual(0.2))

    first = engine.run_tick(state, now=T0)
    server = first.get_server("srv-1")
    assert server.days_remaining == 0
    assert server.status == ServerStatus.OFFLINE
    assert first.last_day_settlement == T0

    second = engine.run_tick(first, now=T0 + timedelta(minutes=10))
    again = second.get_server("srv-1")
    assert again.days_remaining == 0
    assert again.used_capacity_gb == server.used_capacity_gb


def test_settlement_runs_at_most_once_per_day(empty_state) -> None:
    state = _state_with(empty_state, _server(total_capacity_gb=100.0), settled=T0 - timedelta(days=2))
    engine = SyncEngine(FixedUsageAccrual(1.0))

    state = engine.run_tick(state, now=T0)
    state = engine.run_tick(state, now=T0 + timedelta(hours=1))
    server = state.get_server("srv-1")

    # one day deducted, two accrual passes
    assert server.days_remaining == 29
    assert server.used_capacity_gb == 2.0
    assert state.last_day_settlement == T0
    assert state.last_sync_time == T0 + timedelta(hours=1)


def test_settlement_requires_strictly_more_than_a_day(empty_state) -> None:
    state = _state_with(empty_state, _server(), settled=T0 - timedelta(days=1))
    result = SyncEngine(FixedUsageAccrual(0.0)).run_tick(state, now=T0)

    assert result.get_server("srv-1").days_remaining == 30
    assert result.last_day_settlement == T0 - timedelta(days=1)


def test_offline_servers_are_not_metered(empty_state) -> None:
    state = _state_with(empty_state, _server(status=ServerStatus.OFFLINE, used_capacity_gb=3.0))
    result = SyncEngine(FixedUsageAccrual(1.0)).run_tick(state, now=T0)

    assert result.get_server("srv-1").used_capacity_gb == 3.0


def test_maintenance_servers_keep_accruing(empty_state) -> None:
    state = _state_with(empty_state, _server(status=ServerStatus.MAINTENANCE, used_capacity_gb=3.0))
    result = SyncEngine(FixedUsageAccrual(1.0)).run_tick(state, now=T0)
    server = result.get_server("srv-1")

    assert server.used_capacity_gb == 4.0
    assert server.status == ServerStatus.MAINTENANCE


def test_engine_never_promotes_servers(empty_state) -> None:
    servers = (
        _server(id="m", status=ServerStatus.MAINTENANCE, used_capacity_gb=1.0),
        _server(id="o", status=ServerStatus.OFFLINE, days_remaining=5),
    )
    state = _state_with(empty_state, *servers)
    engine = SyncEngine(FixedUsageAccrual(0.0))

    for i in range(5):
        state = engine.run_tick(state, now=T0 + timedelta(days=2 * (i + 1)))

    assert state.get_server("m").status == ServerStatus.MAINTENANCE
    assert state.get_server("o").status == ServerStatus.OFFLINE


def test_negative_increments_never_decrease_usage(empty_state) -> None:
    state = _state_with(empty_state, _server(used_capacity_gb=5.0))
    result = SyncEngine(FixedUsageAccrual(-3.0)).run_tick(state, now=T0)

    assert result.get_server("srv-1").used_capacity_gb == 5.0


def test_invariants_hold_over_many_random_ticks(empty_state) -> None:
    servers = tuple(
        _server(id=f"s{i}", total_capacity_gb=float(5 + i), days_remaining=3 + i, total_days=10)
        for i in range(4)
    )
    state = _state_with(empty_state, *servers, settled=T0 - timedelta(days=2))
    engine = SyncEngine(RandomUsageAccrual(max_increment_gb=0.7, rng=random.Random(42)))

    previous = {s.id: s for s in state.servers}
    now = T0
    for _ in range(300):
        now += timedelta(hours=6)
        state = engine.run_tick(state, now=now)
        for server in state.servers:
            old = previous[server.id]
            assert 0.0 <= server.used_capacity_gb <= server.total_capacity_gb
            assert 0 <= server.days_remaining <= server.total_days
            assert server.used_capacity_gb >= old.used_capacity_gb
            assert server.days_remaining <= old.days_remaining
            if old.status != ServerStatus.ACTIVE:
                assert server.status == old.status or server.status == ServerStatus.OFFLINE
            if server.days_remaining == 0:
                assert server.status == ServerStatus.OFFLINE
        previous = {s.id: s for s in state.servers}

    assert all(s.status == ServerStatus.OFFLINE for s in state.servers)


def test_tick_does_not_touch_users(populated_state) -> None:
    result = SyncEngine(FixedUsageAccrual(0.5)).run_tick(populated_state, now=T0 + timedelta(days=3))
    assert result.users == populated_state.users


# ============================================================================
# ACCRUAL STRATEGIES
# ============================================================================

def test_random_accrual_stays_in_range() -> None:
    accrual = RandomUsageAccrual(max_increment_gb=0.5, rng=random.Random(1))
    server = _server()
    values = [accrual.increment_gb(server) for _ in range(1000)]
    assert all(0.0 <= v < 0.5 for v in values)


def test_parse_subscription_userinfo() -> None:
    info = parse_subscription_userinfo("upload=1024; download=2048; total=1073741824; expire=1700000000")
    assert info == {"upload": 1024, "download": 2048, "total": 1073741824, "expire": 1700000000}
    assert parse_subscription_userinfo("") == {}
    assert parse_subscription_userinfo(None) == {}


def _fake_session(status=200, header=None, error=None):
    session = mock.Mock(spec=requests.Session)
    if error is not None:
        session.get.side_effect = error
    else:
        response = mock.Mock()
        response.status_code = status
        response.headers = {"subscription-userinfo": header} if header is not None else {}
        session.get.return_value = response
    return session


def test_upstream_accrual_reports_delta() -> None:
    header = f"upload={BYTES_PER_GB}; download={2 * BYTES_PER_GB}; total=0"
    session = _fake_session(header=header)
    accrual = UpstreamUsageAccrual(timeout=1, session=session)

    increment = accrual.increment_gb(_server(sync_url="https://sub.example.com/u/1", used_capacity_gb=1.0))

    assert increment == pytest.approx(2.0)
    session.get.assert_called_once_with("https://sub.example.com/u/1", timeout=1)


def test_upstream_accrual_never_negative() -> None:
    session = _fake_session(header=f"upload=0; download={BYTES_PER_GB}")
    accrual = UpstreamUsageAccrual(session=session)
    assert accrual.increment_gb(_server(sync_url="http://x.example", used_capacity_gb=5.0)) == 0.0


@pytest.mark.parametrize("url", ["", "ftp://example.com/sub", "vless://abc@host:443", "not a url"])
def test_upstream_accrual_ignores_non_http_urls(url) -> None:
    session = _fake_session(header="upload=1")
    accrual = UpstreamUsageAccrual(session=session)

    assert accrual.increment_gb(_server(sync_url=url)) == 0.0
    session.get.assert_not_called()


@pytest.mark.parametrize("session", [
    _fake_session(error=requests.exceptions.ConnectionError("refused")),
    _fake_session(status=500, header="upload=1"),
    _fake_session(header=None),
])
def test_upstream_failures_count_as_zero(session) -> None:
    accrual = UpstreamUsageAccrual(session=session)
    assert accrual.increment_gb(_server(sync_url="https://sub.example.com")) == 0.0


def test_capacity_clamp_holds_after_rejected_non_finite_edit(populated_state) -> None:
    with pytest.raises(ValidationError):
        lifecycle.upsert_server(populated_state, "srv-a", total_capacity_gb=float("nan"))

    state = lifecycle.upsert_server(populated_state, "srv-a", total_capacity_gb=12.0)
    engine = SyncEngine(FixedUsageAccrual(5.0))
    for i in range(3):
        state = engine.run_tick(state, now=T0 + timedelta(minutes=10 * (i + 1)))

    server = state.get_server("srv-a")
    assert server.used_capacity_gb == 12.0
    assert server.status == ServerStatus.MAINTENANCE


def test_measure_skips_offline_servers(empty_state) -> None:
    state = _state_with(
        empty_state,
        _server(id="on"),
        _server(id="off", status=ServerStatus.OFFLINE),
    )
    assert SyncEngine(FixedUsageAccrual(0.3)).measure(state) == {"on": 0.3}


def test_run_tick_uses_supplied_increments_without_metering(empty_state) -> None:
    accrual = mock.Mock()
    state = _state_with(empty_state, _server(id="a"), _server(id="b"))

    result = SyncEngine(accrual).run_tick(state, now=T0, increments={"a": 1.5})

    accrual.increment_gb.assert_not_called()
    assert result.get_server("a").used_capacity_gb == 1.5
    assert result.get_server("b").used_capacity_gb == 0.0
