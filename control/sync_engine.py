"""
Synchronization Engine

Periodic reconciliation of server nodes, run as one pure tick:
1. Daily settlement gate (at most one day deducted per tick)
2. Usage accrual for every non-offline server (pluggable strategy)
3. Stamp last_sync_time

Metering (which may hit the network) is split out into measure() so callers
can run it before taking the state lock and pass the result to run_tick().

Automatic transitions only ever degrade a server:
- active -> offline      (days_remaining reached 0)
- active -> maintenance  (usage hit total capacity)
Promotion back to active is an admin action (lifecycle.upsert_server).
"""

import logging
import random
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

from control.models import AppState, ServerNode, ServerStatus, utcnow

logger = logging.getLogger(__name__)

SETTLEMENT_PERIOD = timedelta(days=1)
BYTES_PER_GB = 1024 ** 3


# ============================================================================
# USAGE ACCRUAL STRATEGIES
# ============================================================================

class UsageAccrual:
    """Strategy returning how many GB a server consumed since the last tick"""

    def increment_gb(self, server: ServerNode) -> float:
        raise NotImplementedError


class RandomUsageAccrual(UsageAccrual):
    """
    Simulated metering: uniform increment in [0, max_increment_gb).
    Not security relevant, so the stdlib PRNG is fine here.
    """

    def __init__(self, max_increment_gb: float = 0.5, rng: Optional[random.Random] = None):
        self.max_increment_gb = max_increment_gb
        self.rng = rng or random.Random()

    def increment_gb(self, server: ServerNode) -> float:
        return self.rng.random() * self.max_increment_gb


class FixedUsageAccrual(UsageAccrual):
    """Constant increment per tick (replays and tests)"""

    def __init__(self, increment: float):
        self.increment = increment

    def increment_gb(self, server: ServerNode) -> float:
        return self.increment


def parse_subscription_userinfo(header: str) -> Dict[str, int]:
    """
    Parse a `subscription-userinfo` header:
        upload=123; download=456; total=1073741824; expire=1700000000
    """
    values = {}
    for key, raw in re.findall(r"(\w+)\s*=\s*(\d+)", header or ""):
        values[key.lower()] = int(raw)
    return values


class UpstreamUsageAccrual(UsageAccrual):
    """
    Real metering: query the server's sync_url and read the
    subscription-userinfo header it returns. The increment is the reported
    usage minus what is already recorded; failures count as zero.
    """

    def __init__(self, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session or requests.Session()

    def increment_gb(self, server: ServerNode) -> float:
        parsed = urlparse(server.sync_url or "")
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            return 0.0

        try:
            response = self._session.get(server.sync_url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Upstream query failed for server {server.id}: {e}")
            return 0.0

        if response.status_code != 200:
            logger.warning(f"Upstream query for server {server.id} returned status={response.status_code}")
            return 0.0

        info = parse_subscription_userinfo(response.headers.get("subscription-userinfo", ""))
        if "upload" not in info and "download" not in info:
            logger.debug(f"No subscription-userinfo for server {server.id}")
            return 0.0

        reported_gb = (info.get("upload", 0) + info.get("download", 0)) / BYTES_PER_GB
        return max(0.0, reported_gb - server.used_capacity_gb)

    def close(self):
        self._session.close()


# ============================================================================
# ENGINE
# ============================================================================

class SyncEngine:
    """
    Applies one reconciliation tick to a snapshot.
    Holds no state besides its accrual strategy.
    """

    def __init__(self, accrual: Optional[UsageAccrual] = None):
        self.accrual = accrual or RandomUsageAccrual()

    def measure(self, state: AppState) -> Dict[str, float]:
        """Per-server usage increments (GB) for every non-offline server"""
        increments = {}
        for server in state.servers:
            if server.status == ServerStatus.OFFLINE:
                continue
            increments[server.id] = max(0.0, float(self.accrual.increment_gb(server)))
        return increments

    def run_tick(
        self,
        state: AppState,
        now: Optional[datetime] = None,
        increments: Optional[Dict[str, float]] = None,
    ) -> AppState:
        """
        Pure tick. `increments` comes from measure(); when omitted it is
        measured here, which is only appropriate for non-blocking strategies.
        Servers missing from `increments` accrue nothing.
        """
        now = now or utcnow()
        if increments is None:
            increments = self.measure(state)

        servers = state.servers
        last_settlement = state.last_day_settlement
        if now - state.last_day_settlement > SETTLEMENT_PERIOD:
            servers = tuple(self._settle(s) for s in servers)
            last_settlement = now
            logger.info(f"Daily settlement applied to {len(servers)} servers")

        servers = tuple(self._accrue(s, increments.get(s.id, 0.0)) for s in servers)

        return replace(
            state,
            servers=servers,
            last_day_settlement=last_settlement,
            last_sync_time=now,
        )

    def _settle(self, server: ServerNode) -> ServerNode:
        days = max(0, server.days_remaining - 1)
        status = server.status
        if days == 0 and status != ServerStatus.OFFLINE:
            status = ServerStatus.OFFLINE
            logger.warning(f"Server {server.id} ({server.name}) expired -> offline")
        return replace(server, days_remaining=days, status=status)

    def _accrue(self, server: ServerNode, increment: float) -> ServerNode:
        if server.status == ServerStatus.OFFLINE:
            return server

        increment = max(0.0, float(increment))
        used = max(server.used_capacity_gb, round(server.used_capacity_gb + increment, 2))

        if used >= server.total_capacity_gb:
            if server.status == ServerStatus.ACTIVE:
                logger.warning(f"Server {server.id} ({server.name}) capacity exhausted -> maintenance")
            return replace(server, used_capacity_gb=server.total_capacity_gb, status=ServerStatus.MAINTENANCE)

        return replace(server, used_capacity_gb=used)
