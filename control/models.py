"""
Control Plane Domain Model

Immutable snapshot entities. Every operation takes an AppState and returns a
new AppState; entities are frozen and collections are tuples so a snapshot
can never be mutated in place.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Tuple

# ============================================================================
# ENUM DEFINITIONS
# ============================================================================

class ServerStatus(str, enum.Enum):
    """Server node operational state"""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class UserStatus(str, enum.Enum):
    """Subscriber account state"""
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_PAYMENT = "pending_payment"
    BANNED = "banned"


class Party(str, enum.Enum):
    """Message author / reader"""
    USER = "user"
    ADMIN = "admin"

    @property
    def other(self) -> "Party":
        return Party.ADMIN if self is Party.USER else Party.USER


class RequestStatus(str, enum.Enum):
    """Join request lifecycle"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_SERVER_CAPACITY_GB = 1000.0
DEFAULT_SERVER_DAYS = 30

DEFAULT_PLAN_DAYS = 30
DEFAULT_PLAN_DATA_GB = 100.0


def utcnow() -> datetime:
    """Current UTC time at the millisecond precision the state document keeps"""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def clamp(value, low, high):
    return max(low, min(high, value))


# ============================================================================
# CORE MODEL DEFINITIONS
# ============================================================================

@dataclass(frozen=True)
class ServerNode:
    """A provisioned network endpoint with shared capacity and expiry"""
    id: str
    name: str
    config_link: str  # connection descriptor, handed to clients verbatim
    sync_url: str = ""  # upstream metering reference, never dereferenced by the core
    message: str = ""
    total_capacity_gb: float = DEFAULT_SERVER_CAPACITY_GB
    used_capacity_gb: float = 0.0
    total_days: int = DEFAULT_SERVER_DAYS
    days_remaining: int = DEFAULT_SERVER_DAYS
    status: ServerStatus = ServerStatus.ACTIVE

    def clamped(self) -> "ServerNode":
        """Return a copy with usage and remaining days forced into range"""
        used = clamp(self.used_capacity_gb, 0.0, self.total_capacity_gb)
        days = clamp(self.days_remaining, 0, self.total_days)
        if used == self.used_capacity_gb and days == self.days_remaining:
            return self
        return replace(self, used_capacity_gb=used, days_remaining=days)

    @property
    def is_exhausted(self) -> bool:
        return self.used_capacity_gb >= self.total_capacity_gb


@dataclass(frozen=True)
class PlanUsage:
    """Legacy per-user plan, used only for accounts not bound to a node"""
    total_days: int = DEFAULT_PLAN_DAYS
    days_remaining: int = DEFAULT_PLAN_DAYS
    total_data_gb: float = DEFAULT_PLAN_DATA_GB
    data_used_gb: float = 0.0

    def clamped(self) -> "PlanUsage":
        return replace(
            self,
            total_days=max(0, self.total_days),
            days_remaining=clamp(self.days_remaining, 0, max(0, self.total_days)),
            total_data_gb=max(0.0, self.total_data_gb),
            data_used_gb=clamp(self.data_used_gb, 0.0, max(0.0, self.total_data_gb)),
        )


@dataclass(frozen=True)
class Message:
    """One entry of a per-user support log"""
    id: str
    sender: Party
    text: str
    timestamp: datetime
    read: bool = False


@dataclass(frozen=True)
class UserData:
    """Subscriber account, bound to zero or one server node"""
    id: str
    username: str
    access_code: str
    status: UserStatus = UserStatus.ACTIVE
    server_id: Optional[str] = None
    external_id: Optional[str] = None
    plan: PlanUsage = field(default_factory=PlanUsage)
    messages: Tuple[Message, ...] = ()
    joined_at: datetime = field(default_factory=utcnow)

    def unread_from(self, sender: Party) -> int:
        return sum(1 for m in self.messages if m.sender == sender and not m.read)


@dataclass(frozen=True)
class JoinRequest:
    """Self-service sign-up awaiting admin approval"""
    id: str
    username: str
    timestamp: datetime
    status: RequestStatus = RequestStatus.PENDING


@dataclass(frozen=True)
class AppState:
    """Root aggregate; replaced wholesale on every mutation"""
    admin_password_hash: str
    last_sync_time: datetime
    last_day_settlement: datetime
    users: Tuple[UserData, ...] = ()
    servers: Tuple[ServerNode, ...] = ()
    requests: Tuple[JoinRequest, ...] = ()

    def get_user(self, user_id: str) -> Optional[UserData]:
        return next((u for u in self.users if u.id == user_id), None)

    def get_server(self, server_id: Optional[str]) -> Optional[ServerNode]:
        if server_id is None:
            return None
        return next((s for s in self.servers if s.id == server_id), None)

    def get_request(self, request_id: str) -> Optional[JoinRequest]:
        return next((r for r in self.requests if r.id == request_id), None)

    def access_codes(self) -> set:
        return {u.access_code for u in self.users}
