"""
State document codec.

Converts AppState snapshots to and from the persisted JSON document. The
document keeps the camelCase field names and epoch-millisecond timestamps
of the original browser-stored format so old documents stay readable.
"""
from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from control.models import (
    AppState,
    JoinRequest,
    Message,
    Party,
    PlanUsage,
    RequestStatus,
    ServerNode,
    ServerStatus,
    UserData,
    UserStatus,
)


def _finite(value: Any, field_name: str) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return number


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_millis(dt: datetime) -> int:
    return (dt - EPOCH) // timedelta(milliseconds=1)


def from_millis(value: Any, default: Optional[datetime] = None) -> datetime:
    if value is None:
        if default is None:
            raise ValueError("timestamp missing")
        return default
    return EPOCH + timedelta(milliseconds=int(value))


# ============================================================================
# ENCODE
# ============================================================================

def server_to_dict(s: ServerNode) -> Dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "subscriptionUrl": s.sync_url,
        "configLink": s.config_link,
        "message": s.message,
        "totalCapacityGB": s.total_capacity_gb,
        "usedCapacityGB": s.used_capacity_gb,
        "totalDays": s.total_days,
        "daysRemaining": s.days_remaining,
        "status": s.status.value,
    }


def message_to_dict(m: Message) -> Dict[str, Any]:
    return {
        "id": m.id,
        "sender": m.sender.value,
        "text": m.text,
        "timestamp": to_millis(m.timestamp),
        "read": m.read,
    }


def user_to_dict(u: UserData) -> Dict[str, Any]:
    return {
        "id": u.id,
        "externalId": u.external_id,
        "username": u.username,
        "accessCode": u.access_code,
        "status": u.status.value,
        "serverId": u.server_id,
        "plan": {
            "totalDays": u.plan.total_days,
            "daysRemaining": u.plan.days_remaining,
            "totalDataGB": u.plan.total_data_gb,
            "dataUsedGB": u.plan.data_used_gb,
        },
        "messages": [message_to_dict(m) for m in u.messages],
        "joinedAt": to_millis(u.joined_at),
    }


def request_to_dict(r: JoinRequest) -> Dict[str, Any]:
    return {
        "id": r.id,
        "username": r.username,
        "timestamp": to_millis(r.timestamp),
        "status": r.status.value,
    }


def state_to_dict(state: AppState) -> Dict[str, Any]:
    return {
        "users": [user_to_dict(u) for u in state.users],
        "servers": [server_to_dict(s) for s in state.servers],
        "requests": [request_to_dict(r) for r in state.requests],
        "adminPasswordHash": state.admin_password_hash,
        "lastSyncTime": to_millis(state.last_sync_time),
        "lastDaySettlement": to_millis(state.last_day_settlement),
    }


# ============================================================================
# DECODE
# ============================================================================

def server_from_dict(d: Dict[str, Any]) -> ServerNode:
    return ServerNode(
        id=str(d["id"]),
        name=str(d.get("name", "")),
        config_link=str(d.get("configLink", "")),
        sync_url=str(d.get("subscriptionUrl") or ""),
        message=str(d.get("message") or ""),
        total_capacity_gb=_finite(d.get("totalCapacityGB", 0.0), "totalCapacityGB"),
        used_capacity_gb=_finite(d.get("usedCapacityGB", 0.0), "usedCapacityGB"),
        total_days=int(d.get("totalDays", 0)),
        days_remaining=int(d.get("daysRemaining", 0)),
        status=ServerStatus(d.get("status", ServerStatus.ACTIVE.value)),
    ).clamped()


def message_from_dict(d: Dict[str, Any], now: datetime) -> Message:
    return Message(
        id=str(d["id"]),
        sender=Party(d["sender"]),
        text=str(d.get("text", "")),
        timestamp=from_millis(d.get("timestamp"), now),
        read=bool(d.get("read", False)),
    )


def user_from_dict(d: Dict[str, Any], now: datetime) -> UserData:
    plan = d.get("plan") or {}
    return UserData(
        id=str(d["id"]),
        username=str(d.get("username", "")),
        access_code=str(d["accessCode"]),
        status=UserStatus(d.get("status", UserStatus.ACTIVE.value)),
        server_id=d.get("serverId"),
        external_id=d.get("externalId"),
        plan=PlanUsage(
            total_days=int(plan.get("totalDays", 30)),
            days_remaining=int(plan.get("daysRemaining", 30)),
            total_data_gb=float(plan.get("totalDataGB", 100.0)),
            data_used_gb=float(plan.get("dataUsedGB", 0.0)),
        ).clamped(),
        messages=tuple(message_from_dict(m, now) for m in d.get("messages") or []),
        joined_at=from_millis(d.get("joinedAt"), now),
    )


def request_from_dict(d: Dict[str, Any], now: datetime) -> JoinRequest:
    return JoinRequest(
        id=str(d["id"]),
        username=str(d.get("username", "")),
        timestamp=from_millis(d.get("timestamp"), now),
        status=RequestStatus(d.get("status", RequestStatus.PENDING.value)),
    )


def state_from_dict(d: Dict[str, Any], now: datetime) -> AppState:
    """
    Decode a current-schema document.

    Dangling server references are dropped here so a hand-edited document
    cannot violate the binding invariant.
    """
    servers = tuple(server_from_dict(s) for s in d.get("servers") or [])
    server_ids = {s.id for s in servers}
    users = []
    for raw in d.get("users") or []:
        user = user_from_dict(raw, now)
        if user.server_id is not None and user.server_id not in server_ids:
            user = replace(user, server_id=None)
        users.append(user)

    return AppState(
        admin_password_hash=str(d["adminPasswordHash"]),
        last_sync_time=from_millis(d.get("lastSyncTime"), now),
        last_day_settlement=from_millis(d.get("lastDaySettlement"), now),
        users=tuple(users),
        servers=servers,
        requests=tuple(request_from_dict(r, now) for r in d.get("requests") or []),
    )
