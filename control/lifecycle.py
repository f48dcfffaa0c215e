"""
Lifecycle Operations

Pure state transitions: each function takes an AppState snapshot and returns
a new one. Operations that target a missing id return the input object
unchanged (callers can test `new is old` to skip a write). Validation
failures raise ValidationError before anything is built.
"""
import logging
import math
from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Dict, Optional, Union

from shared.token_utils import new_id, new_access_code, unique_access_code
from control.errors import ConflictError, ValidationError
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
    DEFAULT_SERVER_CAPACITY_GB,
    DEFAULT_SERVER_DAYS,
    utcnow,
)

logger = logging.getLogger(__name__)

ACCESS_CODE_ATTEMPTS = 8

# Fields an administrator may set through upsert_server
SERVER_EDITABLE_FIELDS = {f.name for f in fields(ServerNode)} - {"id"}


def _replace_user(state: AppState, user: UserData) -> AppState:
    return replace(state, users=tuple(user if u.id == user.id else u for u in state.users))


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _coerce_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}")


# ============================================================================
# USERS
# ============================================================================

def create_user(
    state: AppState,
    username: str,
    server_id: Optional[str] = None,
    external_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    code_generator=new_access_code,
) -> AppState:
    """
    Create an active user with the default legacy plan.

    Raises:
        ValidationError: Empty username or unknown server_id
        ConflictError: No unique access code after ACCESS_CODE_ATTEMPTS draws
    """
    username = _require_text(username, "username")
    if server_id and state.get_server(server_id) is None:
        raise ValidationError(f"Server '{server_id}' does not exist")

    code = unique_access_code(state.access_codes(), ACCESS_CODE_ATTEMPTS, code_generator)
    if code is None:
        raise ConflictError("Could not generate a unique access code")

    user = UserData(
        id=new_id(),
        username=username,
        access_code=code,
        status=UserStatus.ACTIVE,
        server_id=server_id or None,
        external_id=external_id or None,
        plan=PlanUsage(),
        messages=(),
        joined_at=now or utcnow(),
    )
    logger.info(f"User created: {user.username} (id={user.id}, server={user.server_id})")
    return replace(state, users=state.users + (user,))


def delete_user(state: AppState, user_id: str) -> AppState:
    if state.get_user(user_id) is None:
        return state
    logger.info(f"User deleted: {user_id}")
    return replace(state, users=tuple(u for u in state.users if u.id != user_id))


def assign_server(state: AppState, user_id: str, server_id: Optional[str]) -> AppState:
    """Bind a user to a server, or unbind with server_id=None"""
    user = state.get_user(user_id)
    if user is None:
        return state
    if server_id is not None and state.get_server(server_id) is None:
        raise ValidationError(f"Server '{server_id}' does not exist")
    if user.server_id == server_id:
        return state
    return _replace_user(state, replace(user, server_id=server_id))


def set_user_status(state: AppState, user_id: str, status: Union[UserStatus, str]) -> AppState:
    status = _coerce_enum(UserStatus, status, "status")
    user = state.get_user(user_id)
    if user is None or user.status == status:
        return state
    logger.info(f"User {user_id} status: {user.status.value} -> {status.value}")
    return _replace_user(state, replace(user, status=status))


# ============================================================================
# SERVERS
# ============================================================================

def _validated_server_fields(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - SERVER_EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown server field(s): {', '.join(sorted(unknown))}")

    out = dict(changes)
    for name in ("total_capacity_gb", "used_capacity_gb"):
        if name in out and out[name] is not None:
            try:
                out[name] = float(out[name])
            except (TypeError, ValueError):
                raise ValidationError(f"{name} must be a number")
            if not math.isfinite(out[name]):
                raise ValidationError(f"{name} must be a finite number")
            if out[name] < 0:
                raise ValidationError(f"{name} must not be negative")
    for name in ("total_days", "days_remaining"):
        if name in out and out[name] is not None:
            try:
                out[name] = int(out[name])
            except (TypeError, ValueError):
                raise ValidationError(f"{name} must be an integer")
            if out[name] < 0:
                raise ValidationError(f"{name} must not be negative")
    if out.get("status") is not None:
        out["status"] = _coerce_enum(ServerStatus, out["status"], "status")
    for name in ("name", "config_link"):
        if name in out and out[name] is not None:
            out[name] = _require_text(out[name], name)
    return {k: v for k, v in out.items() if v is not None}


def upsert_server(state: AppState, server_id: Optional[str] = None, **changes) -> AppState:
    """
    Edit an existing server or create a new one.

    Admin edits may set any field, including reactivating a degraded
    server. Usage and remaining days are clamped into range on every write.

    Raises:
        ValidationError: Unknown/negative fields, or missing name/config_link on create
    """
    changes = _validated_server_fields(changes)
    existing = state.get_server(server_id)

    if existing is not None:
        updated = replace(existing, **changes).clamped()
        if updated == existing:
            return state
        if updated.status != existing.status:
            logger.info(f"Server {existing.id} status set by admin: {existing.status.value} -> {updated.status.value}")
        return replace(state, servers=tuple(updated if s.id == existing.id else s for s in state.servers))

    name = _require_text(changes.get("name"), "name")
    config_link = _require_text(changes.get("config_link"), "config_link")
    total_days = changes.get("total_days") or DEFAULT_SERVER_DAYS
    server = ServerNode(
        id=server_id or new_id(),
        name=name,
        config_link=config_link,
        sync_url=changes.get("sync_url", ""),
        message=changes.get("message", ""),
        total_capacity_gb=changes.get("total_capacity_gb") or DEFAULT_SERVER_CAPACITY_GB,
        used_capacity_gb=0.0,
        total_days=total_days,
        days_remaining=changes.get("days_remaining", total_days),
        status=ServerStatus.ACTIVE,
    ).clamped()
    logger.info(f"Server created: {server.name} (id={server.id}, {server.total_capacity_gb}GB, {server.total_days}d)")
    return replace(state, servers=state.servers + (server,))


def delete_server(state: AppState, server_id: str) -> AppState:
    """Remove a server and unbind its users in the same transition"""
    if state.get_server(server_id) is None:
        return state

    unbound = 0
    users = []
    for u in state.users:
        if u.server_id == server_id:
            u = replace(u, server_id=None)
            unbound += 1
        users.append(u)

    logger.info(f"Server deleted: {server_id} ({unbound} users unassigned)")
    return replace(
        state,
        servers=tuple(s for s in state.servers if s.id != server_id),
        users=tuple(users),
    )


# ============================================================================
# MESSAGES
# ============================================================================

def send_message(
    state: AppState,
    user_id: str,
    text: str,
    sender: Union[Party, str],
    *,
    now: Optional[datetime] = None,
) -> AppState:
    sender = _coerce_enum(Party, sender, "sender")
    user = state.get_user(user_id)
    if user is None or not text or not text.strip():
        return state

    msg = Message(id=new_id(), sender=sender, text=text, timestamp=now or utcnow(), read=False)
    return _replace_user(state, replace(user, messages=user.messages + (msg,)))


def mark_messages_read(state: AppState, user_id: str, reader: Union[Party, str]) -> AppState:
    """Mark as read every unread message authored by the party other than `reader`"""
    reader = _coerce_enum(Party, reader, "reader")
    user = state.get_user(user_id)
    if user is None:
        return state

    author = reader.other
    if user.unread_from(author) == 0:
        return state

    messages = tuple(
        replace(m, read=True) if m.sender == author and not m.read else m
        for m in user.messages
    )
    return _replace_user(state, replace(user, messages=messages))


def broadcast_message(state: AppState, text: str, *, now: Optional[datetime] = None) -> AppState:
    """Append the same admin message to every user's log"""
    if not text or not text.strip() or not state.users:
        return state

    ts = now or utcnow()
    users = tuple(
        replace(u, messages=u.messages + (Message(id=new_id(), sender=Party.ADMIN, text=text, timestamp=ts),))
        for u in state.users
    )
    logger.info(f"Broadcast sent to {len(users)} users")
    return replace(state, users=users)


# ============================================================================
# JOIN REQUESTS
# ============================================================================

def _normalize_handle(username: str) -> str:
    username = _require_text(username, "username")
    return username if username.startswith("@") else f"@{username}"


def submit_join_request(state: AppState, username: str, *, now: Optional[datetime] = None) -> AppState:
    req = JoinRequest(
        id=new_id(),
        username=_normalize_handle(username),
        timestamp=now or utcnow(),
        status=RequestStatus.PENDING,
    )
    logger.info(f"Join request submitted: {req.username}")
    return replace(state, requests=state.requests + (req,))


def _set_request_status(state: AppState, request_id: str, status: RequestStatus) -> AppState:
    return replace(
        state,
        requests=tuple(replace(r, status=status) if r.id == request_id else r for r in state.requests),
    )


def approve_join_request(
    state: AppState,
    request_id: str,
    server_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> AppState:
    """Mark a pending request approved and create its user account"""
    req = state.get_request(request_id)
    if req is None or req.status != RequestStatus.PENDING:
        return state

    state = create_user(state, req.username, server_id=server_id, now=now)
    logger.info(f"Join request approved: {req.username}")
    return _set_request_status(state, request_id, RequestStatus.APPROVED)


def reject_join_request(state: AppState, request_id: str) -> AppState:
    req = state.get_request(request_id)
    if req is None or req.status != RequestStatus.PENDING:
        return state
    logger.info(f"Join request rejected: {req.username}")
    return _set_request_status(state, request_id, RequestStatus.REJECTED)
