"""JSON views of domain entities for API responses"""

from control.models import JoinRequest, Message, ServerNode, UserData


def server_view(s: ServerNode) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "sync_url": s.sync_url,
        "config_link": s.config_link,
        "message": s.message,
        "total_capacity_gb": s.total_capacity_gb,
        "used_capacity_gb": s.used_capacity_gb,
        "total_days": s.total_days,
        "days_remaining": s.days_remaining,
        "status": s.status.value,
    }


def message_view(m: Message) -> dict:
    return {
        "id": m.id,
        "sender": m.sender.value,
        "text": m.text,
        "timestamp": m.timestamp.isoformat(),
        "read": m.read,
    }


def user_view(u: UserData, include_code: bool = True) -> dict:
    out = {
        "id": u.id,
        "username": u.username,
        "external_id": u.external_id,
        "status": u.status.value,
        "server_id": u.server_id,
        "plan": {
            "total_days": u.plan.total_days,
            "days_remaining": u.plan.days_remaining,
            "total_data_gb": u.plan.total_data_gb,
            "data_used_gb": u.plan.data_used_gb,
        },
        "message_count": len(u.messages),
        "joined_at": u.joined_at.isoformat(),
    }
    if include_code:
        out["access_code"] = u.access_code
    return out


def request_view(r: JoinRequest) -> dict:
    return {
        "id": r.id,
        "username": r.username,
        "timestamp": r.timestamp.isoformat(),
        "status": r.status.value,
    }
