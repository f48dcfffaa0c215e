"""
Read-only views over a snapshot for dashboards and user panels.
"""
from typing import Any, Dict, Optional

from control.models import AppState, Party, RequestStatus, ServerNode, ServerStatus, UserData, UserStatus


def dashboard_stats(state: AppState) -> Dict[str, Any]:
    return {
        "total_users": len(state.users),
        "active_users": sum(1 for u in state.users if u.status == UserStatus.ACTIVE),
        "nodes_online": sum(1 for s in state.servers if s.status == ServerStatus.ACTIVE),
        "total_nodes": len(state.servers),
        "total_data_used_gb": round(sum(s.used_capacity_gb for s in state.servers), 2),
        "pending_requests": sum(1 for r in state.requests if r.status == RequestStatus.PENDING),
        "unread_support_messages": sum(u.unread_from(Party.USER) for u in state.users),
        "last_sync_time": state.last_sync_time.isoformat(),
        "last_day_settlement": state.last_day_settlement.isoformat(),
    }


def effective_usage(state: AppState, user: UserData) -> Dict[str, Any]:
    """
    Usage figures shown to a user: the bound server's shared stats, or the
    legacy per-user plan when the account is not bound to a node.
    """
    server = state.get_server(user.server_id)
    if server is not None:
        total_data, used_data = server.total_capacity_gb, server.used_capacity_gb
        total_days, days_remaining = server.total_days, server.days_remaining
        source = "server"
    else:
        total_data, used_data = user.plan.total_data_gb, user.plan.data_used_gb
        total_days, days_remaining = user.plan.total_days, user.plan.days_remaining
        source = "plan"

    percent = min(100.0, used_data / total_data * 100) if total_data > 0 else 0.0
    return {
        "source": source,
        "total_data_gb": total_data,
        "used_data_gb": used_data,
        "remaining_data_gb": round(max(0.0, total_data - used_data), 2),
        "data_used_percent": round(percent, 1),
        "total_days": total_days,
        "days_remaining": days_remaining,
    }


def client_config_link(server: Optional[ServerNode], user: UserData) -> Optional[str]:
    """Connection descriptor handed to a client, tagged with the username"""
    if server is None or not server.config_link:
        return None
    return f"{server.config_link}#{user.username}"
