from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from control import lifecycle
from control.api.deps import get_manager, require_admin, run
from control.api.serializers import server_view

router = APIRouter(prefix="/servers", tags=["servers"], dependencies=[Depends(require_admin)])


class ServerUpsert(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    sync_url: Optional[str] = None
    config_link: Optional[str] = None
    message: Optional[str] = None
    total_capacity_gb: Optional[float] = None
    used_capacity_gb: Optional[float] = None
    total_days: Optional[int] = None
    days_remaining: Optional[int] = None
    status: Optional[str] = None


@router.post("/upsert")
def upsert_server(body: ServerUpsert, manager=Depends(get_manager)):
    fields = body.model_dump(exclude_none=True)
    server_id = fields.pop("id", None)
    state = run(manager, lifecycle.upsert_server, server_id, **fields)
    server = state.get_server(server_id) if server_id else state.servers[-1]
    return server_view(server)


@router.get("/list")
def list_servers(manager=Depends(get_manager)):
    state = manager.current()
    return [
        {**server_view(s), "user_count": sum(1 for u in state.users if u.server_id == s.id)}
        for s in state.servers
    ]


@router.get("/{server_id}")
def get_server(server_id: str, manager=Depends(get_manager)):
    server = manager.current().get_server(server_id)
    if not server:
        raise HTTPException(status_code=404, detail="Server not found")
    return server_view(server)


@router.delete("/{server_id}")
def delete_server(server_id: str, manager=Depends(get_manager)):
    run(manager, lifecycle.delete_server, server_id)
    return {"status": "deleted"}
