from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from control import lifecycle
from control.api.deps import get_manager, require_admin, run
from control.api.serializers import user_view
from control.reports import effective_usage

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_admin)])


class UserCreate(BaseModel):
    username: str
    server_id: Optional[str] = None
    external_id: Optional[str] = None


class UserAssign(BaseModel):
    server_id: Optional[str] = None


class UserStatusUpdate(BaseModel):
    status: str


@router.post("/create")
def create_user(body: UserCreate, manager=Depends(get_manager)):
    state = run(manager, lifecycle.create_user, body.username, body.server_id, body.external_id)
    # Writes are serialized, so the newest user is the one just created
    return user_view(state.users[-1])


@router.get("/list")
def list_users(q: Optional[str] = None, manager=Depends(get_manager)):
    users = manager.current().users
    if q:
        needle = q.lower()
        users = [u for u in users if needle in u.username.lower() or needle in u.access_code]
    return [user_view(u) for u in users]


@router.get("/{user_id}")
def get_user(user_id: str, manager=Depends(get_manager)):
    state = manager.current()
    user = state.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {**user_view(user), "usage": effective_usage(state, user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, manager=Depends(get_manager)):
    run(manager, lifecycle.delete_user, user_id)
    return {"status": "deleted"}


@router.post("/{user_id}/assign")
def assign_server(user_id: str, body: UserAssign, manager=Depends(get_manager)):
    state = run(manager, lifecycle.assign_server, user_id, body.server_id)
    user = state.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_view(user)


@router.post("/{user_id}/status")
def set_status(user_id: str, body: UserStatusUpdate, manager=Depends(get_manager)):
    state = run(manager, lifecycle.set_user_status, user_id, body.status)
    user = state.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_view(user)
