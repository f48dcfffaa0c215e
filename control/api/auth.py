from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from control import auth as gate
from control.api.deps import get_manager, require_admin, run
from control.api.serializers import message_view, server_view, user_view
from control.reports import client_config_link, effective_usage

router = APIRouter(prefix="/auth", tags=["auth"])


class AdminLogin(BaseModel):
    password: str


class UserLogin(BaseModel):
    code: str


class ExternalLogin(BaseModel):
    external_id: str


class PasswordChange(BaseModel):
    current: str
    new: str
    confirm: str


def _session_payload(state, user):
    server = state.get_server(user.server_id)
    return {
        "user": user_view(user),
        "server": server_view(server) if server else None,
        "config_link": client_config_link(server, user),
        "usage": effective_usage(state, user),
        "messages": [message_view(m) for m in user.messages],
    }


@router.post("/admin")
def admin_login(body: AdminLogin, manager=Depends(get_manager)):
    if not gate.authenticate_admin(manager.current(), body.password):
        raise HTTPException(status_code=401, detail="Invalid admin password")
    return {"ok": True}


@router.post("/user")
def user_login(body: UserLogin, manager=Depends(get_manager)):
    state = manager.current()
    user = gate.authenticate_user(state, body.code)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid Access Code")
    return _session_payload(state, user)


@router.post("/external")
def external_login(body: ExternalLogin, manager=Depends(get_manager)):
    state = manager.current()
    user = gate.authenticate_external(state, body.external_id)
    if user is None:
        raise HTTPException(status_code=404, detail="No account linked to this identity")
    return _session_payload(state, user)


@router.post("/admin/password", dependencies=[Depends(require_admin)])
def change_password(body: PasswordChange, manager=Depends(get_manager)):
    run(manager, gate.change_admin_password, body.current, body.new, body.confirm)
    return {"ok": True}
