"""
Support message endpoints.

User side authenticates with the X-Access-Code header; admin side with
X-Admin-Password. Reading a thread marks the other party's messages read.
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from control import lifecycle
from control.auth import authenticate_user
from control.api.deps import get_manager, require_admin, run
from control.api.serializers import message_view
from control.models import Party

router = APIRouter(prefix="/messages", tags=["messages"])


class MessageSend(BaseModel):
    text: str


def current_user_id(x_access_code: str | None = Header(None), manager=Depends(get_manager)) -> str:
    user = authenticate_user(manager.current(), x_access_code or "")
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid Access Code")
    return user.id


def _thread(state, user_id):
    user = state.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return [message_view(m) for m in user.messages]


# ============================================================================
# USER SIDE
# ============================================================================

@router.get("/me")
def my_messages(user_id: str = Depends(current_user_id), manager=Depends(get_manager)):
    state = run(manager, lifecycle.mark_messages_read, user_id, Party.USER)
    return _thread(state, user_id)


@router.post("/me")
def send_my_message(body: MessageSend, user_id: str = Depends(current_user_id), manager=Depends(get_manager)):
    state = run(manager, lifecycle.send_message, user_id, body.text, Party.USER)
    return _thread(state, user_id)


# ============================================================================
# ADMIN SIDE
# ============================================================================

@router.post("/broadcast", dependencies=[Depends(require_admin)])
def broadcast(body: MessageSend, manager=Depends(get_manager)):
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    state = run(manager, lifecycle.broadcast_message, body.text)
    return {"recipients": len(state.users)}


@router.get("/inbox", dependencies=[Depends(require_admin)])
def inbox(manager=Depends(get_manager)):
    """Users with unread support messages, most unread first"""
    state = manager.current()
    rows = [
        {"user_id": u.id, "username": u.username, "unread": u.unread_from(Party.USER)}
        for u in state.users
        if u.unread_from(Party.USER) > 0
    ]
    return sorted(rows, key=lambda r: r["unread"], reverse=True)


@router.get("/{user_id}", dependencies=[Depends(require_admin)])
def user_thread(user_id: str, manager=Depends(get_manager)):
    state = run(manager, lifecycle.mark_messages_read, user_id, Party.ADMIN)
    return _thread(state, user_id)


@router.post("/{user_id}", dependencies=[Depends(require_admin)])
def reply(user_id: str, body: MessageSend, manager=Depends(get_manager)):
    state = run(manager, lifecycle.send_message, user_id, body.text, Party.ADMIN)
    return _thread(state, user_id)
