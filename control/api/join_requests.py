from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from control import lifecycle
from control.api.deps import get_manager, require_admin, run
from control.api.serializers import request_view, user_view

router = APIRouter(prefix="/requests", tags=["requests"])


class JoinSubmit(BaseModel):
    username: str


class JoinApprove(BaseModel):
    server_id: Optional[str] = None


@router.post("/submit")
def submit(body: JoinSubmit, manager=Depends(get_manager)):
    state = run(manager, lifecycle.submit_join_request, body.username)
    return request_view(state.requests[-1])


@router.get("/list", dependencies=[Depends(require_admin)])
def list_requests(status: Optional[str] = None, manager=Depends(get_manager)):
    reqs = manager.current().requests
    if status:
        reqs = [r for r in reqs if r.status.value == status]
    return [request_view(r) for r in reqs]


@router.post("/{request_id}/approve", dependencies=[Depends(require_admin)])
def approve(request_id: str, body: JoinApprove, manager=Depends(get_manager)):
    outcome = {"found": False, "user_id": None}

    def _approve(state):
        # Decided under the manager lock so a concurrent approval cannot race it
        req = state.get_request(request_id)
        outcome["found"] = req is not None
        new_state = lifecycle.approve_join_request(state, request_id, body.server_id)
        if new_state is not state:
            outcome["user_id"] = new_state.users[-1].id
        return new_state

    state = run(manager, _approve)
    if not outcome["found"]:
        raise HTTPException(status_code=404, detail="Request not found")
    user = state.get_user(outcome["user_id"]) if outcome["user_id"] else None
    return {
        "request": request_view(state.get_request(request_id)),
        "user": user_view(user) if user else None,
    }


@router.post("/{request_id}/reject", dependencies=[Depends(require_admin)])
def reject(request_id: str, manager=Depends(get_manager)):
    state = run(manager, lifecycle.reject_join_request, request_id)
    req = state.get_request(request_id)
    if req is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return request_view(req)
