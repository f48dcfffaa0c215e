"""
Drafting helpers backed by the enrichment service.

These never mutate state: the admin reviews the draft and sends it through
the message endpoints.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from control.api.deps import get_enrichment, require_admin

router = APIRouter(prefix="/assist", tags=["assist"], dependencies=[Depends(require_admin)])


class ReplyDraft(BaseModel):
    text: str


class BroadcastDraft(BaseModel):
    topic: str
    tone: str = "formal"


class WelcomeDraft(BaseModel):
    username: str


@router.post("/reply")
def draft_reply(body: ReplyDraft, enrichment=Depends(get_enrichment)):
    return {"text": enrichment.suggest_reply(body.text)}


@router.post("/broadcast")
def draft_broadcast(body: BroadcastDraft, enrichment=Depends(get_enrichment)):
    return {"text": enrichment.draft_broadcast(body.topic, body.tone)}


@router.post("/welcome")
def draft_welcome(body: WelcomeDraft, enrichment=Depends(get_enrichment)):
    return {"text": enrichment.draft_welcome(body.username)}
