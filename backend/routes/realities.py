"""Reality endpoints: inspect, accept/reject an invite, submit choices."""

from fastapi import APIRouter, Depends

from persona_chat.narrative import NarrativeEngine

from .deps import get_engine
from .models import ChooseBody

router = APIRouter()


@router.get("/chats/{chat_id}/realities")
async def list_realities(chat_id: str, engine: NarrativeEngine = Depends(get_engine)):
    """All realities of a chat, oldest first."""
    return engine.list_for_chat(chat_id)


@router.get("/realities/{reality_id}")
async def get_reality(reality_id: str, engine: NarrativeEngine = Depends(get_engine)):
    return engine.get(reality_id)


@router.post("/realities/{reality_id}/accept")
async def accept_reality(reality_id: str, engine: NarrativeEngine = Depends(get_engine)):
    """Accept a pending invite: pending -> active."""
    return engine.accept(reality_id)


@router.post("/realities/{reality_id}/reject")
async def reject_reality(reality_id: str, engine: NarrativeEngine = Depends(get_engine)):
    """Reject a pending invite: pending -> ended, no summary."""
    return engine.reject(reality_id)


@router.post("/realities/{reality_id}/choose")
async def choose(
    reality_id: str, body: ChooseBody, engine: NarrativeEngine = Depends(get_engine)
):
    """Submit a choice for the current paragraph. "end" finishes with a recap."""
    return await engine.choose(reality_id, body.choice_id)
