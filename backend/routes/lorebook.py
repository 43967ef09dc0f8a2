"""Lorebook CRUD endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.models import LoreEntry
from persona_chat.session import Session

from .deps import get_session
from .models import CreateLoreEntry, UpdateLoreEntry

router = APIRouter()


@router.get("/lorebook")
async def get_lorebook(session: Session = Depends(get_session)):
    """Get all lorebook entries, enabled or not, in insertion order."""
    return session.storage.get_lorebook()


@router.post("/lorebook", status_code=201)
async def add_lorebook_entry(body: CreateLoreEntry, session: Session = Depends(get_session)):
    """Add a new lorebook entry."""
    session.storage.save_lore_entry(LoreEntry(**body.model_dump()))
    return session.storage.get_lorebook()


@router.patch("/lorebook/{entry_id}")
async def update_lorebook_entry(
    entry_id: str, body: UpdateLoreEntry, session: Session = Depends(get_session)
):
    """Update a lorebook entry (toggle, reprioritise, edit)."""
    entry = session.storage.get_lore_entry(entry_id)
    if not entry:
        raise HTTPException(404, "Lorebook entry not found")
    session.storage.save_lore_entry(entry.model_copy(update=body.model_dump(exclude_none=True)))
    return session.storage.get_lorebook()


@router.delete("/lorebook/{entry_id}")
async def delete_lorebook_entry(entry_id: str, session: Session = Depends(get_session)):
    """Delete a lorebook entry."""
    if not session.storage.delete_lore_entry(entry_id):
        raise HTTPException(404, "Lorebook entry not found")
    return session.storage.get_lorebook()
