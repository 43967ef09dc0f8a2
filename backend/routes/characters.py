"""Character CRUD endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.models import Character, now_ms
from persona_chat.session import Session

from .deps import get_session
from .models import CreateCharacter, UpdateCharacter

router = APIRouter()


@router.get("/characters")
async def list_characters(session: Session = Depends(get_session)):
    """List all characters, by name."""
    return session.storage.list_characters()


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter, session: Session = Depends(get_session)):
    """Create a new character."""
    if not body.name.strip():
        raise HTTPException(400, "Character name must not be empty")
    return session.storage.save_character(Character(**body.model_dump()))


@router.get("/characters/{character_id}")
async def get_character(character_id: str, session: Session = Depends(get_session)):
    """Get a single character by id."""
    character = session.storage.get_character(character_id)
    if not character:
        raise HTTPException(404, "Character not found")
    return character


@router.patch("/characters/{character_id}")
async def update_character(
    character_id: str, body: UpdateCharacter, session: Session = Depends(get_session)
):
    """Update name, bio or persona."""
    character = session.storage.get_character(character_id)
    if not character:
        raise HTTPException(404, "Character not found")
    updated = character.model_copy(update={**body.model_dump(exclude_none=True), "updated_at": now_ms()})
    return session.storage.save_character(updated)


@router.delete("/characters/{character_id}")
async def delete_character(character_id: str, session: Session = Depends(get_session)):
    """Delete a character. Existing chats keep their history."""
    if not session.storage.delete_character(character_id):
        raise HTTPException(404, "Character not found")
    return {"ok": True}
