"""Chat CRUD, messages, and the conversation endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.conversation import send_message, suggest_reality
from persona_chat.models import Chat
from persona_chat.session import Session

from .deps import get_session
from .models import CreateChat, SendMessageBody

router = APIRouter()


@router.get("/chats")
async def list_chats(session: Session = Depends(get_session)):
    """List chats, most recently active first."""
    return session.storage.list_chats()


@router.post("/chats", status_code=201)
async def create_chat(body: CreateChat, session: Session = Depends(get_session)):
    """Start a chat with a character."""
    character = session.storage.get_character(body.character_id)
    if not character:
        raise HTTPException(404, "Character not found")
    return session.storage.save_chat(Chat(character_id=character.id, name=character.name))


@router.get("/chats/{chat_id}")
async def get_chat(chat_id: str, session: Session = Depends(get_session)):
    chat = session.storage.get_chat(chat_id)
    if not chat:
        raise HTTPException(404, "Chat not found")
    return chat


@router.delete("/chats/{chat_id}")
async def delete_chat(chat_id: str, session: Session = Depends(get_session)):
    """Delete a chat with its messages and realities."""
    if not session.storage.delete_chat(chat_id):
        raise HTTPException(404, "Chat not found")
    return {"ok": True}


@router.get("/chats/{chat_id}/messages")
async def get_messages(chat_id: str, session: Session = Depends(get_session)):
    """Get message history for a chat and mark it read."""
    chat = session.storage.get_chat(chat_id)
    if not chat:
        raise HTTPException(404, "Chat not found")
    if chat.unread_count:
        chat.unread_count = 0
        session.storage.save_chat(chat)
    return session.storage.get_messages(chat_id)


@router.post("/chats/{chat_id}/messages")
async def post_message(
    chat_id: str, body: SendMessageBody, session: Session = Depends(get_session)
):
    """Send a user message and get the character's reply."""
    try:
        return await send_message(session, chat_id, body.content)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/chats/{chat_id}/suggest-reality")
async def post_suggest_reality(chat_id: str, session: Session = Depends(get_session)):
    """Ask the character to propose a Reality based on the conversation."""
    return await suggest_reality(session, chat_id)
