"""Health check, provider catalog, settings and connection check endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.conversation import check_connection
from persona_chat.llm import PROVIDERS
from persona_chat.models import Settings
from persona_chat.session import Session

from .deps import get_session
from .models import CheckConnectionBody, UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/providers")
async def list_providers():
    """Compiled-in LLM provider catalog."""
    return list(PROVIDERS.values())


@router.get("/settings")
async def get_settings(session: Session = Depends(get_session)):
    """Get LLM settings (provider, endpoint, key, model, debug mode)."""
    return session.storage.get_settings()


@router.patch("/settings")
async def update_settings(body: UpdateSettings, session: Session = Depends(get_session)):
    """Update LLM settings (partial merge). Switching provider resets endpoint and model."""
    try:
        return session.storage.update_settings(body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/check-connection")
async def check_connection_endpoint(
    body: CheckConnectionBody, session: Session = Depends(get_session)
):
    """Send a tiny prompt with the given (unsaved) settings."""
    settings = Settings(**body.model_dump())
    return await check_connection(session, settings)
