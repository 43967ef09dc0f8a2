"""FastAPI API endpoints under /api.

Endpoint groups: health + providers + settings + check-connection, characters,
lorebook, chats (messages, send, suggest-reality), realities (accept, reject,
choose), token usage, debug traces. The Session lives on app.state and is
injected per request via deps.get_session.
"""

from fastapi import APIRouter

from .characters import router as characters_router
from .chats import router as chats_router
from .lorebook import router as lorebook_router
from .realities import router as realities_router
from .settings import router as settings_router
from .usage import router as usage_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(characters_router)
router.include_router(lorebook_router)
router.include_router(chats_router)
router.include_router(realities_router)
router.include_router(usage_router)
