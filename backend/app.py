import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.routes import router
from persona_chat.llm import LLMError, MissingCredential
from persona_chat.narrative import NotFoundError, RealityStateError
from persona_chat.prompts import PromptError
from persona_chat.session import Busy, Session
from persona_chat.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def _timeout_from_env() -> float | None:
    raw = os.getenv("PERSONA_CHAT_HTTP_TIMEOUT", "").strip()
    return float(raw) if raw else None


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"detail": message})


def _install_error_handlers(app: FastAPI) -> None:
    """Map core exceptions to HTTP responses. Provider messages pass through verbatim."""

    @app.exception_handler(MissingCredential)
    async def missing_credential(request: Request, exc: MissingCredential):
        return _error(400, str(exc))

    @app.exception_handler(LLMError)
    async def llm_error(request: Request, exc: LLMError):
        logger.warning("model call failed on %s: %s", request.url.path, exc)
        return _error(502, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(RealityStateError)
    async def bad_state(request: Request, exc: RealityStateError):
        return _error(409, str(exc))

    @app.exception_handler(Busy)
    async def busy(request: Request, exc: Busy):
        return _error(409, str(exc))

    @app.exception_handler(PromptError)
    async def prompt_error(request: Request, exc: PromptError):
        return _error(500, str(exc))


def create_app(data_dir: Path | None = None, session: Session | None = None) -> FastAPI:
    if session is None:
        resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
        session = Session(Storage(resolved), timeout=_timeout_from_env())

    app = FastAPI(title="Persona Chat")
    app.state.session = session
    _install_error_handlers(app)
    app.include_router(router, prefix="/api")
    return app
