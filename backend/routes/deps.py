"""Request-scoped access to the app's Session."""

from fastapi import Request

from persona_chat.narrative import NarrativeEngine
from persona_chat.session import Session


def get_session(request: Request) -> Session:
    return request.app.state.session


def get_engine(request: Request) -> NarrativeEngine:
    return NarrativeEngine(get_session(request))
