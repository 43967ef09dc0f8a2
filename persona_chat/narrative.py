"""Reality state machine.

    pending ──accept──▶ active ──choose("end")──▶ ended (+ summary)
       │                  │
       │                  └──choose(id)──▶ active (new paragraph)
       │                                   └─ no choices returned ─▶ ended
       └──reject──▶ ended (no summary)

Transitions only move forward. Every action loads the Reality fresh, works on
that copy, and saves once after the model call has succeeded, so a failed
continuation or summary leaves the stored Reality untouched and the user can
simply submit the same choice again.

Choosing "end" asks the model for a first-person recap, stores it as the
Reality's summary and appends it to the chat as a system message so later
chat turns remember the story. A continuation that comes back without
choices also ends the Reality, but without a recap.

Any paragraph saved with choices carries exactly one "end" choice; the model
is asked for one but not trusted to provide it.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from persona_chat.classifier import classify
from persona_chat.llm import ProviderShapeMismatch
from persona_chat.models import (
    END_CHOICE_ID,
    Character,
    Chat,
    DebugTrace,
    Message,
    Reality,
    RealityChoice,
    RealityParagraph,
    RealityResponse,
)
from persona_chat.prompts import (
    build_continue_messages,
    build_summary_messages,
    paragraph_history,
)
from persona_chat.session import Session

logger = logging.getLogger(__name__)

DEFAULT_END_LABEL = "End the story"


class NotFoundError(LookupError):
    """A chat, character or Reality id does not exist."""


class RealityStateError(ValueError):
    """The requested transition is not legal in the Reality's current state."""


class NarrativeStep(BaseModel):
    """Result of choose(): the updated Reality and what it produced."""

    reality: Reality
    recap: Message | None = None
    debug: DebugTrace | None = None


def normalize_choices(choices: list[RealityChoice]) -> list[RealityChoice]:
    """Exactly one "end" choice, appended when the model left it out."""
    result: list[RealityChoice] = []
    has_end = False
    for choice in choices:
        if choice.id == END_CHOICE_ID:
            if has_end:
                continue
            has_end = True
        result.append(choice)
    if not has_end:
        result.append(RealityChoice(id=END_CHOICE_ID, label=DEFAULT_END_LABEL))
    return result


def load_chat_character(session: Session, chat_id: str) -> tuple[Chat, Character]:
    chat = session.storage.get_chat(chat_id)
    if chat is None:
        raise NotFoundError(f"Chat {chat_id} not found")
    character = session.storage.get_character(chat.character_id)
    if character is None:
        raise NotFoundError(f"Character {chat.character_id} not found")
    return chat, character


class NarrativeEngine:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._storage = session.storage

    def get(self, reality_id: str) -> Reality:
        reality = self._storage.get_reality(reality_id)
        if reality is None:
            raise NotFoundError(f"Reality {reality_id} not found")
        return reality

    def list_for_chat(self, chat_id: str) -> list[Reality]:
        return self._storage.list_realities(chat_id)

    def create(self, chat_id: str, response: RealityResponse) -> tuple[Reality, Message]:
        """Store a new pending Reality and its invite message in the chat."""
        if self._storage.get_chat(chat_id) is None:
            raise NotFoundError(f"Chat {chat_id} not found")

        seed = RealityParagraph(
            content=response.paragraph,
            choices=normalize_choices(response.choices),
        )
        reality = Reality(chat_id=chat_id, title=response.title, paragraphs=[seed])
        invite = Message(
            chat_id=chat_id,
            sender="ai",
            type="reality",
            content=reality.title,
            metadata={"reality_id": reality.id},
        )
        self._storage.save_reality(reality)
        self._storage.append_messages(chat_id, [invite])
        logger.info("reality %s created in chat %s: %r", reality.id, chat_id, reality.title)
        return reality, invite

    def accept(self, reality_id: str) -> Reality:
        return self._transition(reality_id, "active")

    def reject(self, reality_id: str) -> Reality:
        return self._transition(reality_id, "ended")

    def _transition(self, reality_id: str, status: str) -> Reality:
        reality = self.get(reality_id)
        if reality.status != "pending":
            raise RealityStateError(
                f"Reality {reality_id} is {reality.status}, expected pending"
            )
        reality.status = status
        self._storage.save_reality(reality)
        logger.info("reality %s pending -> %s", reality_id, status)
        return reality

    async def choose(self, reality_id: str, choice_id: str) -> NarrativeStep:
        """Resolve the current paragraph's choice and advance the story."""
        with self._session.guard(reality_id):
            reality = self.get(reality_id)
            paragraph, choice = self._open_choice(reality, choice_id)
            _, character = load_chat_character(self._session, reality.chat_id)
            lore = self._storage.get_lorebook()
            history = paragraph_history(reality, choice)

            if choice.id == END_CHOICE_ID:
                messages = build_summary_messages(character, lore, reality.title, history)
                call = await self._session.call_model(character, messages)
                summary = call.text.strip()
                if not summary:
                    raise ProviderShapeMismatch("Model returned an empty story recap")

                paragraph.chosen_id = choice.id
                reality.status = "ended"
                reality.summary = summary
                recap = Message(
                    chat_id=reality.chat_id,
                    sender="system",
                    type="text",
                    content=f"[{reality.title}] {summary}",
                )
                self._storage.save_reality(reality)
                self._storage.append_messages(reality.chat_id, [recap])
                logger.info("reality %s ended by user with summary", reality_id)
                return NarrativeStep(reality=reality, recap=recap, debug=call.debug)

            messages = build_continue_messages(character, lore, reality.title, history)
            call = await self._session.call_model(character, messages)
            response = classify(call.text)

            paragraph.chosen_id = choice.id
            if isinstance(response, RealityResponse):
                if response.choices:
                    reality.paragraphs.append(RealityParagraph(
                        content=response.paragraph,
                        choices=normalize_choices(response.choices),
                    ))
                else:
                    reality.paragraphs.append(RealityParagraph(content=response.paragraph))
                    reality.status = "ended"
            else:
                logger.warning("reality %s continuation was not a payload; ending", reality_id)
                reality.paragraphs.append(RealityParagraph(content=response.content))
                reality.status = "ended"

            self._storage.save_reality(reality)
            if reality.status == "ended":
                logger.info("reality %s ended without summary", reality_id)
            return NarrativeStep(reality=reality, debug=call.debug)

    @staticmethod
    def _open_choice(
        reality: Reality, choice_id: str
    ) -> tuple[RealityParagraph, RealityChoice]:
        if reality.status != "active":
            raise RealityStateError(f"Reality {reality.id} is {reality.status}, expected active")
        paragraph = reality.current_paragraph
        if paragraph is None or not paragraph.choices or paragraph.chosen_id is not None:
            raise RealityStateError(f"Reality {reality.id} has no open choice")
        for choice in paragraph.choices:
            if choice.id == choice_id:
                return paragraph, choice
        raise RealityStateError(f"Choice {choice_id!r} is not offered")
