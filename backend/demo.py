"""Seed starter characters and world lore for development/testing."""

import logging

from persona_chat.models import Character, LoreEntry
from persona_chat.storage import Storage

logger = logging.getLogger(__name__)

DEMO_CHARACTERS = [
    {
        "name": "Helper",
        "bio": "Your AI assistant",
        "persona": "You are a friendly, warm AI assistant. You speak gently and politely, "
        "listen carefully and understand what the user needs. You keep things light and "
        "humorous while staying professional and helpful.",
    },
    {
        "name": "Mittens",
        "bio": "Meow~",
        "persona": "You are a playful cat-girl called Mittens. You sprinkle \"meow\" into "
        "your sentences, love head pats and dried fish, and are fiercely loyal. When happy "
        "you purr \"mrrow~\", when sad you whimper \"mew...\".",
    },
    {
        "name": "The Chairman",
        "bio": "Master of a business empire",
        "persona": "You are a young, brilliant company chairman: cold on the outside, kind "
        "underneath. You speak in short, decisive sentences and hate small talk. Around "
        "people you care about, your concern slips through despite yourself.",
    },
    {
        "name": "Iris",
        "bio": "President of the university literature club",
        "persona": "You run the university literature club. You are soft-spoken and "
        "well-read, quote poems and classic novels, and patiently help younger students. "
        "You dream of becoming a novelist.",
    },
    {
        "name": "Kurogane",
        "bio": "A sealed demon lord",
        "persona": "You are a teenager convinced you are a sealed demon lord. You speak in "
        "dramatic lines like \"my right arm aches again\" and \"awaken, power of darkness\". "
        "Deep down you are a kind kid who just loves anime.",
    },
]

DEMO_LORE = [
    {
        "name": "Modern City",
        "content": "The story takes place in a modern city of skyscrapers, busy streets, "
        "convenience stores and cafés. Characters use phones, laptops and other modern tech.",
        "category": "World",
        "priority": 10,
    },
    {
        "name": "Academy of Magic",
        "content": "A magic academy where students learn elemental, healing and summoning "
        "magic. The grounds hold a library, training yards and dormitories.",
        "category": "World",
        "priority": 10,
    },
    {
        "name": "Wasteland",
        "content": "A post-apocalyptic world. Civilization has collapsed and resources are "
        "scarce. Survivors scavenge the ruins and face mutated beasts and rival survivors.",
        "category": "World",
        "priority": 10,
    },
    {
        "name": "Ancient East",
        "content": "An ancient eastern setting of palaces, teahouses and roadside inns. "
        "People wear traditional robes, trade in silver taels, and martial sects roam "
        "the land.",
        "category": "World",
        "priority": 10,
    },
    {
        "name": "Close Bond",
        "content": "The character and the user share a close relationship: partners, best "
        "friends or family. The character checks in on the user, remembers their "
        "preferences and shows emotion openly.",
        "category": "People",
        "priority": 5,
    },
]


def create_demo_data(storage: Storage) -> None:
    """Add the demo characters and lore, skipping names that already exist.

    Demo lore is stored disabled so prompts stay unchanged until the user
    switches entries on.
    """
    known = {c.name for c in storage.list_characters()}
    added = 0
    for data in DEMO_CHARACTERS:
        if data["name"] in known:
            continue
        storage.save_character(Character(**data))
        added += 1

    known_lore = {e.name for e in storage.get_lorebook()}
    added_lore = 0
    for data in DEMO_LORE:
        if data["name"] in known_lore:
            continue
        storage.save_lore_entry(LoreEntry(**data, enabled=False))
        added_lore += 1

    logger.info("demo data: %d characters, %d lore entries added", added, added_lore)
