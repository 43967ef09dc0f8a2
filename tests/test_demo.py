"""Tests for demo data seeding."""

from backend.demo import DEMO_CHARACTERS, DEMO_LORE, create_demo_data


def test_seeds_characters_and_disabled_lore(storage):
    create_demo_data(storage)
    assert len(storage.list_characters()) == len(DEMO_CHARACTERS)
    book = storage.get_lorebook()
    assert [e.name for e in book] == [d["name"] for d in DEMO_LORE]
    assert not any(e.enabled for e in book)


def test_running_twice_adds_nothing(storage):
    create_demo_data(storage)
    create_demo_data(storage)
    assert len(storage.list_characters()) == len(DEMO_CHARACTERS)
    assert len(storage.get_lorebook()) == len(DEMO_LORE)
