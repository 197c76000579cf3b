"""Tests for learnlog.db.sqlite."""

from datetime import timedelta

import pytest

from learnlog.db.sqlite import (
    StaleCardError,
    create_flashcard,
    delete_flashcard,
    get_flashcard,
    insert_review_log,
    list_decks,
    list_flashcards,
    list_flashcards_for_deck,
    list_review_log,
    save_flashcard_schedule,
    update_flashcard_content,
)
from learnlog.models.flashcard import FlashcardCreate, FlashcardUpdate
from learnlog.services.scheduling import grade


def _new(deck="python", front="Q", back="A", course_id=None):
    return FlashcardCreate(deck=deck, front=front, back=back, course_id=course_id)


async def test_schema_creation(db):
    cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [r[0] for r in await cursor.fetchall()]
    assert "flashcards" in tables
    assert "review_log" in tables
    assert "schema_version" in tables

    cursor = await db.execute("SELECT MAX(version) FROM schema_version")
    assert (await cursor.fetchone())[0] == 2


async def test_create_starts_in_initial_state(db):
    card = await create_flashcard(db, "alice", _new())
    assert card.owner_id == "alice"
    assert card.ease_factor == 2.5
    assert card.interval == 1
    assert card.repetitions == 0
    assert card.last_review is None
    assert card.next_review is None
    assert card.version == 0


async def test_get_is_owner_scoped(db):
    card = await create_flashcard(db, "alice", _new())
    assert await get_flashcard(db, card.id, "alice") is not None
    assert await get_flashcard(db, card.id, "bob") is None
    assert await get_flashcard(db, card.id) is not None


async def test_list_and_decks(db):
    await create_flashcard(db, "alice", _new(deck="rust"))
    await create_flashcard(db, "alice", _new(deck="python", course_id="cs101"))
    await create_flashcard(db, "alice", _new(deck="python"))
    await create_flashcard(db, "bob", _new(deck="go"))

    items, total = await list_flashcards(db, "alice")
    assert total == 3
    assert len(items) == 3

    items, total = await list_flashcards(db, "alice", course_id="cs101")
    assert total == 1

    items, total = await list_flashcards(db, "alice", offset=0, limit=2)
    assert total == 3
    assert len(items) == 2

    assert len(await list_flashcards_for_deck(db, "alice", "python")) == 2
    assert await list_decks(db, "alice") == ["python", "rust"]


async def test_save_schedule_round_trips_timestamps(db, now):
    card = await create_flashcard(db, "alice", _new())
    state = grade(card, 2, now)
    saved = await save_flashcard_schedule(db, card.id, state, card.version)

    assert saved.version == 1
    assert saved.repetitions == 1
    assert saved.last_review == now
    assert saved.next_review == now + timedelta(days=1)


async def test_save_schedule_detects_stale_version(db, now):
    card = await create_flashcard(db, "alice", _new())
    await save_flashcard_schedule(db, card.id, grade(card, 2, now), card.version)

    with pytest.raises(StaleCardError) as exc:
        await save_flashcard_schedule(db, card.id, grade(card, 3, now), card.version)
    assert exc.value.expected_version == 0

    stored = await get_flashcard(db, card.id)
    assert stored.ease_factor == 2.5  # the losing write did not land


async def test_save_schedule_missing_card(db, now):
    card = await create_flashcard(db, "alice", _new())
    await delete_flashcard(db, card.id, "alice")
    assert await save_flashcard_schedule(db, card.id, grade(card, 2, now), 0) is None


async def test_content_update_leaves_schedule(db, now):
    card = await create_flashcard(db, "alice", _new())
    card = await save_flashcard_schedule(db, card.id, grade(card, 3, now), card.version)

    updated = await update_flashcard_content(
        db, card.id, "alice", FlashcardUpdate(front="New Q", deck="py")
    )
    assert updated.front == "New Q"
    assert updated.back == "A"
    assert updated.deck == "py"
    assert updated.ease_factor == card.ease_factor
    assert updated.next_review == card.next_review
    assert updated.version == card.version

    assert await update_flashcard_content(db, card.id, "bob", FlashcardUpdate(front="x")) is None


async def test_delete(db):
    card = await create_flashcard(db, "alice", _new())
    assert not await delete_flashcard(db, card.id, "bob")
    assert await delete_flashcard(db, card.id, "alice")
    assert await get_flashcard(db, card.id) is None
    assert not await delete_flashcard(db, card.id, "alice")


async def test_review_log(db, now):
    card = await create_flashcard(db, "alice", _new())
    first = await save_flashcard_schedule(db, card.id, grade(card, 2, now), 0)
    await insert_review_log(db, first, 2)
    later = now + timedelta(days=1)
    second = await save_flashcard_schedule(db, card.id, grade(first, 0, later), 1)
    await insert_review_log(db, second, 0)

    entries = await list_review_log(db, card.id)
    assert [e.quality for e in entries] == [0, 2]
    assert entries[0].reviewed_at == later
    assert entries[1].interval == 1
