"""Tests for the review workflow (load, grade, optimistic save)."""

from datetime import timedelta

import pytest

from learnlog.db import sqlite as sqlite_db
from learnlog.db.sqlite import (
    StaleCardError,
    create_flashcard,
    get_flashcard,
    list_review_log,
)
from learnlog.models.flashcard import FlashcardCreate
from learnlog.services import reviews
from learnlog.services.reviews import (
    CardNotFoundError,
    ReviewConflictError,
    review_flashcard,
)
from learnlog.services.scheduling import InvalidCardState, InvalidQuality


async def _card(db, owner="alice"):
    return await create_flashcard(db, owner, FlashcardCreate(deck="python", front="Q", back="A"))


async def test_review_persists_and_logs(db, now):
    card = await _card(db)
    updated = await review_flashcard(db, card.id, "alice", 2, now)
    assert updated.repetitions == 1
    assert updated.next_review == now + timedelta(days=1)
    assert updated.version == 1

    updated = await review_flashcard(db, card.id, "alice", 2, now + timedelta(days=1))
    assert updated.interval == 6
    assert updated.next_review == now + timedelta(days=7)

    assert len(await list_review_log(db, card.id)) == 2


async def test_invalid_quality_rejected_before_lookup(db, now):
    with pytest.raises(InvalidQuality):
        await review_flashcard(db, "does-not-exist", "alice", 5, now)


async def test_missing_card(db, now):
    with pytest.raises(CardNotFoundError):
        await review_flashcard(db, "does-not-exist", "alice", 2, now)


async def test_other_owner_cannot_review(db, now):
    card = await _card(db)
    with pytest.raises(CardNotFoundError):
        await review_flashcard(db, card.id, "bob", 2, now)


async def test_corrupt_card_is_refused(db, now):
    card = await _card(db)
    await db.execute("UPDATE flashcards SET interval = -4 WHERE id = ?", (card.id,))
    await db.commit()

    with pytest.raises(InvalidCardState):
        await review_flashcard(db, card.id, "alice", 2, now)

    stored = await get_flashcard(db, card.id)
    assert stored.interval == -4
    assert stored.version == 0


async def test_retries_after_conflict(db, now, monkeypatch):
    card = await _card(db)
    real_save = sqlite_db.save_flashcard_schedule
    calls = []

    async def flaky_save(conn, card_id, state, expected_version):
        calls.append(expected_version)
        if len(calls) == 1:
            # another writer lands a review first
            await real_save(conn, card_id, state, expected_version)
            raise StaleCardError(card_id, expected_version)
        return await real_save(conn, card_id, state, expected_version)

    monkeypatch.setattr(reviews, "save_flashcard_schedule", flaky_save)
    updated = await review_flashcard(db, card.id, "alice", 2, now)

    assert calls == [0, 1]
    # graded on top of the concurrent review, not on the stale snapshot
    assert updated.repetitions == 2
    assert updated.interval == 6
    assert updated.version == 2


async def test_gives_up_after_max_retries(db, now, monkeypatch):
    card = await _card(db)

    async def always_stale(conn, card_id, state, expected_version):
        raise StaleCardError(card_id, expected_version)

    monkeypatch.setattr(reviews, "save_flashcard_schedule", always_stale)
    with pytest.raises(ReviewConflictError) as exc:
        await review_flashcard(db, card.id, "alice", 2, now, max_retries=2)
    assert exc.value.attempts == 3


async def test_review_log_failure_does_not_fail_review(db, now, monkeypatch):
    card = await _card(db)

    async def broken_log(conn, card, quality):
        raise RuntimeError("disk full")

    monkeypatch.setattr(reviews, "insert_review_log", broken_log)
    updated = await review_flashcard(db, card.id, "alice", 3, now)
    assert updated.repetitions == 1
