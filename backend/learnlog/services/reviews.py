"""
Review workflow: load → grade → save with optimistic locking.

The scheduler itself is pure; this module owns the read-modify-write cycle
around it. A save that loses a version race re-reads the card and grades the
fresh state again, up to settings.review_max_retries extra attempts.
"""
from __future__ import annotations

import logging
from datetime import datetime

import aiosqlite

from learnlog.config import settings
from learnlog.db.sqlite import (
    StaleCardError,
    get_flashcard,
    insert_review_log,
    save_flashcard_schedule,
)
from learnlog.models.flashcard import Flashcard
from learnlog.services.scheduling import InvalidCardState, Quality, grade

logger = logging.getLogger(__name__)


class CardNotFoundError(Exception):
    def __init__(self, card_id: str) -> None:
        self.card_id = card_id
        super().__init__(f"Flashcard {card_id} not found")


class ReviewConflictError(Exception):
    def __init__(self, card_id: str, attempts: int) -> None:
        self.card_id = card_id
        self.attempts = attempts
        super().__init__(f"Flashcard {card_id} kept changing; gave up after {attempts} attempts")


async def review_flashcard(
    db: aiosqlite.Connection,
    card_id: str,
    owner_id: str,
    quality: int,
    now: datetime,
    max_retries: int | None = None,
) -> Flashcard:
    """Grade a stored card and persist the result.

    Raises InvalidQuality before touching the database, CardNotFoundError,
    InvalidCardState for corrupt stored data, or ReviewConflictError when
    concurrent writers keep winning.
    """
    q = Quality.parse(quality)
    retries = settings.review_max_retries if max_retries is None else max_retries

    for attempt in range(1, retries + 2):
        card = await get_flashcard(db, card_id, owner_id)
        if card is None:
            raise CardNotFoundError(card_id)

        try:
            state = grade(card, q, now)
        except InvalidCardState as e:
            logger.error("Refusing to grade flashcard %s: %s", card_id, e.reason)
            raise

        try:
            updated = await save_flashcard_schedule(db, card_id, state, card.version)
        except StaleCardError:
            logger.info(
                "Flashcard %s changed during review (attempt %d), retrying", card_id, attempt
            )
            continue
        if updated is None:
            raise CardNotFoundError(card_id)

        try:
            await insert_review_log(db, updated, q)
        except Exception:
            logger.warning("Review log write failed for flashcard %s", card_id, exc_info=True)
        return updated

    logger.warning("Giving up on flashcard %s after %d conflicting saves", card_id, retries + 1)
    raise ReviewConflictError(card_id, retries + 1)
