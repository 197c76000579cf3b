"""
Flashcards & spaced repetition router.

Endpoints:
  GET    /flashcards               — cards plus per-deck stats
  GET    /flashcards/due           — due queue (new cards first, then oldest due)
  GET    /flashcards/next          — head of the due queue and how many remain
  GET    /flashcards/stats         — total, due, approximate accuracy, streak
  GET    /flashcards/decks         — per-deck stats
  GET    /flashcards/decks/{deck}  — stats for one deck
  POST   /flashcards               — create a card (due immediately)
  GET    /flashcards/{id}          — single card
  PUT    /flashcards/{id}          — edit front / back / deck
  DELETE /flashcards/{id}          — delete card
  POST   /flashcards/{id}/review   — submit quality 0-3, reschedule
  GET    /flashcards/{id}/history  — review log, newest first
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from itertools import islice
from zoneinfo import ZoneInfo

import aiosqlite
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from learnlog.config import settings
from learnlog.db.sqlite import (
    create_flashcard,
    delete_flashcard,
    get_db,
    get_flashcard,
    list_flashcards,
    list_review_log,
    update_flashcard_content,
)
from learnlog.models.flashcard import (
    DeckOverview,
    DeckStat,
    Flashcard,
    FlashcardCreate,
    FlashcardList,
    FlashcardUpdate,
    NextCard,
    ReviewLogEntry,
    ReviewRequest,
    StudyStats,
)
from learnlog.services import study
from learnlog.services.reviews import (
    CardNotFoundError,
    ReviewConflictError,
    review_flashcard,
)
from learnlog.services.scheduling import InvalidCardState, InvalidQuality

logger = logging.getLogger(__name__)
router = APIRouter()


def get_now() -> datetime:
    """The only place "now" is read from the clock."""
    return datetime.now(ZoneInfo(settings.timezone))


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    return x_owner_id or settings.default_owner_id


async def _load_cards(
    db: aiosqlite.Connection, owner_id: str, course_id: str | None
) -> list[Flashcard]:
    items, _ = await list_flashcards(db, owner_id, course_id=course_id)
    return items


# --- Collection views ---


@router.get("/", response_model=DeckOverview)
async def overview(
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> DeckOverview:
    cards = await _load_cards(db, owner_id, course_id)
    decks = [DeckStat(**asdict(s)) for s in study.deck_stats(cards, now)]
    return DeckOverview(decks=decks, flashcards=cards)


@router.get("/due", response_model=FlashcardList)
async def get_due(
    deck: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=500),
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    """Return due cards in review order."""
    cards = await _load_cards(db, owner_id, course_id)
    due = study.select_due(cards, now, deck=deck)
    limit = limit or settings.due_queue_limit
    items = list(islice(due, limit))
    return FlashcardList(items=items, total=len(due))


@router.get("/next", response_model=NextCard)
async def get_next(
    deck: str | None = Query(default=None),
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> NextCard:
    cards = await _load_cards(db, owner_id, course_id)
    due = study.select_due(cards, now, deck=deck)
    return NextCard(card=due.first(), remaining=len(due))


@router.get("/stats", response_model=StudyStats)
async def get_stats(
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> StudyStats:
    """Totals, due count, ease-based accuracy estimate and review streak."""
    cards = await _load_cards(db, owner_id, course_id)
    return StudyStats(**asdict(study.aggregate_stats(cards, now)))


@router.get("/decks", response_model=list[DeckStat])
async def get_deck_stats(
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> list[DeckStat]:
    cards = await _load_cards(db, owner_id, course_id)
    return [DeckStat(**asdict(s)) for s in study.deck_stats(cards, now)]


@router.get("/decks/{deck}", response_model=DeckStat)
async def get_single_deck_stat(
    deck: str,
    course_id: str | None = Query(default=None),
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> DeckStat:
    items, _ = await list_flashcards(db, owner_id, course_id=course_id, deck=deck)
    return DeckStat(**asdict(study.deck_stat(deck, items, now)))


# --- Single card ---


@router.post("/", response_model=Flashcard, status_code=201)
async def create_card(
    body: FlashcardCreate,
    owner_id: str = Depends(get_owner_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    return await create_flashcard(db, owner_id, body)


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    owner_id: str = Depends(get_owner_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    card = await get_flashcard(db, card_id, owner_id)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return card


@router.put("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    owner_id: str = Depends(get_owner_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    updated = await update_flashcard_content(db, card_id, owner_id, body)
    if not updated:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    owner_id: str = Depends(get_owner_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await delete_flashcard(db, card_id, owner_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Flashcard not found")


@router.post("/{card_id}/review", response_model=Flashcard)
async def review_card(
    card_id: str,
    body: ReviewRequest,
    owner_id: str = Depends(get_owner_id),
    now: datetime = Depends(get_now),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    """Submit a quality grade (0=Fail, 1=Hard, 2=Good, 3=Easy) and reschedule."""
    try:
        return await review_flashcard(db, card_id, owner_id, body.quality, now)
    except InvalidQuality as e:
        raise HTTPException(
            status_code=422,
            detail={"error": "invalid_quality", "quality": e.quality, "message": str(e)},
        ) from e
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail="Flashcard not found") from e
    except InvalidCardState as e:
        raise HTTPException(
            status_code=500,
            detail={"error": "card_data_integrity", "card_id": card_id, "message": e.reason},
        ) from e
    except ReviewConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get("/{card_id}/history", response_model=list[ReviewLogEntry])
async def get_history(
    card_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    owner_id: str = Depends(get_owner_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> list[ReviewLogEntry]:
    card = await get_flashcard(db, card_id, owner_id)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return await list_review_log(db, card_id, limit=limit)
