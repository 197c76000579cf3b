from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Flashcard(BaseModel):
    id: str
    owner_id: str
    course_id: str | None
    deck: str
    front: str
    back: str
    ease_factor: float           # >= 1.3; interval growth multiplier
    interval: int                # days until next review
    repetitions: int             # consecutive passing reviews since last reset
    last_review: datetime | None
    next_review: datetime | None  # None = due immediately
    version: int                 # bumped on every schedule save (optimistic locking)
    created_at: str
    updated_at: str


class FlashcardList(BaseModel):
    items: list[Flashcard]
    total: int


class FlashcardCreate(BaseModel):
    deck: str = Field(min_length=1)
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    course_id: str | None = None


class FlashcardUpdate(BaseModel):
    front: str | None = None
    back: str | None = None
    deck: str | None = None


class ReviewRequest(BaseModel):
    # 0=Fail, 1=Hard, 2=Good, 3=Easy; Quality.parse validates the raw value
    # (no pydantic coercion, so true and "2" are rejected)
    quality: Any


class ReviewLogEntry(BaseModel):
    id: str
    card_id: str
    quality: int
    ease_factor: float
    interval: int
    repetitions: int
    reviewed_at: datetime


class DeckStat(BaseModel):
    deck: str
    total: int
    due: int
    new: int
    last_review: datetime | None = None


class DeckOverview(BaseModel):
    decks: list[DeckStat]
    flashcards: list[Flashcard]


class StudyStats(BaseModel):
    total_cards: int
    due_cards: int
    average_accuracy: int  # ease-factor heuristic, not a measured pass rate
    streak: int


class NextCard(BaseModel):
    card: Flashcard | None
    remaining: int
