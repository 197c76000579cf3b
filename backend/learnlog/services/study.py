"""
Due selection and deck/session statistics over a card collection.

Everything here is read-only: cards are accepted as an explicit iterable on
every call and "now" is always passed in.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from learnlog.services.scheduling import (
    INITIAL_EASE_FACTOR,
    MIN_EASE_FACTOR,
    round_half_up,
)

DEFAULT_ACCURACY = 50  # percent, reported before any card has been reviewed


def is_due(card: Any, now: datetime) -> bool:
    return card.next_review is None or card.next_review <= now


def _queue_key(indexed: tuple[int, Any]) -> tuple:
    # New cards (no next_review) sort before everything; ties keep input order
    position, card = indexed
    if card.next_review is None:
        return (0, 0.0, position)
    return (1, card.next_review.timestamp(), position)


class DueSelection:
    """Due cards from a collection, in review-queue order.

    Iterating filters and sorts afresh each time, so the selection can be
    walked more than once. The underlying collection is never mutated.
    """

    def __init__(self, cards: Iterable[Any], now: datetime, deck: str | None = None):
        self._cards = cards if isinstance(cards, (list, tuple)) else list(cards)
        self.now = now
        self.deck = deck

    def __iter__(self) -> Iterator[Any]:
        due = (
            (i, c)
            for i, c in enumerate(self._cards)
            if (self.deck is None or c.deck == self.deck) and is_due(c, self.now)
        )
        return (card for _, card in sorted(due, key=_queue_key))

    def __len__(self) -> int:
        return sum(
            1
            for c in self._cards
            if (self.deck is None or c.deck == self.deck) and is_due(c, self.now)
        )

    def first(self) -> Any | None:
        return next(iter(self), None)


def select_due(cards: Iterable[Any], now: datetime, deck: str | None = None) -> DueSelection:
    return DueSelection(cards, now, deck)


@dataclass
class DeckStat:
    deck: str
    total: int = 0
    due: int = 0
    new: int = 0
    last_review: datetime | None = None


@dataclass
class AggregateStats:
    total_cards: int
    due_cards: int
    average_accuracy: int
    streak: int


def deck_stat(deck: str, cards: Iterable[Any], now: datetime) -> DeckStat:
    """Stats for a single deck; cards from other decks are ignored."""
    stat = DeckStat(deck=deck)
    for card in cards:
        if card.deck != deck:
            continue
        stat.total += 1
        if is_due(card, now):
            stat.due += 1
        if card.last_review is None:
            stat.new += 1
        elif stat.last_review is None or card.last_review > stat.last_review:
            stat.last_review = card.last_review
    return stat


def deck_stats(cards: Iterable[Any], now: datetime) -> list[DeckStat]:
    """Group cards by deck name and compute each deck's stats, sorted by name."""
    by_deck: dict[str, list[Any]] = {}
    for card in cards:
        by_deck.setdefault(card.deck, []).append(card)
    return [deck_stat(name, by_deck[name], now) for name in sorted(by_deck)]


def accuracy_from_ease(ease_factor: float) -> float:
    """Map an ease factor onto 0-100: 1.3 -> 0, 1.9 -> 50, 2.5 and above -> 100."""
    pct = (ease_factor - MIN_EASE_FACTOR) / (INITIAL_EASE_FACTOR - MIN_EASE_FACTOR) * 100
    return min(100.0, max(0.0, pct))


def average_accuracy(cards: Iterable[Any]) -> int:
    """Approximate recall accuracy as a whole percent.

    This is not a measured pass rate. The average ease factor of reviewed
    cards stands in for performance, so the number only tracks how grades
    have trended. With no reviewed cards there is nothing to go on and the
    result is the midpoint, DEFAULT_ACCURACY.
    """
    eases = [c.ease_factor for c in cards if c.last_review is not None]
    if not eases:
        return DEFAULT_ACCURACY
    return round_half_up(accuracy_from_ease(sum(eases) / len(eases)))


def _local_date(ts: datetime, now: datetime) -> date:
    if ts.tzinfo is not None and now.tzinfo is not None:
        ts = ts.astimezone(now.tzinfo)
    return ts.date()


def review_streak(cards: Iterable[Any], now: datetime) -> int:
    """Consecutive calendar days, ending today, with at least one review."""
    review_days = {_local_date(c.last_review, now) for c in cards if c.last_review is not None}
    day = now.date()
    streak = 0
    while day in review_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def aggregate_stats(cards: Iterable[Any], now: datetime) -> AggregateStats:
    cards = list(cards)
    return AggregateStats(
        total_cards=len(cards),
        due_cards=sum(1 for c in cards if is_due(c, now)),
        average_accuracy=average_accuracy(cards),
        streak=review_streak(cards, now),
    )
