"""
Review state machine for flashcard scheduling.

grade() takes a card's current scheduling fields, a Quality grade and an
explicit "now", and returns the next CardState. It performs no I/O and never
reads the wall clock; persisting the result is the caller's job.

Grades 0 (Fail) and 1 (Hard) both take the reset branch: repetitions drop to
0 and the interval to 1 day. Hard is deliberately treated as a lapse so that
existing review data keeps scheduling the way it always has.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any

MIN_EASE_FACTOR = 1.3
INITIAL_EASE_FACTOR = 2.5
INITIAL_INTERVAL = 1   # days
SECOND_INTERVAL = 6    # days
MAX_INTERVAL = 36500   # days; keeps next_review inside datetime range and int32


class SchedulingError(Exception):
    """Base class for scheduling precondition violations."""


class InvalidQuality(SchedulingError):
    def __init__(self, quality: Any) -> None:
        self.quality = quality
        super().__init__(f"quality must be one of 0, 1, 2, 3 (got {quality!r})")


class InvalidCardState(SchedulingError):
    def __init__(self, reason: str, card_id: str | None = None) -> None:
        self.reason = reason
        self.card_id = card_id
        prefix = f"card {card_id}: " if card_id else ""
        super().__init__(f"{prefix}{reason}")


class Quality(IntEnum):
    FAIL = 0
    HARD = 1
    GOOD = 2
    EASY = 3

    @classmethod
    def parse(cls, value: Any) -> Quality:
        """Convert raw input (int or Quality) to a Quality, or raise InvalidQuality."""
        if isinstance(value, cls):
            return value
        # bool is an int subclass; True must not silently become HARD
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidQuality(value)
        try:
            return cls(value)
        except ValueError:
            raise InvalidQuality(value) from None


PASSING_QUALITY = Quality.GOOD

_EASE_DELTA: dict[Quality, float] = {
    Quality.FAIL: -0.2,
    Quality.HARD: -0.15,
    Quality.GOOD: 0.0,
    Quality.EASY: 0.15,
}


@dataclass(frozen=True)
class CardState:
    ease_factor: float = INITIAL_EASE_FACTOR
    interval: int = INITIAL_INTERVAL
    repetitions: int = 0
    last_review: datetime | None = None
    next_review: datetime | None = None  # None = due immediately

    @classmethod
    def new(cls) -> CardState:
        return cls()


def is_lapse(quality: Quality) -> bool:
    return quality < PASSING_QUALITY


def ease_delta(quality: Quality) -> float:
    return _EASE_DELTA[quality]


def validate_state(card: Any) -> None:
    """Raise InvalidCardState if the stored scheduling fields are already corrupt.

    Nothing is repaired here: a card that fails these checks points at an
    upstream data problem and must not be graded.
    """
    card_id = getattr(card, "id", None)
    ease = card.ease_factor
    if isinstance(ease, bool) or not isinstance(ease, (int, float)) or not math.isfinite(ease):
        raise InvalidCardState(f"ease_factor is not a finite number: {ease!r}", card_id)
    if ease < MIN_EASE_FACTOR:
        raise InvalidCardState(
            f"ease_factor {ease} is below the minimum {MIN_EASE_FACTOR}", card_id
        )
    for name, floor in (("interval", 1), ("repetitions", 0)):
        value = getattr(card, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidCardState(f"{name} is not an integer: {value!r}", card_id)
        if value < floor:
            raise InvalidCardState(f"{name} {value} is below {floor}", card_id)
    if card.last_review is not None and card.next_review is None:
        raise InvalidCardState("last_review is set but next_review is missing", card_id)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def next_interval(repetitions: int, interval: int, ease_factor: float) -> int:
    """Interval in days after a passing grade, given the pre-review counters.

    Growth is capped at MAX_INTERVAL (about a hundred years). The ease factor
    itself is never capped.
    """
    if repetitions == 0:
        return INITIAL_INTERVAL
    if repetitions == 1:
        return SECOND_INTERVAL
    grown = round_half_up(interval * ease_factor)
    return min(MAX_INTERVAL, max(INITIAL_INTERVAL, grown))


def grade(card: Any, quality: Any, now: datetime) -> CardState:
    """Compute the scheduling state that follows a single review.

    `card` may be a CardState or any object carrying ease_factor, interval,
    repetitions, last_review and next_review. Raises InvalidQuality or
    InvalidCardState on bad input.
    """
    q = Quality.parse(quality)
    validate_state(card)

    new_ease = max(MIN_EASE_FACTOR, card.ease_factor + ease_delta(q))

    if is_lapse(q):
        new_interval = INITIAL_INTERVAL
        new_repetitions = 0
    else:
        new_interval = next_interval(card.repetitions, card.interval, new_ease)
        new_repetitions = card.repetitions + 1

    return CardState(
        ease_factor=new_ease,
        interval=new_interval,
        repetitions=new_repetitions,
        last_review=now,
        next_review=now + timedelta(days=new_interval),
    )
