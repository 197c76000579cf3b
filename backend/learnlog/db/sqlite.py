import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from learnlog.config import settings
from learnlog.models.flashcard import (
    Flashcard,
    FlashcardCreate,
    FlashcardUpdate,
    ReviewLogEntry,
)
from learnlog.services.scheduling import CardState

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS flashcards (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL,
    course_id   TEXT,
    deck        TEXT NOT NULL,
    front       TEXT NOT NULL,
    back        TEXT NOT NULL,
    ease_factor REAL NOT NULL DEFAULT 2.5,
    interval    INTEGER NOT NULL DEFAULT 1,
    repetitions INTEGER NOT NULL DEFAULT 0,
    last_review TEXT,
    next_review TEXT,
    version     INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_flashcards_deck ON flashcards(owner_id, deck);
CREATE INDEX IF NOT EXISTS idx_flashcards_review ON flashcards(owner_id, next_review);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""


class StaleCardError(Exception):
    """The card's version changed between load and save."""

    def __init__(self, card_id: str, expected_version: int) -> None:
        self.card_id = card_id
        self.expected_version = expected_version
        super().__init__(f"Flashcard {card_id} changed since version {expected_version}")


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        cursor = await db.execute("SELECT MAX(version) FROM schema_version")
        current_version = (await cursor.fetchone())[0]
        # Migration v1 → v2: per-review history
        if current_version < 2:
            await db.executescript("""
                CREATE TABLE IF NOT EXISTS review_log (
                    id          TEXT PRIMARY KEY,
                    card_id     TEXT NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
                    owner_id    TEXT NOT NULL,
                    quality     INTEGER NOT NULL CHECK(quality IN (0, 1, 2, 3)),
                    ease_factor REAL NOT NULL,
                    interval    INTEGER NOT NULL,
                    repetitions INTEGER NOT NULL,
                    reviewed_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_review_log_card ON review_log(card_id);
                INSERT OR IGNORE INTO schema_version(version) VALUES (2);
            """)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _ts(value: datetime | None) -> str | None:
    """Serialize a scheduling timestamp; aware values are normalized to UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


# --- Flashcards ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    return Flashcard(**dict(row))


def _scope(owner_id: str | None, course_id: str | None) -> tuple[str, list]:
    clauses: list[str] = []
    params: list = []
    if owner_id is not None:
        clauses.append("owner_id = ?")
        params.append(owner_id)
    if course_id is not None:
        clauses.append("course_id = ?")
        params.append(course_id)
    where = (" AND " + " AND ".join(clauses)) if clauses else ""
    return where, params


async def create_flashcard(
    db: aiosqlite.Connection, owner_id: str, card: FlashcardCreate
) -> Flashcard:
    """Insert a new card in the scheduler's initial state (due immediately)."""
    card_id = str(uuid.uuid4())
    state = CardState.new()
    now = _now()
    await db.execute(
        """INSERT INTO flashcards
           (id, owner_id, course_id, deck, front, back,
            ease_factor, interval, repetitions, last_review, next_review,
            version, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, 0, ?, ?)""",
        (
            card_id,
            owner_id,
            card.course_id,
            card.deck,
            card.front,
            card.back,
            state.ease_factor,
            state.interval,
            state.repetitions,
            now,
            now,
        ),
    )
    await db.commit()
    return await get_flashcard(db, card_id)  # type: ignore[return-value]


async def get_flashcard(
    db: aiosqlite.Connection, card_id: str, owner_id: str | None = None
) -> Flashcard | None:
    where, params = _scope(owner_id, None)
    cursor = await db.execute(
        f"SELECT * FROM flashcards WHERE id = ?{where}",  # noqa: S608
        [card_id, *params],
    )
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def list_flashcards(
    db: aiosqlite.Connection,
    owner_id: str,
    course_id: str | None = None,
    deck: str | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[Flashcard], int]:
    where, params = _scope(owner_id, course_id)
    if deck is not None:
        where += " AND deck = ?"
        params.append(deck)

    count_cursor = await db.execute(
        f"SELECT COUNT(*) FROM flashcards WHERE 1 = 1{where}",  # noqa: S608
        params,
    )
    count_row = await count_cursor.fetchone()
    total = count_row[0] if count_row else 0

    query = f"SELECT * FROM flashcards WHERE 1 = 1{where} ORDER BY created_at DESC, id"  # noqa: S608
    page_params = list(params)
    if limit is not None:
        query += " LIMIT ? OFFSET ?"
        page_params += [limit, offset]
    cursor = await db.execute(query, page_params)
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows], total


async def list_flashcards_for_deck(
    db: aiosqlite.Connection,
    owner_id: str,
    deck: str,
    course_id: str | None = None,
) -> list[Flashcard]:
    items, _ = await list_flashcards(db, owner_id, course_id=course_id, deck=deck)
    return items


async def list_decks(
    db: aiosqlite.Connection, owner_id: str, course_id: str | None = None
) -> list[str]:
    where, params = _scope(owner_id, course_id)
    cursor = await db.execute(
        f"SELECT DISTINCT deck FROM flashcards WHERE 1 = 1{where} ORDER BY deck",  # noqa: S608
        params,
    )
    rows = await cursor.fetchall()
    return [row[0] for row in rows]


async def save_flashcard_schedule(
    db: aiosqlite.Connection,
    card_id: str,
    state: CardState,
    expected_version: int,
) -> Flashcard | None:
    """Persist new scheduling fields if the card is still at expected_version.

    Returns None when the card no longer exists and raises StaleCardError when
    another writer saved it first.
    """
    cursor = await db.execute(
        """UPDATE flashcards
           SET ease_factor = ?, interval = ?, repetitions = ?,
               last_review = ?, next_review = ?,
               version = version + 1, updated_at = ?
           WHERE id = ? AND version = ?""",
        (
            state.ease_factor,
            state.interval,
            state.repetitions,
            _ts(state.last_review),
            _ts(state.next_review),
            _now(),
            card_id,
            expected_version,
        ),
    )
    await db.commit()
    if (cursor.rowcount or 0) == 0:
        if await get_flashcard(db, card_id) is None:
            return None
        raise StaleCardError(card_id, expected_version)
    return await get_flashcard(db, card_id)


async def update_flashcard_content(
    db: aiosqlite.Connection,
    card_id: str,
    owner_id: str,
    update: FlashcardUpdate,
) -> Flashcard | None:
    card = await get_flashcard(db, card_id, owner_id)
    if not card:
        return None
    fields = update.model_dump(exclude_none=True)
    if not fields:
        return card

    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [card_id]
    await db.execute(
        f"UPDATE flashcards SET {set_clause} WHERE id = ?",  # noqa: S608
        values,
    )
    await db.commit()
    return await get_flashcard(db, card_id)


async def delete_flashcard(db: aiosqlite.Connection, card_id: str, owner_id: str) -> bool:
    cursor = await db.execute(
        "DELETE FROM flashcards WHERE id = ? AND owner_id = ?", (card_id, owner_id)
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Review history ---


async def insert_review_log(
    db: aiosqlite.Connection,
    card: Flashcard,
    quality: int,
) -> None:
    """Record one grading; `card` carries the scheduling state after the review."""
    await db.execute(
        """INSERT INTO review_log
           (id, card_id, owner_id, quality, ease_factor, interval, repetitions, reviewed_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            str(uuid.uuid4()),
            card.id,
            card.owner_id,
            int(quality),
            card.ease_factor,
            card.interval,
            card.repetitions,
            _ts(card.last_review) or _now(),
        ),
    )
    await db.commit()


async def list_review_log(
    db: aiosqlite.Connection, card_id: str, limit: int = 50
) -> list[ReviewLogEntry]:
    cursor = await db.execute(
        """SELECT id, card_id, quality, ease_factor, interval, repetitions, reviewed_at
           FROM review_log WHERE card_id = ?
           ORDER BY reviewed_at DESC LIMIT ?""",
        (card_id, limit),
    )
    rows = await cursor.fetchall()
    return [ReviewLogEntry(**dict(r)) for r in rows]
