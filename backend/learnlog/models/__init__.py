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

__all__ = [
    "DeckOverview",
    "DeckStat",
    "Flashcard",
    "FlashcardCreate",
    "FlashcardList",
    "FlashcardUpdate",
    "NextCard",
    "ReviewLogEntry",
    "ReviewRequest",
    "StudyStats",
]
